"""
Suppliers and purchase orders.

LIFECYCLE:
1. ORDERED: created directly in this state; total cost fixed at creation
2. RECEIVED: stock posted to one location (terminal, exactly once)
3. CANCELLED: from DRAFT or ORDERED (terminal)

DRAFT -> ORDERED is accepted for orders imported in draft. Receiving is the
only path into RECEIVED and the only path that touches inventory.
"""
from __future__ import annotations

import logging
from typing import Optional

from rims.time_utils import utcnow
from rims.validation import ValidationError

from .entities import (
    BatchInfo,
    PurchaseOrder,
    PurchaseOrderLine,
    Supplier,
    TransactionType,
    PO_STATUS_CANCELLED,
    PO_STATUS_DRAFT,
    PO_STATUS_ORDERED,
    PO_STATUS_RECEIVED,
    new_id,
)
from .errors import LedgerError
from .inventory_service import adjust_stock, require_cents, require_positive_int


logger = logging.getLogger(__name__)


class PurchaseOrderError(LedgerError):
    """Raised when purchase order operations fail."""
    pass


# Manual status changes; RECEIVED is reachable only through receive_purchase_order
ALLOWED_STATUS_CHANGES = {
    PO_STATUS_DRAFT: {PO_STATUS_ORDERED, PO_STATUS_CANCELLED},
    PO_STATUS_ORDERED: {PO_STATUS_CANCELLED},
}

SUPPLIER_FIELDS = {"name", "contact_person", "email", "phone", "address", "rating"}


# =============================================================================
# SUPPLIERS
# =============================================================================

def _check_rating(rating) -> None:
    if rating is None:
        return
    if isinstance(rating, bool) or not isinstance(rating, (int, float)) or not 0 <= rating <= 5:
        raise ValidationError("rating must be between 0 and 5")


def add_supplier(
    ledger,
    *,
    name: str,
    contact_person: str = "",
    email: str = "",
    phone: str = "",
    address: str = "",
    rating: Optional[float] = None,
) -> Supplier:
    if not name or not name.strip():
        raise ValidationError("Supplier name is required")
    _check_rating(rating)

    with ledger.lock:
        supplier = Supplier(
            id=new_id("SUP"),
            name=name.strip(),
            contact_person=contact_person,
            email=email,
            phone=phone,
            address=address,
            rating=rating,
        )
        ledger.suppliers[supplier.id] = supplier
        ledger.sync.enqueue_upsert("suppliers", supplier.to_dict())
        return supplier


def update_supplier(ledger, supplier_id: str, **changes) -> Supplier:
    unknown = sorted(set(changes) - SUPPLIER_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown supplier fields: {', '.join(unknown)}")
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("Supplier name cannot be blank")
    _check_rating(changes.get("rating"))

    with ledger.lock:
        supplier = ledger.get_supplier(supplier_id)
        for key, value in changes.items():
            setattr(supplier, key, value)
        ledger.sync.enqueue_upsert("suppliers", supplier.to_dict())
        return supplier


def delete_supplier(ledger, supplier_id: str) -> Supplier:
    with ledger.lock:
        supplier = ledger.get_supplier(supplier_id)
        del ledger.suppliers[supplier_id]
        ledger.sync.enqueue_delete("suppliers", supplier_id)
        return supplier


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

def create_purchase_order(
    ledger,
    *,
    supplier_id: str,
    lines,
    date_expected=None,
    notes: Optional[str] = None,
) -> PurchaseOrder:
    """
    Create a purchase order in ORDERED status.

    total_cost_cents = sum(quantity x cost_price_cents), computed once here.
    """
    lines = [
        line if isinstance(line, PurchaseOrderLine) else PurchaseOrderLine(**line)
        for line in (lines or [])
    ]
    if not lines:
        raise PurchaseOrderError("Purchase order needs at least one line")
    for line in lines:
        require_positive_int(line.quantity, "quantity")
        require_cents(line.cost_price_cents, "cost_price_cents")

    with ledger.lock:
        ledger.get_supplier(supplier_id)
        for line in lines:
            ledger.get_item(line.item_id)

        po = PurchaseOrder(
            id=new_id("PO"),
            supplier_id=supplier_id,
            status=PO_STATUS_ORDERED,
            date_created=utcnow(),
            lines=lines,
            total_cost_cents=sum(line.quantity * line.cost_price_cents for line in lines),
            date_expected=date_expected,
            notes=notes,
        )
        ledger.purchase_orders[po.id] = po
        ledger.sync.enqueue_upsert("purchase_orders", po.to_dict())
        logger.info("Created purchase order %s (%d cents)", po.id, po.total_cost_cents)
        return po


def update_purchase_order_status(ledger, po_id: str, status: str) -> PurchaseOrder:
    with ledger.lock:
        po = ledger.get_purchase_order(po_id)
        if status == PO_STATUS_RECEIVED:
            raise PurchaseOrderError("Use receive_purchase_order to receive stock")
        if status not in ALLOWED_STATUS_CHANGES.get(po.status, set()):
            raise PurchaseOrderError(f"Cannot change purchase order from {po.status} to {status}")

        po.status = status
        ledger.sync.enqueue_upsert("purchase_orders", po.to_dict())
        return po


def receive_purchase_order(
    ledger,
    po_id: str,
    location_id: str,
    *,
    invoice_number: Optional[str] = None,
    batches: Optional[dict[str, BatchInfo]] = None,
) -> PurchaseOrder:
    """
    Post a purchase order's lines into stock at one location.

    Only ORDERED orders can be received; a second receive is rejected.
    batches maps item id -> BatchInfo for batch-tracked lines. Lines whose
    item has since been deleted are skipped with a warning.
    """
    batches = batches or {}

    with ledger.lock:
        po = ledger.get_purchase_order(po_id)
        ledger.get_location(location_id)
        if po.status != PO_STATUS_ORDERED:
            raise PurchaseOrderError(f"Cannot receive purchase order {po_id} in {po.status} status")

        reason = f"PO Received: {po.id}"
        if invoice_number:
            reason += f" (Inv: {invoice_number})"

        for line in po.lines:
            if line.item_id not in ledger.inventory:
                logger.warning("PO %s: item %s no longer exists; line skipped", po.id, line.item_id)
                continue
            adjust_stock(
                ledger,
                line.item_id,
                location_id,
                line.quantity,
                type=TransactionType.RESTOCK,
                reason=reason,
                batch=batches.get(line.item_id),
            )

        po.status = PO_STATUS_RECEIVED
        po.invoice_number = invoice_number
        po.received_location_id = location_id
        po.received_at = utcnow()
        ledger.sync.enqueue_upsert("purchase_orders", po.to_dict())
        logger.info("Received purchase order %s at %s", po.id, location_id)
        return po
