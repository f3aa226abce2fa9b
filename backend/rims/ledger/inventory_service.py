"""
Stock ledger primitives.

WHY: Every other workflow (sale, refund, audit, PO receive) is built from
the per-location stock math in this module. Keeping it in one place is
what makes the invariants below hold everywhere.

INVARIANTS:
- item.stock_quantity == sum(item.stock_distribution.values())
- no per-location quantity is ever negative (removals clamp at zero)
- every non-zero stock change appends exactly one Transaction whose
  quantity is abs(delta); a zero delta records nothing
- FEFO: removals consume the location's batches soonest-expiry first and
  drop batches that reach zero
- every mutation bumps item.version and stamps item.last_updated

TRANSACTION TYPES are passed explicitly by the caller. When omitted,
positive deltas are RESTOCK and negative deltas are ADJUSTMENT.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Optional

from rims.time_utils import utcnow
from rims.validation import ValidationError, MAX_PRICE_CENTS

from .entities import (
    BatchInfo,
    InventoryBatch,
    InventoryItem,
    Location,
    StockAdjustment,
    Transaction,
    TransactionType,
    LOCATION_STORE,
    LOCATION_WAREHOUSE,
    new_id,
)
from .errors import LedgerError


logger = logging.getLogger(__name__)


class InventoryError(LedgerError):
    """Raised when catalog or stock operations fail."""
    pass


class TransferError(LedgerError):
    """Raised when transfer operations fail."""
    pass


# Fields update_item may change. Stock fields move only through adjustments.
EDITABLE_ITEM_FIELDS = {
    "sku",
    "barcode",
    "name",
    "category",
    "description",
    "supplier",
    "cost_price_cents",
    "selling_price_cents",
    "low_stock_threshold",
    "location_prices",
}
STOCK_FIELDS = {"stock_quantity", "stock_distribution", "batches", "version", "last_updated", "id"}


# =============================================================================
# VALIDATION HELPERS
# =============================================================================

def require_int(value, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer")
    return value


def require_positive_int(value, field_name: str) -> int:
    require_int(value, field_name)
    if value <= 0:
        raise ValidationError(f"{field_name} must be positive")
    return value


def require_cents(value, field_name: str) -> int:
    require_int(value, field_name)
    if value < 0:
        raise ValidationError(f"{field_name} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{field_name} cannot exceed {MAX_PRICE_CENTS}")
    return value


# =============================================================================
# STOCK MATH (shared by sales, refunds, audits, receiving)
# =============================================================================

def apply_delta(item: InventoryItem, location_id: str, quantity_change: int) -> int:
    """
    Apply a signed delta at one location, clamping at zero, and re-derive the
    total over the full distribution. Returns the new per-location quantity.
    """
    current = item.stock_distribution.get(location_id, 0)
    new_qty = max(0, current + quantity_change)
    item.stock_distribution[location_id] = new_qty
    item.recompute_total()
    return new_qty


def _fefo_key(batch: InventoryBatch):
    # Batches without an expiry go last
    return (batch.expiry_date is None, batch.expiry_date or date.max)


def deplete_batches(item: InventoryItem, location_id: str, amount: int) -> list[InventoryBatch]:
    """
    Remove up to `amount` units from the location's batches, soonest expiry
    first. Batches reaching zero are dropped. Returns the consumed portions
    (used by transfers to relocate batch identity).
    """
    consumed: list[InventoryBatch] = []
    remaining = amount
    for batch in sorted((b for b in item.batches if b.location_id == location_id), key=_fefo_key):
        if remaining <= 0:
            break
        take = min(batch.quantity, remaining)
        batch.quantity -= take
        remaining -= take
        consumed.append(InventoryBatch(
            id=batch.id,
            batch_number=batch.batch_number,
            expiry_date=batch.expiry_date,
            quantity=take,
            location_id=location_id,
        ))
    item.batches = [b for b in item.batches if b.quantity > 0]
    return consumed


def add_batch(item: InventoryItem, location_id: str, quantity: int, batch: BatchInfo) -> InventoryBatch:
    """Append a new batch record; same-number batches are not merged."""
    record = InventoryBatch(
        id=new_id("BATCH"),
        batch_number=batch.batch_number,
        expiry_date=batch.expiry_date,
        quantity=quantity,
        location_id=location_id,
    )
    item.batches.append(record)
    return record


def touch(item: InventoryItem) -> None:
    item.last_updated = utcnow()
    item.version += 1


def check_low_stock(ledger, item: InventoryItem, location_id: str, before_total: int) -> None:
    """Notify when the total crosses from above the threshold to at-or-below it."""
    if before_total > item.low_stock_threshold >= item.stock_quantity:
        ledger.notify_low_stock(item, location_id)


def make_transaction(
    ledger,
    *,
    type: TransactionType,
    item_id: str,
    quantity: int,
    location_id: Optional[str],
    reason: str = "",
    tx_id: Optional[str] = None,
    line_no: int = 1,
    timestamp=None,
    **extra,
) -> Transaction:
    return Transaction(
        id=tx_id or new_id("TX"),
        type=type,
        item_id=item_id,
        quantity=quantity,
        timestamp=timestamp or utcnow(),
        user_name=ledger.user_name,
        reason=reason,
        location_id=location_id,
        line_no=line_no,
        **extra,
    )


# =============================================================================
# LOCATIONS
# =============================================================================

def add_location(ledger, *, name: str, type: str = LOCATION_STORE, address: str = "") -> Location:
    if not name or not name.strip():
        raise ValidationError("Location name is required")
    if type not in (LOCATION_STORE, LOCATION_WAREHOUSE):
        raise ValidationError(f"Location type must be {LOCATION_STORE} or {LOCATION_WAREHOUSE}")

    with ledger.lock:
        location = Location(id=new_id("loc"), name=name.strip(), type=type, address=address)
        ledger.locations[location.id] = location
        ledger.sync.enqueue_upsert("locations", location.to_dict())
        logger.info("Added location %s (%s)", location.name, location.id)
        return location


# =============================================================================
# CATALOG
# =============================================================================

def add_item(
    ledger,
    *,
    sku: str,
    name: str,
    location_id: str,
    initial_stock: int = 0,
    category: str = "",
    description: str = "",
    supplier: str = "",
    barcode: Optional[str] = None,
    cost_price_cents: int = 0,
    selling_price_cents: int = 0,
    low_stock_threshold: int = 0,
    batch: Optional[BatchInfo] = None,
) -> InventoryItem:
    """
    Create an item with its initial stock at one location (zero elsewhere).

    Initial stock > 0 is logged as a RESTOCK "Initial Stock" transaction.
    """
    if not sku or not sku.strip():
        raise ValidationError("sku is required")
    if not name or not name.strip():
        raise ValidationError("name is required")
    require_int(initial_stock, "initial_stock")
    if initial_stock < 0:
        raise ValidationError("initial_stock must be >= 0")
    require_cents(cost_price_cents, "cost_price_cents")
    require_cents(selling_price_cents, "selling_price_cents")
    require_int(low_stock_threshold, "low_stock_threshold")

    with ledger.lock:
        ledger.get_location(location_id)
        sku = sku.strip()
        if any(existing.sku == sku for existing in ledger.inventory.values()):
            raise InventoryError(f"SKU {sku} already exists")

        distribution = {loc_id: 0 for loc_id in ledger.locations}
        distribution[location_id] = initial_stock

        item = InventoryItem(
            id=new_id("ITEM"),
            sku=sku,
            name=name.strip(),
            category=category,
            description=description,
            supplier=supplier,
            barcode=barcode,
            cost_price_cents=cost_price_cents,
            selling_price_cents=selling_price_cents,
            stock_distribution=distribution,
            low_stock_threshold=low_stock_threshold,
            last_updated=utcnow(),
        )
        item.recompute_total()
        if batch is not None and initial_stock > 0:
            add_batch(item, location_id, initial_stock, batch)

        ledger.inventory[item.id] = item
        ledger.sync.enqueue_upsert("inventory", item.to_dict())

        if initial_stock > 0:
            tx = ledger.record(make_transaction(
                ledger,
                type=TransactionType.RESTOCK,
                item_id=item.id,
                quantity=initial_stock,
                location_id=location_id,
                reason="Initial Stock",
            ))
            ledger.sync.enqueue_upsert("transactions", tx.to_dict())

        logger.info("Added item %s (%s) with %d units at %s", item.name, item.sku, initial_stock, location_id)
        return item


def update_item(ledger, item_id: str, **changes) -> InventoryItem:
    """Update descriptive and pricing fields. Stock fields are rejected."""
    stock_changes = sorted(set(changes) & STOCK_FIELDS)
    if stock_changes:
        raise InventoryError(
            f"Cannot set {', '.join(stock_changes)} directly; use stock adjustments"
        )
    unknown = sorted(set(changes) - EDITABLE_ITEM_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown item fields: {', '.join(unknown)}")

    for key in ("cost_price_cents", "selling_price_cents"):
        if key in changes:
            require_cents(changes[key], key)
    if "low_stock_threshold" in changes:
        require_int(changes["low_stock_threshold"], "low_stock_threshold")
    if "location_prices" in changes:
        prices = changes["location_prices"] or {}
        for loc_id, price in prices.items():
            require_cents(price, f"location_prices[{loc_id}]")
        changes["location_prices"] = dict(prices)
    for key in ("sku", "name"):
        if key in changes and not (changes[key] or "").strip():
            raise ValidationError(f"{key} cannot be blank")

    with ledger.lock:
        item = ledger.get_item(item_id)
        for key, value in changes.items():
            setattr(item, key, value)
        touch(item)
        ledger.sync.enqueue_upsert("inventory", item.to_dict())
        return item


def delete_item(ledger, item_id: str) -> InventoryItem:
    """
    Remove an item from the catalog.

    Its transactions stay in the log; readers of history must tolerate the
    missing item.
    """
    with ledger.lock:
        item = ledger.get_item(item_id)
        del ledger.inventory[item_id]
        ledger.sync.enqueue_delete("inventory", item_id)
        logger.info("Deleted item %s (%s)", item.name, item.sku)
        return item


def set_location_price(ledger, item_id: str, location_id: str, price_cents: Optional[int]) -> InventoryItem:
    """Set a per-location price override. None removes it."""
    if price_cents is not None:
        require_cents(price_cents, "price_cents")

    with ledger.lock:
        item = ledger.get_item(item_id)
        ledger.get_location(location_id)
        if price_cents is None:
            item.location_prices.pop(location_id, None)
        else:
            item.location_prices[location_id] = price_cents
        touch(item)
        ledger.sync.enqueue_upsert("inventory", item.to_dict())
        return item


def price_for_location(ledger, item_id: str, location_id: Optional[str]) -> int:
    return ledger.get_item(item_id).price_at(location_id)


def search_items(ledger, query: str) -> list[InventoryItem]:
    """Case-insensitive match on name, SKU, barcode or category."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(ledger.inventory.values())
    return [
        item for item in ledger.inventory.values()
        if needle in item.name.lower()
        or needle in item.sku.lower()
        or needle in (item.barcode or "").lower()
        or needle in item.category.lower()
    ]


# =============================================================================
# STOCK ADJUSTMENTS
# =============================================================================

def adjust_stock(
    ledger,
    item_id: str,
    location_id: str,
    quantity_change: int,
    *,
    reason: str = "",
    type: Optional[TransactionType] = None,
    batch: Optional[BatchInfo] = None,
    customer_id: Optional[str] = None,
) -> Optional[Transaction]:
    """
    Apply one signed stock change at one location.

    Removing more than is on hand clamps the location at zero; the
    transaction still records abs(quantity_change). Returns the logged
    Transaction, or None for a zero delta.
    """
    require_int(quantity_change, "quantity_change")
    if type is not None and not isinstance(type, TransactionType):
        type = TransactionType(type)

    with ledger.lock:
        item = ledger.get_item(item_id)
        ledger.get_location(location_id)

        if quantity_change == 0:
            return None

        tx_type = type or (TransactionType.RESTOCK if quantity_change > 0 else TransactionType.ADJUSTMENT)
        before_total = item.stock_quantity

        apply_delta(item, location_id, quantity_change)
        if quantity_change < 0:
            deplete_batches(item, location_id, -quantity_change)
        elif batch is not None:
            add_batch(item, location_id, quantity_change, batch)
        touch(item)

        tx = ledger.record(make_transaction(
            ledger,
            type=tx_type,
            item_id=item.id,
            quantity=abs(quantity_change),
            location_id=location_id,
            reason=reason,
            customer_id=customer_id,
        ))
        check_low_stock(ledger, item, location_id, before_total)

        ledger.sync.enqueue_upsert("inventory", item.to_dict())
        ledger.sync.enqueue_upsert("transactions", tx.to_dict())
        return tx


def bulk_adjust_stock(
    ledger,
    adjustments: Iterable[StockAdjustment],
    location_id: str,
    reason: str = "Bulk Adjustment",
    *,
    type: Optional[TransactionType] = None,
) -> list[Transaction]:
    """
    Apply several deltas at one location and persist them as one batch.

    Zero deltas are skipped. Every referenced item must exist before
    anything changes.
    """
    adjustments = [a for a in adjustments]
    for adj in adjustments:
        require_int(adj.quantity_change, "quantity_change")

    with ledger.lock:
        ledger.get_location(location_id)
        for adj in adjustments:
            ledger.get_item(adj.item_id)

        now = utcnow()
        transactions: list[Transaction] = []
        touched: dict[str, InventoryItem] = {}

        for adj in adjustments:
            if adj.quantity_change == 0:
                continue
            item = ledger.inventory[adj.item_id]
            before_total = item.stock_quantity

            apply_delta(item, location_id, adj.quantity_change)
            if adj.quantity_change < 0:
                deplete_batches(item, location_id, -adj.quantity_change)
            touch(item)

            tx_type = type or (
                TransactionType.RESTOCK if adj.quantity_change > 0 else TransactionType.ADJUSTMENT
            )
            transactions.append(ledger.record(make_transaction(
                ledger,
                type=tx_type,
                item_id=item.id,
                quantity=abs(adj.quantity_change),
                location_id=location_id,
                reason=reason,
                timestamp=now,
            )))
            touched[item.id] = item
            check_low_stock(ledger, item, location_id, before_total)

        if transactions:
            ledger.sync.enqueue_batch(
                transactions=[tx.to_dict() for tx in transactions],
                inventory_updates=[item.to_dict() for item in touched.values()],
            )
            logger.info("Bulk adjusted %d items at %s (%s)", len(touched), location_id, reason)
        return transactions


def transfer_stock(
    ledger,
    item_id: str,
    from_location_id: str,
    to_location_id: str,
    quantity: int,
) -> tuple[Transaction, Transaction]:
    """
    Move stock between two locations as one operation.

    Both legs are validated before either is applied: the source must hold
    at least `quantity`. Batches move with the stock (FEFO from the source)
    and the total never changes. Logs two TRANSFER transactions and writes
    them with the item in a single store batch.
    """
    require_positive_int(quantity, "quantity")
    if from_location_id == to_location_id:
        raise TransferError("Cannot transfer to the same location")

    with ledger.lock:
        item = ledger.get_item(item_id)
        source = ledger.get_location(from_location_id)
        destination = ledger.get_location(to_location_id)

        on_hand = item.quantity_at(from_location_id)
        if on_hand < quantity:
            raise TransferError(
                f"Insufficient stock of {item.sku} at {source.name}. "
                f"On-hand: {on_hand}, requested: {quantity}"
            )

        item.stock_distribution[from_location_id] = on_hand - quantity
        item.stock_distribution[to_location_id] = item.quantity_at(to_location_id) + quantity
        item.recompute_total()

        for moved in deplete_batches(item, from_location_id, quantity):
            item.batches.append(InventoryBatch(
                id=new_id("BATCH"),
                batch_number=moved.batch_number,
                expiry_date=moved.expiry_date,
                quantity=moved.quantity,
                location_id=to_location_id,
            ))
        touch(item)

        now = utcnow()
        tx_out = ledger.record(make_transaction(
            ledger,
            type=TransactionType.TRANSFER,
            item_id=item.id,
            quantity=quantity,
            location_id=from_location_id,
            to_location_id=to_location_id,
            reason=f"Transfer Out to {destination.name}",
            timestamp=now,
        ))
        tx_in = ledger.record(make_transaction(
            ledger,
            type=TransactionType.TRANSFER,
            item_id=item.id,
            quantity=quantity,
            location_id=to_location_id,
            reason=f"Transfer In from {source.name}",
            timestamp=now,
        ))

        ledger.sync.enqueue_batch(
            transactions=[tx_out.to_dict(), tx_in.to_dict()],
            inventory_updates=[item.to_dict()],
        )
        logger.info(
            "Transferred %d x %s from %s to %s", quantity, item.sku, source.name, destination.name
        )
        return tx_out, tx_in
