"""
Refund workflow.

WHY: Refunds reverse part of a recorded sale. The lines to refund are
supplied explicitly; the original sale is used for traceability, for the
customer lookup and to cap quantities.

RULES:
- Refund lines share one new refund id (line_no per line) and reference
  the original sale via reference_id. The sale id is never reused.
- An item not on the original sale, or more than sold minus already
  refunded, is rejected before anything changes.
- restock=True puts the units back at the refund location.
- The refund value uses the CURRENT location price, not the price paid.
- The original customer's total_spent and earned points are reduced
  (floored at zero). Points REDEEMED on the original sale are not given
  back.
"""
from __future__ import annotations

import logging
from collections import Counter

from rims.time_utils import utcnow

from .entities import PaymentMethod, RefundSummary, TransactionType, new_id
from .errors import LedgerError, NotFoundError
from .inventory_service import apply_delta, make_transaction, touch
from .sales_service import coerce_payment_method, sale_lines, validate_lines


logger = logging.getLogger(__name__)


class RefundError(LedgerError):
    """Raised when refund operations fail."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def refunded_quantities(ledger, original_transaction_id: str) -> Counter:
    """Units already refunded against a sale, by item id."""
    refunded = Counter()
    for tx in ledger.transactions:
        if tx.type == TransactionType.REFUND and tx.reference_id == original_transaction_id:
            refunded[tx.item_id] += tx.quantity
    return refunded


def refundable_quantities(ledger, original_transaction_id: str) -> Counter:
    sold = Counter()
    for tx in sale_lines(ledger, original_transaction_id):
        sold[tx.item_id] += tx.quantity
    sold.subtract(refunded_quantities(ledger, original_transaction_id))
    return sold


def process_refund(
    ledger,
    *,
    original_transaction_id: str,
    location_id: str,
    lines,
    restock: bool = True,
    payment_method=PaymentMethod.CASH,
) -> RefundSummary:
    method = coerce_payment_method(payment_method)

    with ledger.lock:
        settings = ledger.settings
        ledger.get_location(location_id)
        original = sale_lines(ledger, original_transaction_id)
        if not original:
            raise NotFoundError(f"Sale {original_transaction_id} not found")
        lines = validate_lines(ledger, lines)

        requested = Counter()
        for line in lines:
            requested[line.item_id] += line.quantity

        available = refundable_quantities(ledger, original_transaction_id)
        over = []
        for item_id, qty in requested.items():
            if item_id not in available:
                raise RefundError(f"Item {item_id} is not part of sale {original_transaction_id}")
            if qty > available[item_id]:
                over.append({"item_id": item_id, "requested": qty, "refundable": max(0, available[item_id])})
        if over:
            raise RefundError("Refund exceeds quantity sold", details={"items": over})

        refund_id = new_id("RF")
        now = utcnow()
        refund_value = 0
        transactions = []
        touched = {}

        for line_no, line in enumerate(lines, start=1):
            item = ledger.inventory[line.item_id]
            refund_value += item.price_at(location_id) * line.quantity

            if restock:
                apply_delta(item, location_id, line.quantity)
                touch(item)
                touched[item.id] = item

            transactions.append(ledger.record(make_transaction(
                ledger,
                tx_id=refund_id,
                line_no=line_no,
                type=TransactionType.REFUND,
                item_id=item.id,
                quantity=line.quantity,
                location_id=location_id,
                reason=f"Refund for Tx #{original_transaction_id}",
                timestamp=now,
                customer_id=original[0].customer_id,
                payment_method=method,
                reference_id=original_transaction_id,
            )))

        shift_update = None
        shift = ledger.open_shift_for(location_id)
        if shift is not None:
            if method == PaymentMethod.CASH:
                shift.cash_sales_cents -= refund_value
            else:
                shift.card_sales_cents -= refund_value
            shift_update = shift.to_dict()

        points_reversed = 0
        customer_update = None
        customer_id = original[0].customer_id
        if customer_id:
            customer = ledger.customers.get(customer_id)
            if customer is None:
                logger.warning("Refund %s: customer %s no longer exists", refund_id, customer_id)
            else:
                if settings.loyalty_enabled:
                    points_reversed = refund_value // settings.loyalty_earn_rate_cents
                customer.total_spent_cents = max(0, customer.total_spent_cents - refund_value)
                customer.loyalty_points = max(0, customer.loyalty_points - points_reversed)
                customer_update = customer.to_dict()

        ledger.sync.enqueue_batch(
            transactions=[tx.to_dict() for tx in transactions],
            inventory_updates=[item.to_dict() for item in touched.values()],
            customer_update=customer_update,
            shift_update=shift_update,
        )

        logger.info(
            "Refund %s for %s: %d cents (%s, restock=%s)",
            refund_id, original_transaction_id, refund_value, method.value, restock,
        )
        return RefundSummary(
            id=refund_id,
            original_transaction_id=original_transaction_id,
            location_id=location_id,
            payment_method=method,
            timestamp=now,
            lines=tuple(lines),
            refund_cents=refund_value,
            restocked=restock,
            customer_id=customer_id,
            points_reversed=points_reversed,
        )
