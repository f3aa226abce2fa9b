"""
POS sale workflow.

WHY: A sale touches four things at once: stock, the transaction log, the
customer's loyalty profile and the open cash shift. It runs under the
ledger lock and is persisted as ONE store batch so the store never holds a
half-recorded sale.

MONEY (integer cents):
    subtotal   = sum(location price x quantity)
    discount   = subtotal x discount_percent / 100   (half-up)
    redemption = points_redeemed x loyalty_redeem_value_cents
    total      = max(0, subtotal - discount - redemption)
    earned     = total // loyalty_earn_rate_cents   (customer sales only)

Every line is one SALE transaction; all lines share the master id and are
told apart by line_no.
"""
from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from rims.time_utils import utcnow
from rims.validation import ValidationError

from .entities import HeldOrder, LineItem, PaymentMethod, SaleSummary, TransactionType, new_id
from .errors import LedgerError, NotFoundError
from .inventory_service import (
    apply_delta,
    check_low_stock,
    deplete_batches,
    make_transaction,
    require_positive_int,
    touch,
)


logger = logging.getLogger(__name__)


class SaleError(LedgerError):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def coerce_payment_method(value) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationError(f"payment_method must be one of {', '.join(m.value for m in PaymentMethod)}")


def validate_lines(ledger, lines) -> list[LineItem]:
    lines = list(lines or [])
    if not lines:
        raise SaleError("Cart is empty")
    for line in lines:
        require_positive_int(line.quantity, "quantity")
        ledger.get_item(line.item_id)
    return lines


def discount_cents(subtotal_cents: int, discount_percent) -> int:
    if isinstance(discount_percent, bool) or not isinstance(discount_percent, (int, float, Decimal)):
        raise ValidationError("discount_percent must be a number")
    if discount_percent < 0 or discount_percent > 100:
        raise ValidationError("discount_percent must be between 0 and 100")
    amount = Decimal(subtotal_cents) * Decimal(str(discount_percent)) / Decimal(100)
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def process_sale(
    ledger,
    *,
    location_id: str,
    lines,
    payment_method=PaymentMethod.CASH,
    customer_id: Optional[str] = None,
    discount_percent=0,
    points_redeemed: int = 0,
    note: Optional[str] = None,
) -> SaleSummary:
    """
    Sell the cart at one location.

    Stock is not checked: a line larger than what is on hand clamps the
    location at zero, same as adjust_stock.
    """
    method = coerce_payment_method(payment_method)
    if isinstance(points_redeemed, bool) or not isinstance(points_redeemed, int) or points_redeemed < 0:
        raise ValidationError("points_redeemed must be a non-negative integer")
    if points_redeemed and not customer_id:
        raise ValidationError("Redeeming points requires a customer")

    with ledger.lock:
        settings = ledger.settings
        ledger.get_location(location_id)
        lines = validate_lines(ledger, lines)
        customer = ledger.get_customer(customer_id) if customer_id else None

        if points_redeemed:
            if not settings.loyalty_enabled:
                raise SaleError("Loyalty program is disabled")
            if points_redeemed > customer.loyalty_points:
                raise SaleError(
                    "Insufficient loyalty points",
                    details={"available": customer.loyalty_points, "requested": points_redeemed},
                )

        # Money is computed before any mutation so a bad discount changes nothing
        subtotal = sum(
            ledger.inventory[line.item_id].price_at(location_id) * line.quantity for line in lines
        )
        discount = discount_cents(subtotal, discount_percent)
        redemption = points_redeemed * settings.loyalty_redeem_value_cents
        total = max(0, subtotal - discount - redemption)

        master_id = new_id("TX")
        now = utcnow()
        reason = f"POS Transaction ({note})" if note else "POS Transaction"
        transactions = []
        touched = {}

        for line_no, line in enumerate(lines, start=1):
            item = ledger.inventory[line.item_id]
            before_total = item.stock_quantity

            apply_delta(item, location_id, -line.quantity)
            deplete_batches(item, location_id, line.quantity)
            touch(item)

            transactions.append(ledger.record(make_transaction(
                ledger,
                tx_id=master_id,
                line_no=line_no,
                type=TransactionType.SALE,
                item_id=item.id,
                quantity=line.quantity,
                location_id=location_id,
                reason=reason,
                timestamp=now,
                customer_id=customer_id,
                payment_method=method,
            )))
            touched[item.id] = item
            check_low_stock(ledger, item, location_id, before_total)

        points_earned = 0
        customer_update = None
        if customer is not None:
            if settings.loyalty_enabled:
                points_earned = total // settings.loyalty_earn_rate_cents
            customer.total_spent_cents += total
            customer.loyalty_points = max(0, customer.loyalty_points - points_redeemed + points_earned)
            customer.last_visit = now
            customer_update = customer.to_dict()

        shift_update = None
        shift = ledger.open_shift_for(location_id)
        if shift is not None:
            if method == PaymentMethod.CASH:
                shift.cash_sales_cents += total
            else:
                shift.card_sales_cents += total
            shift_update = shift.to_dict()

        ledger.sync.enqueue_batch(
            transactions=[tx.to_dict() for tx in transactions],
            inventory_updates=[item.to_dict() for item in touched.values()],
            customer_update=customer_update,
            shift_update=shift_update,
        )

        logger.info(
            "Sale %s at %s: %d lines, total %d cents (%s)",
            master_id, location_id, len(lines), total, method.value,
        )
        return SaleSummary(
            id=master_id,
            location_id=location_id,
            payment_method=method,
            timestamp=now,
            lines=tuple(lines),
            subtotal_cents=subtotal,
            discount_cents=discount,
            redemption_cents=redemption,
            total_cents=total,
            customer_id=customer_id,
            points_earned=points_earned,
            points_redeemed=points_redeemed,
            note=note,
        )


def sale_lines(ledger, transaction_id: str) -> list:
    """SALE lines recorded under one master id, in line order."""
    return [tx for tx in ledger.transactions_for(transaction_id) if tx.type == TransactionType.SALE]


# =============================================================================
# HELD ORDERS (parked carts, memory only)
# =============================================================================

def hold_order(
    ledger,
    *,
    lines,
    customer_id: Optional[str] = None,
    discount_percent=0,
    note: Optional[str] = None,
) -> HeldOrder:
    with ledger.lock:
        lines = validate_lines(ledger, lines)
        if customer_id:
            ledger.get_customer(customer_id)
        discount_cents(0, discount_percent)

        order = HeldOrder(
            id=new_id("HOLD"),
            timestamp=utcnow(),
            lines=lines,
            customer_id=customer_id,
            discount_percent=discount_percent,
            note=note,
        )
        ledger.held_orders[order.id] = order
        return order


def list_held_orders(ledger) -> list[HeldOrder]:
    return sorted(ledger.held_orders.values(), key=lambda o: o.timestamp)


def recall_order(ledger, order_id: str) -> HeldOrder:
    """Remove a parked cart and hand it back to the register."""
    with ledger.lock:
        order = ledger.held_orders.pop(order_id, None)
        if order is None:
            raise NotFoundError(f"Held order {order_id} not found")
        return order
