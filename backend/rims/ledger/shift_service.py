"""
Cash shift (till reconciliation) management.

WHY: A shift bounds the cash and card takings of one till between an open
and a close, so the counted drawer can be checked against what the sales
say should be there.

DESIGN PRINCIPLES:
- At most one OPEN shift per location (ledger.open_shifts registry)
- OPEN -> CLOSED only; a closed shift is never reopened, the next one is
  a new record
- Sales and refunds at the location move cash_sales / card_sales
- expected = start + cash_sales, computed at close; variance is stored
"""
from __future__ import annotations

import logging
from typing import Optional

from rims.time_utils import utcnow

from .entities import CashShift, TransactionType, SHIFT_STATUS_CLOSED, SHIFT_STATUS_OPEN, new_id
from .errors import LedgerError
from .inventory_service import require_int


logger = logging.getLogger(__name__)


class ShiftError(LedgerError):
    """Raised for shift management errors."""
    pass


def open_shift(ledger, *, location_id: str, start_amount_cents: int, opened_by: Optional[str] = None) -> CashShift:
    """
    Open a shift at a location with a starting float.

    Raises:
        ShiftError: If the location already has an OPEN shift
    """
    require_int(start_amount_cents, "start_amount_cents")
    if start_amount_cents < 0:
        raise ShiftError("Starting float cannot be negative")

    with ledger.lock:
        ledger.get_location(location_id)
        existing = ledger.open_shift_for(location_id)
        if existing is not None:
            raise ShiftError(f"Location {location_id} already has an open shift ({existing.id})")

        shift = CashShift(
            id=new_id("SHIFT"),
            location_id=location_id,
            opened_by=opened_by or ledger.user_name,
            start_time=utcnow(),
            start_amount_cents=start_amount_cents,
            status=SHIFT_STATUS_OPEN,
        )
        ledger.cash_shifts[shift.id] = shift
        ledger.open_shifts[location_id] = shift.id
        ledger.sync.enqueue_upsert("cash_shifts", shift.to_dict())
        logger.info("Opened shift %s at %s with float %d cents", shift.id, location_id, start_amount_cents)
        return shift


def close_shift(
    ledger,
    shift_id: str,
    *,
    end_amount_cents: int,
    notes: Optional[str] = None,
    closed_by: Optional[str] = None,
) -> CashShift:
    """Close a shift and store expected cash and variance (counted - expected)."""
    require_int(end_amount_cents, "end_amount_cents")
    if end_amount_cents < 0:
        raise ShiftError("Counted cash cannot be negative")

    with ledger.lock:
        shift = ledger.get_shift(shift_id)
        if not shift.is_open:
            raise ShiftError("Shift already closed")

        expected = shift.start_amount_cents + shift.cash_sales_cents

        shift.status = SHIFT_STATUS_CLOSED
        shift.end_time = utcnow()
        shift.closed_by = closed_by or ledger.user_name
        shift.end_amount_cents = end_amount_cents
        shift.expected_amount_cents = expected
        shift.variance_cents = end_amount_cents - expected
        shift.notes = notes

        if ledger.open_shifts.get(shift.location_id) == shift.id:
            del ledger.open_shifts[shift.location_id]

        ledger.sync.enqueue_upsert("cash_shifts", shift.to_dict())
        logger.info(
            "Closed shift %s: expected %d, counted %d, variance %d",
            shift.id, expected, end_amount_cents, shift.variance_cents,
        )
        return shift


def get_open_shift(ledger, location_id: str) -> Optional[CashShift]:
    return ledger.open_shift_for(location_id)


def shift_summary(ledger, shift_id: str) -> dict:
    """
    X/Z report for one shift.

    Counts the SALE and REFUND transactions logged at the shift's location
    while it was open.
    """
    shift = ledger.get_shift(shift_id)
    end = shift.end_time
    in_shift = [
        tx for tx in ledger.transactions
        if tx.location_id == shift.location_id
        and tx.timestamp >= shift.start_time
        and (end is None or tx.timestamp <= end)
    ]
    sale_ids = {tx.id for tx in in_shift if tx.type == TransactionType.SALE}
    refund_ids = {tx.id for tx in in_shift if tx.type == TransactionType.REFUND}

    return {
        "shift": shift.to_dict(),
        "sales_count": len(sale_ids),
        "refunds_count": len(refund_ids),
        "total_takings_cents": shift.cash_sales_cents + shift.card_sales_cents,
        "expected_cash_cents": shift.start_amount_cents + shift.cash_sales_cents,
        "is_closed": shift.status == SHIFT_STATUS_CLOSED,
        "variance_cents": shift.variance_cents,
    }
