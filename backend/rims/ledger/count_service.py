"""
Stock count (audit) commit.

A count sheet lists, per item, what the system believed was on hand and
what was physically counted. Committing it posts one AUDIT adjustment per
item whose counts differ; matching counts record nothing.
"""
from __future__ import annotations

import logging

from rims.validation import ValidationError

from .entities import AuditCount, TransactionType
from .inventory_service import adjust_stock, require_int


logger = logging.getLogger(__name__)


def commit_audit(ledger, location_id: str, counts) -> list:
    """Post count variances at one location. Returns the AUDIT transactions."""
    counts: list[AuditCount] = list(counts)
    for count in counts:
        require_int(count.system_qty, "system_qty")
        require_int(count.counted_qty, "counted_qty")
        if count.counted_qty < 0:
            raise ValidationError("counted_qty must be >= 0")

    with ledger.lock:
        ledger.get_location(location_id)
        for count in counts:
            ledger.get_item(count.item_id)

        posted = []
        for count in counts:
            if count.variance == 0:
                continue
            posted.append(adjust_stock(
                ledger,
                count.item_id,
                location_id,
                count.variance,
                type=TransactionType.AUDIT,
                reason=f"Audit Correction (System: {count.system_qty}, Counted: {count.counted_qty})",
            ))

        logger.info(
            "Audit committed at %s: %d counted, %d corrected", location_id, len(counts), len(posted)
        )
        return posted
