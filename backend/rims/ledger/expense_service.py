"""Operating expenses, used by the profit-and-loss report."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from rims.time_utils import utcnow
from rims.validation import ValidationError

from .entities import Expense, EXPENSE_CATEGORIES, new_id
from .errors import NotFoundError
from .inventory_service import require_cents


def add_expense(
    ledger,
    *,
    description: str,
    amount_cents: int,
    location_id: str,
    category: str = "OTHER",
    date: Optional[datetime] = None,
    supplier_id: Optional[str] = None,
) -> Expense:
    if not description or not description.strip():
        raise ValidationError("description is required")
    require_cents(amount_cents, "amount_cents")
    if category not in EXPENSE_CATEGORIES:
        raise ValidationError(f"category must be one of {', '.join(sorted(EXPENSE_CATEGORIES))}")

    with ledger.lock:
        ledger.get_location(location_id)
        if supplier_id:
            ledger.get_supplier(supplier_id)

        expense = Expense(
            id=new_id("EXP"),
            description=description.strip(),
            amount_cents=amount_cents,
            category=category,
            date=date or utcnow(),
            location_id=location_id,
            recorded_by=ledger.user_name,
            supplier_id=supplier_id,
        )
        ledger.expenses[expense.id] = expense
        ledger.sync.enqueue_upsert("expenses", expense.to_dict())
        return expense


def delete_expense(ledger, expense_id: str) -> Expense:
    with ledger.lock:
        expense = ledger.expenses.pop(expense_id, None)
        if expense is None:
            raise NotFoundError(f"Expense {expense_id} not found")
        ledger.sync.enqueue_delete("expenses", expense_id)
        return expense
