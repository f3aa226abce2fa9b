from __future__ import annotations

import json

from ..extensions import db
from rims.time_utils import to_utc_z


class ExpenseRow(db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.String(64), primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    # RENT, UTILITIES, SALARY, MARKETING, MAINTENANCE, OTHER
    category = db.Column(db.String(16), nullable=False, default="OTHER")
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    location_id = db.Column(db.String(64), nullable=False)
    recorded_by = db.Column(db.String(128), nullable=True)
    supplier_id = db.Column(db.String(64), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "category": self.category,
            "date": to_utc_z(self.date),
            "location_id": self.location_id,
            "recorded_by": self.recorded_by,
            "supplier_id": self.supplier_id,
        }


class PurchaseOrderRow(db.Model):
    """
    Supplier order.

    LIFECYCLE:
    - DRAFT -> ORDERED -> RECEIVED (terminal)
    - DRAFT/ORDERED -> CANCELLED (terminal)

    total_cost_cents is computed once at creation and never recomputed.
    items is a JSON-encoded list of {item_id, quantity, cost_price_cents}.
    """
    __tablename__ = "purchase_orders"

    id = db.Column(db.String(64), primary_key=True)
    supplier_id = db.Column(db.String(64), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="ORDERED", index=True)
    date_created = db.Column(db.DateTime(timezone=True), nullable=False)
    date_expected = db.Column(db.DateTime(timezone=True), nullable=True)
    items = db.Column(db.Text, nullable=False, default="[]")
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    invoice_number = db.Column(db.String(64), nullable=True)
    received_location_id = db.Column(db.String(64), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "status": self.status,
            "date_created": to_utc_z(self.date_created),
            "date_expected": to_utc_z(self.date_expected),
            "items": json.loads(self.items) if self.items else [],
            "total_cost_cents": self.total_cost_cents,
            "notes": self.notes,
            "invoice_number": self.invoice_number,
            "received_location_id": self.received_location_id,
            "received_at": to_utc_z(self.received_at),
        }


class CashShiftRow(db.Model):
    """
    Till reconciliation session.

    LIFECYCLE:
    - OPEN: accumulating cash/card sales for one location
    - CLOSED: end count taken, expected and variance stored (terminal)
    """
    __tablename__ = "cash_shifts"

    id = db.Column(db.String(64), primary_key=True)
    location_id = db.Column(db.String(64), nullable=False, index=True)
    opened_by = db.Column(db.String(128), nullable=True)
    closed_by = db.Column(db.String(128), nullable=True)
    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)

    # Cash tracking (all amounts in cents)
    start_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    cash_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    card_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    end_amount_cents = db.Column(db.Integer, nullable=True)
    expected_amount_cents = db.Column(db.Integer, nullable=True)  # start + cash sales
    variance_cents = db.Column(db.Integer, nullable=True)  # end - expected

    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "opened_by": self.opened_by,
            "closed_by": self.closed_by,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "status": self.status,
            "start_amount_cents": self.start_amount_cents,
            "cash_sales_cents": self.cash_sales_cents,
            "card_sales_cents": self.card_sales_cents,
            "end_amount_cents": self.end_amount_cents,
            "expected_amount_cents": self.expected_amount_cents,
            "variance_cents": self.variance_cents,
            "notes": self.notes,
        }
