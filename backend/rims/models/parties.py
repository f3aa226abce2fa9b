from __future__ import annotations

from ..extensions import db
from rims.time_utils import to_utc_z


class SupplierRow(db.Model):
    __tablename__ = "suppliers"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    rating = db.Column(db.Float, nullable=True)  # 1-5

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "rating": self.rating,
        }


class EmployeeRow(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    role = db.Column(db.String(16), nullable=False, default="CASHIER")  # ADMIN, MANAGER, CASHIER
    assigned_location_id = db.Column(db.String(64), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")  # ACTIVE, INACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "assigned_location_id": self.assigned_location_id,
            "phone": self.phone,
            "status": self.status,
        }


class CustomerRow(db.Model):
    """
    Loyalty/CRM profile.

    loyalty_points and total_spent_cents are only ever changed by the sale
    and refund workflows of the ledger core.
    """
    __tablename__ = "customers"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    last_visit = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "loyalty_points": self.loyalty_points,
            "total_spent_cents": self.total_spent_cents,
            "last_visit": to_utc_z(self.last_visit),
            "notes": self.notes,
        }
