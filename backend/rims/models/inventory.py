from __future__ import annotations

import json

from ..extensions import db
from rims.time_utils import to_utc_z


def _decode(raw: str | None, default):
    """JSON sub-fields are stored as text; decode them on read."""
    if not raw:
        return default
    return json.loads(raw)


class InventoryRow(db.Model):
    """
    Persisted snapshot of one catalog item.

    The ledger core is authoritative for stock math; this row is the durable
    copy it pushes after every mutation. stock_distribution, batches and
    location_prices are JSON-encoded text columns.

    OPTIMISTIC CONCURRENCY:
    version is incremented by the ledger on each mutation. The store service
    rejects an upsert carrying a version older than the stored one (HTTP 409)
    so a stale client cannot overwrite a newer stock picture.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.Index("ix_inventory_sku", "sku"),
        db.Index("ix_inventory_category", "category"),
    )

    id = db.Column(db.String(64), primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)
    supplier = db.Column(db.String(255), nullable=True)

    # Authoritative storage in cents
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=0)

    stock_distribution = db.Column(db.Text, nullable=False, default="{}")
    batches = db.Column(db.Text, nullable=False, default="[]")
    location_prices = db.Column(db.Text, nullable=False, default="{}")

    version = db.Column(db.Integer, nullable=False, default=1)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<InventoryRow id={self.id!r} sku={self.sku!r} qty={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "supplier": self.supplier,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "stock_distribution": _decode(self.stock_distribution, {}),
            "batches": _decode(self.batches, []),
            "location_prices": _decode(self.location_prices, {}),
            "version": self.version,
            "last_updated": to_utc_z(self.last_updated),
        }


class TransactionRow(db.Model):
    """
    Append-only stock movement record.

    Keyed by (id, line_no): every line of a multi-item sale shares the sale's
    master id, so id alone is not unique.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_item_timestamp", "item_id", "timestamp"),
        db.Index("ix_transactions_type", "type"),
    )

    id = db.Column(db.String(64), primary_key=True)
    line_no = db.Column(db.Integer, primary_key=True, default=1)

    type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    user_name = db.Column(db.String(128), nullable=True)

    location_id = db.Column(db.String(64), nullable=True)
    to_location_id = db.Column(db.String(64), nullable=True)
    customer_id = db.Column(db.String(64), nullable=True)
    payment_method = db.Column(db.String(8), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_no": self.line_no,
            "type": self.type,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "reason": self.reason,
            "timestamp": to_utc_z(self.timestamp),
            "user_name": self.user_name,
            "location_id": self.location_id,
            "to_location_id": self.to_location_id,
            "customer_id": self.customer_id,
            "payment_method": self.payment_method,
            "reference_id": self.reference_id,
        }


class LocationRow(db.Model):
    """Stores and warehouses added at runtime. The built-in three are not stored."""
    __tablename__ = "locations"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False, default="STORE")  # STORE, WAREHOUSE
    address = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "address": self.address,
        }
