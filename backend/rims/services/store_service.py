# Overview: Service-layer operations for the durable store; encapsulates validation and database work.

"""
RIMS Durable Store Invariants (authoritative)

- Every collection supports list, upsert-by-id and delete-by-id.
- Upsert is insert-or-replace: provided fields overwrite, new rows need the
  collection's required fields.
- JSON sub-fields (stock_distribution, batches, location_prices, PO items)
  are stored as JSON text and decoded on read.
- transactions is append-only. Rows are keyed by (id, line_no); re-posting
  an existing key is an idempotent no-op and deletes are refused.
- inventory rows carry a version; a write older than the stored version is
  a conflict (lost-update protection across clients).
- apply_batch writes a sale (transactions + inventory + customer + shift)
  in ONE database transaction; any failure rolls the whole batch back.
"""

from __future__ import annotations

from sqlalchemy import text

from ..extensions import db
from ..models import (
    COLLECTIONS,
    InventoryRow,
    TransactionRow,
    CustomerRow,
    CashShiftRow,
)
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    ConflictError,
    validate_payload,
    enforce_rules_inventory,
    enforce_rules_purchase_order,
)
from .concurrency import lock_for_update, run_with_retry


class UnknownCollectionError(LookupError):
    """Raised when a collection name is not part of the store."""


class AppendOnlyError(ValueError):
    """Raised when a caller tries to delete from an append-only collection."""


APPEND_ONLY_COLLECTIONS = {"transactions"}


POLICIES: dict[str, ModelValidationPolicy] = {
    "inventory": ModelValidationPolicy(
        writable_fields={
            "id", "sku", "barcode", "name", "category", "description", "supplier",
            "cost_price_cents", "selling_price_cents", "stock_quantity",
            "low_stock_threshold", "stock_distribution", "batches",
            "location_prices", "version", "last_updated",
        },
        required_on_create={"id", "sku", "name"},
        json_fields={"stock_distribution", "batches", "location_prices"},
        non_negative_fields={
            "cost_price_cents", "selling_price_cents", "stock_quantity", "low_stock_threshold",
        },
    ),
    "transactions": ModelValidationPolicy(
        writable_fields={
            "id", "line_no", "type", "item_id", "quantity", "reason", "timestamp",
            "user_name", "location_id", "to_location_id", "customer_id",
            "payment_method", "reference_id",
        },
        required_on_create={"id", "type", "item_id", "quantity", "timestamp"},
        non_negative_fields={"quantity", "line_no"},
    ),
    "suppliers": ModelValidationPolicy(
        writable_fields={"id", "name", "contact_person", "email", "phone", "address", "rating"},
        required_on_create={"id", "name"},
    ),
    "employees": ModelValidationPolicy(
        writable_fields={"id", "name", "email", "role", "assigned_location_id", "phone", "status"},
        required_on_create={"id", "name", "email"},
    ),
    "customers": ModelValidationPolicy(
        writable_fields={
            "id", "name", "email", "phone", "loyalty_points", "total_spent_cents",
            "last_visit", "notes",
        },
        required_on_create={"id", "name"},
        non_negative_fields={"loyalty_points", "total_spent_cents"},
    ),
    "expenses": ModelValidationPolicy(
        writable_fields={
            "id", "description", "amount_cents", "category", "date", "location_id",
            "recorded_by", "supplier_id",
        },
        required_on_create={"id", "description", "amount_cents", "date", "location_id"},
        non_negative_fields={"amount_cents"},
    ),
    "purchase_orders": ModelValidationPolicy(
        writable_fields={
            "id", "supplier_id", "status", "date_created", "date_expected", "items",
            "total_cost_cents", "notes", "invoice_number", "received_location_id",
            "received_at",
        },
        required_on_create={"id", "supplier_id", "date_created"},
        json_fields={"items"},
        non_negative_fields={"total_cost_cents"},
    ),
    "cash_shifts": ModelValidationPolicy(
        writable_fields={
            "id", "location_id", "opened_by", "closed_by", "start_time", "end_time",
            "status", "start_amount_cents", "cash_sales_cents", "card_sales_cents",
            "end_amount_cents", "expected_amount_cents", "variance_cents", "notes",
        },
        required_on_create={"id", "location_id", "start_time"},
        non_negative_fields={"start_amount_cents", "end_amount_cents"},
    ),
    "locations": ModelValidationPolicy(
        writable_fields={"id", "name", "type", "address"},
        required_on_create={"id", "name"},
    ),
}


def get_model(collection: str):
    model = COLLECTIONS.get(collection)
    if model is None:
        raise UnknownCollectionError(f"Unknown collection: {collection}")
    return model


def list_records(collection: str, *, limit: int | None = None) -> list[dict]:
    """All records of a collection; transactions come back newest first."""
    model = get_model(collection)
    q = db.session.query(model)
    if model is TransactionRow:
        q = q.order_by(TransactionRow.timestamp.desc(), TransactionRow.line_no.asc())
    else:
        q = q.order_by(model.id.asc())
    if limit is not None:
        q = q.limit(limit)
    return [row.to_dict() for row in q.all()]


def _primary_key(model, payload: dict):
    if model is TransactionRow:
        return (payload.get("id"), payload.get("line_no") or 1)
    return payload.get("id")


def _upsert_inner(collection: str, payload: dict):
    """Core upsert without commit. Used by upsert_record and apply_batch."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    if not payload.get("id"):
        raise ValidationError("Missing required fields: id")

    model = get_model(collection)
    policy = POLICIES[collection]
    key = _primary_key(model, payload)

    query = db.session.query(model)
    if model is TransactionRow:
        existing = query.filter_by(id=key[0], line_no=key[1]).first()
    else:
        existing = lock_for_update(query.filter_by(id=key)).first()

    patch = validate_payload(
        model=model,
        payload=payload,
        policy=policy,
        partial=existing is not None,
    )

    if model is InventoryRow:
        enforce_rules_inventory(patch)
    elif collection == "purchase_orders":
        enforce_rules_purchase_order(patch)

    if model is TransactionRow:
        # Append-only: an existing line is never rewritten
        if existing is not None:
            return existing
        patch.setdefault("line_no", 1)

    if existing is None:
        row = model(**patch)
        db.session.add(row)
        db.session.flush()
        return row

    if model is InventoryRow and "version" in patch:
        if patch["version"] < (existing.version or 0):
            raise ConflictError(
                f"Stale inventory write for {existing.id}: "
                f"version {patch['version']} < stored {existing.version}"
            )

    for k, v in patch.items():
        setattr(existing, k, v)
    db.session.flush()
    return existing


def upsert_record(collection: str, payload: dict):
    """Insert-or-replace one record by id and commit."""
    def _op():
        row = _upsert_inner(collection, payload)
        db.session.commit()
        return row

    return run_with_retry(_op)


def delete_record(collection: str, record_id: str) -> bool:
    """Delete one record by id. Returns False when nothing matched."""
    model = get_model(collection)
    if collection in APPEND_ONLY_COLLECTIONS:
        raise AppendOnlyError(f"{collection} is append-only")

    def _op():
        row = db.session.query(model).filter_by(id=record_id).first()
        if row is None:
            return False
        db.session.delete(row)
        db.session.commit()
        return True

    return run_with_retry(_op)


def apply_batch(
    *,
    transactions: list[dict] | None,
    inventory_updates: list[dict] | None,
    customer_update: dict | None = None,
    shift_update: dict | None = None,
) -> dict:
    """
    Apply a composite sale/refund/bulk write atomically.

    WHY: A sale touches stock, the transaction log, the customer profile and
    the open cash shift. Writing them piecemeal would leave a half-recorded
    sale behind when any part fails.
    """
    transactions = transactions or []
    inventory_updates = inventory_updates or []
    if not isinstance(transactions, list) or not isinstance(inventory_updates, list):
        raise ValidationError("transactions and inventory_updates must be arrays")

    def _op():
        if db.engine.dialect.name == "sqlite":
            db.session.execute(text("BEGIN IMMEDIATE"))

        for tx in transactions:
            _upsert_inner("transactions", tx)

        for item in inventory_updates:
            if not isinstance(item, dict) or not item.get("id"):
                raise ValidationError("inventory update requires an id")
            if db.session.get(InventoryRow, item["id"]) is None:
                raise ValidationError(f"Unknown inventory item {item['id']}")
            _upsert_inner("inventory", item)

        if customer_update:
            if db.session.get(CustomerRow, customer_update.get("id")) is None:
                raise ValidationError(f"Unknown customer {customer_update.get('id')}")
            _upsert_inner("customers", customer_update)

        if shift_update:
            if db.session.get(CashShiftRow, shift_update.get("id")) is None:
                raise ValidationError(f"Unknown cash shift {shift_update.get('id')}")
            _upsert_inner("cash_shifts", shift_update)

        db.session.commit()
        return {
            "success": True,
            "transactions": len(transactions),
            "inventory_updates": len(inventory_updates),
        }

    return run_with_retry(_op)
