"""
In-memory records owned by the ledger core.

All money is integer cents. Datetimes are UTC-naive and serialize with a
trailing 'Z'. to_dict() produces the wire shape the store service accepts;
from_dict() accepts what the store returns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from rims.time_utils import parse_iso_datetime, parse_iso_date, to_utc_z


class TransactionType(str, Enum):
    SALE = "SALE"
    RESTOCK = "RESTOCK"
    ADJUSTMENT = "ADJUSTMENT"
    TRANSFER = "TRANSFER"
    AUDIT = "AUDIT"
    REFUND = "REFUND"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"


# Location types
LOCATION_STORE = "STORE"
LOCATION_WAREHOUSE = "WAREHOUSE"

# Purchase order status constants
PO_STATUS_DRAFT = "DRAFT"
PO_STATUS_ORDERED = "ORDERED"
PO_STATUS_RECEIVED = "RECEIVED"
PO_STATUS_CANCELLED = "CANCELLED"

# Cash shift status constants
SHIFT_STATUS_OPEN = "OPEN"
SHIFT_STATUS_CLOSED = "CLOSED"

EXPENSE_CATEGORIES = {"RENT", "UTILITIES", "SALARY", "MARKETING", "MAINTENANCE", "OTHER"}
EMPLOYEE_ROLES = {"ADMIN", "MANAGER", "CASHIER"}


def new_id(prefix: str) -> str:
    """Opaque record id, e.g. 'TX-3F9A0C21B7DE'."""
    return f"{prefix}-{uuid4().hex[:12].upper()}"


def _dt(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return parse_iso_datetime(value)


@dataclass
class Location:
    id: str
    name: str
    type: str = LOCATION_STORE
    address: str = ""

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "type": self.type, "address": self.address}

    @classmethod
    def from_dict(cls, data: dict) -> "Location":
        return cls(
            id=data["id"],
            name=data["name"],
            type=data.get("type", LOCATION_STORE),
            address=data.get("address") or "",
        )


@dataclass(frozen=True)
class BatchInfo:
    """Batch details supplied when stock is received."""
    batch_number: str
    expiry_date: Optional[date] = None


@dataclass
class InventoryBatch:
    id: str
    batch_number: str
    expiry_date: Optional[date]
    quantity: int
    location_id: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_number": self.batch_number,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "quantity": self.quantity,
            "location_id": self.location_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InventoryBatch":
        return cls(
            id=data.get("id") or new_id("BATCH"),
            batch_number=data.get("batch_number", ""),
            expiry_date=parse_iso_date(data.get("expiry_date")),
            quantity=int(data.get("quantity", 0)),
            location_id=data.get("location_id", ""),
        )


@dataclass
class InventoryItem:
    """
    A product SKU with per-location stock.

    INVARIANT: stock_quantity == sum(stock_distribution.values()), every
    value non-negative. Only the inventory service mutates stock fields.
    """
    id: str
    sku: str
    name: str
    category: str = ""
    description: str = ""
    supplier: str = ""
    barcode: Optional[str] = None
    cost_price_cents: int = 0
    selling_price_cents: int = 0
    stock_distribution: dict[str, int] = field(default_factory=dict)
    stock_quantity: int = 0
    low_stock_threshold: int = 0
    batches: list[InventoryBatch] = field(default_factory=list)
    location_prices: dict[str, int] = field(default_factory=dict)
    last_updated: Optional[datetime] = None
    version: int = 1

    def quantity_at(self, location_id: str) -> int:
        return self.stock_distribution.get(location_id, 0)

    def recompute_total(self) -> int:
        self.stock_quantity = sum(self.stock_distribution.values())
        return self.stock_quantity

    def price_at(self, location_id: str | None) -> int:
        """Location override when set, otherwise the base selling price."""
        if location_id is not None and location_id in self.location_prices:
            return self.location_prices[location_id]
        return self.selling_price_cents

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    @property
    def earliest_expiry(self) -> Optional[date]:
        dates = [b.expiry_date for b in self.batches if b.expiry_date and b.quantity > 0]
        return min(dates) if dates else None

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
            "stock_distribution": dict(self.stock_distribution),
            "batches": [b.to_dict() for b in self.batches],
            "location_prices": dict(self.location_prices),
            "version": self.version,
            "last_updated": to_utc_z(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InventoryItem":
        item = cls(
            id=data["id"],
            sku=data.get("sku", ""),
            name=data.get("name", ""),
            category=data.get("category") or "",
            description=data.get("description") or "",
            supplier=data.get("supplier") or "",
            barcode=data.get("barcode"),
            cost_price_cents=int(data.get("cost_price_cents") or 0),
            selling_price_cents=int(data.get("selling_price_cents") or 0),
            stock_distribution={k: int(v) for k, v in (data.get("stock_distribution") or {}).items()},
            low_stock_threshold=int(data.get("low_stock_threshold") or 0),
            batches=[InventoryBatch.from_dict(b) for b in data.get("batches") or []],
            location_prices={k: int(v) for k, v in (data.get("location_prices") or {}).items()},
            last_updated=_dt(data.get("last_updated")),
            version=int(data.get("version") or 1),
        )
        # Derived on load; a stored total that disagrees with its distribution is not trusted
        item.recompute_total()
        return item


@dataclass(frozen=True)
class Transaction:
    """Immutable record of one quantity movement. quantity is a magnitude."""
    id: str
    type: TransactionType
    item_id: str
    quantity: int
    timestamp: datetime
    user_name: str
    reason: str = ""
    location_id: Optional[str] = None
    to_location_id: Optional[str] = None
    customer_id: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    reference_id: Optional[str] = None
    line_no: int = 1

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_no": self.line_no,
            "type": self.type.value,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "reason": self.reason,
            "timestamp": to_utc_z(self.timestamp),
            "user_name": self.user_name,
            "location_id": self.location_id,
            "to_location_id": self.to_location_id,
            "customer_id": self.customer_id,
            "payment_method": self.payment_method.value if self.payment_method else None,
            "reference_id": self.reference_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        method = data.get("payment_method")
        return cls(
            id=data["id"],
            type=TransactionType(data["type"]),
            item_id=data["item_id"],
            quantity=int(data["quantity"]),
            timestamp=_dt(data["timestamp"]),
            user_name=data.get("user_name") or "",
            reason=data.get("reason") or "",
            location_id=data.get("location_id"),
            to_location_id=data.get("to_location_id"),
            customer_id=data.get("customer_id"),
            payment_method=PaymentMethod(method) if method else None,
            reference_id=data.get("reference_id"),
            line_no=int(data.get("line_no") or 1),
        )


@dataclass
class Customer:
    id: str
    name: str
    phone: str = ""
    email: Optional[str] = None
    loyalty_points: int = 0
    total_spent_cents: int = 0
    last_visit: Optional[datetime] = None
    notes: Optional[str] = None

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

    @classmethod
    def from_dict(cls, data: dict) -> "Customer":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            phone=data.get("phone") or "",
            email=data.get("email"),
            loyalty_points=int(data.get("loyalty_points") or 0),
            total_spent_cents=int(data.get("total_spent_cents") or 0),
            last_visit=_dt(data.get("last_visit")),
            notes=data.get("notes"),
        )


@dataclass
class Supplier:
    id: str
    name: str
    contact_person: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    rating: Optional[float] = None

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

    @classmethod
    def from_dict(cls, data: dict) -> "Supplier":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            contact_person=data.get("contact_person") or "",
            email=data.get("email") or "",
            phone=data.get("phone") or "",
            address=data.get("address") or "",
            rating=data.get("rating"),
        )


@dataclass
class Employee:
    id: str
    name: str
    email: str
    role: str = "CASHIER"
    assigned_location_id: Optional[str] = None
    phone: Optional[str] = None
    status: str = "ACTIVE"

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

    @classmethod
    def from_dict(cls, data: dict) -> "Employee":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            email=data.get("email", ""),
            role=data.get("role") or "CASHIER",
            assigned_location_id=data.get("assigned_location_id"),
            phone=data.get("phone"),
            status=data.get("status") or "ACTIVE",
        )


@dataclass
class Expense:
    id: str
    description: str
    amount_cents: int
    category: str
    date: datetime
    location_id: str
    recorded_by: str = ""
    supplier_id: Optional[str] = None

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

    @classmethod
    def from_dict(cls, data: dict) -> "Expense":
        return cls(
            id=data["id"],
            description=data.get("description", ""),
            amount_cents=int(data.get("amount_cents") or 0),
            category=data.get("category") or "OTHER",
            date=_dt(data.get("date")),
            location_id=data.get("location_id", ""),
            recorded_by=data.get("recorded_by") or "",
            supplier_id=data.get("supplier_id"),
        )


@dataclass(frozen=True)
class PurchaseOrderLine:
    item_id: str
    quantity: int
    cost_price_cents: int

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "quantity": self.quantity,
            "cost_price_cents": self.cost_price_cents,
        }


@dataclass
class PurchaseOrder:
    id: str
    supplier_id: str
    status: str
    date_created: datetime
    lines: list[PurchaseOrderLine]
    total_cost_cents: int
    date_expected: Optional[datetime] = None
    notes: Optional[str] = None
    invoice_number: Optional[str] = None
    received_location_id: Optional[str] = None
    received_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "status": self.status,
            "date_created": to_utc_z(self.date_created),
            "date_expected": to_utc_z(self.date_expected),
            "items": [line.to_dict() for line in self.lines],
            "total_cost_cents": self.total_cost_cents,
            "notes": self.notes,
            "invoice_number": self.invoice_number,
            "received_location_id": self.received_location_id,
            "received_at": to_utc_z(self.received_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PurchaseOrder":
        return cls(
            id=data["id"],
            supplier_id=data.get("supplier_id", ""),
            status=data.get("status") or PO_STATUS_ORDERED,
            date_created=_dt(data.get("date_created")),
            lines=[
                PurchaseOrderLine(
                    item_id=line["item_id"],
                    quantity=int(line.get("quantity") or 0),
                    cost_price_cents=int(line.get("cost_price_cents") or 0),
                )
                for line in data.get("items") or []
            ],
            total_cost_cents=int(data.get("total_cost_cents") or 0),
            date_expected=_dt(data.get("date_expected")),
            notes=data.get("notes"),
            invoice_number=data.get("invoice_number"),
            received_location_id=data.get("received_location_id"),
            received_at=_dt(data.get("received_at")),
        )


@dataclass
class CashShift:
    id: str
    location_id: str
    opened_by: str
    start_time: datetime
    start_amount_cents: int
    status: str = SHIFT_STATUS_OPEN
    cash_sales_cents: int = 0
    card_sales_cents: int = 0
    closed_by: Optional[str] = None
    end_time: Optional[datetime] = None
    end_amount_cents: Optional[int] = None
    expected_amount_cents: Optional[int] = None
    variance_cents: Optional[int] = None
    notes: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status == SHIFT_STATUS_OPEN

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

    @classmethod
    def from_dict(cls, data: dict) -> "CashShift":
        return cls(
            id=data["id"],
            location_id=data["location_id"],
            opened_by=data.get("opened_by") or "",
            start_time=_dt(data.get("start_time")),
            start_amount_cents=int(data.get("start_amount_cents") or 0),
            status=data.get("status") or SHIFT_STATUS_OPEN,
            cash_sales_cents=int(data.get("cash_sales_cents") or 0),
            card_sales_cents=int(data.get("card_sales_cents") or 0),
            closed_by=data.get("closed_by"),
            end_time=_dt(data.get("end_time")),
            end_amount_cents=data.get("end_amount_cents"),
            expected_amount_cents=data.get("expected_amount_cents"),
            variance_cents=data.get("variance_cents"),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class LineItem:
    """One cart/refund line: an item and a positive quantity."""
    item_id: str
    quantity: int


@dataclass(frozen=True)
class AuditCount:
    item_id: str
    system_qty: int
    counted_qty: int

    @property
    def variance(self) -> int:
        return self.counted_qty - self.system_qty


@dataclass
class HeldOrder:
    """A parked cart, recalled later at the register. Not persisted."""
    id: str
    timestamp: datetime
    lines: list[LineItem]
    customer_id: Optional[str] = None
    discount_percent: float = 0
    note: Optional[str] = None


@dataclass(frozen=True)
class StockAdjustment:
    """One signed delta in a bulk adjustment."""
    item_id: str
    quantity_change: int


@dataclass(frozen=True)
class SaleSummary:
    """What a receipt needs after a sale."""
    id: str
    location_id: str
    payment_method: PaymentMethod
    timestamp: datetime
    lines: tuple
    subtotal_cents: int
    discount_cents: int
    redemption_cents: int
    total_cents: int
    customer_id: Optional[str] = None
    points_earned: int = 0
    points_redeemed: int = 0
    note: Optional[str] = None


@dataclass(frozen=True)
class RefundSummary:
    id: str
    original_transaction_id: str
    location_id: str
    payment_method: PaymentMethod
    timestamp: datetime
    lines: tuple
    refund_cents: int
    restocked: bool
    customer_id: Optional[str] = None
    points_reversed: int = 0
