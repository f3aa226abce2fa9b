"""
In-memory ledger state.

The Ledger owns the authoritative copies of every mutable collection.
Service modules (inventory_service, sales_service, ...) take a Ledger as
their first argument, mutate it under ledger.lock, and enqueue the
resulting writes on ledger.sync. Nothing outside those modules mutates
these collections.

CONCURRENCY:
- ledger.lock is re-entrant so composite workflows (audit, PO receive)
  can call adjust_stock while already holding it.
- Each InventoryItem carries a version, bumped on every mutation; the
  store rejects writes older than what it holds.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .entities import (
    CashShift,
    Customer,
    Employee,
    Expense,
    HeldOrder,
    InventoryItem,
    Location,
    PurchaseOrder,
    Supplier,
    Transaction,
    LOCATION_STORE,
    LOCATION_WAREHOUSE,
)
from .errors import NotFoundError
from .settings import LedgerSettings
from .store_client import DurableStore, MemoryStore, StoreError, connect_store
from .sync import StoreSync


logger = logging.getLogger(__name__)


DEFAULT_LOCATIONS = (
    Location(id="loc-1", name="Main Warehouse", type=LOCATION_WAREHOUSE, address="123 Logistics Way"),
    Location(id="loc-2", name="Downtown Store", type=LOCATION_STORE, address="45 High St"),
    Location(id="loc-3", name="North Branch", type=LOCATION_STORE, address="789 North Ave"),
)


LowStockListener = Callable[[InventoryItem, str], None]


class Ledger:
    def __init__(
        self,
        store: Optional[DurableStore] = None,
        *,
        settings: Optional[LedgerSettings] = None,
        locations=None,
        user_name: Optional[str] = None,
    ):
        self.settings = (settings or LedgerSettings()).validate()
        self.sync = StoreSync(
            store or MemoryStore(),
            mode=self.settings.sync_mode,
            max_attempts=self.settings.sync_max_attempts,
        )
        self.lock = threading.RLock()
        self.user_name = user_name or self.settings.default_user_name

        self.locations: dict[str, Location] = {
            loc.id: Location(loc.id, loc.name, loc.type, loc.address)
            for loc in (locations if locations is not None else DEFAULT_LOCATIONS)
        }
        self.inventory: dict[str, InventoryItem] = {}
        self.transactions: list[Transaction] = []
        self.customers: dict[str, Customer] = {}
        self.suppliers: dict[str, Supplier] = {}
        self.employees: dict[str, Employee] = {}
        self.expenses: dict[str, Expense] = {}
        self.purchase_orders: dict[str, PurchaseOrder] = {}
        self.cash_shifts: dict[str, CashShift] = {}
        # location_id -> id of its single OPEN shift
        self.open_shifts: dict[str, str] = {}
        self.held_orders: dict[str, HeldOrder] = {}

        self._low_stock_listeners: list[LowStockListener] = []

    @classmethod
    def from_config(cls, config, *, store: Optional[DurableStore] = None) -> "Ledger":
        """Build a ledger for Config (or a Flask config mapping) and load it from the store."""
        ledger = cls(store or connect_store(config), settings=LedgerSettings.from_config(config))
        ledger.load()
        return ledger

    @property
    def store(self) -> DurableStore:
        return self.sync.store

    # ------------------------------------------------------------------
    # Hydration
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Replace in-memory collections with what the store holds."""
        try:
            fetched = {
                "inventory": self.store.fetch_all("inventory"),
                "transactions": self.store.fetch_all("transactions"),
                "customers": self.store.fetch_all("customers"),
                "suppliers": self.store.fetch_all("suppliers"),
                "employees": self.store.fetch_all("employees"),
                "expenses": self.store.fetch_all("expenses"),
                "purchase_orders": self.store.fetch_all("purchase_orders"),
                "cash_shifts": self.store.fetch_all("cash_shifts"),
                "locations": self.store.fetch_all("locations"),
            }
        except StoreError:
            logger.exception("Failed to load ledger from %s store; keeping current state", self.store.name)
            raise

        with self.lock:
            self.inventory = {r["id"]: InventoryItem.from_dict(r) for r in fetched["inventory"]}
            # Store returns newest first; the ledger keeps history in append order
            self.transactions = sorted(
                (Transaction.from_dict(r) for r in fetched["transactions"]),
                key=lambda tx: (tx.timestamp, tx.id, tx.line_no),
            )
            self.customers = {r["id"]: Customer.from_dict(r) for r in fetched["customers"]}
            self.suppliers = {r["id"]: Supplier.from_dict(r) for r in fetched["suppliers"]}
            self.employees = {r["id"]: Employee.from_dict(r) for r in fetched["employees"]}
            self.expenses = {r["id"]: Expense.from_dict(r) for r in fetched["expenses"]}
            self.purchase_orders = {r["id"]: PurchaseOrder.from_dict(r) for r in fetched["purchase_orders"]}
            self.cash_shifts = {r["id"]: CashShift.from_dict(r) for r in fetched["cash_shifts"]}
            # Runtime-added locations on top of the built-in ones
            for record in fetched["locations"]:
                location = Location.from_dict(record)
                self.locations[location.id] = location

            self.open_shifts = {}
            for shift in sorted(self.cash_shifts.values(), key=lambda s: s.start_time):
                if not shift.is_open:
                    continue
                previous = self.open_shifts.get(shift.location_id)
                if previous is not None:
                    logger.warning(
                        "Location %s has more than one OPEN shift in the store; using %s over %s",
                        shift.location_id, shift.id, previous,
                    )
                self.open_shifts[shift.location_id] = shift.id

        logger.info(
            "Ledger loaded from %s store: %d items, %d transactions",
            self.store.name, len(self.inventory), len(self.transactions),
        )

    # ------------------------------------------------------------------
    # Lookups (mutations fail fast on unknown ids)
    # ------------------------------------------------------------------

    def get_item(self, item_id: str) -> InventoryItem:
        item = self.inventory.get(item_id)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found")
        return item

    def get_location(self, location_id: str) -> Location:
        location = self.locations.get(location_id)
        if location is None:
            raise NotFoundError(f"Location {location_id} not found")
        return location

    def get_customer(self, customer_id: str) -> Customer:
        customer = self.customers.get(customer_id)
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        return customer

    def get_supplier(self, supplier_id: str) -> Supplier:
        supplier = self.suppliers.get(supplier_id)
        if supplier is None:
            raise NotFoundError(f"Supplier {supplier_id} not found")
        return supplier

    def get_employee(self, employee_id: str) -> Employee:
        employee = self.employees.get(employee_id)
        if employee is None:
            raise NotFoundError(f"Employee {employee_id} not found")
        return employee

    def get_purchase_order(self, po_id: str) -> PurchaseOrder:
        po = self.purchase_orders.get(po_id)
        if po is None:
            raise NotFoundError(f"Purchase order {po_id} not found")
        return po

    def get_shift(self, shift_id: str) -> CashShift:
        shift = self.cash_shifts.get(shift_id)
        if shift is None:
            raise NotFoundError(f"Cash shift {shift_id} not found")
        return shift

    def open_shift_for(self, location_id: str) -> Optional[CashShift]:
        shift_id = self.open_shifts.get(location_id)
        return self.cash_shifts.get(shift_id) if shift_id else None

    def transactions_for(self, transaction_id: str) -> list[Transaction]:
        """All lines sharing one (master) transaction id, in line order."""
        return sorted(
            (tx for tx in self.transactions if tx.id == transaction_id),
            key=lambda tx: tx.line_no,
        )

    def record(self, tx: Transaction) -> Transaction:
        self.transactions.append(tx)
        return tx

    # ------------------------------------------------------------------
    # Low-stock notifications
    # ------------------------------------------------------------------

    def on_low_stock(self, listener: LowStockListener) -> None:
        self._low_stock_listeners.append(listener)

    def notify_low_stock(self, item: InventoryItem, location_id: str) -> None:
        logger.warning(
            "Low stock: %s (%s) at %d, threshold %d",
            item.name, item.sku, item.stock_quantity, item.low_stock_threshold,
        )
        for listener in self._low_stock_listeners:
            try:
                listener(item, location_id)
            except Exception:
                logger.exception("Low-stock listener failed for item %s", item.id)

    def close(self) -> None:
        self.sync.close()
