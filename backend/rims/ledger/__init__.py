"""
RIMS ledger core.

In-memory, authoritative stock ledger with its workflows (sale, refund,
transfer, audit, PO receive, cash shifts). Persists through a DurableStore
via the StoreSync outbox.
"""
from .entities import (
    AuditCount,
    BatchInfo,
    LineItem,
    PaymentMethod,
    PurchaseOrderLine,
    StockAdjustment,
    TransactionType,
)
from .errors import LedgerError, NotFoundError
from .settings import LedgerSettings, update_settings
from .state import Ledger, DEFAULT_LOCATIONS
from .store_client import HttpStore, MemoryStore, SqlStore, connect_store
from .sync import StoreSync

__all__ = [
    "AuditCount",
    "BatchInfo",
    "LineItem",
    "PaymentMethod",
    "PurchaseOrderLine",
    "StockAdjustment",
    "TransactionType",
    "LedgerError",
    "NotFoundError",
    "LedgerSettings",
    "update_settings",
    "Ledger",
    "DEFAULT_LOCATIONS",
    "HttpStore",
    "MemoryStore",
    "SqlStore",
    "connect_store",
    "StoreSync",
]
