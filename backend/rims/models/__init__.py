from .inventory import InventoryRow, TransactionRow, LocationRow
from .parties import SupplierRow, EmployeeRow, CustomerRow
from .finance import ExpenseRow, PurchaseOrderRow, CashShiftRow

# Collection name (URL segment) -> model
COLLECTIONS = {
    "inventory": InventoryRow,
    "transactions": TransactionRow,
    "suppliers": SupplierRow,
    "employees": EmployeeRow,
    "customers": CustomerRow,
    "expenses": ExpenseRow,
    "purchase_orders": PurchaseOrderRow,
    "cash_shifts": CashShiftRow,
    "locations": LocationRow,
}

__all__ = [
    'InventoryRow', 'TransactionRow', 'LocationRow',
    'SupplierRow', 'EmployeeRow', 'CustomerRow',
    'ExpenseRow', 'PurchaseOrderRow', 'CashShiftRow',
    'COLLECTIONS',
]
