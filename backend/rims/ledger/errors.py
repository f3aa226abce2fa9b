class LedgerError(Exception):
    """Base class for ledger business-rule failures."""
    pass


class NotFoundError(LedgerError, LookupError):
    """Raised when a mutation references an item, customer, PO, location or shift that does not exist."""
    pass
