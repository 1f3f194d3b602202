"""
Ledger error hierarchy

Validation errors are raised before any store write. Overspending, negative
ready-to-assign and uncategorized spending are data states, not errors.
"""


class LedgerError(Exception):
    """Base class for all ledger failures"""
    pass


class ValidationError(LedgerError, ValueError):
    """Bad input rejected at the service boundary"""
    pass


class NotFoundError(ValidationError):
    """Referenced entity does not exist"""
    pass


class LedgerIntegrityError(LedgerError):
    """Operation would leave (or found) a dangling reference"""
    pass


class StoreInitError(LedgerError):
    """Storage could not be opened or created"""
    pass


class StoreNotInitializedError(LedgerError):
    """Store used before open()"""
    pass
