"""
Billing error taxonomy

Raised by domain rules and use cases; mapped to HTTP status codes in app.main.
"""


class BillingError(Exception):
    """Base class for all billing core errors"""
    pass


class NotFoundError(BillingError):
    """Subscriber / voucher / month referenced by id or label does not exist"""
    pass


class InvalidStateError(BillingError):
    """Operation not allowed in the current state (e.g. reversing a reversed month)"""
    pass


class BillingValidationError(BillingError, ValueError):
    """Missing or malformed input; never reaches the ledger"""
    pass


class PersistenceError(BillingError):
    """Store unavailable or timed out. Retryable by the caller."""
    pass
