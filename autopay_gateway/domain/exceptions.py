"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Obligation or budget definition is malformed (rejected at write time)"""

    pass


class NotFoundError(DomainException):
    """Requested obligation or budget does not exist"""

    pass


class ConflictError(DomainException):
    """Uniqueness violation, e.g. a second budget for the same month and category"""

    pass


class TransientLedgerError(DomainException):
    """Ledger unreachable, timed out or answered with a server error"""

    pass


class InsufficientFundsError(DomainException):
    """Ledger rejected a debit because the account balance does not cover it"""

    def __init__(self, account_id: str, message: str | None = None):
        self.account_id = account_id
        super().__init__(message or f"Insufficient funds in account {account_id}")


class PolicyViolation(DomainException):
    """Shortfall policy cannot be applied as configured (e.g. no funding sources)"""

    pass


class LockNotAcquired(DomainException):
    """Another execution currently holds the obligation's lock"""

    pass
