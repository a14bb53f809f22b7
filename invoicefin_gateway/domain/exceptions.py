"""Domain-specific exceptions"""

from typing import Any, Dict


class DomainException(Exception):
    """Base exception for domain layer"""

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details


class InvalidInputError(DomainException):
    """Out-of-range amount or score, malformed dates or provider payloads"""

    pass


class InvalidStateTransitionError(DomainException):
    """Operation is not legal from the invoice's current status"""

    pass


class AlreadyProcessedError(InvalidStateTransitionError):
    """Operation already happened for this invoice (e.g. double finance)"""

    pass


class EligibilityRejectedError(DomainException):
    """Risk score below floor, exposure cap exceeded, or grace period not over"""

    pass


class InsufficientFundsError(DomainException):
    """Pool balance cannot cover the requested movement"""

    pass


class InsufficientRepaymentError(DomainException):
    """Repayment amount below the required settlement"""

    pass


class NotFoundError(DomainException):
    """Referenced invoice, business or position does not exist"""

    pass


class StorageUnavailableError(DomainException):
    """Database failed transiently; the caller may retry after re-checking state"""

    pass


class RiskProviderError(DomainException):
    """Risk assessment provider returned an error or is unavailable"""

    pass
