"""Error taxonomy for the transaction engine.

``ValidationError`` subclasses ``ValueError`` so callers that only know
about ``ValueError`` (the API layer, scripts) still catch them. Every
validation failure is raised before any row is touched.
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for all engine errors."""


# ─── Validation (operator-facing, zero side effects) ─────────────────────────


class ValidationError(PosError, ValueError):
    pass


class NoActiveShift(ValidationError):
    def __init__(self, message: str = "Cannot complete sale without an active shift") -> None:
        super().__init__(message)


class ShiftAlreadyActive(ValidationError):
    def __init__(self, message: str = "A shift is already active for this operator") -> None:
        super().__init__(message)


class ShiftNotClosed(ValidationError):
    """A Z-report was requested for a shift that is still active."""


class InvalidAmount(ValidationError):
    pass


class EmptyCart(ValidationError):
    def __init__(self, message: str = "Cart must contain at least one item") -> None:
        super().__init__(message)


class UnknownProduct(ValidationError):
    pass


class InsufficientStock(ValidationError):
    pass


class InvalidDiscount(ValidationError):
    pass


class InsufficientPayment(ValidationError):
    pass


class InvalidPayment(ValidationError):
    pass


class InvalidRedemption(ValidationError):
    pass


class SaleAlreadyAttached(ValidationError):
    pass


class InvalidBackup(ValidationError):
    pass


# ─── Infrastructure ─────────────────────────────────────────────────────────


class PersistenceError(PosError):
    """The local durable store could not be written."""


class SyncError(PosError):
    """The remote ledger was unreachable or rejected a submission."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)


class ImmutableRecordError(PosError):
    """A closed shift or a committed sale was modified."""
