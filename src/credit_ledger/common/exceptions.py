"""Credit-Ledger exception hierarchy.

Every error carries a stable ``code`` (used to pick the localized message)
and the HTTP status it maps to. ``extra`` holds additional fields that are
rendered next to the error message, e.g. ``required``/``current`` for
insufficient-balance failures.
"""

from typing import Any


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    status_code = 500

    def __init__(self, message: str = "", code: str = "LEDGER_ERROR", **extra: Any):
        self.message = message
        self.code = code
        self.extra = extra
        super().__init__(message)


class InvalidCodeError(LedgerError):
    """Raised when a license code does not exist."""

    status_code = 400

    def __init__(self, message: str = "Invalid code"):
        super().__init__(message, code="INVALID_CODE")


class AlreadyRedeemedError(LedgerError):
    """Raised when a license code has already been redeemed."""

    status_code = 400

    def __init__(self, message: str = "Code has already been redeemed"):
        super().__init__(message, code="ALREADY_REDEEMED")


class _InsufficientFundsError(LedgerError):
    status_code = 400

    def __init__(self, message: str, code: str, required: int, current: int):
        self.required = required
        self.current = current
        super().__init__(message, code=code, required=required, current=current)


class InsufficientBalanceError(_InsufficientFundsError):
    """Raised when the universal balance cannot cover a purchase."""

    def __init__(self, required: int, current: int, message: str = "Insufficient balance"):
        super().__init__(message, "INSUFFICIENT_BALANCE", required, current)


class InsufficientMinutesError(_InsufficientFundsError):
    """Raised when video-watch minutes cannot cover a watch session."""

    def __init__(self, required: int, current: int, message: str = "Insufficient video minutes"):
        super().__init__(message, "INSUFFICIENT_MINUTES", required, current)


class InsufficientArticleCreditsError(_InsufficientFundsError):
    """Raised when no article credit is left to unlock an article."""

    def __init__(self, required: int, current: int, message: str = "Insufficient article credits"):
        super().__init__(message, "INSUFFICIENT_ARTICLE_CREDITS", required, current)


class ValidationError(LedgerError):
    """Raised for out-of-range or malformed operation arguments."""

    status_code = 400

    def __init__(self, message: str = "Validation failed"):
        super().__init__(message, code="VALIDATION_ERROR")


class UnauthenticatedError(LedgerError):
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, code="UNAUTHENTICATED")


class ForbiddenError(LedgerError):
    status_code = 403

    def __init__(self, message: str = "Admin access required"):
        super().__init__(message, code="FORBIDDEN")


class ResourceNotFoundError(LedgerError):
    """Raised when an article, course or account cannot be found."""

    status_code = 404

    def __init__(self, message: str = "Resource not found", resource_type: str = ""):
        self.resource_type = resource_type
        super().__init__(message, code="NOT_FOUND")


class AccessGrantError(LedgerError):
    """Raised when an access grant cannot be written; the debit is rolled back."""

    status_code = 409

    def __init__(self, message: str = "Access grant could not be recorded"):
        super().__init__(message, code="GRANT_FAILED")


class StorageUnavailableError(LedgerError):
    """Raised when transient storage failures outlast the retry budget."""

    status_code = 500

    def __init__(self, message: str = "Storage temporarily unavailable"):
        super().__init__(message, code="STORAGE_UNAVAILABLE")
