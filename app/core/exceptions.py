"""Application exception hierarchy."""

from typing import Optional, Sequence


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass

class ValidationError(AppError):
    """Raised when input validation fails."""
    pass

class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass

class NotFoundError(AppError):
    """Raised when a referenced customer does not exist."""
    pass

class ConflictError(AppError):
    """Raised when a concurrent writer created the same identity first."""
    pass

class TransactionFailure(DatabaseError):
    """Raised when a multi-statement write is rolled back as a whole."""
    pass

class AmbiguousMatchError(AppError):
    """Raised when an identifier points at more than one customer.

    This is a terminal outcome, not a transient failure: callers must surface
    the candidates for manual review and never retry automatically.
    """
    def __init__(
        self,
        message: str,
        matched_by: str,
        candidate_ids: Sequence[int],
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, original_error=original_error)
        self.matched_by = matched_by
        self.candidate_ids = list(candidate_ids)
