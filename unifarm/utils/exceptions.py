"""
Exception handling utilities.

Defines the error taxonomy used by the farming and referral engines and
helpers to categorize exceptions by handling strategy.
"""

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError


class UnifarmError(Exception):
    """Base class for all domain errors."""

    retryable: bool = False

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(UnifarmError):
    """Invalid input detected before any mutation."""


class NotFoundError(UnifarmError):
    """Referenced participant, deposit or batch does not exist."""


class InsufficientFundsError(UnifarmError):
    """Main balance cannot cover the requested debit."""


class DatabaseError(UnifarmError):
    """Transient storage failure, the whole unit was rolled back."""

    retryable = True


class IdempotencyConflict(UnifarmError):
    """Batch already completed; the stored result is authoritative."""


class InternalError(UnifarmError):
    """Unexpected failure wrapped to avoid leaking internals."""


def is_retryable(exc: BaseException) -> bool:
    """
    Check if exception may be retried.

    Args:
        exc: Exception to check

    Returns:
        True only for transient storage failures
    """
    return isinstance(exc, UnifarmError) and exc.retryable


def wrap_database_error(
    exc: BaseException, operation: str, **context: object
) -> UnifarmError:
    """
    Convert an arbitrary exception into a domain error.

    Domain errors are passed through unchanged. SQLAlchemy errors become
    ``DatabaseError``, anything else becomes ``InternalError``. Full detail
    goes to the log, the message carries only the operation name.

    Args:
        exc: Original exception
        operation: Name of the failed operation
        **context: Identifiers to log (source id, amount, batch id, ...)

    Returns:
        Domain error to raise
    """
    if isinstance(exc, UnifarmError):
        return exc

    extra = {key: str(value) for key, value in context.items()}
    extra["operation"] = operation
    extra["error"] = str(exc)

    if isinstance(exc, SQLAlchemyError):
        logger.error(f"Database error in {operation}", extra=extra)
        return DatabaseError(f"{operation} failed: storage error", **context)

    logger.error(f"Unexpected error in {operation}", extra=extra)
    return InternalError(f"{operation} failed: internal error", **context)
