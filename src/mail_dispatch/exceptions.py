"""Exception types for mail_dispatch."""

import traceback
from typing import Optional


class DispatchError(Exception):
    """Base exception for all mail_dispatch errors."""

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = context or {}
        self.traceback_str = traceback.format_exc() if cause else None


class ConfigurationError(DispatchError):
    """Raised when configuration is invalid or missing."""
    pass


class TemplateError(DispatchError):
    """Raised when a message template cannot be built or loaded."""
    pass


class RecipientError(DispatchError):
    """Raised when a recipient list cannot be parsed."""
    pass


class CatalogError(DispatchError):
    """Raised when an attachment archive cannot be extracted or categorized."""
    pass


class TransportError(DispatchError):
    """Raised when a transport is misconfigured."""
    pass


class QueueError(DispatchError):
    """Raised when a job cannot be admitted to the queue."""
    pass


def format_exception_chain(exception: Exception) -> str:
    """
    Format an exception chain for logging or display.

    Args:
        exception: The exception to format

    Returns:
        Formatted exception chain as a string
    """
    lines = []
    current = exception

    while current:
        if isinstance(current, DispatchError):
            lines.append(f"{type(current).__name__}: {current.message}")
            if current.context:
                lines.append(f"  Context: {current.context}")
            if current.cause:
                lines.append("  Caused by:")
                current = current.cause
            else:
                break
        else:
            lines.append(f"{type(current).__name__}: {str(current)}")
            break

    return "\n".join(lines)
