"""Message transport implementations."""

from .base import BaseTransport
from .mock import MockTransport
from .smtp import SmtpTransport

__all__ = ["BaseTransport", "MockTransport", "SmtpTransport"]
