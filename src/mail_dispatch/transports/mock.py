"""Mock transport for dry runs and tests."""

import logging
import threading
from typing import Iterable, List, Optional

from ..models import DeliveryResult, OutboundMessage, TransportConfig
from .base import BaseTransport

logger = logging.getLogger(__name__)


class MockTransport(BaseTransport):
    """Transport that records messages instead of sending them.

    ``failures`` scripts the outcome of successive attempts: each entry is an
    error string (a failed attempt) or None (a successful one). Once the
    script runs out every attempt succeeds, unless ``always_fail`` is set.
    """

    def __init__(self, failures: Optional[Iterable[Optional[str]]] = None, always_fail: Optional[str] = None):
        self._failures = list(failures or [])
        self.always_fail = always_fail
        self.delivered: List[OutboundMessage] = []
        self.attempts: List[OutboundMessage] = []
        self._lock = threading.Lock()

    def deliver(self, message: OutboundMessage, config: TransportConfig) -> DeliveryResult:
        with self._lock:
            self.attempts.append(message)
            error = self._failures.pop(0) if self._failures else self.always_fail
            if error:
                return DeliveryResult.failure(error)
            self.delivered.append(message)
        logger.info("Mock delivery to %s: %s", ", ".join(message.to) or "(no To)", message.subject)
        return DeliveryResult.success()

    def validate_connection(self, config: TransportConfig) -> bool:
        """Validate connection (always succeeds for mock)."""
        return True
