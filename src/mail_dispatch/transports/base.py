"""Base transport interface."""

from abc import ABC, abstractmethod

from ..models import DeliveryResult, OutboundMessage, TransportConfig


class BaseTransport(ABC):
    """Abstract base class for message transports."""

    @abstractmethod
    def deliver(self, message: OutboundMessage, config: TransportConfig) -> DeliveryResult:
        """Deliver a composed message.

        Transport failures are reported in the returned result, never raised.

        Args:
            message: Message to deliver
            config: Connection and sender settings

        Returns:
            DeliveryResult describing the attempt
        """
        pass

    @abstractmethod
    def validate_connection(self, config: TransportConfig) -> bool:
        """Validate that the transport can reach its server.

        Returns:
            True if connection is valid
        """
        pass
