"""
Base adapter interface for broker transports.

The Publish Gateway hands encoded envelopes to an adapter; it never talks to a
broker directly. Adapters that can also consume (NATS, in-memory) expose
subscribe/unsubscribe so the bridge can deliver in-process without a sidecar.
"""
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List

# Type alias for message handlers
MessageHandler = Callable[[str, Dict[str, Any]], Awaitable[None]]


class EventAdapter(ABC):
    """
    Abstract base class for broker adapters.

    One adapter instance serves one pubsub component (for example the Dapr
    component named ``pubsub``).
    """

    #: Whether the transport can push messages into this process directly.
    supports_subscribe: bool = False

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish the transport connection.

        Raises:
            ConnectionError: If the broker cannot be reached
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the transport connection and any subscriptions."""
        pass

    @abstractmethod
    async def publish(self, topic: str, message: Dict[str, Any]) -> None:
        """
        Publish a structured CloudEvent to a topic.

        Args:
            topic: The topic to publish to (e.g., "neworder")
            message: CloudEvents structured-mode dict (JSON serializable)

        Raises:
            PublishError: If the broker refused the message
            ConnectionError: If the broker could not be reached
        """
        pass

    async def subscribe(
        self,
        topics: List[str],
        handler: MessageHandler,
        subscription_id: str | None = None,
    ) -> str:
        """
        Subscribe to one or more topics.

        Push-only transports (Dapr) deliver over HTTP instead and keep this
        default.

        Returns:
            Subscription ID that can be used to unsubscribe

        Raises:
            SubscriptionError: If the transport cannot subscribe
        """
        raise SubscriptionError(f"{self.name} does not support subscriptions")

    async def unsubscribe(self, subscription_id: str) -> None:
        """Drop a subscription created by subscribe()."""
        raise SubscriptionError(f"{self.name} does not support subscriptions")

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """
        Check if the adapter is connected to the broker.

        Returns:
            True if connected, False otherwise
        """
        pass

    @property
    def name(self) -> str:
        """Return the adapter name for logging."""
        return self.__class__.__name__


class AdapterError(Exception):
    """Base exception for adapter errors."""
    pass


class PublishError(AdapterError):
    """Raised when the broker refused a message."""
    pass


class SubscriptionError(AdapterError):
    """Raised when a subscription could not be created."""
    pass
