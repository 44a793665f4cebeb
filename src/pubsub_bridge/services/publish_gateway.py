"""
Publish gateway.

Accepts domain events from in-process callers, encodes them and hands them to
the broker adapter registered for the requested pubsub component. Every
publish returns a typed PublishResult; transport failures are reported, never
raised, and never retried here.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field

from ..adapters.base import EventAdapter, PublishError
from ..adapters.dapr_adapter import DaprAdapter
from ..adapters.memory_adapter import MemoryAdapter
from ..adapters.nats_adapter import NatsAdapter
from ..config import settings
from .envelope_codec import EncodingError, encode

logger = logging.getLogger(__name__)


class PublishStatus(str, Enum):
    """Result kind of one publish call."""
    ACCEPTED = "accepted"
    BROKER_UNAVAILABLE = "broker_unavailable"
    ENCODING_FAILED = "encoding_failed"
    COMPONENT_NOT_FOUND = "component_not_found"
    INVALID_TOPIC = "invalid_topic"
    REJECTED = "rejected"


class PublishResult(BaseModel):
    """Typed result of a publish call."""
    status: PublishStatus = Field(..., description="Result kind")
    event_id: Optional[str] = Field(default=None, description="CloudEvent ID, once encoded")
    message: str = Field(default="", description="Status or error message")

    @property
    def accepted(self) -> bool:
        return self.status == PublishStatus.ACCEPTED


def event_identifier(event: Any) -> Optional[str]:
    """Best-effort caller identifier of an event, for log correlation."""
    if isinstance(event, BaseModel):
        value = getattr(event, "id", None)
    elif isinstance(event, Mapping):
        value = event.get("id", event.get("Id"))
    else:
        value = None
    return str(value) if value is not None else None


class PublishGateway:
    """
    Owns the broker adapters, one per pubsub component.

    The app lifespan calls initialize() and shutdown(); request handlers
    only call publish(). Adapters passed to the constructor are used as-is,
    otherwise one adapter is built from settings for ``settings.pubsub_name``.
    """

    def __init__(
        self,
        adapters: Optional[Dict[str, EventAdapter]] = None,
        publish_timeout: Optional[float] = None,
    ):
        self.adapters: Dict[str, EventAdapter] = dict(adapters) if adapters is not None else {}
        self._configured = adapters is not None
        self._publish_timeout = publish_timeout if publish_timeout is not None else settings.publish_timeout_seconds

    def _get_adapter(self) -> EventAdapter:
        """Factory function to create the appropriate adapter based on configuration."""
        adapter_type = settings.broker_adapter.lower()

        if adapter_type == "dapr":
            return DaprAdapter(
                pubsub_name=settings.pubsub_name,
                endpoint=settings.dapr_http_endpoint,
                api_token=settings.dapr_api_token,
                timeout=settings.publish_timeout_seconds,
            )
        elif adapter_type == "nats":
            return NatsAdapter(
                url=settings.nats_url,
                subject_prefix=settings.pubsub_name,
                reconnect_time_wait=settings.nats_reconnect_time_wait,
                max_reconnect_attempts=settings.nats_max_reconnect_attempts,
            )
        elif adapter_type == "memory":
            return MemoryAdapter()
        else:
            raise ValueError(f"Unknown adapter type: {adapter_type}")

    async def initialize(self) -> None:
        """Create (if not injected) and connect the adapters."""
        if not self._configured:
            logger.info(f"Starting publish gateway with {settings.broker_adapter} adapter")
            self.adapters = {settings.pubsub_name: self._get_adapter()}
            self._configured = True

        for component, adapter in self.adapters.items():
            if adapter.is_connected:
                continue
            try:
                await adapter.connect()
            except ConnectionError as e:
                logger.error(f"Failed to connect adapter for {component}: {e}")
                # Publishes report BROKER_UNAVAILABLE until the broker is back
                if not settings.debug:
                    raise

    async def shutdown(self) -> None:
        """Disconnect all adapters."""
        for component, adapter in self.adapters.items():
            try:
                await adapter.disconnect()
            except Exception as e:
                logger.warning(f"Error disconnecting adapter for {component}: {e}")
        logger.info("Publish gateway shutdown complete")

    def adapter_for(self, pubsub_component: str) -> Optional[EventAdapter]:
        return self.adapters.get(pubsub_component)

    async def publish(self, pubsub_component: str, topic: str, event: Any) -> PublishResult:
        """
        Publish an event to a topic on a pubsub component.

        Args:
            pubsub_component: Component name (e.g., "pubsub")
            topic: Topic name (e.g., "neworder")
            event: Pydantic model, mapping, or other JSON-serializable value

        Returns:
            PublishResult; ACCEPTED means the broker transport took the
            message, not that any subscriber processed it
        """
        if not topic:
            return PublishResult(status=PublishStatus.INVALID_TOPIC, message="Topic must be non-empty")

        adapter = self.adapter_for(pubsub_component)
        if adapter is None:
            return PublishResult(
                status=PublishStatus.COMPONENT_NOT_FOUND,
                message=f"No broker adapter for pubsub component '{pubsub_component}'",
            )

        try:
            envelope = encode(event, topic, pubsub_component)
        except EncodingError as e:
            logger.error(f"Failed to encode event for {pubsub_component}/{topic}: {e}")
            return PublishResult(status=PublishStatus.ENCODING_FAILED, message=str(e))

        if not adapter.is_connected:
            return PublishResult(
                status=PublishStatus.BROKER_UNAVAILABLE,
                event_id=envelope.id,
                message=f"{adapter.name} not connected",
            )

        try:
            await asyncio.wait_for(
                adapter.publish(topic, envelope.to_cloudevent()),
                timeout=self._publish_timeout,
            )
        except (ConnectionError, asyncio.TimeoutError) as e:
            logger.error(f"Broker unavailable for {pubsub_component}/{topic}: {e!r}")
            return PublishResult(
                status=PublishStatus.BROKER_UNAVAILABLE,
                event_id=envelope.id,
                message=str(e) or "Publish timed out",
            )
        except PublishError as e:
            return PublishResult(status=PublishStatus.REJECTED, event_id=envelope.id, message=str(e))

        logger.info(
            f"Published event {event_identifier(event) or '-'} as {envelope.id} to {pubsub_component}/{topic}"
        )
        return PublishResult(
            status=PublishStatus.ACCEPTED,
            event_id=envelope.id,
            message=f"Event published to {pubsub_component}/{topic}",
        )
