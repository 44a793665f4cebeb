"""
Delivery dispatcher.

Turns one inbound delivery into exactly one Disposition:

    Received -> Decoded -> Routed -> Handled -> Responded
                   \\          \\
                    Rejected   Rejected

The dispatcher holds no per-request state and never retries; the delivery
agent owns redelivery. HTTP status codes are chosen by the API layer from the
DispatchResult, so everything here is testable without a server.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from ..config import settings
from ..models.envelope import Disposition, Envelope
from .envelope_codec import MalformedEnvelope, UnsupportedContentType, decode
from .handlers import EventHandler, HandlerOutcome, HandlerResult
from .topic_registry import TopicNotFound, TopicRegistry

logger = logging.getLogger(__name__)


class DeliveryState(str, Enum):
    """Per-request state of a delivery."""
    RECEIVED = "received"
    DECODED = "decoded"
    ROUTED = "routed"
    HANDLED = "handled"
    RESPONDED = "responded"
    REJECTED = "rejected"


class DispatchReason(str, Enum):
    """Why a delivery ended with its disposition."""
    PROCESSED = "processed"
    MALFORMED_ENVELOPE = "malformed_envelope"
    UNSUPPORTED_CONTENT_TYPE = "unsupported_content_type"
    TOPIC_NOT_FOUND = "topic_not_found"
    INVALID_PAYLOAD = "invalid_payload"
    HANDLER_PERMANENT = "handler_permanent"
    HANDLER_TRANSIENT = "handler_transient"
    HANDLER_TIMEOUT = "handler_timeout"
    HANDLER_FAULT = "handler_fault"


class DispatchResult(BaseModel):
    """Outcome of dispatching one delivery."""
    disposition: Disposition = Field(..., description="Ack, Retry or Drop")
    reason: DispatchReason = Field(..., description="What decided the disposition")
    state: DeliveryState = Field(..., description="Final request state")
    event_id: Optional[str] = Field(default=None, description="CloudEvent ID, when decoded")
    pubsub_component: Optional[str] = Field(default=None)
    topic: Optional[str] = Field(default=None)
    detail: Optional[str] = Field(default=None, description="Error detail for logs")


class DeliveryDispatcher:
    """
    Routes delivered envelopes to the handlers of a TopicRegistry.

    The registry is shared by reference and only read.
    """

    def __init__(
        self,
        registry: TopicRegistry,
        handler_timeout: Optional[float] = None,
    ):
        self.registry = registry
        self._handler_timeout = handler_timeout if handler_timeout is not None else settings.handler_timeout_seconds

    def subscriptions(self) -> List[Dict[str, str]]:
        """Discovery response; idempotent and side-effect free."""
        return self.registry.subscriptions()

    async def dispatch(
        self,
        raw_body: bytes | str,
        headers: Mapping[str, str],
        pubsub_component: Optional[str] = None,
        topic: Optional[str] = None,
    ) -> DispatchResult:
        """
        Dispatch one raw delivery.

        Args:
            raw_body: Request body as received
            headers: Request headers
            pubsub_component: Component bound to the receiving route
            topic: Topic bound to the receiving route

        Returns:
            DispatchResult; decode and routing failures never raise
        """
        try:
            envelope = decode(raw_body, headers, pubsub_component=pubsub_component, topic=topic)
        except MalformedEnvelope as e:
            return self._finish(
                Disposition.DROP, DispatchReason.MALFORMED_ENVELOPE, DeliveryState.REJECTED,
                pubsub_component=pubsub_component, topic=topic, detail=str(e),
            )
        except UnsupportedContentType as e:
            return self._finish(
                Disposition.DROP, DispatchReason.UNSUPPORTED_CONTENT_TYPE, DeliveryState.REJECTED,
                pubsub_component=pubsub_component, topic=topic, detail=str(e),
            )

        if topic and envelope.topic != topic:
            logger.warning(
                f"Envelope {envelope.id} names topic {envelope.topic} but arrived on the route for {topic}"
            )

        return await self.dispatch_envelope(envelope)

    async def dispatch_envelope(self, envelope: Envelope) -> DispatchResult:
        """Route and handle an already decoded envelope."""
        try:
            handler = self.registry.resolve(envelope.pubsub_component, envelope.topic)
        except TopicNotFound as e:
            return self._finish(
                Disposition.DROP, DispatchReason.TOPIC_NOT_FOUND, DeliveryState.REJECTED,
                envelope=envelope, detail=str(e),
            )

        return await self._handle(handler, envelope)

    async def _handle(self, handler: EventHandler, envelope: Envelope) -> DispatchResult:
        event: Any = envelope.payload
        if handler.event_model is not None:
            try:
                event = handler.event_model.model_validate(envelope.payload)
            except ValidationError as e:
                return self._finish(
                    Disposition.DROP, DispatchReason.INVALID_PAYLOAD, DeliveryState.RESPONDED,
                    envelope=envelope, detail=str(e),
                )

        # CancelledError is not an Exception: a cancelled delivery cancels the handler.
        try:
            result = await asyncio.wait_for(handler.handle(event, envelope), timeout=self._handler_timeout)
        except asyncio.TimeoutError:
            return self._finish(
                Disposition.RETRY, DispatchReason.HANDLER_TIMEOUT, DeliveryState.RESPONDED,
                envelope=envelope, detail=f"{handler.name} exceeded {self._handler_timeout}s",
            )
        except Exception as e:
            logger.exception(f"Handler {handler.name} failed on envelope {envelope.id}")
            return self._finish(
                Disposition.RETRY, DispatchReason.HANDLER_FAULT, DeliveryState.RESPONDED,
                envelope=envelope, detail=f"{type(e).__name__}: {e}",
            )

        if not isinstance(result, HandlerResult):
            return self._finish(
                Disposition.RETRY, DispatchReason.HANDLER_FAULT, DeliveryState.RESPONDED,
                envelope=envelope, detail=f"{handler.name} returned {type(result).__name__}, not HandlerResult",
            )

        if result.outcome == HandlerOutcome.SUCCESS:
            return self._finish(
                Disposition.ACK, DispatchReason.PROCESSED, DeliveryState.RESPONDED, envelope=envelope,
            )
        if result.outcome == HandlerOutcome.TRANSIENT_FAILURE:
            return self._finish(
                Disposition.RETRY, DispatchReason.HANDLER_TRANSIENT, DeliveryState.RESPONDED,
                envelope=envelope, detail=result.reason,
            )
        return self._finish(
            Disposition.DROP, DispatchReason.HANDLER_PERMANENT, DeliveryState.RESPONDED,
            envelope=envelope, detail=result.reason,
        )

    def _finish(
        self,
        disposition: Disposition,
        reason: DispatchReason,
        state: DeliveryState,
        envelope: Optional[Envelope] = None,
        pubsub_component: Optional[str] = None,
        topic: Optional[str] = None,
        detail: Optional[str] = None,
    ) -> DispatchResult:
        result = DispatchResult(
            disposition=disposition,
            reason=reason,
            state=state,
            event_id=envelope.id if envelope else None,
            pubsub_component=envelope.pubsub_component if envelope else pubsub_component,
            topic=envelope.topic if envelope else topic,
            detail=detail,
        )

        message = (
            f"Delivery {result.event_id or '-'} on {result.pubsub_component or '-'}/{result.topic or '-'}: "
            f"{disposition.value} ({reason.value})"
        )
        if detail:
            message = f"{message}: {detail}"
        if disposition == Disposition.ACK:
            logger.info(message)
        else:
            logger.warning(message)
        return result
