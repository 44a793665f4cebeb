"""
NATS adapter for the pub/sub bridge.

Structured CloudEvents go out on one subject per topic. With in-process
delivery enabled, messages on those subjects are fed back into the delivery
dispatcher through subscribe().
"""
import json
import logging
from typing import Any, Dict, List
from uuid import uuid4

import nats
from nats.aio.client import Client as NatsClient
from nats.aio.msg import Msg
from nats.aio.subscription import Subscription

from .base import EventAdapter, MessageHandler, PublishError, SubscriptionError

logger = logging.getLogger(__name__)

CLOUDEVENTS_HEADERS = {"Content-Type": "application/cloudevents+json"}


class NatsAdapter(EventAdapter):
    """
    NATS Core adapter for one pubsub component.

    Subjects are ``{subject_prefix}.{topic}``, so components sharing a server
    stay isolated: topic ``neworder`` on component ``pubsub`` is published on
    ``pubsub.neworder``.

    NATS Core never redelivers. A RETRY disposition for a message received
    through subscribe() is logged and the message is gone.
    """

    supports_subscribe = True

    def __init__(
        self,
        url: str = "nats://localhost:4222",
        subject_prefix: str = "pubsub",
        reconnect_time_wait: int = 2,
        max_reconnect_attempts: int = -1,
    ):
        """
        Args:
            url: Server URL
            subject_prefix: Subject namespace, normally the component name
            reconnect_time_wait: Seconds between reconnect attempts
            max_reconnect_attempts: Reconnect attempts before giving up (-1 retries forever)
        """
        self._url = url
        self._subject_prefix = subject_prefix
        self._reconnect_time_wait = reconnect_time_wait
        self._max_reconnect_attempts = max_reconnect_attempts
        self._client: NatsClient | None = None
        # Subscription ID -> one NATS subscription per topic
        self._subscriptions: Dict[str, List[Subscription]] = {}

    async def connect(self) -> None:
        """Open the client; the nats client reconnects on its own afterwards."""
        if self.is_connected:
            logger.warning(f"NATS adapter for '{self._subject_prefix}' already connected")
            return

        try:
            self._client = await nats.connect(
                servers=[self._url],
                reconnect_time_wait=self._reconnect_time_wait,
                max_reconnect_attempts=self._max_reconnect_attempts,
                error_cb=self._on_error,
                disconnected_cb=self._on_disconnected,
                reconnected_cb=self._on_reconnected,
                closed_cb=self._on_closed,
            )
        except Exception as e:
            logger.error(f"NATS unreachable at {self._url}: {e}")
            raise ConnectionError(f"NATS unreachable at {self._url}: {e}") from e

        logger.info(f"NATS adapter for '{self._subject_prefix}' connected to {self._client.connected_url}")

    async def disconnect(self) -> None:
        """Drop subscriptions and drain the connection."""
        if self._client is None:
            return

        for subscription_id in list(self._subscriptions):
            await self.unsubscribe(subscription_id)

        try:
            await self._client.drain()
        except Exception as e:
            logger.warning(f"NATS drain failed: {e}")
        self._client = None
        logger.info(f"NATS adapter for '{self._subject_prefix}' disconnected")

    async def publish(self, topic: str, message: Dict[str, Any]) -> None:
        """
        Publish a CloudEvent on the topic's subject.

        Raises:
            ConnectionError: If the client is not connected
            PublishError: If the client refused the message (payload too large, closed, ...)
        """
        if not self.is_connected:
            raise ConnectionError("NATS adapter not connected")

        subject = self._topic_to_subject(topic)
        try:
            await self._client.publish(subject, json.dumps(message).encode("utf-8"), headers=CLOUDEVENTS_HEADERS)
        except Exception as e:
            logger.error(f"NATS refused message {message.get('id')} on {subject}: {e}")
            raise PublishError(f"NATS refused message on {subject}: {e}") from e
        logger.debug(f"Published {message.get('id')} on {subject}")

    async def subscribe(
        self,
        topics: List[str],
        handler: MessageHandler,
        subscription_id: str | None = None,
    ) -> str:
        """
        Subscribe ``handler`` to the subject of every topic.

        Either every subject is subscribed or none is.

        Returns:
            Subscription ID for unsubscribe()
        """
        if not self.is_connected:
            raise ConnectionError("NATS adapter not connected")

        sub_id = subscription_id or str(uuid4())
        callback = self._callback_for(handler)
        self._subscriptions[sub_id] = []

        for topic in topics:
            subject = self._topic_to_subject(topic)
            try:
                self._subscriptions[sub_id].append(await self._client.subscribe(subject, cb=callback))
            except Exception as e:
                await self.unsubscribe(sub_id)
                raise SubscriptionError(f"Cannot subscribe to {subject}: {e}") from e

        logger.info(f"Subscription {sub_id} listening on {[self._topic_to_subject(t) for t in topics]}")
        return sub_id

    async def unsubscribe(self, subscription_id: str) -> None:
        subscriptions = self._subscriptions.pop(subscription_id, None)
        if subscriptions is None:
            logger.warning(f"Unknown NATS subscription {subscription_id}")
            return

        for subscription in subscriptions:
            try:
                await subscription.unsubscribe()
            except Exception as e:
                logger.warning(f"Error unsubscribing {subscription_id} from {subscription.subject}: {e}")
        logger.info(f"Subscription {subscription_id} closed")

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    def _callback_for(self, handler: MessageHandler):
        """Wrap a MessageHandler as a nats-py message callback."""
        async def on_message(msg: Msg) -> None:
            try:
                message = json.loads(msg.data)
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.error(f"Discarding undecodable message on {msg.subject}: {e}")
                return
            try:
                await handler(self._subject_to_topic(msg.subject), message)
            except Exception as e:
                logger.error(f"Delivery from {msg.subject} failed: {e}")

        return on_message

    def _topic_to_subject(self, topic: str) -> str:
        return f"{self._subject_prefix}.{topic}"

    def _subject_to_topic(self, subject: str) -> str:
        """Strip the component prefix; foreign subjects are returned unchanged."""
        prefix = f"{self._subject_prefix}."
        return subject[len(prefix):] if subject.startswith(prefix) else subject

    async def _on_error(self, e: Exception) -> None:
        logger.error(f"NATS error: {e}")

    async def _on_disconnected(self) -> None:
        logger.warning(f"Lost connection to NATS at {self._url}")

    async def _on_reconnected(self) -> None:
        logger.info(f"Reconnected to NATS at {self._client.connected_url}")

    async def _on_closed(self) -> None:
        logger.info("NATS connection closed")
