"""
In-memory adapter for the pub/sub bridge.

Used for local development without a sidecar and for tests. Every published
message is recorded in ``published`` and handed to the subscribers of its
exact topic in the background; flush() waits for those deliveries.
"""
import asyncio
import logging
from typing import Any, Dict, List, Set, Tuple
from uuid import uuid4

from .base import EventAdapter, MessageHandler

logger = logging.getLogger(__name__)


class MemoryAdapter(EventAdapter):
    """In-process broker: exact topic names, background fan-out, no redelivery."""

    supports_subscribe = True

    def __init__(self):
        self._connected = False
        # Topic -> {subscription ID: handler}, in subscription order
        self._subscribers: Dict[str, Dict[str, MessageHandler]] = {}
        self._topics_by_sub: Dict[str, List[str]] = {}
        self.published: List[Tuple[str, Dict[str, Any]]] = []
        self._pending: Set[asyncio.Task] = set()

    async def connect(self) -> None:
        if self._connected:
            logger.warning("Memory adapter already connected")
            return
        self._connected = True
        logger.info("Memory adapter connected")

    async def disconnect(self) -> None:
        """Finish scheduled deliveries and forget every subscription; ``published`` is kept."""
        await self.flush()
        self._subscribers.clear()
        self._topics_by_sub.clear()
        self._connected = False
        logger.info("Memory adapter disconnected")

    async def publish(self, topic: str, message: Dict[str, Any]) -> None:
        """
        Record a message and schedule delivery to the topic's subscribers.

        Returns once the message is recorded, so slow subscribers never count
        against the publisher's timeout. A failing subscriber is logged and
        does not affect the publish.
        """
        if not self._connected:
            raise ConnectionError("Memory adapter not connected")

        self.published.append((topic, message))
        subscribers = list(self._subscribers.get(topic, {}).items())
        if not subscribers:
            logger.debug(f"Recorded {message.get('id')} on {topic} (no subscribers)")
            return

        task = asyncio.create_task(self._fan_out(topic, message, subscribers))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait until every delivery scheduled by publish() has finished."""
        while self._pending:
            await asyncio.gather(*self._pending)

    async def subscribe(
        self,
        topics: List[str],
        handler: MessageHandler,
        subscription_id: str | None = None,
    ) -> str:
        if not self._connected:
            raise ConnectionError("Memory adapter not connected")

        sub_id = subscription_id or str(uuid4())
        for topic in topics:
            self._subscribers.setdefault(topic, {})[sub_id] = handler
        self._topics_by_sub[sub_id] = list(topics)
        logger.info(f"Subscription {sub_id} listening on {topics}")
        return sub_id

    async def unsubscribe(self, subscription_id: str) -> None:
        topics = self._topics_by_sub.pop(subscription_id, None)
        if topics is None:
            logger.warning(f"Unknown memory subscription {subscription_id}")
            return

        for topic in topics:
            handlers = self._subscribers.get(topic, {})
            handlers.pop(subscription_id, None)
            if not handlers:
                self._subscribers.pop(topic, None)
        logger.info(f"Subscription {subscription_id} closed")

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def _fan_out(
        self,
        topic: str,
        message: Dict[str, Any],
        subscribers: List[Tuple[str, MessageHandler]],
    ) -> None:
        results = await asyncio.gather(
            *(handler(topic, message) for _, handler in subscribers),
            return_exceptions=True,
        )
        for (sub_id, _), result in zip(subscribers, results):
            if isinstance(result, Exception):
                logger.error(f"Subscriber {sub_id} failed on {topic}: {result}")
