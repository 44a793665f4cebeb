"""
Tests for the NATS adapter that do not need a running server.
"""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from pubsub_bridge.adapters.base import PublishError
from pubsub_bridge.adapters.nats_adapter import NatsAdapter


@pytest.fixture
def adapter():
    """NATS adapter with a fake connected client."""
    adapter = NatsAdapter(url="nats://localhost:4222", subject_prefix="pubsub")
    client = MagicMock()
    client.is_connected = True
    client.publish = AsyncMock()
    adapter._client = client
    return adapter


class TestSubjectMapping:
    """Tests for topic <-> subject conversion."""

    def test_topic_to_subject(self):
        adapter = NatsAdapter(subject_prefix="pubsub")

        assert adapter._topic_to_subject("neworder") == "pubsub.neworder"

    def test_subject_to_topic(self):
        adapter = NatsAdapter(subject_prefix="pubsub")

        assert adapter._subject_to_topic("pubsub.neworder") == "neworder"
        assert adapter._subject_to_topic("other.neworder") == "other.neworder"


class TestNatsPublish:
    """Tests for NatsAdapter.publish()."""

    async def test_publish_not_connected(self):
        adapter = NatsAdapter()

        assert not adapter.is_connected
        with pytest.raises(ConnectionError):
            await adapter.publish("neworder", {"id": "e1"})

    async def test_publish_sends_cloudevent(self, adapter):
        await adapter.publish("neworder", {"id": "e1", "data": {"Id": "o1"}})

        args, kwargs = adapter._client.publish.call_args
        assert args[0] == "pubsub.neworder"
        assert json.loads(args[1]) == {"id": "e1", "data": {"Id": "o1"}}
        assert kwargs["headers"] == {"Content-Type": "application/cloudevents+json"}

    async def test_publish_failure(self, adapter):
        adapter._client.publish.side_effect = RuntimeError("max payload exceeded")

        with pytest.raises(PublishError):
            await adapter.publish("neworder", {"id": "e1"})
