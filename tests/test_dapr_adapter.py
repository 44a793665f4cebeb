"""
Tests for the Dapr sidecar adapter.
"""
import json

import httpx
import pytest

from pubsub_bridge.adapters.base import PublishError, SubscriptionError
from pubsub_bridge.adapters.dapr_adapter import DaprAdapter

CLOUDEVENT = {
    "specversion": "1.0",
    "id": "e1",
    "source": "pubsub-bridge",
    "type": "com.dapr.event.sent",
    "datacontenttype": "application/json",
    "topic": "neworder",
    "pubsubname": "pubsub",
    "data": {"Id": "o1", "Product": "widget"},
}


def sidecar(status_code=204, requests=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return httpx.Response(status_code, text="" if status_code < 300 else "component not found")
    return httpx.MockTransport(handler)


class TestDaprAdapter:
    """Tests for DaprAdapter."""

    async def test_connect_disconnect(self):
        adapter = DaprAdapter(transport=sidecar())

        assert not adapter.is_connected

        await adapter.connect()
        assert adapter.is_connected

        await adapter.disconnect()
        assert not adapter.is_connected

    async def test_publish_posts_structured_cloudevent(self):
        requests = []
        adapter = DaprAdapter(pubsub_name="pubsub", transport=sidecar(requests=requests))
        await adapter.connect()

        await adapter.publish("neworder", CLOUDEVENT)

        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v1.0/publish/pubsub/neworder"
        assert request.headers["content-type"] == "application/cloudevents+json"
        assert json.loads(request.content) == CLOUDEVENT
        await adapter.disconnect()

    async def test_api_token_header(self):
        requests = []
        adapter = DaprAdapter(api_token="secret", transport=sidecar(requests=requests))
        await adapter.connect()

        await adapter.publish("neworder", CLOUDEVENT)

        assert requests[0].headers["dapr-api-token"] == "secret"
        await adapter.disconnect()

    async def test_topic_is_path_escaped(self):
        requests = []
        adapter = DaprAdapter(transport=sidecar(requests=requests))
        await adapter.connect()

        await adapter.publish("orders/new", CLOUDEVENT)

        assert requests[0].url.raw_path == b"/v1.0/publish/pubsub/orders%2Fnew"
        await adapter.disconnect()

    async def test_rejection_raises_publish_error(self):
        adapter = DaprAdapter(transport=sidecar(status_code=404))
        await adapter.connect()

        with pytest.raises(PublishError, match="404"):
            await adapter.publish("neworder", CLOUDEVENT)
        await adapter.disconnect()

    async def test_unreachable_sidecar_raises_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        adapter = DaprAdapter(transport=httpx.MockTransport(handler))
        await adapter.connect()

        with pytest.raises(ConnectionError):
            await adapter.publish("neworder", CLOUDEVENT)
        await adapter.disconnect()

    async def test_publish_requires_connect(self):
        adapter = DaprAdapter(transport=sidecar())

        with pytest.raises(ConnectionError):
            await adapter.publish("neworder", CLOUDEVENT)

    async def test_subscribe_not_supported(self):
        adapter = DaprAdapter(transport=sidecar())

        assert not adapter.supports_subscribe
        with pytest.raises(SubscriptionError):
            await adapter.subscribe(["neworder"], None)
