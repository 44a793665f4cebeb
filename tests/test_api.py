"""
Tests for the bridge's HTTP endpoints.
"""
import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from pubsub_bridge.adapters.memory_adapter import MemoryAdapter
from pubsub_bridge.config import settings
from pubsub_bridge.main import app as default_app
from pubsub_bridge.main import create_app
from pubsub_bridge.orders import Order, register_order_handlers
from pubsub_bridge.services.handlers import FunctionHandler, HandlerResult
from pubsub_bridge.services.publish_gateway import PublishGateway
from pubsub_bridge.services.topic_registry import (
    DuplicateRegistration,
    RegistryFrozenError,
    TopicRegistry,
)

NEW_ORDER = {"id": "123", "topic": "neworder", "data": {"Id": "o1", "Product": "widget"}}


def app_with(handler, route="/orders/neworder", gateway=None):
    registry = TopicRegistry()
    registry.register("pubsub", "neworder", handler, route=route)
    return create_app(registry=registry, gateway=gateway)


@pytest.fixture
async def connected_gateway(memory_adapter):
    """Gateway publishing through a connected memory adapter."""
    return PublishGateway(adapters={"pubsub": memory_adapter})


class TestDiscoveryEndpoint:
    """Tests for the subscription discovery endpoint."""

    def test_default_app_advertises_orders(self):
        """The sample orders subscription is served by the default app."""
        client = TestClient(default_app)

        response = client.get("/dapr/subscribe")

        assert response.status_code == 200
        assert response.json() == [
            {"pubsubname": "pubsub", "topic": "neworder", "route": "/orders/neworder"}
        ]

    def test_discovery_is_stable(self, make_handler):
        """Repeated discovery calls return identical bodies in registration order."""
        registry = TopicRegistry()
        registry.register("pubsub", "neworder", make_handler())
        registry.register("pubsub", "cancelled", make_handler())
        client = TestClient(create_app(registry=registry))

        first = client.get("/dapr/subscribe")
        second = client.get("/dapr/subscribe")

        assert first.content == second.content
        assert [entry["topic"] for entry in first.json()] == ["neworder", "cancelled"]
        assert first.json()[1]["route"] == "/events/pubsub/cancelled"


class TestDeliveryEndpoint:
    """Tests for delivery routes and their status codes."""

    def test_successful_delivery(self):
        """A valid envelope is acked and reaches the handler exactly once."""
        received = []

        async def handle(order, envelope):
            received.append(order)

        client = TestClient(app_with(FunctionHandler(handle, event_model=Order)))

        response = client.post("/orders/neworder", json=NEW_ORDER)

        assert response.status_code == 200
        assert response.json() == {"status": "SUCCESS"}
        assert len(received) == 1
        assert received[0].id == "o1"
        assert received[0].product == "widget"

    def test_unknown_topic_is_dropped(self, recorder):
        """An envelope for an unregistered topic is dropped without invoking handlers."""
        client = TestClient(app_with(recorder))

        response = client.post("/orders/neworder", json={**NEW_ORDER, "topic": "unknown"})

        assert response.status_code == 404
        assert response.json() == {"status": "DROP"}
        assert recorder.calls == []

    def test_unregistered_route_is_dropped(self, recorder):
        """Deliveries on an unadvertised route get a DROP body, not a bare 404."""
        client = TestClient(app_with(recorder))

        response = client.post("/events/pubsub/unknown", json={"id": "123", "data": {}})

        assert response.status_code == 404
        assert response.json() == {"status": "DROP"}
        assert recorder.calls == []

    def test_malformed_body_is_dropped(self, recorder):
        """Invalid JSON is dropped with 400."""
        client = TestClient(app_with(recorder))

        response = client.post(
            "/orders/neworder",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"status": "DROP"}
        assert recorder.calls == []

    def test_unsupported_content_type_is_dropped(self, recorder):
        client = TestClient(app_with(recorder))

        response = client.post(
            "/orders/neworder",
            content=b'{"id": "123", "data": "x"}',
            headers={"Content-Type": "text/plain"},
        )

        assert response.status_code == 400
        assert response.json() == {"status": "DROP"}

    def test_transient_failure_requests_retry(self, make_handler):
        """A transient handler failure maps to RETRY with a 5xx status."""
        handler = make_handler(result=HandlerResult.transient("database unavailable"))
        client = TestClient(app_with(handler))

        response = client.post("/orders/neworder", json=NEW_ORDER)

        assert response.status_code == 500
        assert response.json() == {"status": "RETRY"}
        assert len(handler.calls) == 1

    def test_handler_exception_requests_retry(self, make_handler):
        client = TestClient(app_with(make_handler(error=RuntimeError("boom"))))

        response = client.post("/orders/neworder", json=NEW_ORDER)

        assert response.status_code == 500
        assert response.json() == {"status": "RETRY"}

    def test_permanent_failure_is_dropped_with_200(self, make_handler):
        """Permanent failures answer 200 with the DROP marker so the agent stops redelivering."""
        client = TestClient(app_with(make_handler(result=HandlerResult.permanent("unknown product"))))

        response = client.post("/orders/neworder", json=NEW_ORDER)

        assert response.status_code == 200
        assert response.json() == {"status": "DROP"}

    def test_drop_status_code_is_configurable(self, make_handler, monkeypatch):
        monkeypatch.setattr(settings, "drop_status_code", 400)
        client = TestClient(app_with(make_handler(result=HandlerResult.permanent("unknown product"))))

        response = client.post("/orders/neworder", json=NEW_ORDER)

        assert response.status_code == 400
        assert response.json() == {"status": "DROP"}

    def test_handler_timeout_requests_retry(self, make_handler, monkeypatch):
        """A handler exceeding its timeout is cancelled and answered with 503."""
        monkeypatch.setattr(settings, "handler_timeout_seconds", 0.05)
        client = TestClient(app_with(make_handler(delay=1.0)))

        response = client.post("/orders/neworder", json=NEW_ORDER)

        assert response.status_code == 503
        assert response.json() == {"status": "RETRY"}

    def test_default_app_delivers_orders(self):
        client = TestClient(default_app)

        response = client.post(
            "/orders/neworder",
            json=NEW_ORDER,
            headers={"Content-Type": "application/cloudevents+json"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "SUCCESS"}

    def test_default_app_drops_invalid_order(self):
        """An order without a product fails validation and is dropped."""
        client = TestClient(default_app)

        response = client.post("/orders/neworder", json={**NEW_ORDER, "data": {"Id": "o1"}})

        assert response.status_code == 200
        assert response.json() == {"status": "DROP"}


class TestStartup:
    """Tests for registry construction and freezing."""

    def test_duplicate_registration_is_fatal(self):
        """Registering the orders handlers twice fails before an app can be built."""
        registry = TopicRegistry()
        register_order_handlers(registry)

        with pytest.raises(DuplicateRegistration):
            register_order_handlers(registry)

    def test_create_app_freezes_registry(self, make_handler):
        registry = TopicRegistry()
        registry.register("pubsub", "neworder", make_handler())

        create_app(registry=registry)

        assert registry.frozen
        with pytest.raises(RegistryFrozenError):
            registry.register("pubsub", "cancelled", make_handler())


class TestPublishEndpoint:
    """Tests for the publish endpoints."""

    async def test_publish_event(self, recorder, connected_gateway, memory_adapter):
        app = app_with(recorder, gateway=connected_gateway)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/v1/publish/pubsub/neworder", json={"Id": "o2", "Product": "gadget"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "accepted"

        topic, message = memory_adapter.published[0]
        assert topic == "neworder"
        assert message["id"] == data["event_id"]
        assert message["data"] == {"Id": "o2", "Product": "gadget"}
        assert message["pubsubname"] == "pubsub"

    async def test_publish_unknown_component(self, recorder, connected_gateway):
        app = app_with(recorder, gateway=connected_gateway)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/v1/publish/other/neworder", json={"Id": "o2"})

        assert response.status_code == 404
        assert "component_not_found" in response.json()["detail"]

    async def test_publish_broker_unavailable(self, recorder):
        gateway = PublishGateway(adapters={"pubsub": MemoryAdapter()})
        app = app_with(recorder, gateway=gateway)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/v1/publish/pubsub/neworder", json={"Id": "o2"})

        assert response.status_code == 503
        assert "broker_unavailable" in response.json()["detail"]

    async def test_publish_order(self, connected_gateway, memory_adapter):
        registry = TopicRegistry()
        register_order_handlers(registry)
        app = create_app(registry=registry, gateway=connected_gateway)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/publish/order", json={"Id": "o2", "Product": "gadget"})

        assert response.status_code == 200
        topic, message = memory_adapter.published[0]
        assert topic == "neworder"
        assert message["data"]["id"] == "o2"
        assert message["data"]["product"] == "gadget"

    async def test_publish_order_requires_product(self, connected_gateway, memory_adapter):
        app = create_app(registry=TopicRegistry(), gateway=connected_gateway)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/publish/order", json={"Id": "o2"})

        assert response.status_code == 422
        assert memory_adapter.published == []


class TestInProcessDelivery:
    """Tests for delivery through a subscribing adapter."""

    def test_published_event_is_dispatched(self, recorder, monkeypatch):
        """With in-process delivery on, a publish reaches the registered handler."""
        monkeypatch.setattr(settings, "in_process_delivery", True)
        app = app_with(recorder, gateway=PublishGateway())

        with TestClient(app) as client:
            response = client.post("/v1/publish/pubsub/neworder", json={"Id": "o3", "Product": "gizmo"})

        # Shutdown waits for deliveries still in flight
        assert response.status_code == 200
        assert len(recorder.calls) == 1
        event, envelope = recorder.calls[0]
        assert event == {"Id": "o3", "Product": "gizmo"}
        assert envelope.id == response.json()["event_id"]
        assert envelope.topic == "neworder"
