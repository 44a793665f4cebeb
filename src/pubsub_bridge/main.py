"""
Pub/Sub Bridge - Main FastAPI Application

Bridges in-process code and a message broker's delivery agent
(a Dapr sidecar, or NATS / in-memory for development).

Key Features:
- Topic discovery endpoint for the delivery agent (``/dapr/subscribe``)
- CloudEvents delivery routes with SUCCESS / RETRY / DROP dispositions
- Publish API backed by pluggable broker adapters
"""
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api import build_delivery_router, publish_router
from .config import settings
from .models.envelope import Disposition
from .orders import register_order_handlers
from .orders import router as orders_router
from .services.dispatcher import DeliveryDispatcher
from .services.publish_gateway import PublishGateway
from .services.topic_registry import TopicRegistry

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_registry() -> TopicRegistry:
    """Registry with the built-in subscriptions."""
    registry = TopicRegistry()
    register_order_handlers(registry)
    return registry


async def start_in_process_delivery(
    gateway: PublishGateway,
    dispatcher: DeliveryDispatcher,
) -> List[Tuple[str, str]]:
    """
    Subscribe the dispatcher directly on adapters that can push messages.

    Returns:
        (component, subscription_id) pairs to unsubscribe on shutdown
    """
    topics_by_component: Dict[str, List[str]] = {}
    for registration in dispatcher.registry.list_topics():
        topics_by_component.setdefault(registration.pubsub_component, []).append(registration.topic)

    subscriptions: List[Tuple[str, str]] = []
    for component, topics in topics_by_component.items():
        adapter = gateway.adapter_for(component)
        if adapter is None or not adapter.supports_subscribe or not adapter.is_connected:
            logger.warning(f"In-process delivery unavailable for component {component}")
            continue

        async def deliver(
            topic: str,
            message: Dict[str, Any],
            component: str = component,
            transport: str = adapter.name,
        ) -> None:
            result = await dispatcher.dispatch(
                json.dumps(message),
                {"content-type": "application/cloudevents+json"},
                pubsub_component=component,
                topic=topic,
            )
            if result.disposition == Disposition.RETRY:
                logger.error(
                    f"Delivery {result.event_id} on {component}/{topic} needs a retry "
                    f"the {transport} transport cannot perform"
                )

        subscription_id = await adapter.subscribe(topics, deliver)
        subscriptions.append((component, subscription_id))
    return subscriptions


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Connects the broker adapters on startup and releases them on shutdown.
    """
    gateway: PublishGateway = app.state.gateway
    dispatcher: DeliveryDispatcher = app.state.dispatcher

    logger.info(f"Starting {settings.service_name} with {len(dispatcher.registry)} subscription(s)")
    await gateway.initialize()

    subscriptions: List[Tuple[str, str]] = []
    if settings.in_process_delivery:
        subscriptions = await start_in_process_delivery(gateway, dispatcher)

    logger.info(f"{settings.service_name} ready on port {settings.service_port}")

    yield

    logger.info(f"Shutting down {settings.service_name}")
    for component, subscription_id in subscriptions:
        adapter = gateway.adapter_for(component)
        if adapter is None:
            continue
        try:
            await adapter.unsubscribe(subscription_id)
        except Exception as e:
            logger.warning(f"Error unsubscribing {subscription_id}: {e}")

    await gateway.shutdown()
    logger.info(f"{settings.service_name} shutdown complete")


def create_app(
    registry: Optional[TopicRegistry] = None,
    gateway: Optional[PublishGateway] = None,
) -> FastAPI:
    """
    Build the application.

    The registry is frozen here: delivery routes are materialized from it, so
    nothing registered later could ever be served.

    Raises:
        DuplicateRegistration: Propagated from build_registry(); the process must not serve
    """
    registry = registry if registry is not None else build_registry()
    registry.freeze()

    app = FastAPI(
        title="Pub/Sub Bridge",
        description="Publish/subscribe bridge between in-process handlers and a broker delivery agent",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.dispatcher = DeliveryDispatcher(registry)
    app.state.gateway = gateway if gateway is not None else PublishGateway()

    app.include_router(build_delivery_router(registry))
    app.include_router(publish_router)
    app.include_router(orders_router)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled errors."""
        logger.error(f"Unhandled error: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.debug else "An unexpected error occurred",
            },
        )

    return app


app = create_app()


def run() -> None:
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.service_port)


if __name__ == "__main__":
    run()
