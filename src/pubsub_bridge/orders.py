"""
Orders domain.

The bridge's built-in subscription: new orders are published through
``POST /publish/order`` and delivered back on ``/orders/neworder``.
"""
import logging

from fastapi import APIRouter, Request
from pydantic import AliasChoices, Field

from .api.routes.publish import get_gateway, publish_response
from .config import settings
from .models.envelope import Envelope
from .models.events import DomainEvent
from .models.schemas import PublishResponse
from .services.handlers import FunctionHandler, HandlerResult
from .services.topic_registry import TopicRegistry

logger = logging.getLogger(__name__)

NEW_ORDER_TOPIC = "neworder"
NEW_ORDER_ROUTE = "/orders/neworder"


class Order(DomainEvent):
    """A customer order."""
    product: str = Field(
        ...,
        validation_alias=AliasChoices("product", "Product"),
        description="Ordered product",
    )


async def handle_new_order(order: Order, envelope: Envelope) -> HandlerResult:
    logger.info(f"Received Order: {order.id} - {order.product} (event {envelope.id})")
    return HandlerResult.success()


def register_order_handlers(registry: TopicRegistry) -> None:
    registry.register(
        settings.pubsub_name,
        NEW_ORDER_TOPIC,
        FunctionHandler(handle_new_order, event_model=Order),
        route=NEW_ORDER_ROUTE,
    )


router = APIRouter(prefix="/publish", tags=["Orders"])


@router.post("/order", response_model=PublishResponse)
async def publish_order(order: Order, request: Request) -> PublishResponse:
    """Publish a new order to the ``neworder`` topic."""
    result = await get_gateway(request).publish(settings.pubsub_name, NEW_ORDER_TOPIC, order)
    return publish_response(result)
