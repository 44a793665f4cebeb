"""
Discovery and delivery routes.

The delivery agent calls the discovery route once at startup to learn which
topics to subscribe this process to, then POSTs every message to the route
advertised for its topic. Disposition -> HTTP status mapping lives here and
nowhere else.
"""
from typing import Awaitable, Callable, List

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ...config import settings
from ...models.envelope import Disposition
from ...models.schemas import DeliveryResponse, SubscriptionEntry
from ...services.dispatcher import DeliveryDispatcher, DispatchReason, DispatchResult
from ...services.topic_registry import Registration, TopicRegistry


DELIVERY_RESPONSES = {
    200: {"model": DeliveryResponse, "description": "SUCCESS, or DROP for a permanent handler failure"},
    400: {"model": DeliveryResponse, "description": "DROP: malformed envelope"},
    404: {"model": DeliveryResponse, "description": "DROP: no handler for the topic"},
    500: {"model": DeliveryResponse, "description": "RETRY: transient handler failure"},
    503: {"model": DeliveryResponse, "description": "RETRY: handler timed out"},
}


def status_for(result: DispatchResult) -> int:
    """HTTP status the delivery agent keys its retry policy on."""
    if result.disposition == Disposition.ACK:
        return 200
    if result.disposition == Disposition.RETRY:
        if result.reason == DispatchReason.HANDLER_TIMEOUT:
            return 503
        return settings.retry_status_code
    if result.reason in (DispatchReason.MALFORMED_ENVELOPE, DispatchReason.UNSUPPORTED_CONTENT_TYPE):
        return 400
    if result.reason == DispatchReason.TOPIC_NOT_FOUND:
        return 404
    return settings.drop_status_code


def delivery_response(result: DispatchResult) -> JSONResponse:
    body = DeliveryResponse(status=result.disposition)
    return JSONResponse(status_code=status_for(result), content=body.model_dump(mode="json"))


def get_dispatcher(request: Request) -> DeliveryDispatcher:
    return request.app.state.dispatcher


def _delivery_endpoint(registration: Registration) -> Callable[[Request], Awaitable[JSONResponse]]:
    async def deliver(request: Request) -> JSONResponse:
        result = await get_dispatcher(request).dispatch(
            await request.body(),
            request.headers,
            pubsub_component=registration.pubsub_component,
            topic=registration.topic,
        )
        return delivery_response(result)

    return deliver


def build_delivery_router(registry: TopicRegistry) -> APIRouter:
    """
    Build the discovery route plus one POST route per registration.

    A trailing ``{prefix}/{pubsubname}/{topic}`` route answers deliveries for
    topics nobody registered, so they are dropped with a status body instead
    of a bare framework 404.
    """
    router = APIRouter(tags=["Delivery"])

    @router.get(settings.subscribe_path, response_model=List[SubscriptionEntry])
    async def list_subscriptions(request: Request) -> List[SubscriptionEntry]:
        """Subscriptions in registration order, in the agent-expected shape."""
        return [SubscriptionEntry(**entry) for entry in get_dispatcher(request).subscriptions()]

    for registration in registry.list_topics():
        router.add_api_route(
            registration.route,
            _delivery_endpoint(registration),
            methods=["POST"],
            name=f"deliver:{registration.pubsub_component}/{registration.topic}",
            response_model=DeliveryResponse,
            responses=DELIVERY_RESPONSES,
        )

    prefix = registry.route_prefix

    @router.post(
        prefix + "/{pubsubname}/{topic}",
        response_model=DeliveryResponse,
        responses=DELIVERY_RESPONSES,
    )
    async def deliver_unregistered(pubsubname: str, topic: str, request: Request) -> JSONResponse:
        """Deliveries on routes no registration advertised."""
        result = await get_dispatcher(request).dispatch(
            await request.body(),
            request.headers,
            pubsub_component=pubsubname,
            topic=topic,
        )
        return delivery_response(result)

    return router
