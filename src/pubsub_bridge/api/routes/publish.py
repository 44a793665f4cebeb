from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request

from ...models.schemas import PublishResponse
from ...services.publish_gateway import PublishGateway, PublishResult, PublishStatus

router = APIRouter(tags=["Publish"])

PUBLISH_STATUS_CODES = {
    PublishStatus.INVALID_TOPIC: 400,
    PublishStatus.ENCODING_FAILED: 400,
    PublishStatus.COMPONENT_NOT_FOUND: 404,
    PublishStatus.REJECTED: 502,
    PublishStatus.BROKER_UNAVAILABLE: 503,
}


def get_gateway(request: Request) -> PublishGateway:
    return request.app.state.gateway


def publish_response(result: PublishResult) -> PublishResponse:
    """
    Translate a PublishResult for HTTP callers.

    Raises:
        HTTPException: For every result other than ACCEPTED
    """
    if not result.accepted:
        raise HTTPException(
            status_code=PUBLISH_STATUS_CODES[result.status],
            detail=f"{result.status.value}: {result.message}",
        )
    return PublishResponse(
        success=True,
        status=result.status.value,
        event_id=result.event_id,
        message=result.message,
    )


@router.post("/v1/publish/{pubsubname}/{topic}", response_model=PublishResponse)
async def publish_event(
    pubsubname: str,
    topic: str,
    request: Request,
    event: Any = Body(..., description="Event payload"),
) -> PublishResponse:
    """
    Publish a JSON event to a topic of a pubsub component.

    The body is the event itself; the bridge wraps it in a CloudEvent.
    """
    result = await get_gateway(request).publish(pubsubname, topic, event)
    return publish_response(result)
