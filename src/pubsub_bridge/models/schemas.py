from typing import Optional
from pydantic import BaseModel, Field

from .envelope import Disposition


class SubscriptionEntry(BaseModel):
    """One entry of the discovery response, in the shape the delivery agent expects."""
    pubsubname: str = Field(..., description="Pubsub component name")
    topic: str = Field(..., description="Topic name")
    route: str = Field(..., description="Path the agent POSTs deliveries to")


class DeliveryResponse(BaseModel):
    """Body returned to the delivery agent."""
    status: Disposition = Field(..., description="SUCCESS, RETRY or DROP")


class PublishResponse(BaseModel):
    """Response after publishing an event."""
    success: bool = Field(..., description="Whether the broker accepted the event")
    status: str = Field(..., description="Publish result kind")
    event_id: Optional[str] = Field(default=None, description="CloudEvent ID of the published envelope")
    message: str = Field(default="", description="Status message")
