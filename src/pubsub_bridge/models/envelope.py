"""
Envelope and disposition models.

The Envelope is the in-memory form of a CloudEvents 1.0 structured-mode
event as exchanged with the delivery agent. The Disposition is this process'
verdict on one delivered envelope; its values double as the ``status`` field
of the delivery response body.
"""
import base64
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class Disposition(str, Enum):
    """How the delivery agent should treat a delivered message."""
    ACK = "SUCCESS"   # processed, remove from the retry queue
    RETRY = "RETRY"   # transient failure, redeliver later
    DROP = "DROP"     # invalid or unroutable, never redeliver


class Envelope(BaseModel):
    """
    CloudEvents envelope carrying one event for one topic.

    Fields:
        id: CloudEvent ID (not the domain event's own identifier)
        source: Producer of the event
        type: Event type
        specversion: CloudEvents spec version
        pubsub_component: Broker component name (``pubsubname``)
        topic: Routing key
        payload: Event body (``data``, or bytes decoded from ``data_base64``)
        content_type: Payload encoding (``datacontenttype``)
        time: Creation timestamp
        traceparent / tracestate: W3C trace context propagated by the agent
    """
    id: str = Field(default_factory=lambda: str(uuid4()), min_length=1)
    source: str = Field(default="")
    type: str = Field(default="")
    specversion: str = Field(default="1.0")
    pubsub_component: str = Field(..., min_length=1)
    topic: str = Field(..., min_length=1)
    payload: Any = Field(default=None)
    content_type: str = Field(default="application/json")
    time: Optional[datetime] = Field(default=None)
    traceparent: Optional[str] = Field(default=None)
    tracestate: Optional[str] = Field(default=None)

    def to_cloudevent(self) -> Dict[str, Any]:
        """
        Convert to CloudEvents structured-mode JSON.

        Byte payloads are emitted as ``data_base64``.
        """
        result: Dict[str, Any] = {
            "specversion": self.specversion,
            "id": self.id,
            "source": self.source,
            "type": self.type,
            "datacontenttype": self.content_type,
            "topic": self.topic,
            "pubsubname": self.pubsub_component,
        }
        if isinstance(self.payload, bytes):
            result["data_base64"] = base64.b64encode(self.payload).decode("ascii")
        else:
            result["data"] = self.payload
        if self.time:
            result["time"] = self.time.isoformat()
        if self.traceparent:
            result["traceparent"] = self.traceparent
        if self.tracestate:
            result["tracestate"] = self.tracestate
        return result
