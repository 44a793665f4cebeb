"""
Envelope codec.

Translates between CloudEvents structured-mode JSON and the in-memory
Envelope. Both directions are pure: no I/O, no logging of payloads.
"""
import base64
import binascii
import json
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from ..config import settings
from ..models.envelope import Envelope

DEFAULT_CONTENT_TYPE = "application/json"
DEFAULT_EVENT_TYPE = "com.dapr.event.sent"


class DecodeError(Exception):
    """Base class for inbound envelopes that can never be processed."""
    pass


class MalformedEnvelope(DecodeError):
    """The body is not a usable structured CloudEvent."""
    pass


class UnsupportedContentType(DecodeError):
    """The payload encoding is missing and cannot be inferred."""
    pass


class EncodingError(Exception):
    """The event could not be serialized into an envelope."""
    pass


def is_json_media_type(content_type: Optional[str]) -> bool:
    """True for application/json, application/cloudevents+json and other +json types."""
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def decode(
    raw_body: bytes | str,
    headers: Mapping[str, str],
    pubsub_component: Optional[str] = None,
    topic: Optional[str] = None,
) -> Envelope:
    """
    Parse a delivered CloudEvent.

    ``topic`` and ``pubsubname`` are read from the body first, then from the
    ``ce-topic`` / ``ce-pubsubname`` headers, then from the defaults passed by
    the route that received the request.

    Args:
        raw_body: Request body
        headers: Request headers (any case)
        pubsub_component: Component name bound to the receiving route
        topic: Topic bound to the receiving route

    Returns:
        The decoded Envelope

    Raises:
        MalformedEnvelope: Body is not a JSON object, or required attributes are missing
        UnsupportedContentType: No datacontenttype and the request is not JSON
    """
    lowered = {key.lower(): value for key, value in headers.items()}

    try:
        body = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedEnvelope(f"Body is not valid JSON: {e}") from e
    except RecursionError as e:
        raise MalformedEnvelope("Body is nested too deeply") from e

    if not isinstance(body, dict):
        raise MalformedEnvelope("CloudEvent must be a JSON object")

    event_id = body.get("id")
    if not isinstance(event_id, str) or not event_id:
        raise MalformedEnvelope("CloudEvent 'id' is required")

    resolved_topic = body.get("topic") or lowered.get("ce-topic") or topic
    if not isinstance(resolved_topic, str) or not resolved_topic:
        raise MalformedEnvelope("CloudEvent has no topic")

    resolved_component = body.get("pubsubname") or lowered.get("ce-pubsubname") or pubsub_component
    if not isinstance(resolved_component, str) or not resolved_component:
        raise MalformedEnvelope("CloudEvent has no pubsubname")

    content_type = body.get("datacontenttype")
    if content_type is not None and not isinstance(content_type, str):
        raise MalformedEnvelope("'datacontenttype' must be a string")

    if "data_base64" in body:
        if "data" in body:
            raise MalformedEnvelope("CloudEvent carries both 'data' and 'data_base64'")
        if not content_type:
            raise UnsupportedContentType("'data_base64' requires 'datacontenttype'")
        try:
            payload: Any = base64.b64decode(body["data_base64"], validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            raise MalformedEnvelope(f"'data_base64' is not valid base64: {e}") from e
    else:
        payload = body.get("data")
        if not content_type:
            if not is_json_media_type(lowered.get("content-type")):
                raise UnsupportedContentType(
                    f"Cannot infer payload encoding from Content-Type {lowered.get('content-type')!r}"
                )
            content_type = DEFAULT_CONTENT_TYPE

    try:
        return Envelope(
            id=event_id,
            source=body.get("source", ""),
            type=body.get("type", ""),
            specversion=body.get("specversion", "1.0"),
            pubsub_component=resolved_component,
            topic=resolved_topic,
            payload=payload,
            content_type=content_type,
            time=body.get("time"),
            traceparent=body.get("traceparent") or lowered.get("traceparent"),
            tracestate=body.get("tracestate") or lowered.get("tracestate"),
        )
    except ValidationError as e:
        raise MalformedEnvelope(f"Invalid CloudEvent attributes: {e}") from e


def encode(
    event: Any,
    topic: str,
    pubsub_component: str,
    content_type: Optional[str] = None,
    source: Optional[str] = None,
    event_type: Optional[str] = None,
) -> Envelope:
    """
    Wrap an event in an Envelope for publishing.

    Pydantic models are dumped in JSON mode; mappings and other values must be
    strict JSON (no NaN or Infinity). Bytes are carried as-is and emitted as ``data_base64``.

    Raises:
        EncodingError: If the event cannot be serialized or the target is invalid
    """
    if not topic:
        raise EncodingError("Topic must be non-empty")
    if not pubsub_component:
        raise EncodingError("Pubsub component must be non-empty")

    try:
        if isinstance(event, BaseModel):
            payload: Any = event.model_dump(mode="json")
        elif isinstance(event, bytes):
            payload = event
            content_type = content_type or "application/octet-stream"
        else:
            payload = to_jsonable_python(event)
        if not isinstance(payload, bytes):
            # NaN and Infinity have no JSON representation
            json.dumps(payload, allow_nan=False)
    except (PydanticSerializationError, TypeError, ValueError, RecursionError) as e:
        raise EncodingError(f"Event is not serializable: {e}") from e

    return Envelope(
        source=source or settings.event_source,
        type=event_type or DEFAULT_EVENT_TYPE,
        pubsub_component=pubsub_component,
        topic=topic,
        payload=payload,
        content_type=content_type or DEFAULT_CONTENT_TYPE,
        time=datetime.now(timezone.utc),
    )
