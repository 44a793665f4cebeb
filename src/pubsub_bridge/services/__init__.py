"""Core services: envelope codec, topic registry, publish gateway and delivery dispatcher."""
from .dispatcher import DeliveryDispatcher, DeliveryState, DispatchReason, DispatchResult
from .envelope_codec import (
    DecodeError,
    EncodingError,
    MalformedEnvelope,
    UnsupportedContentType,
    decode,
    encode,
)
from .handlers import EventHandler, FunctionHandler, HandlerOutcome, HandlerResult
from .publish_gateway import PublishGateway, PublishResult, PublishStatus
from .topic_registry import (
    DuplicateRegistration,
    Registration,
    RegistryFrozenError,
    TopicNotFound,
    TopicRegistry,
)

__all__ = [
    "DeliveryDispatcher",
    "DeliveryState",
    "DispatchReason",
    "DispatchResult",
    "DecodeError",
    "EncodingError",
    "MalformedEnvelope",
    "UnsupportedContentType",
    "decode",
    "encode",
    "EventHandler",
    "FunctionHandler",
    "HandlerOutcome",
    "HandlerResult",
    "PublishGateway",
    "PublishResult",
    "PublishStatus",
    "DuplicateRegistration",
    "Registration",
    "RegistryFrozenError",
    "TopicNotFound",
    "TopicRegistry",
]
