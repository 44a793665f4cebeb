"""Data models shared by the codec, registry, gateway and dispatcher."""
from .envelope import Disposition, Envelope
from .events import DomainEvent
from .schemas import DeliveryResponse, PublishResponse, SubscriptionEntry

__all__ = [
    "Disposition",
    "Envelope",
    "DomainEvent",
    "DeliveryResponse",
    "PublishResponse",
    "SubscriptionEntry",
]
