"""
Broker Adapters

This package provides the adapter pattern implementation for the broker
transports behind the Publish Gateway (Dapr sidecar, NATS, In-Memory).
"""
from .base import AdapterError, EventAdapter, MessageHandler, PublishError, SubscriptionError
from .dapr_adapter import DaprAdapter
from .nats_adapter import NatsAdapter
from .memory_adapter import MemoryAdapter

__all__ = [
    "AdapterError",
    "EventAdapter",
    "MessageHandler",
    "PublishError",
    "SubscriptionError",
    "DaprAdapter",
    "NatsAdapter",
    "MemoryAdapter",
]
