"""
Pytest configuration for the pub/sub bridge tests.
"""
import asyncio
import os
from typing import Any, List, Optional, Tuple

import pytest

# Set test environment variables before the package reads its settings
os.environ["BROKER_ADAPTER"] = "memory"
os.environ["DEBUG"] = "true"

from pubsub_bridge.adapters.memory_adapter import MemoryAdapter
from pubsub_bridge.models.envelope import Envelope
from pubsub_bridge.services.handlers import EventHandler, HandlerResult


class RecordingHandler(EventHandler):
    """Handler that records every call and returns a fixed result."""

    def __init__(
        self,
        result: Optional[HandlerResult] = None,
        event_model=None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.result = result or HandlerResult.success()
        self.event_model = event_model
        self.delay = delay
        self.error = error
        self.calls: List[Tuple[Any, Envelope]] = []

    async def handle(self, event: Any, envelope: Envelope) -> HandlerResult:
        self.calls.append((event, envelope))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def recorder() -> RecordingHandler:
    """A handler that always succeeds."""
    return RecordingHandler()


@pytest.fixture
async def memory_adapter():
    """Create and connect a memory adapter for testing."""
    adapter = MemoryAdapter()
    await adapter.connect()
    yield adapter
    await adapter.disconnect()


@pytest.fixture
def make_handler():
    """Factory for RecordingHandler instances with a chosen result."""
    return RecordingHandler
