"""
Subscription handler abstraction.

Every topic is bound to exactly one EventHandler. A handler receives the
decoded event and reports a classified HandlerResult; the dispatcher turns
that result into a Disposition. Handlers may be invoked concurrently for
different events on the same topic.
"""
import inspect
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Type

from pydantic import BaseModel, Field

from ..models.envelope import Envelope


class HandlerOutcome(str, Enum):
    """Classification a handler reports for one event."""
    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"


class HandlerResult(BaseModel):
    """Tagged result of handling one event."""
    outcome: HandlerOutcome = Field(..., description="Success or failure class")
    reason: Optional[str] = Field(default=None, description="Human-readable failure reason")

    @classmethod
    def success(cls) -> "HandlerResult":
        return cls(outcome=HandlerOutcome.SUCCESS)

    @classmethod
    def transient(cls, reason: str) -> "HandlerResult":
        """A downstream dependency is temporarily unavailable; redelivery may succeed."""
        return cls(outcome=HandlerOutcome.TRANSIENT_FAILURE, reason=reason)

    @classmethod
    def permanent(cls, reason: str) -> "HandlerResult":
        """The event can never be processed (business rule, bad data)."""
        return cls(outcome=HandlerOutcome.PERMANENT_FAILURE, reason=reason)


class EventHandler(ABC):
    """
    Processes events delivered on one (component, topic) pair.

    When ``event_model`` is set, the dispatcher validates the payload into it
    before calling handle(); payloads that fail validation are dropped.
    """

    event_model: Optional[Type[BaseModel]] = None

    @abstractmethod
    async def handle(self, event: Any, envelope: Envelope) -> HandlerResult:
        """
        Process one event.

        Args:
            event: The payload, or an ``event_model`` instance when one is set
            envelope: The envelope the event arrived in (for correlation)

        Returns:
            HandlerResult classifying the outcome
        """
        pass

    @property
    def name(self) -> str:
        """Return the handler name for logging."""
        return self.__class__.__name__


HandlerFunc = Callable[[Any, Envelope], Awaitable[Optional[HandlerResult]]]


class FunctionHandler(EventHandler):
    """
    Adapts an ``async def`` into an EventHandler.

    A function that returns ``None`` is treated as successful.
    """

    def __init__(self, func: HandlerFunc, event_model: Optional[Type[BaseModel]] = None):
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"Handler {func!r} must be an async function")
        self._func = func
        self.event_model = event_model

    async def handle(self, event: Any, envelope: Envelope) -> HandlerResult:
        result = await self._func(event, envelope)
        return result if result is not None else HandlerResult.success()

    @property
    def name(self) -> str:
        return getattr(self._func, "__qualname__", repr(self._func))
