"""
Topic registry.

Holds the startup-time bindings of (pubsub component, topic) to handler.
The registry is populated before the server starts, frozen by the app
lifespan, and read concurrently afterwards without locking.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

from ..config import settings
from .handlers import EventHandler, FunctionHandler, HandlerFunc

logger = logging.getLogger(__name__)

# Characters that change what a FastAPI route path matches
UNSAFE_SEGMENT_CHARS = frozenset("/{}?#%")
UNSAFE_ROUTE_CHARS = frozenset("{}?#%")


class RegistryError(Exception):
    """Base exception for registry errors."""
    pass


class DuplicateRegistration(RegistryError):
    """A (component, topic) pair or a delivery route was registered twice."""
    pass


class RegistryFrozenError(RegistryError):
    """Registration attempted after the registry started serving."""
    pass


class TopicNotFound(RegistryError):
    """No handler is registered for the (component, topic) pair."""

    def __init__(self, pubsub_component: str, topic: str):
        super().__init__(f"No handler registered for {pubsub_component}/{topic}")
        self.pubsub_component = pubsub_component
        self.topic = topic


@dataclass(frozen=True)
class Registration:
    """Binding of one (component, topic) pair to its handler and delivery route."""
    pubsub_component: str
    topic: str
    handler: EventHandler
    route: str


class TopicRegistry:
    """
    Immutable-after-freeze map of (component, topic) -> handler.

    Usage:
        registry = TopicRegistry()

        @registry.subscribe("pubsub", "neworder", event_model=Order)
        async def handle_new_order(order, envelope):
            ...

        registry.freeze()
    """

    def __init__(self, route_prefix: Optional[str] = None):
        self._route_prefix = (route_prefix if route_prefix is not None else settings.delivery_route_prefix).rstrip("/")
        self._registrations: Dict[Tuple[str, str], Registration] = {}
        self._routes: Dict[str, Registration] = {}
        self._frozen = False

    def register(
        self,
        pubsub_component: str,
        topic: str,
        handler: EventHandler,
        route: Optional[str] = None,
    ) -> Registration:
        """
        Bind a handler to a (component, topic) pair.

        Args:
            pubsub_component: Broker component name (e.g., "pubsub")
            topic: Topic name (e.g., "neworder")
            handler: The EventHandler for this pair
            route: Delivery path; defaults to ``{prefix}/{component}/{topic}``

        Raises:
            DuplicateRegistration: If the pair or the route is already registered
            RegistryFrozenError: If the registry has been frozen
            ValueError: If component or topic is empty, or cannot be used in the route
        """
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register {pubsub_component}/{topic}: registry is frozen"
            )
        if not pubsub_component or not topic:
            raise ValueError("pubsub_component and topic must be non-empty")

        key = (pubsub_component, topic)
        if key in self._registrations:
            raise DuplicateRegistration(f"{pubsub_component}/{topic} is already registered")

        if route:
            if UNSAFE_ROUTE_CHARS.intersection(route):
                raise ValueError(f"Route {route!r} contains one of {''.join(sorted(UNSAFE_ROUTE_CHARS))!r}")
            route = self._normalize_route(route)
        else:
            for name in (pubsub_component, topic):
                if UNSAFE_SEGMENT_CHARS.intersection(name) or name != name.strip():
                    raise ValueError(
                        f"{name!r} cannot form a delivery route segment; pass an explicit route"
                    )
            route = f"{self._route_prefix}/{pubsub_component}/{topic}"

        if route in self._routes:
            existing = self._routes[route]
            raise DuplicateRegistration(
                f"Route {route} already serves {existing.pubsub_component}/{existing.topic}"
            )

        registration = Registration(
            pubsub_component=pubsub_component,
            topic=topic,
            handler=handler,
            route=route,
        )
        self._registrations[key] = registration
        self._routes[route] = registration
        logger.info(f"Registered {handler.name} for {pubsub_component}/{topic} at {route}")
        return registration

    def subscribe(
        self,
        pubsub_component: str,
        topic: str,
        route: Optional[str] = None,
        event_model: Optional[Type[BaseModel]] = None,
    ) -> Callable[[HandlerFunc], HandlerFunc]:
        """
        Decorator registering an async function as the handler for a pair.

        Returns:
            Decorator that returns the function unchanged
        """
        def decorator(func: HandlerFunc) -> HandlerFunc:
            self.register(pubsub_component, topic, FunctionHandler(func, event_model), route)
            return func
        return decorator

    def freeze(self) -> None:
        """Reject any further registration."""
        self._frozen = True

    @property
    def route_prefix(self) -> str:
        return self._route_prefix

    @property
    def frozen(self) -> bool:
        return self._frozen

    def list_topics(self) -> List[Registration]:
        """Registrations in registration order."""
        return list(self._registrations.values())

    def resolve(self, pubsub_component: str, topic: str) -> EventHandler:
        """
        Look up the handler for a pair.

        Raises:
            TopicNotFound: If nothing is registered for the pair
        """
        registration = self._registrations.get((pubsub_component, topic))
        if registration is None:
            raise TopicNotFound(pubsub_component, topic)
        return registration.handler

    def subscriptions(self) -> List[Dict[str, str]]:
        """Discovery payload: ``[{pubsubname, topic, route}]`` in registration order."""
        return [
            {
                "pubsubname": registration.pubsub_component,
                "topic": registration.topic,
                "route": registration.route,
            }
            for registration in self._registrations.values()
        ]

    def __len__(self) -> int:
        return len(self._registrations)

    @staticmethod
    def _normalize_route(route: str) -> str:
        return "/" + route.strip("/")
