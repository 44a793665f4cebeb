"""
Dapr sidecar adapter for the pub/sub bridge.

Publishes through the sidecar's HTTP API:

    POST {dapr_http_endpoint}/v1.0/publish/{pubsubname}/{topic}

The body is sent as a structured CloudEvent
(``Content-Type: application/cloudevents+json``) so the sidecar forwards our
``id``/``source``/``type`` instead of wrapping the payload in a new envelope.
Delivery back into the process is push-only (the sidecar calls the routes
advertised on ``/dapr/subscribe``), so subscribe() keeps the base default.
"""
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from .base import EventAdapter, PublishError

logger = logging.getLogger(__name__)


class DaprAdapter(EventAdapter):
    """
    HTTP adapter for one Dapr pubsub component.

    The sidecar usually starts alongside (or after) the application, so
    connect() only prepares the HTTP client; reachability is established per
    publish call.
    """

    def __init__(
        self,
        pubsub_name: str = "pubsub",
        endpoint: str = "http://localhost:3500",
        api_token: Optional[str] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Dapr adapter.

        Args:
            pubsub_name: Name of the Dapr pubsub component
            endpoint: Base URL of the sidecar HTTP API
            api_token: Value for the ``dapr-api-token`` header, if the sidecar requires one
            timeout: Per-request timeout (seconds)
            transport: Optional httpx transport (tests inject ``httpx.MockTransport``)
        """
        self._pubsub_name = pubsub_name
        self._endpoint = endpoint.rstrip("/")
        self._api_token = api_token
        self._timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the HTTP client used to talk to the sidecar."""
        if self._http_client is not None:
            logger.warning("Dapr adapter already connected")
            return

        headers = {}
        if self._api_token:
            headers["dapr-api-token"] = self._api_token

        self._http_client = httpx.AsyncClient(
            base_url=self._endpoint,
            headers=headers,
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        )
        logger.info(f"Dapr adapter ready for component '{self._pubsub_name}' at {self._endpoint}")

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._http_client is None:
            return

        await self._http_client.aclose()
        self._http_client = None
        logger.info("Dapr adapter disconnected")

    async def publish(self, topic: str, message: Dict[str, Any]) -> None:
        """
        Publish a CloudEvent through the sidecar.

        Raises:
            ConnectionError: If the sidecar could not be reached or timed out
            PublishError: If the sidecar answered with a non-2xx status
        """
        if self._http_client is None:
            raise ConnectionError("Dapr adapter not connected")

        path = f"/v1.0/publish/{quote(self._pubsub_name, safe='')}/{quote(topic, safe='')}"

        try:
            response = await self._http_client.post(
                path,
                json=message,
                headers={"Content-Type": "application/cloudevents+json"},
            )
        except httpx.TransportError as e:
            logger.error(f"Dapr sidecar unreachable at {self._endpoint}: {e}")
            raise ConnectionError(f"Dapr sidecar unreachable at {self._endpoint}: {e}") from e

        if not response.is_success:
            detail = response.text
            logger.error(f"Dapr rejected publish to {self._pubsub_name}/{topic}: {response.status_code} - {detail}")
            raise PublishError(
                f"Dapr rejected publish to {self._pubsub_name}/{topic}: {response.status_code} - {detail}"
            )

        logger.debug(f"Published message to {self._pubsub_name}/{topic}")

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is ready."""
        return self._http_client is not None
