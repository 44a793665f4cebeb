"""
Configuration settings for the pub/sub bridge.
"""
from typing import Literal, Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Bridge configuration loaded from environment variables.
    """
    model_config = ConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Service settings
    service_name: str = "pubsub-bridge"
    service_port: int = 8080
    debug: bool = False

    # Broker adapter configuration
    broker_adapter: Literal["dapr", "nats", "memory"] = "dapr"
    pubsub_name: str = "pubsub"

    # Dapr sidecar settings
    dapr_http_endpoint: str = "http://localhost:3500"
    dapr_api_token: Optional[str] = None

    # NATS settings
    nats_url: str = "nats://localhost:4222"
    nats_reconnect_time_wait: int = 2  # seconds
    nats_max_reconnect_attempts: int = -1  # -1 = infinite

    # Delivery protocol
    subscribe_path: str = "/dapr/subscribe"
    delivery_route_prefix: str = "/events"
    event_source: str = "pubsub-bridge"
    drop_status_code: int = 200  # 400 for agents without a status body
    retry_status_code: int = 500

    # Timeouts
    publish_timeout_seconds: float = 5.0
    handler_timeout_seconds: float = 30.0

    # Deliver broker messages straight to the dispatcher (nats/memory only)
    in_process_delivery: bool = False


# Global settings instance
settings = Settings()
