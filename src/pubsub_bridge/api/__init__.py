"""HTTP surface of the bridge."""
from .routes.delivery import build_delivery_router, status_for
from .routes.publish import router as publish_router

__all__ = ["build_delivery_router", "publish_router", "status_for"]
