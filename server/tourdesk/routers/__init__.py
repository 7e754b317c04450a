"""FastAPI routers package."""

from .admin import router as admin_router
from .health import router as health_router
from .metrics import router as metrics_router
from .order import router as order_router
from .tour import router as tour_router

__all__ = [
    "admin_router",
    "health_router",
    "metrics_router",
    "order_router",
    "tour_router",
]
