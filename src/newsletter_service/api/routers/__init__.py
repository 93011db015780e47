from .deliveries import router as deliveries_router
from .health import router as health_router
from .newsletters import router as newsletters_router

__all__ = ["deliveries_router", "health_router", "newsletters_router"]
