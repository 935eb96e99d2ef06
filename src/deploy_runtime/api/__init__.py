"""API module for Deploy Runtime."""

from .health import router as health_router
from .deployer import router as deployer_router

__all__ = [
    "health_router",
    "deployer_router",
]
