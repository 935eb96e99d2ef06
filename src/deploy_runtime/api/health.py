"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from deploy_runtime import __version__

router = APIRouter()

# Track start time
START_TIME = datetime.now(timezone.utc)


class RuntimeInfo(BaseModel):
    """Runtime information."""

    version: str = Field(..., description="Runtime version")
    start_time: datetime = Field(..., description="Runtime start time")
    contexts_deployed: int = Field(0, description="Number of registered contexts")
    contexts_running: int = Field(0, description="Number of contexts currently serving")
    deploy_dir: str = Field(..., description="Managed deployment directory")
    status: str = Field("healthy", description="Runtime status")


@router.get("/health", response_model=Dict[str, str])
async def health_check() -> Dict[str, str]:
    """Simple health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/info", response_model=RuntimeInfo)
async def runtime_info(request: Request) -> RuntimeInfo:
    """Get detailed runtime information."""
    entries = request.app.state.registry.entries()
    return RuntimeInfo(
        version=__version__,
        start_time=START_TIME,
        contexts_deployed=len(entries),
        contexts_running=sum(1 for e in entries if e.running),
        deploy_dir=request.app.state.settings.deploy_dir,
        status="healthy",
    )
