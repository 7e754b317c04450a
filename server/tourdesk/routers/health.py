"""Health check router."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.config import settings
from ..core.observability import SERVICE_NAME
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping() -> JSONResponse:
    """Liveness ping over the same RPC transport as the booking operations."""
    response_data = HealthResponse(
        service=SERVICE_NAME,
        status=HealthStatus.HEALTHY,
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        environment=settings.environment,
    )

    logger.debug("Health ping", extra={"version": response_data.version})

    return JSONResponse(content=response_data.model_dump(mode="json"))
