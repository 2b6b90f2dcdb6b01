from fastapi import APIRouter, Depends

from smilequest.api.deps import get_container
from smilequest.api.models import HealthResponse
from smilequest.core.config.config import Config
from smilequest.core.container import ServiceContainer

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(container: ServiceContainer = Depends(get_container)):
    """Liveness plus a database reachability probe."""
    report = await container.health_check()
    return HealthResponse(
        status=report["status"],
        service=Config.SERVICE_NAME,
        version=Config.SERVICE_VERSION,
        database=report["database"],
    )
