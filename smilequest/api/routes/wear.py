"""
Wear routes: status, pause/resume and caregiver check-in.
"""

from fastapi import APIRouter, Depends

from smilequest.api.deps import get_container
from smilequest.api.models import ActorRequest, CheckinRequest, WearStatusResponse
from smilequest.core.container import ServiceContainer
from smilequest.core.logging.logger import LogContext

router = APIRouter(prefix="/v1/patients/{patient_id}/aligners/{aligner_id}/wear", tags=["wear"])


@router.get("/status", response_model=WearStatusResponse)
async def get_wear_status(
    patient_id: str,
    aligner_id: str,
    container: ServiceContainer = Depends(get_container),
):
    """Current state, today's compliance, the last 7 days, streak and celebration."""
    async with LogContext(patient_id=patient_id, aligner_id=aligner_id, operation="wear.status"):
        return await container.wear_status.get_status(patient_id, aligner_id)


@router.post("/pause", response_model=WearStatusResponse)
async def pause_wear(
    patient_id: str,
    aligner_id: str,
    request: ActorRequest,
    container: ServiceContainer = Depends(get_container),
):
    async with LogContext(patient_id=patient_id, aligner_id=aligner_id, operation="wear.pause"):
        return await container.wear_status.pause(patient_id, aligner_id, request.actor_id)


@router.post("/resume", response_model=WearStatusResponse)
async def resume_wear(
    patient_id: str,
    aligner_id: str,
    request: ActorRequest,
    container: ServiceContainer = Depends(get_container),
):
    async with LogContext(patient_id=patient_id, aligner_id=aligner_id, operation="wear.resume"):
        return await container.wear_status.resume(patient_id, aligner_id, request.actor_id)


@router.post("/checkin", response_model=WearStatusResponse)
async def checkin_wear(
    patient_id: str,
    aligner_id: str,
    request: CheckinRequest,
    container: ServiceContainer = Depends(get_container),
):
    """Caregiver yes/no report; authoritative for its day."""
    async with LogContext(patient_id=patient_id, aligner_id=aligner_id, operation="wear.checkin"):
        return await container.wear_status.checkin(
            patient_id, aligner_id, request.actor_id, request.date, request.wore_aligner
        )
