"""
Quest routes.

The /v1/internal endpoints are hooks for collaborators: the photo upload
flow, the education module and the aligner rollover process.
"""

from fastapi import APIRouter, Depends

from smilequest.api.deps import get_container
from smilequest.api.models import (
    PatientRequest,
    Quest,
    QuestFinalizeResponse,
    QuestStatusResponse,
)
from smilequest.core.container import ServiceContainer
from smilequest.core.logging.logger import LogContext

router = APIRouter(tags=["quests"])


@router.get("/v1/patients/{patient_id}/aligners/{aligner_id}/quest", response_model=QuestStatusResponse)
async def get_quest_status(
    patient_id: str,
    aligner_id: str,
    container: ServiceContainer = Depends(get_container),
):
    async with LogContext(patient_id=patient_id, aligner_id=aligner_id, operation="quest.status"):
        return await container.quests.get_quest_status(patient_id, aligner_id)


@router.post("/v1/internal/aligners/{aligner_id}/quest/photo-set", response_model=Quest)
async def mark_photo_set_done(
    aligner_id: str,
    request: PatientRequest,
    container: ServiceContainer = Depends(get_container),
):
    async with LogContext(patient_id=request.patient_id, aligner_id=aligner_id, operation="quest.photo_set"):
        return await container.quests.mark_photo_set_done(request.patient_id, aligner_id)


@router.post("/v1/internal/aligners/{aligner_id}/quest/lessons", response_model=Quest)
async def increment_lessons_done(
    aligner_id: str,
    request: PatientRequest,
    container: ServiceContainer = Depends(get_container),
):
    async with LogContext(patient_id=request.patient_id, aligner_id=aligner_id, operation="quest.lessons"):
        return await container.quests.increment_lessons_done(request.patient_id, aligner_id)


@router.post("/v1/internal/aligners/{aligner_id}/quest/finalize", response_model=QuestFinalizeResponse)
async def finalize_quest(
    aligner_id: str,
    container: ServiceContainer = Depends(get_container),
):
    """Settle the aligner's quest. Repeat calls return the recorded outcome."""
    async with LogContext(aligner_id=aligner_id, operation="quest.finalize"):
        return await container.quests.finalize_quest_for_aligner(aligner_id)
