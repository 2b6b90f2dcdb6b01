"""
Treatment Directory
===================

Purpose
-------
Read-only view of the treatment collaborator's data: which patient owns an
aligner, the wear-time target for that aligner, the adherence target of its
phase, and the patient's active treatment.

Every wear operation starts here, so ownership checks and target resolution
happen in exactly one place.

Domain
------
- Aligner ownership (NotFoundError / PermissionDeniedError)
- Target resolution: hours per day from the aligner, percent from the phase
- Active treatment start date (streak and milestone scope)
- Treatment progress (current aligner / total aligners)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Optional

from smilequest.core.logging.logger import get_logger
from smilequest.database.models import Aligner, Treatment, TreatmentPhase
from smilequest.modules.shared.base_repository import BaseRepository
from smilequest.modules.shared.exceptions import NotFoundError, PermissionDeniedError
from smilequest.modules.shared.formulas import min_ok_minutes

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from smilequest.core.config.manager import ConfigManager


@dataclass(frozen=True)
class AlignerContext:
    """Everything the wear engine needs to know about one aligner."""

    aligner_id: str
    patient_id: str
    treatment_id: Optional[str]
    phase_id: Optional[str]
    aligner_number: int
    target_hours_per_day: int
    target_percent: int

    @property
    def target_minutes(self) -> int:
        return self.target_hours_per_day * 60

    @property
    def min_ok_minutes(self) -> int:
        return min_ok_minutes(self.target_minutes, self.target_percent)


@dataclass(frozen=True)
class TreatmentProgress:
    treatment_id: str
    current_aligner: int
    total_aligners: int


class TreatmentDirectory:
    """
    Resolve aligners, phases and treatments for the engine.

    All lookups take the caller's session so they share its transaction.
    """

    def __init__(self, config_manager: ConfigManager, logger: Optional[Logger] = None) -> None:
        self._config = config_manager
        self.log = logger or get_logger(__name__)
        self._aligners = BaseRepository(Aligner, get_logger(f"{__name__}.AlignerRepository"))
        self._phases = BaseRepository(TreatmentPhase, get_logger(f"{__name__}.PhaseRepository"))
        self._treatments = BaseRepository(Treatment, get_logger(f"{__name__}.TreatmentRepository"))

    async def get_aligner(self, session: AsyncSession, aligner_id: str) -> AlignerContext:
        """
        Resolve an aligner without an ownership check.

        Used by internal hooks (quest finalization, photo upload) that act
        on behalf of the system rather than a patient.

        Raises:
            NotFoundError: Unknown aligner
        """
        aligner = await self._aligners.get(session, aligner_id)
        if aligner is None:
            raise NotFoundError("Aligner", aligner_id)
        return await self._build_context(session, aligner)

    async def get_aligner_for_patient(
        self, session: AsyncSession, patient_id: str, aligner_id: str
    ) -> AlignerContext:
        """
        Resolve an aligner and verify the patient owns it.

        Raises:
            NotFoundError: Unknown aligner
            PermissionDeniedError: Aligner belongs to another patient
        """
        aligner = await self._aligners.get(session, aligner_id)
        if aligner is None:
            raise NotFoundError("Aligner", aligner_id)
        if aligner.patient_id != patient_id:
            self.log.warning(
                "Aligner ownership check failed",
                extra={"aligner_id": aligner_id, "patient_id": patient_id},
            )
            raise PermissionDeniedError("Aligner", aligner_id, patient_id)
        return await self._build_context(session, aligner)

    async def get_phase_target_percent(
        self, session: AsyncSession, phase_id: Optional[str]
    ) -> int:
        default = int(self._config.get("wear.default_target_percent", 80))
        if not phase_id:
            return default
        phase = await self._phases.get(session, phase_id)
        if phase is None or phase.adherence_target_percent is None:
            return default
        return phase.adherence_target_percent

    async def get_active_treatment(
        self, session: AsyncSession, patient_id: str
    ) -> Optional[Treatment]:
        return await self._treatments.find_one_where(
            session,
            Treatment.patient_id == patient_id,
            Treatment.overall_status == "active",
            order_by=Treatment.start_date.desc(),
        )

    async def get_active_treatment_start(
        self, session: AsyncSession, patient_id: str
    ) -> Optional[date]:
        treatment = await self.get_active_treatment(session, patient_id)
        return treatment.start_date if treatment is not None else None

    async def get_treatment_progress(
        self, session: AsyncSession, patient_id: str
    ) -> Optional[TreatmentProgress]:
        treatment = await self.get_active_treatment(session, patient_id)
        if treatment is None:
            return None
        return TreatmentProgress(
            treatment_id=treatment.id,
            current_aligner=treatment.current_aligner_overall,
            total_aligners=treatment.total_aligners_overall,
        )

    async def _build_context(self, session: AsyncSession, aligner: Aligner) -> AlignerContext:
        hours = aligner.target_hours_per_day
        if hours is None:
            hours = int(self._config.get("wear.default_target_hours_per_day", 22))
        return AlignerContext(
            aligner_id=aligner.id,
            patient_id=aligner.patient_id,
            treatment_id=aligner.treatment_id,
            phase_id=aligner.phase_id,
            aligner_number=aligner.aligner_number,
            target_hours_per_day=hours,
            target_percent=await self.get_phase_target_percent(session, aligner.phase_id),
        )
