"""
Request and response models for the engagement HTTP surface.
"""

import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ActorRequest(BaseModel):
    """Pause/resume body: who performed the action."""

    actor_id: Optional[str] = None


class CheckinRequest(BaseModel):
    """Caregiver yes/no report. `date` is YYYY-MM-DD and defaults to today (UTC)."""

    actor_id: Optional[str] = None
    date: Optional[datetime.date] = None
    wore_aligner: bool


class PatientRequest(BaseModel):
    patient_id: str = Field(min_length=1)


class DailyEntry(BaseModel):
    id: str
    patient_id: str
    aligner_id: str
    date: str
    wear_minutes: int
    target_minutes: int
    target_percent: int
    is_day_ok: bool
    source: Optional[str] = None
    is_virtual: bool = False


class Celebration(BaseModel):
    kind: str
    title: str
    coins: int
    xp: int


class WearStatusResponse(BaseModel):
    patient_id: str
    aligner_id: str
    state: str
    daily: Optional[DailyEntry] = None
    weekly: Optional[List[DailyEntry]] = None
    streak_days: Optional[int] = None
    celebration: Optional[Celebration] = None


class Quest(BaseModel):
    id: int
    patient_id: str
    aligner_id: str
    status: str
    target_percent: int
    target_minutes_per_day: int
    photo_set_done: bool
    lessons_done: int
    lessons_target: int
    reward_coins: int
    reward_xp: int
    adherence_percent_final: Optional[int] = None
    finalized_at: Optional[str] = None


class QuestStatusResponse(BaseModel):
    quest: Quest
    adherence_percent_to_date: int


class QuestFinalizeResponse(BaseModel):
    quest: Quest
    adherence_percent: int
    ok: bool
    awarded: bool


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    database: bool
