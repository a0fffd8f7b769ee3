"""
Irrigation Schemas
==================

Request schemas for irrigation run endpoints.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.enums import TriggerReason


class StartIrrigationRequest(BaseModel):
    """Request schema for creating (and optionally starting) a run."""

    zones: List[str] = Field(..., min_length=1, description="Zone ids to irrigate")
    duration_minutes: int = Field(..., description="Planned duration (1-480 min, checked by the lifecycle)")
    reason: TriggerReason = Field(default=TriggerReason.MANUAL, description="Trigger reason")
    planned_volume: Optional[float] = Field(default=None, gt=0, description="Planned litres; derived when omitted")
    scheduled_start: Optional[datetime] = Field(default=None, description="Start time for a scheduled run")
    start_now: bool = Field(default=True, description="Start immediately instead of leaving the run pending")
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("zones", mode="before")
    @classmethod
    def normalize_zones(cls, v):
        """Accept numeric zone ids and strip duplicates while keeping order."""
        if isinstance(v, list):
            seen: list = []
            for item in v:
                key = str(item)
                if key not in seen:
                    seen.append(key)
            return seen
        return v

    @field_validator("reason", mode="before")
    @classmethod
    def normalize_reason(cls, v):
        if isinstance(v, str):
            return TriggerReason(v.lower())
        return v


class MoistureDeltaPayload(BaseModel):
    zone_id: str
    before: float = Field(..., ge=0, le=100)
    after: float = Field(..., ge=0, le=100)
    device_id: Optional[str] = None

    @field_validator("zone_id", mode="before")
    @classmethod
    def coerce_zone(cls, v):
        return str(v) if v is not None else v


class CompleteIrrigationRequest(BaseModel):
    """Request schema for completing a running irrigation."""

    actual_volume: float = Field(..., ge=0, description="Water actually used (L)")
    moisture_deltas: List[MoistureDeltaPayload] = Field(default_factory=list)


class CancelIrrigationRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class FailIrrigationRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class IrrigationStatisticsQuery(BaseModel):
    """Query string for run statistics: ``?start=<iso>&end=<iso>``."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None
