"""
Farm & Device Schemas
=====================

Registration and configuration payloads.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.enums import NotificationChannel


class ZoneThresholdsPayload(BaseModel):
    critical: float = Field(default=30, ge=0, le=100)
    warning: float = Field(default=60, ge=0, le=100)
    optimal: float = Field(default=80, ge=0, le=100)


class ZonePayload(BaseModel):
    zone_id: str
    name: str = ""
    area: Optional[float] = Field(default=None, ge=0)
    crop_type: Optional[str] = None
    target_moisture: float = Field(default=80, ge=0, le=100)
    thresholds: ZoneThresholdsPayload = Field(default_factory=ZoneThresholdsPayload)

    @field_validator("zone_id", mode="before")
    @classmethod
    def coerce_zone_id(cls, v):
        return str(v) if v is not None else v


class AutoIrrigationPayload(BaseModel):
    enabled: bool = False
    min_confidence: float = Field(default=0.7, ge=0, le=1)


class RegisterFarmRequest(BaseModel):
    farm_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=100)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    area: Optional[float] = Field(default=None, ge=0, description="Hectares")
    target_moisture: float = Field(default=80, ge=0, le=100)
    flow_rate_per_zone: Optional[float] = Field(default=None, gt=0, description="L/min per zone")
    auto_irrigation: AutoIrrigationPayload = Field(default_factory=AutoIrrigationPayload)
    recipients: List[str] = Field(default_factory=list)
    channels: List[NotificationChannel] = Field(default_factory=lambda: [NotificationChannel.IN_APP])
    zones: List[ZonePayload] = Field(..., min_length=1)

    @model_validator(mode="after")
    def unique_zones(self) -> "RegisterFarmRequest":
        ids = [zone.zone_id for zone in self.zones]
        if len(ids) != len(set(ids)):
            raise ValueError("zone ids must be unique within a farm")
        return self


class CalibrationPayload(BaseModel):
    dry_value: float
    wet_value: float
    notes: Optional[str] = Field(default=None, max_length=200)


class DeviceThresholdsPayload(BaseModel):
    low_battery: Optional[float] = Field(default=None, ge=0, le=100)
    offline_timeout_seconds: Optional[int] = Field(default=None, ge=60)
    moisture_low: Optional[float] = Field(default=None, ge=0, le=100)
    moisture_high: Optional[float] = Field(default=None, ge=0, le=100)
    low_battery_enabled: Optional[bool] = None
    offline_enabled: Optional[bool] = None
    moisture_enabled: Optional[bool] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class RegisterDeviceRequest(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=64)
    farm_id: str
    zone_id: str
    name: str = ""
    calibration: Optional[CalibrationPayload] = None
    thresholds: DeviceThresholdsPayload = Field(default_factory=DeviceThresholdsPayload)

    @field_validator("zone_id", mode="before")
    @classmethod
    def coerce_zone_id(cls, v):
        return str(v) if v is not None else v
