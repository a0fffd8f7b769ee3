"""
Reading Schemas
===============

Telemetry payload accepted by the reading ingestor.
"""

from datetime import datetime, timedelta
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ReadingPayload(BaseModel):
    """One soil sample as sent by a device."""

    model_config = ConfigDict(extra="ignore")

    moisture: Optional[float] = Field(default=None, ge=0, le=100, description="Calibrated moisture (%)")
    moisture_raw: Optional[float] = Field(default=None, ge=0, description="Raw probe output")
    battery: float = Field(..., ge=0, le=100, description="Battery level (%)")
    temperature: Optional[float] = Field(default=None, ge=-50, le=80, description="Soil/air temperature (°C)")
    humidity: Optional[float] = Field(default=None, ge=0, le=100, description="Relative humidity (%)")
    signal_strength: Optional[float] = Field(default=None, ge=-120, le=0, description="RSSI (dBm)")
    timestamp: Optional[datetime] = Field(default=None, description="Sample time (ISO-8601); defaults to now")

    @model_validator(mode="after")
    def require_moisture(self) -> "ReadingPayload":
        if self.moisture is None and self.moisture_raw is None:
            raise ValueError("either moisture or moisture_raw is required")
        return self


# Named history windows accepted by ``?range=``.
READING_WINDOWS = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}


class ReadingWindowQuery(BaseModel):
    """Query string for reading history and averages: ``?range=24h`` or ``?since=<iso>``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    window: Optional[Literal["1h", "24h", "7d", "30d"]] = Field(default=None, alias="range")
    since: Optional[datetime] = None
    until: Optional[datetime] = None

    def start(self, now: datetime) -> Optional[datetime]:
        """Explicit ``since`` wins over a named range."""
        if self.since is not None:
            return self.since
        if self.window is not None:
            return now - READING_WINDOWS[self.window]
        return None
