"""
Moisture Calibration
====================
Raw-to-percentage conversion for capacitive soil moisture probes.

A probe is calibrated by recording its raw output in fully dry soil
(``dry_value``) and in saturated soil (``wet_value``). Readings in between are
linearly interpolated; dry soil reads higher than wet soil.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from app.domain.exceptions import ValidationError
from app.utils.numbers import clamp, round_half_up
from app.utils.time import coerce_datetime, to_iso, utc_now

DEFAULT_DRY_VALUE = 595.0
DEFAULT_WET_VALUE = 239.0
DEFAULT_CALIBRATION_MAX_AGE_DAYS = 180

# Fraction of the dry/wet span a raw value may stray outside the envelope
# before it is considered physically impossible for the probe.
ENVELOPE_TOLERANCE = 0.1


def validate_calibration(dry_value: float, wet_value: float) -> None:
    """Raise ``ValidationError(INVALID_CALIBRATION)`` unless dry > wet."""
    if dry_value is None or wet_value is None:
        raise ValidationError(
            "Calibration requires both dry_value and wet_value",
            code=ValidationError.INVALID_CALIBRATION,
        )
    if dry_value <= wet_value:
        raise ValidationError(
            f"dry_value ({dry_value}) must be greater than wet_value ({wet_value})",
            code=ValidationError.INVALID_CALIBRATION,
            detail={"dry_value": dry_value, "wet_value": wet_value},
        )


def to_percentage(raw: float, dry_value: float, wet_value: float) -> int:
    """Convert a raw probe value to moisture percent in ``[0, 100]``.

    >>> to_percentage(595, 595, 239)
    0
    >>> to_percentage(239, 595, 239)
    100
    >>> to_percentage(417, 595, 239)
    50
    """
    validate_calibration(dry_value, wet_value)
    if raw <= wet_value:
        return 100
    if raw >= dry_value:
        return 0
    percentage = (dry_value - raw) / (dry_value - wet_value) * 100
    return int(clamp(round_half_up(percentage), 0, 100))


@dataclass(frozen=True)
class MoistureCalibration:
    """Per-device dry/wet calibration record."""

    dry_value: float = DEFAULT_DRY_VALUE
    wet_value: float = DEFAULT_WET_VALUE
    last_calibrated_at: Optional[datetime] = None
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        validate_calibration(self.dry_value, self.wet_value)

    def apply(self, raw_value: float) -> int:
        return to_percentage(raw_value, self.dry_value, self.wet_value)

    def in_envelope(self, raw_value: float, tolerance: float = ENVELOPE_TOLERANCE) -> bool:
        """True if ``raw_value`` is within the probe's physically plausible range."""
        margin = (self.dry_value - self.wet_value) * tolerance
        return (self.wet_value - margin) <= raw_value <= (self.dry_value + margin)

    def age_days(self, now: Optional[datetime] = None) -> Optional[float]:
        if self.last_calibrated_at is None:
            return None
        now = now or utc_now()
        return (now - self.last_calibrated_at).total_seconds() / 86400.0

    def is_due(self, now: Optional[datetime] = None, max_age_days: float = DEFAULT_CALIBRATION_MAX_AGE_DAYS) -> bool:
        age = self.age_days(now)
        return age is not None and age > max_age_days

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dry_value": self.dry_value,
            "wet_value": self.wet_value,
            "last_calibrated_at": to_iso(self.last_calibrated_at),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MoistureCalibration":
        data = data or {}
        return cls(
            dry_value=float(data.get("dry_value", DEFAULT_DRY_VALUE)),
            wet_value=float(data.get("wet_value", DEFAULT_WET_VALUE)),
            last_calibrated_at=coerce_datetime(data.get("last_calibrated_at")),
            notes=data.get("notes"),
        )
