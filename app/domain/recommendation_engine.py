"""
Irrigation Recommendation Engine
================================
Pure, deterministic rule engine that turns the latest zone readings and an
optional weather forecast into an irrigation recommendation.

The weights are heuristic and live in :class:`RecommendationPolicy` so they
can be tuned per deployment without touching the rules.

Rules, in order:

1. Drop poor-quality readings when at least one better reading exists;
   otherwise keep them and apply ``poor_data_penalty``.
2. Compare the mean moisture with ``target × {0.4, 0.6, 0.8}`` to pick the
   base action and confidence.
3. Forecast: humid air lowers confidence, rain in the next 24 h forces
   ``postpone``, heat moves the window to early morning. No forecast lowers
   confidence by ``forecast_unavailable_penalty``.
4. Irrigating actions get a duration (from the moisture deficit), a water
   amount and a zone list.
5. Confidence is scaled by the fraction of good/excellent readings and
   clamped to ``[0, 1]``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.domain.sensors.reading import Reading
from app.enums import MoistureStatus, Priority, QualityBand, RecommendationAction, RecommendationTiming
from app.utils.numbers import clamp, round_half_up


@dataclass(frozen=True)
class Forecast:
    temperature_c: float
    humidity_pct: float
    wind_kph: float = 0.0
    rainfall_mm_next_24h: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temperature_c": self.temperature_c,
            "humidity_pct": self.humidity_pct,
            "wind_kph": self.wind_kph,
            "rainfall_mm_next_24h": self.rainfall_mm_next_24h,
        }


@dataclass(frozen=True)
class ZoneReading:
    zone_id: str
    moisture: float
    quality_band: QualityBand
    device_id: Optional[str] = None

    @classmethod
    def from_reading(cls, reading: Reading) -> "ZoneReading":
        return cls(
            zone_id=reading.zone_id,
            moisture=reading.moisture,
            quality_band=reading.quality_band,
            device_id=reading.device_id,
        )


@dataclass(frozen=True)
class ZoneSettings:
    """Farm-level targets the engine evaluates against."""

    target_moisture: float = 80.0
    liters_per_minute_per_zone: float = 5.0
    zone_ids: Tuple[str, ...] = ()
    zone_targets: Dict[str, float] = field(default_factory=dict)

    def target_for(self, zone_id: str) -> float:
        return self.zone_targets.get(zone_id, self.target_moisture)


@dataclass(frozen=True)
class RecommendationPolicy:
    """Tunable heuristic weights."""

    critical_ratio: float = 0.4
    low_ratio: float = 0.6
    moderate_ratio: float = 0.8
    critical_confidence: float = 0.9
    low_confidence: float = 0.7
    moderate_confidence: float = 0.5

    humid_air_pct: float = 85.0
    humid_air_penalty: float = 0.2
    rain_postpone_mm: float = 5.0
    postpone_confidence: float = 0.8
    hot_temperature_c: float = 35.0

    poor_data_penalty: float = 0.1
    forecast_unavailable_penalty: float = 0.1

    deficit_minutes_per_pct: float = 0.5
    min_duration_minutes: int = 10
    max_duration_minutes: int = 60
    zone_selection_ratio: float = 0.7


DEFAULT_POLICY = RecommendationPolicy()


@dataclass(frozen=True)
class Recommendation:
    action: RecommendationAction
    confidence: float
    priority: Priority = Priority.LOW
    timing: Optional[RecommendationTiming] = None
    duration_minutes: Optional[int] = None
    water_liters: Optional[float] = None
    zones: Tuple[str, ...] = ()
    reasoning: Tuple[str, ...] = ()
    average_moisture: Optional[float] = None
    readings_used: int = 0
    forecast_used: bool = False
    zone_status: Dict[str, MoistureStatus] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": str(self.action),
            "confidence": self.confidence,
            "priority": str(self.priority),
            "timing": str(self.timing) if self.timing else None,
            "duration_minutes": self.duration_minutes,
            "water_liters": self.water_liters,
            "zones": list(self.zones),
            "reasoning": list(self.reasoning),
            "average_moisture": self.average_moisture,
            "readings_used": self.readings_used,
            "forecast_used": self.forecast_used,
            "zone_status": {zone: str(status) for zone, status in self.zone_status.items()},
        }


def select_readings(readings: Iterable[ZoneReading]) -> Tuple[List[ZoneReading], bool]:
    """Return the readings to aggregate and whether only poor ones were available."""
    readings = list(readings)
    usable = [r for r in readings if r.quality_band != QualityBand.POOR]
    if usable:
        return usable, False
    return readings, bool(readings)


def _base_action(
    mean: float, target: float, policy: RecommendationPolicy
) -> Tuple[RecommendationAction, float, Priority, Optional[str]]:
    shown = f"{round_half_up(mean)}% (target: {target:g}%)"
    if mean < target * policy.critical_ratio:
        return RecommendationAction.IRRIGATE_NOW, policy.critical_confidence, Priority.CRITICAL, f"Critical moisture level: {shown}"
    if mean < target * policy.low_ratio:
        return RecommendationAction.IRRIGATE_SOON, policy.low_confidence, Priority.HIGH, f"Low moisture level: {shown}"
    if mean < target * policy.moderate_ratio:
        return RecommendationAction.SCHEDULE_IRRIGATION, policy.moderate_confidence, Priority.MEDIUM, f"Moderate moisture level: {shown}"
    return RecommendationAction.NONE, 0.0, Priority.LOW, None


def _zones_needing_water(
    used: Sequence[ZoneReading], settings: ZoneSettings, policy: RecommendationPolicy
) -> Tuple[str, ...]:
    dry = sorted({r.zone_id for r in used if r.moisture < settings.target_for(r.zone_id) * policy.zone_selection_ratio})
    if dry:
        return tuple(dry)
    if settings.zone_ids:
        return tuple(settings.zone_ids)
    return tuple(sorted({r.zone_id for r in used}))


def recommend(
    zone_readings: Iterable[ZoneReading],
    forecast: Optional[Forecast],
    zone_settings: ZoneSettings,
    policy: RecommendationPolicy = DEFAULT_POLICY,
) -> Recommendation:
    """Evaluate readings and forecast into a :class:`Recommendation`.

    ``forecast=None`` means the provider was unavailable.
    """
    used, poor_only = select_readings(zone_readings)
    if not used:
        return Recommendation(
            action=RecommendationAction.NONE,
            confidence=0.0,
            reasoning=("No recent readings available",),
            forecast_used=forecast is not None,
        )

    target = zone_settings.target_moisture
    mean = sum(r.moisture for r in used) / len(used)
    action, confidence, priority, reason = _base_action(mean, target, policy)
    reasoning: List[str] = [reason] if reason else []
    timing: Optional[RecommendationTiming] = None

    if forecast is not None:
        if forecast.humidity_pct > policy.humid_air_pct:
            confidence -= policy.humid_air_penalty
            reasoning.append("High humidity may reduce irrigation need")
        if forecast.rainfall_mm_next_24h > policy.rain_postpone_mm:
            action = RecommendationAction.POSTPONE
            confidence = policy.postpone_confidence
            priority = Priority.LOW
            reasoning.append(f"Rain expected: {forecast.rainfall_mm_next_24h:g}mm")
        if forecast.temperature_c > policy.hot_temperature_c:
            timing = RecommendationTiming.EARLY_MORNING
            reasoning.append("High temperature - recommend early morning irrigation")
    else:
        confidence -= policy.forecast_unavailable_penalty
        reasoning.append("Forecast unavailable - sensor-only evaluation")

    if poor_only:
        confidence -= policy.poor_data_penalty
        reasoning.append("Only poor-quality readings available")

    duration: Optional[int] = None
    water: Optional[float] = None
    zones: Tuple[str, ...] = ()
    if action.implies_irrigation:
        deficit = max(0.0, target - mean)
        duration = int(
            clamp(
                round_half_up(deficit * policy.deficit_minutes_per_pct),
                policy.min_duration_minutes,
                policy.max_duration_minutes,
            )
        )
        water = duration * zone_settings.liters_per_minute_per_zone
        zones = _zones_needing_water(used, zone_settings, policy)

    trusted = sum(1 for r in used if r.quality_band.is_trusted)
    confidence *= trusted / len(used)
    confidence = round(clamp(confidence, 0.0, 1.0), 3)

    return Recommendation(
        action=action,
        confidence=confidence,
        priority=priority,
        timing=timing,
        duration_minutes=duration,
        water_liters=water,
        zones=zones,
        reasoning=tuple(reasoning),
        average_moisture=round(mean, 1),
        readings_used=len(used),
        forecast_used=forecast is not None,
    )
