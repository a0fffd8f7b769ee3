"""
Domain Value Objects Package
=============================
Entities and value objects of the irrigation core. Nothing in this package
touches storage, HTTP or threads.
"""

from .alert import Alert, priority_order
from .farm import AutoIrrigationConfig, Device, Farm, Zone
from .irrigation import IrrigationRun, MoistureDelta, RunAlert, RunCost
from .recommendation_engine import (
    DEFAULT_POLICY,
    Forecast,
    Recommendation,
    RecommendationPolicy,
    ZoneReading,
    ZoneSettings,
    recommend,
)
from .sensors import MoistureCalibration, Reading, ReadingAlert, score_quality, to_percentage
from .thresholds import DeviceThresholds, ZoneThresholds

__all__ = [
    # Alerts
    "Alert",
    "priority_order",
    # Farms and devices
    "AutoIrrigationConfig",
    "Device",
    "Farm",
    "Zone",
    "DeviceThresholds",
    "ZoneThresholds",
    # Sensors
    "MoistureCalibration",
    "Reading",
    "ReadingAlert",
    "score_quality",
    "to_percentage",
    # Irrigation
    "IrrigationRun",
    "MoistureDelta",
    "RunAlert",
    "RunCost",
    # Recommendation
    "DEFAULT_POLICY",
    "Forecast",
    "Recommendation",
    "RecommendationPolicy",
    "ZoneReading",
    "ZoneSettings",
    "recommend",
]
