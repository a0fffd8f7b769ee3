"""
Domain Layer for Soil Sensors
=============================
Calibration and reading value objects.
"""

from app.domain.sensors.calibration import MoistureCalibration, to_percentage, validate_calibration
from app.domain.sensors.reading import Reading, ReadingAlert, score_quality

__all__ = [
    "MoistureCalibration",
    "Reading",
    "ReadingAlert",
    "score_quality",
    "to_percentage",
    "validate_calibration",
]
