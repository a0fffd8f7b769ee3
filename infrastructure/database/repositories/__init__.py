"""Repository facades exposing typed domain accessors over low-level mixins."""

from infrastructure.database.repositories.alerts import AlertRepository
from infrastructure.database.repositories.devices import DeviceRepository
from infrastructure.database.repositories.farms import FarmRepository
from infrastructure.database.repositories.irrigation import IrrigationRunRepository
from infrastructure.database.repositories.readings import ReadingRepository

__all__ = [
    "AlertRepository",
    "DeviceRepository",
    "FarmRepository",
    "IrrigationRunRepository",
    "ReadingRepository",
]
