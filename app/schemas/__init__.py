"""
Schemas Module
==============

This module provides Pydantic models for request/response validation.
Schemas ensure data integrity and provide automatic validation.
"""

from app.schemas.common import ErrorBody, ErrorResponse, SuccessResponse
from app.schemas.farms import (
    AutoIrrigationPayload,
    CalibrationPayload,
    DeviceThresholdsPayload,
    RegisterDeviceRequest,
    RegisterFarmRequest,
    ZonePayload,
    ZoneThresholdsPayload,
)
from app.schemas.irrigation import (
    CancelIrrigationRequest,
    CompleteIrrigationRequest,
    FailIrrigationRequest,
    IrrigationStatisticsQuery,
    MoistureDeltaPayload,
    StartIrrigationRequest,
)
from app.schemas.readings import ReadingPayload, ReadingWindowQuery

__all__ = [
    # Common
    "ErrorBody",
    "ErrorResponse",
    "SuccessResponse",
    # Farms & devices
    "AutoIrrigationPayload",
    "CalibrationPayload",
    "DeviceThresholdsPayload",
    "RegisterDeviceRequest",
    "RegisterFarmRequest",
    "ZonePayload",
    "ZoneThresholdsPayload",
    # Irrigation
    "CancelIrrigationRequest",
    "CompleteIrrigationRequest",
    "FailIrrigationRequest",
    "IrrigationStatisticsQuery",
    "MoistureDeltaPayload",
    "StartIrrigationRequest",
    # Readings
    "ReadingPayload",
    "ReadingWindowQuery",
]
