"""
Common Schemas
==============

Shared Pydantic models describing the API response envelope.
"""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ErrorBody(BaseModel):
    message: str
    code: Optional[str] = None
    timestamp: Optional[str] = None
    details: Optional[dict] = None


class SuccessResponse(BaseModel, Generic[T]):
    """Standard success response format"""

    ok: bool = Field(default=True, description="Request success status")
    data: T = Field(..., description="Response data")
    error: None = Field(default=None, description="Always null on success")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "ok": True,
                "data": {"run_id": 1, "status": "running"},
                "error": None,
            }
        }
    )


class ErrorResponse(BaseModel):
    """Standard error response format"""

    ok: bool = Field(default=False, description="Request success status")
    data: Any | None = Field(default=None, description="Data (null on error)")
    error: ErrorBody

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "ok": False,
                "data": None,
                "error": {"message": "Farm farm-1 already has a running irrigation", "code": "IRRIGATION_ACTIVE"},
            }
        }
    )
