"""
Input Validation Utilities
==========================

Bridges pydantic request schemas to the domain error hierarchy.

Features:
- ``parse_model``: validate a dict against a schema and raise
  ``app.domain.exceptions.ValidationError`` with a reason code
- Free-text sanitization for notes and cancellation reasons
"""
from __future__ import annotations

import html
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.domain.exceptions import ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# pydantic error types produced by ge/le/gt/lt constraints
_RANGE_ERROR_TYPES = frozenset({
    "greater_than",
    "greater_than_equal",
    "less_than",
    "less_than_equal",
})


def _summarize(errors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "type": err.get("type"),
            "message": err.get("msg"),
        }
        for err in errors
    ]


def parse_model(schema: Type[ModelT], data: Any) -> ModelT:
    """
    Validate ``data`` against ``schema``.

    Raises:
        ValidationError: ``OUT_OF_RANGE`` when every failure is a numeric
            bound violation, ``MALFORMED_PAYLOAD`` otherwise.
    """
    if not isinstance(data, dict):
        raise ValidationError(
            "Request body must be a JSON object",
            code=ValidationError.MALFORMED_PAYLOAD,
        )
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        errors = exc.errors()
        out_of_range = bool(errors) and all(err.get("type") in _RANGE_ERROR_TYPES for err in errors)
        code = ValidationError.OUT_OF_RANGE if out_of_range else ValidationError.MALFORMED_PAYLOAD
        summary = _summarize(errors)
        logger.debug("Rejected %s payload (%s): %s", schema.__name__, code, summary)
        raise ValidationError(
            "Value out of range" if out_of_range else "Malformed payload",
            code=code,
            detail={"errors": summary},
        ) from exc


def sanitize_string(value: Optional[str], max_length: int = 1000) -> Optional[str]:
    """
    Sanitize a free-text input.

    - Escapes HTML entities
    - Strips leading/trailing whitespace
    - Limits length
    - Returns None for empty strings
    """
    if value is None:
        return None

    if not isinstance(value, str):
        value = str(value)

    value = value.strip()
    if not value:
        return None

    value = html.escape(value, quote=True)
    if len(value) > max_length:
        value = value[:max_length]

    return value
