"""
Database Utilities
==================

Shared helpers for the SQLite operations mixins: row conversion, JSON
columns and error translation.
"""

from __future__ import annotations

import functools
import json
import logging
import sqlite3
from typing import Any, Callable, Optional, TypeVar, cast

from app.domain.exceptions import RepositoryError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def dict_factory(cursor: sqlite3.Cursor, row: tuple) -> dict[str, Any]:
    """``row_factory`` returning plain dicts so rows support ``.get``."""
    return {column[0]: row[index] for index, column in enumerate(cursor.description)}


def dumps(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def loads(value: Optional[str], default: Any = None) -> Any:
    if value in (None, ""):
        return default
    return json.loads(value)


def decode_columns(row: Optional[dict[str, Any]], *columns: str) -> Optional[dict[str, Any]]:
    """Decode the named JSON columns of ``row`` in place."""
    if row is None:
        return None
    for column in columns:
        if column in row:
            row[column] = loads(row[column])
    return row


def storage_errors(operation: str) -> Callable[[F], F]:
    """Translate ``sqlite3`` failures into :class:`RepositoryError`.

    ``sqlite3.IntegrityError`` passes through untouched: callers turn
    constraint violations into conflicts.
    """

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return fn(*args, **kwargs)
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as exc:
                logger.error("Storage failure during %s: %s", operation, exc)
                raise RepositoryError(f"Storage failure during {operation}") from exc

        return cast(F, wrapper)

    return decorator
