"""
Service protocols (structural typing interfaces).

Protocols let consumer services declare the *minimal* surface they depend on
without importing the concrete class, breaking circular imports and making
tests trivially mockable.

Usage
-----
In a consumer service::

    from __future__ import annotations
    from typing import TYPE_CHECKING
    if TYPE_CHECKING:
        from app.services.protocols import ForecastProvider

    class IrrigationCoreService:
        def __init__(self, forecast: "ForecastProvider", ...): ...

At runtime the concrete ``ForecastService`` already satisfies the protocol
via structural subtyping, no explicit inheritance needed.
"""

from __future__ import annotations

from concurrent.futures import Future
from typing import Any, ContextManager, Hashable, Protocol, runtime_checkable

from app.domain.alert import Alert
from app.domain.recommendation_engine import Forecast
from app.enums import NotificationChannel


@runtime_checkable
class LockProvider(Protocol):
    """Hands out mutual-exclusion scopes keyed by farm or device id.

    ``KeyedLockProvider`` is the in-process implementation; a transactional
    backend (advisory locks, leases) can replace it without touching the
    services that acquire the locks.
    """

    def lock(self, key: Hashable) -> ContextManager[None]:
        """Return a context manager holding the lock for ``key``."""
        ...


@runtime_checkable
class ForecastProvider(Protocol):
    """Source of the next-24h weather outlook for a location."""

    def get_forecast(self, latitude: float, longitude: float) -> Forecast:
        """Return the outlook or raise ``DependencyError``."""
        ...


@runtime_checkable
class NotificationSender(Protocol):
    """Non-blocking notification delivery."""

    def deliver(self, recipient: str, payload: Any, channel: NotificationChannel) -> Future:
        """Queue a delivery and return a future resolving to its result."""
        ...


@runtime_checkable
class AlertSink(Protocol):
    """Anything that accepts derived alerts (the alert aggregator)."""

    def raise_alert(self, alert: Alert) -> Alert:
        """Insert or refresh the pending alert for ``(subject_id, alert_type)``."""
        ...
