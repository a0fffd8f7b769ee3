"""
Alert Aggregator
================
Deduplicating store for device and farm alerts.

At most one unacknowledged alert exists per ``(subject_id, alert_type)``.
Raising a repeat refreshes the pending alert in place (severity, message,
timestamp, occurrence count) instead of inserting a second row. A per-key
lock serializes raisers in this process and a partial unique index backs it
up across processes.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable, List, Optional

from app.domain.alert import Alert, priority_order
from app.domain.exceptions import ConflictError, NotFoundError, RepositoryError
from app.enums import SubjectType
from app.utils.concurrency import KeyedLockProvider
from app.utils.time import utc_now

if TYPE_CHECKING:
    from app.services.protocols import LockProvider
    from infrastructure.database.repositories.alerts import AlertRepository
    from infrastructure.database.repositories.readings import ReadingRepository

logger = logging.getLogger(__name__)

AlertNotifier = Callable[[Alert], None]


class AlertAggregator:
    """Raise, list and acknowledge alerts with per-(subject, type) deduplication."""

    def __init__(
        self,
        alert_repo: "AlertRepository",
        *,
        reading_repo: Optional["ReadingRepository"] = None,
        lock_provider: Optional["LockProvider"] = None,
        notifier: Optional[AlertNotifier] = None,
    ):
        """
        Args:
            alert_repo: Alert persistence
            reading_repo: When set, acknowledging a device alert also flags the
                matching alerts embedded in that device's readings
            lock_provider: Per-key locks (defaults to in-process locks)
            notifier: Called with each new or escalated warning/critical alert
        """
        self.alert_repo = alert_repo
        self.reading_repo = reading_repo
        self._locks = lock_provider or KeyedLockProvider()
        self._notifier = notifier

    def set_notifier(self, notifier: Optional[AlertNotifier]) -> None:
        self._notifier = notifier

    # ==================== Raising ====================

    def raise_alert(self, alert: Alert) -> Alert:
        """Insert ``alert`` or refresh the pending alert for the same subject and type."""
        key = ("alert", alert.subject_id, str(alert.alert_type))
        with self._locks.lock(key):
            stored, escalated = self._upsert(alert)

        if escalated and stored.is_notifiable:
            self._notify(stored)
        return stored

    def _upsert(self, alert: Alert) -> tuple[Alert, bool]:
        # Two passes: the pending row may be acknowledged, or inserted by
        # another process, between the lookup and the write.
        for _ in range(2):
            existing = self.alert_repo.find_pending(alert.subject_id, str(alert.alert_type))
            if existing is not None:
                if self.alert_repo.refresh(existing.alert_id, alert):
                    refreshed = self.alert_repo.get_by_id(existing.alert_id)
                    logger.debug(
                        "Refreshed %s alert %s for %s (occurrences=%s)",
                        alert.alert_type,
                        existing.alert_id,
                        alert.subject_id,
                        refreshed.occurrences,
                    )
                    return refreshed, alert.severity.rank > existing.severity.rank
                continue
            try:
                created = self.alert_repo.create(alert)
            except ConflictError:
                continue
            logger.info(
                "Raised %s %s alert %s for %s %s",
                alert.severity,
                alert.alert_type,
                created.alert_id,
                alert.subject_type,
                alert.subject_id,
            )
            return created, True
        raise RepositoryError(
            f"Could not store {alert.alert_type} alert for {alert.subject_id}",
            detail={"subject_id": alert.subject_id, "alert_type": str(alert.alert_type)},
        )

    def _notify(self, alert: Alert) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier(alert)
        except Exception as exc:
            logger.warning("Alert notifier failed for alert %s: %s", alert.alert_id, exc, exc_info=True)

    # ==================== Queries ====================

    def list_pending(self, subject_id: str) -> List[Alert]:
        """Unacknowledged alerts for one subject, most urgent first."""
        return priority_order(self.alert_repo.list_for_subject(subject_id, pending_only=True))

    def list_for_farm(self, farm_id: str, only_pending: bool = True, limit: int = 200) -> List[Alert]:
        return priority_order(self.alert_repo.list_for_farm(farm_id, pending_only=only_pending, limit=limit))

    def get(self, alert_id: int) -> Alert:
        alert = self.alert_repo.get_by_id(alert_id)
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found", code=NotFoundError.ALERT_NOT_FOUND)
        return alert

    # ==================== Acknowledgement ====================

    def acknowledge(self, alert_id: int, *, at: Optional[datetime] = None) -> Alert:
        """Mark an alert acknowledged. Repeating the call is a no-op."""
        alert = self.get(alert_id)
        if alert.acknowledged:
            return alert

        if self.alert_repo.acknowledge(alert_id, at or utc_now()):
            logger.info("Acknowledged %s alert %s for %s", alert.alert_type, alert_id, alert.subject_id)
            if self.reading_repo is not None and alert.subject_type == SubjectType.DEVICE:
                self.reading_repo.acknowledge_embedded(alert.subject_id, str(alert.alert_type))
        return self.get(alert_id)
