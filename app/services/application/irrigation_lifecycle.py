"""
Irrigation Lifecycle Manager
============================
Creates irrigation runs and moves them through their states::

    pending -> running -> {completed, failed}
    pending | running -> cancelled

Guarantees:
- At most one ``running`` run per farm. ``create`` and ``start`` hold the
  farm lock, and the store rejects a second running row as a backstop.
- Every transition is a conditional write on the observed status, so two
  racing terminal transitions (e.g. cancel vs complete) have one winner and
  the loser gets ``ConflictError(INVALID_TRANSITION)``.
- Invariant checks (zones belong to the farm or run) happen before any write.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from app.domain.alert import Alert
from app.domain.exceptions import ConflictError, InvariantViolation, NotFoundError, ValidationError
from app.domain.farm import Farm
from app.domain.irrigation import (
    MAX_DURATION_MINUTES,
    MIN_DURATION_MINUTES,
    IrrigationRun,
    MoistureDelta,
    RunAlert,
    RunCost,
    efficiency,
    planned_volume as compute_planned_volume,
)
from app.enums import AlertSeverity, AlertType, RunStatus, SubjectType, TriggerReason
from app.utils.concurrency import KeyedLockProvider
from app.utils.time import to_iso, utc_now

if TYPE_CHECKING:
    from app.services.protocols import AlertSink, LockProvider
    from infrastructure.database.repositories.farms import FarmRepository
    from infrastructure.database.repositories.irrigation import IrrigationRunRepository

logger = logging.getLogger(__name__)

# Retries when the run changes status between read and conditional write.
_TRANSITION_ATTEMPTS = 3

ChangeBuilder = Callable[[IrrigationRun], Tuple[Dict[str, Any], Optional[Dict[str, Any]]]]


def _append_note(notes: str, line: str) -> str:
    return f"{notes}\n{line}" if notes else line


def _validate_duration(duration_minutes: Any) -> int:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise ValidationError(
            "duration_minutes must be a whole number of minutes",
            code=ValidationError.INVALID_DURATION,
        )
    if not MIN_DURATION_MINUTES <= duration_minutes <= MAX_DURATION_MINUTES:
        raise ValidationError(
            f"duration_minutes must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES}",
            code=ValidationError.INVALID_DURATION,
            detail={"duration_minutes": duration_minutes},
        )
    return duration_minutes


class IrrigationLifecycle:
    """Owns irrigation run creation and state transitions."""

    def __init__(
        self,
        run_repo: "IrrigationRunRepository",
        farm_repo: "FarmRepository",
        alerts: "AlertSink",
        *,
        lock_provider: Optional["LockProvider"] = None,
        water_cost_per_liter: float = 0.0,
        energy_cost_per_minute: float = 0.0,
    ):
        """
        Args:
            run_repo: Run persistence
            farm_repo: Farm lookups (zones, flow rate)
            alerts: Sink for failure alerts (the alert aggregator)
            lock_provider: Per-farm locks (defaults to in-process locks)
            water_cost_per_liter: Unit cost applied on completion
            energy_cost_per_minute: Pump cost applied on completion
        """
        self.run_repo = run_repo
        self.farm_repo = farm_repo
        self.alerts = alerts
        self._locks = lock_provider or KeyedLockProvider()
        self.water_cost_per_liter = water_cost_per_liter
        self.energy_cost_per_minute = energy_cost_per_minute

    # ==================== Lookups ====================

    def _require_farm(self, farm_id: str) -> Farm:
        farm = self.farm_repo.get(farm_id)
        if farm is None:
            raise NotFoundError(f"Farm {farm_id} not found", code=NotFoundError.FARM_NOT_FOUND)
        return farm

    def get(self, run_id: int) -> IrrigationRun:
        run = self.run_repo.get(run_id)
        if run is None:
            raise NotFoundError(f"Irrigation run {run_id} not found", code=NotFoundError.RUN_NOT_FOUND)
        return run

    def history(self, farm_id: str, limit: int = 50) -> List[IrrigationRun]:
        return self.run_repo.history(farm_id, limit)

    def active_run(self, farm_id: str) -> Optional[IrrigationRun]:
        running = self.run_repo.find_by_status(farm_id, [RunStatus.RUNNING])
        return running[0] if running else None

    def open_runs(self, farm_id: str) -> List[IrrigationRun]:
        """Pending and running runs, newest first."""
        return self.run_repo.find_by_status(farm_id, [RunStatus.PENDING, RunStatus.RUNNING])

    def statistics(
        self,
        farm_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Totals for the farm's runs scheduled to start within ``[start, end]``.

        Averages are None when no run carries the value (e.g. no completed
        run has an efficiency yet).
        """
        if start is not None and end is not None and start > end:
            raise ValidationError(
                "start must not be after end",
                code=ValidationError.OUT_OF_RANGE,
                detail={"start": to_iso(start), "end": to_iso(end)},
            )
        self._require_farm(farm_id)
        row = self.run_repo.statistics(farm_id, start, end)

        def _avg(value: Optional[float]) -> Optional[float]:
            return round(value, 1) if value is not None else None

        return {
            "farm_id": farm_id,
            "start": to_iso(start),
            "end": to_iso(end),
            "total_runs": row["total_runs"],
            "completed_runs": row["completed_runs"] or 0,
            "failed_runs": row["failed_runs"] or 0,
            "cancelled_runs": row["cancelled_runs"] or 0,
            "total_water_used": round(row["total_water_used"], 2),
            "total_water_planned": round(row["total_water_planned"], 2),
            "average_duration_minutes": _avg(row["average_duration_minutes"]),
            "average_efficiency": _avg(row["average_efficiency"]),
            "total_cost": round(row["total_cost"], 4),
        }

    def _ensure_idle(self, farm_id: str) -> None:
        active = self.active_run(farm_id)
        if active is not None:
            raise ConflictError(
                f"Farm {farm_id} already has running irrigation {active.run_id}",
                code=ConflictError.IRRIGATION_ACTIVE,
                detail={"farm_id": farm_id, "run_id": active.run_id},
            )

    # ==================== Creation ====================

    def create(
        self,
        farm_id: str,
        zones: Iterable[str],
        duration_minutes: int,
        trigger_reason: TriggerReason = TriggerReason.MANUAL,
        planned_volume: Optional[float] = None,
        scheduled_start: Optional[datetime] = None,
        *,
        start: bool = False,
        notes: Optional[str] = None,
        recommendation: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> IrrigationRun:
        """
        Create a run, pending by default or already running with ``start=True``.

        Raises:
            ValidationError: bad duration, empty zone list or non-positive volume
            NotFoundError: unknown farm
            InvariantViolation: a zone does not belong to the farm
            ConflictError: the farm already has a running irrigation
        """
        duration = _validate_duration(duration_minutes)
        zone_ids = tuple(dict.fromkeys(str(zone) for zone in zones))
        if not zone_ids:
            raise ValidationError("At least one zone is required", code=ValidationError.MALFORMED_PAYLOAD)
        if planned_volume is not None and planned_volume <= 0:
            raise ValidationError("planned_volume must be positive", code=ValidationError.OUT_OF_RANGE)

        farm = self._require_farm(farm_id)
        missing = farm.missing_zones(zone_ids)
        if missing:
            raise InvariantViolation(
                f"Zones {missing} do not belong to farm {farm_id}",
                code=InvariantViolation.ZONE_NOT_IN_FARM,
                detail={"farm_id": farm_id, "zones": missing},
            )

        now = now or utc_now()
        begins = scheduled_start or now
        volume = (
            planned_volume
            if planned_volume is not None
            else compute_planned_volume(duration, farm.flow_rate_per_zone, len(zone_ids))
        )
        run = IrrigationRun(
            farm_id=farm_id,
            zones=zone_ids,
            duration_minutes=duration,
            flow_rate_per_zone=farm.flow_rate_per_zone,
            planned_volume=volume,
            trigger_reason=TriggerReason(trigger_reason),
            status=RunStatus.RUNNING if start else RunStatus.PENDING,
            scheduled_start=begins,
            scheduled_end=begins + timedelta(minutes=duration),
            actual_start=now if start else None,
            notes=notes or "",
            recommendation=recommendation,
            created_at=now,
        )

        with self._locks.lock(("farm", farm_id)):
            self._ensure_idle(farm_id)
            created = self.run_repo.create(run)

        logger.info(
            "Created irrigation run %s for farm %s (%s, zones=%s, %d min, %.1f L, reason=%s)",
            created.run_id,
            farm_id,
            created.status,
            list(zone_ids),
            duration,
            volume,
            created.trigger_reason,
        )
        return created

    # ==================== Transitions ====================

    def start(self, run_id: int, *, now: Optional[datetime] = None) -> IrrigationRun:
        """pending -> running; stamps ``actual_start``."""
        run = self.get(run_id)
        with self._locks.lock(("farm", run.farm_id)):
            current = self.get(run_id)
            if current.status.can_transition_to(RunStatus.RUNNING):
                self._ensure_idle(current.farm_id)
            stamp = now or utc_now()
            return self._transition(run_id, RunStatus.RUNNING, lambda r: ({"actual_start": stamp}, None), stamp)

    def complete(
        self,
        run_id: int,
        actual_volume: float,
        moisture_deltas: Iterable[Union[MoistureDelta, Dict[str, Any]]] = (),
        *,
        now: Optional[datetime] = None,
    ) -> IrrigationRun:
        """
        running -> completed; records volume, efficiency, deltas, cost and
        farm statistics in one write.
        """
        if actual_volume is None or actual_volume < 0:
            raise ValidationError("actual_volume must be zero or more", code=ValidationError.OUT_OF_RANGE)
        deltas = tuple(d if isinstance(d, MoistureDelta) else MoistureDelta.from_dict(d) for d in moisture_deltas)
        stamp = now or utc_now()

        def build(run: IrrigationRun):
            foreign = sorted({d.zone_id for d in deltas} - set(run.zones))
            if foreign:
                raise InvariantViolation(
                    f"Moisture deltas reference zones {foreign} outside run {run.run_id}",
                    code=InvariantViolation.ZONE_NOT_IN_FARM,
                    detail={"run_id": run.run_id, "zones": foreign},
                )
            started = run.actual_start or stamp
            ended = max(stamp, started)
            cost = RunCost.compute(
                actual_volume=actual_volume,
                minutes=(ended - started).total_seconds() / 60,
                water_cost_per_liter=self.water_cost_per_liter,
                energy_cost_per_minute=self.energy_cost_per_minute,
            )
            changes = {
                "actual_end": ended,
                "actual_volume": actual_volume,
                "efficiency": efficiency(actual_volume, run.planned_volume),
                "moisture_deltas": [d.to_dict() for d in deltas],
                "cost": cost.to_dict(),
            }
            farm_stats = {"farm_id": run.farm_id, "water_used": actual_volume, "at": ended}
            return changes, farm_stats

        return self._transition(run_id, RunStatus.COMPLETED, build, stamp)

    def fail(self, run_id: int, reason: str, *, now: Optional[datetime] = None) -> IrrigationRun:
        """running -> failed; embeds and raises a critical ``system_error`` alert."""
        stamp = now or utc_now()
        message = f"Irrigation run {run_id} failed: {reason}"
        run_alert = RunAlert(AlertType.SYSTEM_ERROR, AlertSeverity.CRITICAL, message, stamp)

        def build(run: IrrigationRun):
            return {
                "actual_end": max(stamp, run.actual_start or stamp),
                "alerts": [a.to_dict() for a in run.alerts] + [run_alert.to_dict()],
                "notes": _append_note(run.notes, f"Failed: {reason}"),
            }, None

        failed = self._transition(run_id, RunStatus.FAILED, build, stamp)
        self.alerts.raise_alert(
            Alert(
                subject_id=failed.farm_id,
                subject_type=SubjectType.FARM,
                farm_id=failed.farm_id,
                alert_type=AlertType.SYSTEM_ERROR,
                severity=AlertSeverity.CRITICAL,
                message=message,
                timestamp=stamp,
            )
        )
        return failed

    def cancel(self, run_id: int, reason: str, *, now: Optional[datetime] = None) -> IrrigationRun:
        """pending | running -> cancelled; appends ``Cancelled: <reason>`` to the notes."""
        stamp = now or utc_now()

        def build(run: IrrigationRun):
            changes: Dict[str, Any] = {"notes": _append_note(run.notes, f"Cancelled: {reason}")}
            if run.status == RunStatus.RUNNING:
                changes["actual_end"] = max(stamp, run.actual_start or stamp)
            return changes, None

        return self._transition(run_id, RunStatus.CANCELLED, build, stamp)

    def _transition(
        self,
        run_id: int,
        target: RunStatus,
        build: ChangeBuilder,
        at: datetime,
    ) -> IrrigationRun:
        for _ in range(_TRANSITION_ATTEMPTS):
            run = self.get(run_id)
            if not run.status.can_transition_to(target):
                raise ConflictError(
                    f"Irrigation run {run_id} is {run.status}; cannot move to {target}",
                    code=ConflictError.INVALID_TRANSITION,
                    detail={"run_id": run_id, "status": str(run.status), "target": str(target)},
                )
            changes, farm_stats = build(run)
            if self.run_repo.transition(run, (run.status,), target, changes, at, farm_stats=farm_stats):
                logger.info("Irrigation run %s: %s -> %s", run_id, run.status, target)
                return self.get(run_id)
            logger.debug("Irrigation run %s changed status during %s; retrying", run_id, target)

        raise ConflictError(
            f"Irrigation run {run_id} is changing concurrently",
            code=ConflictError.INVALID_TRANSITION,
            detail={"run_id": run_id, "target": str(target)},
        )
