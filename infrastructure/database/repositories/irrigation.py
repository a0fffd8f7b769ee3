"""Repository for irrigation run data access."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from app.domain.exceptions import ConflictError
from app.domain.irrigation import IrrigationRun
from app.enums import RunStatus
from app.utils.time import to_iso
from infrastructure.database.ops.irrigation import IrrigationOperations

logger = logging.getLogger(__name__)


def _already_running(farm_id: str, exc: sqlite3.IntegrityError) -> ConflictError:
    logger.info("Rejected second running irrigation for farm %s: %s", farm_id, exc)
    return ConflictError(
        f"Farm {farm_id} already has a running irrigation",
        code=ConflictError.IRRIGATION_ACTIVE,
        detail={"farm_id": farm_id},
    )


@dataclass(frozen=True)
class IrrigationRunRepository:
    """Repository facade for irrigation runs.

    The store allows one ``running`` row per farm; writes that would break
    this surface as ``ConflictError(IRRIGATION_ACTIVE)``.
    """

    _backend: IrrigationOperations

    def create(self, run: IrrigationRun) -> IrrigationRun:
        try:
            run_id = self._backend.insert_run(
                {
                    "farm_id": run.farm_id,
                    "zones": list(run.zones),
                    "duration_minutes": run.duration_minutes,
                    "flow_rate_per_zone": run.flow_rate_per_zone,
                    "planned_volume": run.planned_volume,
                    "trigger_reason": str(run.trigger_reason),
                    "status": str(run.status),
                    "scheduled_start": to_iso(run.scheduled_start),
                    "scheduled_end": to_iso(run.scheduled_end),
                    "actual_start": to_iso(run.actual_start),
                    "cost": run.cost.to_dict(),
                    "notes": run.notes,
                    "recommendation": run.recommendation,
                    "created_at": to_iso(run.created_at),
                }
            )
        except sqlite3.IntegrityError as exc:
            raise _already_running(run.farm_id, exc) from exc
        return self.get(run_id)

    def get(self, run_id: int) -> Optional[IrrigationRun]:
        row = self._backend.get_run(run_id)
        return IrrigationRun.from_row(row) if row else None

    def find_by_status(self, farm_id: str, statuses: Iterable[RunStatus]) -> List[IrrigationRun]:
        rows = self._backend.find_runs_by_status(farm_id, [str(s) for s in statuses])
        return [IrrigationRun.from_row(row) for row in rows]

    def history(self, farm_id: str, limit: int = 50) -> List[IrrigationRun]:
        return [IrrigationRun.from_row(row) for row in self._backend.list_runs(farm_id, limit)]

    def transition(
        self,
        run: IrrigationRun,
        from_statuses: Iterable[RunStatus],
        to_status: RunStatus,
        changes: Dict[str, Any],
        at: datetime,
        *,
        farm_stats: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Conditionally move ``run`` to ``to_status``; False if it was not in ``from_statuses``."""
        encoded = {
            key: to_iso(value) if isinstance(value, datetime) else value
            for key, value in changes.items()
        }
        if farm_stats is not None:
            farm_stats = {**farm_stats, "at": to_iso(farm_stats["at"])}
        try:
            return self._backend.transition_run(
                run.run_id,
                [str(s) for s in from_statuses],
                str(to_status),
                encoded,
                to_iso(at),
                farm_stats=farm_stats,
            )
        except sqlite3.IntegrityError as exc:
            raise _already_running(run.farm_id, exc) from exc

    def statistics(
        self,
        farm_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        return self._backend.run_statistics(farm_id, to_iso(start), to_iso(end))
