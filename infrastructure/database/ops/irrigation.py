from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from infrastructure.database.utils import decode_columns, dumps, storage_errors

logger = logging.getLogger(__name__)

_RUN_JSON = ("zones", "moisture_deltas", "alerts", "cost", "recommendation")

# Columns a transition may write; JSON ones are encoded on the way in.
_MUTABLE_COLUMNS = frozenset({
    "actual_start",
    "actual_end",
    "actual_volume",
    "efficiency",
    "moisture_deltas",
    "alerts",
    "cost",
    "notes",
})


class IrrigationOperations:
    """Irrigation run persistence.

    Status changes are conditional updates (``WHERE status IN (...)``) and a
    partial unique index allows one ``running`` row per farm, so racing
    writers cannot both win.
    """

    @storage_errors("insert_run")
    def insert_run(self, run: Dict[str, Any]) -> int:
        with self.connection() as db:
            cur = db.execute(
                """
                INSERT INTO IrrigationRun (
                    farm_id, zones, duration_minutes, flow_rate_per_zone, planned_volume,
                    trigger_reason, status, scheduled_start, scheduled_end, actual_start,
                    moisture_deltas, alerts, cost, notes, recommendation, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run["farm_id"],
                    dumps(list(run["zones"])),
                    run["duration_minutes"],
                    run["flow_rate_per_zone"],
                    run["planned_volume"],
                    run["trigger_reason"],
                    run["status"],
                    run.get("scheduled_start"),
                    run.get("scheduled_end"),
                    run.get("actual_start"),
                    dumps([]),
                    dumps([]),
                    dumps(run.get("cost") or {}),
                    run.get("notes") or "",
                    dumps(run.get("recommendation")),
                    run["created_at"],
                    run["created_at"],
                ),
            )
            return cur.lastrowid

    @storage_errors("get_run")
    def get_run(self, run_id: int) -> Optional[Dict[str, Any]]:
        db = self.get_db()
        row = db.execute("SELECT * FROM IrrigationRun WHERE run_id = ?", (run_id,)).fetchone()
        return decode_columns(row, *_RUN_JSON)

    @storage_errors("find_runs_by_status")
    def find_runs_by_status(self, farm_id: str, statuses: Iterable[str]) -> List[Dict[str, Any]]:
        statuses = list(statuses)
        placeholders = ",".join("?" for _ in statuses)  # nosec B608: only '?' chars
        db = self.get_db()
        rows = db.execute(
            f"""
            SELECT * FROM IrrigationRun
            WHERE farm_id = ? AND status IN ({placeholders})
            ORDER BY created_at DESC, run_id DESC
            """,  # nosec B608
            [farm_id, *statuses],
        ).fetchall()
        return [decode_columns(row, *_RUN_JSON) for row in rows]

    @storage_errors("list_runs")
    def list_runs(self, farm_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        db = self.get_db()
        rows = db.execute(
            """
            SELECT * FROM IrrigationRun
            WHERE farm_id = ?
            ORDER BY created_at DESC, run_id DESC
            LIMIT ?
            """,
            (farm_id, limit),
        ).fetchall()
        return [decode_columns(row, *_RUN_JSON) for row in rows]

    @storage_errors("transition_run")
    def transition_run(
        self,
        run_id: int,
        from_statuses: Iterable[str],
        to_status: str,
        changes: Dict[str, Any],
        updated_at: str,
        *,
        farm_stats: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Move a run to ``to_status`` if it is currently in ``from_statuses``.

        Returns False when the run was not in an allowed source status (the
        row is left untouched). ``farm_stats`` ({farm_id, water_used, at})
        is applied in the same transaction when the transition succeeds.
        Raises IntegrityError if the move would create a second running run.
        """
        unknown = set(changes) - _MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unsupported run columns: {sorted(unknown)}")

        assignments = ["status = ?", "updated_at = ?"]
        params: List[Any] = [to_status, updated_at]
        for column, value in changes.items():
            assignments.append(f"{column} = ?")
            params.append(dumps(value) if column in _RUN_JSON else value)

        sources = list(from_statuses)
        placeholders = ",".join("?" for _ in sources)  # nosec B608: only '?' chars
        params.extend([run_id, *sources])

        with self.transaction() as db:
            cur = db.execute(
                f"UPDATE IrrigationRun SET {', '.join(assignments)} "  # nosec B608: whitelisted columns
                f"WHERE run_id = ? AND status IN ({placeholders})",
                params,
            )
            if cur.rowcount != 1:
                return False
            if farm_stats is not None:
                self.record_farm_irrigation(db, farm_stats["farm_id"], farm_stats["water_used"], farm_stats["at"])
        return True

    @storage_errors("run_statistics")
    def run_statistics(
        self,
        farm_id: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Aggregate runs whose scheduled start falls in ``[start, end]``."""
        conditions = ["farm_id = ?"]
        params: List[Any] = [farm_id]
        if start is not None:
            conditions.append("scheduled_start >= ?")
            params.append(start)
        if end is not None:
            conditions.append("scheduled_start <= ?")
            params.append(end)

        db = self.get_db()
        return db.execute(
            f"""
            SELECT
                COUNT(*) AS total_runs,
                COALESCE(SUM(actual_volume), 0) AS total_water_used,
                COALESCE(SUM(planned_volume), 0) AS total_water_planned,
                AVG(duration_minutes) AS average_duration_minutes,
                AVG(efficiency) AS average_efficiency,
                SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END) AS completed_runs,
                SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END) AS failed_runs,
                SUM(CASE WHEN status = 'cancelled' THEN 1 ELSE 0 END) AS cancelled_runs,
                COALESCE(SUM(json_extract(cost, '$.total')), 0) AS total_cost
            FROM IrrigationRun
            WHERE {" AND ".join(conditions)}
            """,  # nosec B608: fixed condition strings
            params,
        ).fetchone()
