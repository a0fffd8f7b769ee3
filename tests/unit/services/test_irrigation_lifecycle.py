"""Run state machine, single-running-run guarantee and racing terminal transitions."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from app.domain.exceptions import ConflictError, InvariantViolation, NotFoundError, ValidationError
from app.domain.irrigation import MoistureDelta
from app.enums import AlertSeverity, AlertType, RunStatus, TriggerReason
from app.utils.time import utc_now


def _outcomes(calls):
    """Run callables concurrently behind a barrier; return (results, errors)."""
    barrier = threading.Barrier(len(calls))

    def invoke(call):
        barrier.wait()
        try:
            return call(), None
        except ConflictError as exc:
            return None, exc

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        outcomes = list(pool.map(invoke, calls))
    results = [result for result, _ in outcomes if result is not None]
    errors = [error for _, error in outcomes if error is not None]
    return results, errors


# ==================== create ====================


def test_create_pending_run_derives_planned_volume(lifecycle, farm):
    run = lifecycle.create("farm-1", ["z1", "z2"], 30)

    assert run.run_id is not None
    assert run.status == RunStatus.PENDING
    assert run.zones == ("z1", "z2")
    assert run.planned_volume == 300
    assert run.trigger_reason == TriggerReason.MANUAL
    assert run.actual_start is None
    assert run.scheduled_end - run.scheduled_start == timedelta(minutes=30)


def test_create_keeps_supplied_planned_volume(lifecycle, farm):
    run = lifecycle.create("farm-1", ["z1"], 30, TriggerReason.SCHEDULED, planned_volume=120)
    assert run.planned_volume == 120
    assert run.trigger_reason == TriggerReason.SCHEDULED


def test_create_rejects_zone_outside_farm(lifecycle, run_repo, farm):
    with pytest.raises(InvariantViolation) as exc_info:
        lifecycle.create("farm-1", ["z1", "z9"], 30)

    assert exc_info.value.code == InvariantViolation.ZONE_NOT_IN_FARM
    assert run_repo.history("farm-1") == []


def test_create_unknown_farm(lifecycle, farm):
    with pytest.raises(NotFoundError) as exc_info:
        lifecycle.create("farm-404", ["z1"], 30)
    assert exc_info.value.code == NotFoundError.FARM_NOT_FOUND


@pytest.mark.parametrize("duration", [0, -5, 481, 12.5, True, "30"])
def test_create_rejects_invalid_duration(lifecycle, farm, duration):
    with pytest.raises(ValidationError) as exc_info:
        lifecycle.create("farm-1", ["z1"], duration)
    assert exc_info.value.code == ValidationError.INVALID_DURATION


def test_create_running_run_conflicts_with_active_run(lifecycle, farm):
    active = lifecycle.create("farm-1", ["z1"], 30, start=True)
    assert active.status == RunStatus.RUNNING
    assert active.actual_start is not None

    with pytest.raises(ConflictError) as exc_info:
        lifecycle.create("farm-1", ["z2"], 15, start=True)
    assert exc_info.value.code == ConflictError.IRRIGATION_ACTIVE

    with pytest.raises(ConflictError):
        lifecycle.create("farm-1", ["z2"], 15)


# ==================== start ====================


def test_start_stamps_actual_start(lifecycle, farm):
    run = lifecycle.create("farm-1", ["z1"], 30)
    started = lifecycle.start(run.run_id)

    assert started.status == RunStatus.RUNNING
    assert started.actual_start is not None
    assert lifecycle.active_run("farm-1").run_id == run.run_id


def test_start_twice_is_rejected(lifecycle, farm):
    run = lifecycle.create("farm-1", ["z1"], 30)
    lifecycle.start(run.run_id)

    with pytest.raises(ConflictError) as exc_info:
        lifecycle.start(run.run_id)
    assert exc_info.value.code == ConflictError.INVALID_TRANSITION


def test_start_rechecks_single_running_run(lifecycle, farm):
    first = lifecycle.create("farm-1", ["z1"], 30)
    second = lifecycle.create("farm-1", ["z2"], 30)
    lifecycle.start(first.run_id)

    with pytest.raises(ConflictError) as exc_info:
        lifecycle.start(second.run_id)
    assert exc_info.value.code == ConflictError.IRRIGATION_ACTIVE
    assert lifecycle.get(second.run_id).status == RunStatus.PENDING


def test_concurrent_starts_on_one_farm_admit_exactly_one(lifecycle, farm):
    pending = [lifecycle.create("farm-1", ["z1"], 10) for _ in range(6)]

    results, errors = _outcomes([lambda run_id=run.run_id: lifecycle.start(run_id) for run in pending])

    assert len(results) == 1
    assert len(errors) == 5
    assert all(error.code == ConflictError.IRRIGATION_ACTIVE for error in errors)
    assert lifecycle.active_run("farm-1").run_id == results[0].run_id


def test_concurrent_creates_with_start_admit_exactly_one(lifecycle, farm):
    results, errors = _outcomes([lambda: lifecycle.create("farm-1", ["z1"], 10, start=True) for _ in range(6)])

    assert len(results) == 1
    assert len(errors) == 5
    running = [run for run in lifecycle.history("farm-1") if run.status == RunStatus.RUNNING]
    assert len(running) == 1


def test_farms_do_not_block_each_other(service, lifecycle, farm, farm_payload):
    service.register_farm({**farm_payload, "farm_id": "farm-2", "name": "South Field"})

    first = lifecycle.create("farm-1", ["z1"], 30, start=True)
    second = lifecycle.create("farm-2", ["z1"], 30, start=True)

    assert first.status == second.status == RunStatus.RUNNING


# ==================== complete ====================


def test_complete_records_efficiency_deltas_and_statistics(lifecycle, farm_repo, farm):
    run = lifecycle.create("farm-1", ["z1", "z2"], 30, start=True)
    deltas = [
        MoistureDelta(zone_id="z1", before=22, after=61),
        {"zone_id": "z2", "before": 30, "after": 58, "device_id": "dev-2"},
    ]

    done = lifecycle.complete(run.run_id, 270, deltas)

    assert done.status == RunStatus.COMPLETED
    assert done.actual_volume == 270
    assert done.efficiency == 90
    assert done.actual_end >= done.actual_start
    assert [d.zone_id for d in done.moisture_deltas] == ["z1", "z2"]
    assert done.average_moisture_increase == 34
    assert done.cost.water == pytest.approx(0.54)

    stats = farm_repo.get("farm-1")
    assert stats.total_irrigation_events == 1
    assert stats.total_water_used == 270
    assert stats.last_irrigation_at == done.actual_end


def test_complete_twice_is_rejected_and_end_unchanged(lifecycle, farm):
    run = lifecycle.create("farm-1", ["z1"], 30, start=True)
    first = lifecycle.complete(run.run_id, 140)

    with pytest.raises(ConflictError) as exc_info:
        lifecycle.complete(run.run_id, 999, now=utc_now() + timedelta(hours=1))

    assert exc_info.value.code == ConflictError.INVALID_TRANSITION
    after = lifecycle.get(run.run_id)
    assert after.actual_end == first.actual_end
    assert after.actual_volume == 140


def test_complete_pending_run_is_rejected(lifecycle, farm):
    run = lifecycle.create("farm-1", ["z1"], 30)
    with pytest.raises(ConflictError):
        lifecycle.complete(run.run_id, 100)


def test_complete_rejects_foreign_delta_zone(lifecycle, farm):
    run = lifecycle.create("farm-1", ["z1"], 30, start=True)

    with pytest.raises(InvariantViolation):
        lifecycle.complete(run.run_id, 100, [{"zone_id": "z3", "before": 10, "after": 40}])
    assert lifecycle.get(run.run_id).status == RunStatus.RUNNING


def test_complete_rejects_negative_volume(lifecycle, farm):
    run = lifecycle.create("farm-1", ["z1"], 30, start=True)
    with pytest.raises(ValidationError) as exc_info:
        lifecycle.complete(run.run_id, -1)
    assert exc_info.value.code == ValidationError.OUT_OF_RANGE


def test_complete_unknown_run(lifecycle, farm):
    with pytest.raises(NotFoundError) as exc_info:
        lifecycle.complete(12345, 10)
    assert exc_info.value.code == NotFoundError.RUN_NOT_FOUND


# ==================== cancel / fail ====================


def test_cancel_pending_then_complete_is_rejected(lifecycle, farm):
    run = lifecycle.create("farm-1", ["z1"], 30)
    cancelled = lifecycle.cancel(run.run_id, "rain expected")

    assert cancelled.status == RunStatus.CANCELLED
    assert "Cancelled: rain expected" in cancelled.notes
    assert cancelled.actual_end is None

    with pytest.raises(ConflictError):
        lifecycle.complete(run.run_id, 100)
    assert lifecycle.get(run.run_id).status == RunStatus.CANCELLED


def test_cancel_running_run_stamps_end_and_frees_farm(lifecycle, farm):
    run = lifecycle.create("farm-1", ["z1"], 30, start=True)
    cancelled = lifecycle.cancel(run.run_id, "pump noise")

    assert cancelled.actual_end is not None
    assert lifecycle.active_run("farm-1") is None
    assert lifecycle.create("farm-1", ["z2"], 10, start=True).status == RunStatus.RUNNING


def test_cancel_terminal_run_is_rejected(lifecycle, farm):
    run = lifecycle.create("farm-1", ["z1"], 30, start=True)
    lifecycle.complete(run.run_id, 150)

    with pytest.raises(ConflictError) as exc_info:
        lifecycle.cancel(run.run_id, "too late")
    assert exc_info.value.code == ConflictError.INVALID_TRANSITION
    assert lifecycle.get(run.run_id).status == RunStatus.COMPLETED


def test_fail_raises_system_error_alert(lifecycle, aggregator, farm):
    run = lifecycle.create("farm-1", ["z1"], 30, start=True)
    failed = lifecycle.fail(run.run_id, "valve stuck")

    assert failed.status == RunStatus.FAILED
    assert "Failed: valve stuck" in failed.notes
    assert [a.alert_type for a in failed.alerts] == [AlertType.SYSTEM_ERROR]

    (alert,) = aggregator.list_pending("farm-1")
    assert alert.alert_type == AlertType.SYSTEM_ERROR
    assert alert.severity == AlertSeverity.CRITICAL
    assert "valve stuck" in alert.message


def test_fail_pending_run_is_rejected(lifecycle, farm):
    run = lifecycle.create("farm-1", ["z1"], 30)
    with pytest.raises(ConflictError):
        lifecycle.fail(run.run_id, "never started")


def test_cancel_racing_complete_has_single_winner(lifecycle, farm):
    for _ in range(5):
        run = lifecycle.create("farm-1", ["z1"], 30, start=True)

        results, errors = _outcomes(
            [
                lambda: lifecycle.complete(run.run_id, 100),
                lambda: lifecycle.cancel(run.run_id, "operator stop"),
            ]
        )

        assert len(results) == 1
        assert len(errors) == 1
        assert errors[0].code == ConflictError.INVALID_TRANSITION
        assert lifecycle.get(run.run_id).status == results[0].status


# ==================== statistics ====================


def test_statistics_aggregate_runs_in_window(lifecycle, farm):
    t0 = utc_now()
    completed = lifecycle.create("farm-1", ["z1", "z2"], 30, start=True, now=t0)
    lifecycle.complete(completed.run_id, 270, now=t0 + timedelta(minutes=30))
    failed = lifecycle.create("farm-1", ["z1"], 20, start=True, now=t0 + timedelta(hours=1))
    lifecycle.fail(failed.run_id, "pump stalled", now=t0 + timedelta(hours=1, minutes=5))
    cancelled = lifecycle.create("farm-1", ["z2"], 10, scheduled_start=t0 + timedelta(hours=2))
    lifecycle.cancel(cancelled.run_id, "rain")
    old = lifecycle.create("farm-1", ["z3"], 15, scheduled_start=t0 - timedelta(days=10))
    lifecycle.cancel(old.run_id, "superseded")

    stats = lifecycle.statistics("farm-1", t0 - timedelta(hours=1), t0 + timedelta(hours=3))

    assert stats["total_runs"] == 3
    assert stats["completed_runs"] == 1
    assert stats["failed_runs"] == 1
    assert stats["cancelled_runs"] == 1
    assert stats["total_water_used"] == 270
    assert stats["total_water_planned"] == 450
    assert stats["average_duration_minutes"] == 20.0
    assert stats["average_efficiency"] == 90.0
    assert stats["total_cost"] == pytest.approx(0.84)

    assert lifecycle.statistics("farm-1")["total_runs"] == 4


def test_statistics_empty_window(lifecycle, farm):
    lifecycle.create("farm-1", ["z1"], 30)
    future = utc_now() + timedelta(days=30)

    stats = lifecycle.statistics("farm-1", future, future + timedelta(days=1))

    assert stats["total_runs"] == 0
    assert stats["completed_runs"] == 0
    assert stats["total_water_used"] == 0
    assert stats["average_duration_minutes"] is None
    assert stats["average_efficiency"] is None
    assert stats["total_cost"] == 0


def test_statistics_rejects_inverted_window_and_unknown_farm(lifecycle, farm):
    now = utc_now()
    with pytest.raises(ValidationError) as exc_info:
        lifecycle.statistics("farm-1", now, now - timedelta(days=1))
    assert exc_info.value.code == ValidationError.OUT_OF_RANGE

    with pytest.raises(NotFoundError):
        lifecycle.statistics("farm-404")
