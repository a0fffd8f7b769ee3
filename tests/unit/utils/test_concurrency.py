import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from app.utils.concurrency import KeyedLockProvider, SerialKeyExecutor


def test_keyed_lock_serializes_same_key():
    locks = KeyedLockProvider()
    inside = []
    overlaps = []

    def critical(_):
        with locks.lock("farm-1"):
            inside.append(1)
            if len(inside) > 1:
                overlaps.append(True)
            time.sleep(0.005)
            inside.pop()

    with ThreadPoolExecutor(max_workers=6) as pool:
        list(pool.map(critical, range(12)))

    assert overlaps == []
    assert not locks._locks


def test_keyed_lock_allows_different_keys_in_parallel():
    locks = KeyedLockProvider()
    both_inside = threading.Barrier(2, timeout=5)

    def hold(key):
        with locks.lock(key):
            both_inside.wait()

    with ThreadPoolExecutor(max_workers=2) as pool:
        list(pool.map(hold, ["farm-1", "farm-2"]))


def test_keyed_lock_released_on_exception():
    locks = KeyedLockProvider()
    with pytest.raises(RuntimeError):
        with locks.lock("dev-1"):
            raise RuntimeError("boom")

    with locks.lock("dev-1"):
        pass
    assert not locks._locks


def test_serial_executor_runs_each_key_in_order():
    executor = SerialKeyExecutor(4, name="test-serial")
    seen = {"a": [], "b": []}

    def record(key, value):
        time.sleep(0.001)
        seen[key].append(value)
        return value

    futures = [executor.submit(key, record, key, i) for i in range(25) for key in ("a", "b")]
    results = [f.result(timeout=10) for f in futures]
    executor.shutdown()

    assert seen["a"] == list(range(25))
    assert seen["b"] == list(range(25))
    assert len(results) == 50
    assert "a" not in executor._queues


def test_serial_executor_propagates_exceptions_and_continues():
    executor = SerialKeyExecutor(2, name="test-serial")

    def explode():
        raise ValueError("bad sample")

    failed = executor.submit("dev-1", explode)
    ok = executor.submit("dev-1", lambda: "next")

    with pytest.raises(ValueError):
        failed.result(timeout=5)
    assert ok.result(timeout=5) == "next"
    executor.shutdown()


def test_serial_executor_rejects_after_shutdown():
    executor = SerialKeyExecutor(1, name="test-serial")
    executor.shutdown()
    with pytest.raises(RuntimeError):
        executor.submit("dev-1", lambda: None)
