"""
Concurrency utilities.

Provides:
- ``synchronized``: decorator that acquires an instance ``_lock`` if present.
- ``KeyedLockProvider``: one mutex per key (farm id, device id, ...), the
  in-process implementation of the ``LockProvider`` protocol.
- ``SerialKeyExecutor``: runs submitted callables FIFO per key on a bounded
  thread pool; different keys proceed in parallel.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Deque, Dict, Hashable, Iterator, Tuple

logger = logging.getLogger(__name__)


def synchronized(func: Callable) -> Callable:
    """Decorator that acquires `self._lock` if present on the instance.

    If no `_lock` attribute exists on `self`, the function is executed without
    locking.
    """

    @wraps(func)
    def _wrapped(*args, **kwargs):
        self = args[0] if args else None
        lock = getattr(self, "_lock", None)
        if lock is None:
            return func(*args, **kwargs)
        with lock:
            return func(*args, **kwargs)

    return _wrapped


class KeyedLockProvider:
    """Hands out one exclusive lock per key.

    Entries are reference counted and dropped once no thread holds or waits
    on them, so the table does not grow with every farm or device ever seen.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._locks: Dict[Hashable, Tuple[threading.Lock, int]] = {}

    @contextmanager
    def lock(self, key: Hashable) -> Iterator[None]:
        with self._lock:
            entry, refs = self._locks.get(key, (None, 0))
            if entry is None:
                entry = threading.Lock()
            self._locks[key] = (entry, refs + 1)
        entry.acquire()
        try:
            yield
        finally:
            entry.release()
            with self._lock:
                current, refs = self._locks[key]
                if refs <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (current, refs - 1)


_Task = Tuple[Future, Callable[..., Any], tuple, dict]


class SerialKeyExecutor:
    """Per-key FIFO execution on top of a bounded ``ThreadPoolExecutor``.

    At most one task per key is in flight; tasks for the same key complete in
    submission order. Each ``submit`` returns a ``Future`` carrying the
    callable's result or exception.
    """

    def __init__(self, max_workers: int = 4, *, name: str = "serial") -> None:
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._queues: Dict[Hashable, Deque[_Task]] = {}
        self._closed = False

    def submit(self, key: Hashable, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        with self._lock:
            if self._closed:
                raise RuntimeError("SerialKeyExecutor is shut down")
            queue = self._queues.get(key)
            if queue is None:
                self._queues[key] = deque([(future, fn, args, kwargs)])
                start_drain = True
            else:
                queue.append((future, fn, args, kwargs))
                start_drain = False
        if start_drain:
            self._pool.submit(self._drain, key)
        return future

    def _drain(self, key: Hashable) -> None:
        while True:
            with self._lock:
                queue = self._queues[key]
                if not queue:
                    del self._queues[key]
                    return
                future, fn, args, kwargs = queue.popleft()

            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args, **kwargs)
            except Exception as exc:
                logger.debug("Serial task for key %s raised %s", key, exc)
                future.set_exception(exc)
            else:
                future.set_result(result)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._pool.shutdown(wait=wait)
