"""
Notification Dispatcher
=======================

Delivers alert notifications to farm recipients without blocking the caller.

Each ``deliver`` call is submitted to a bounded worker pool and returns a
``Future[DeliveryResult]``. Failures are logged and counted, never retried
synchronously; when the pool and its backlog are full the delivery is
dropped and a failed result is returned immediately.

Transports:
- ``LoggingTransport``: writes the notification to the application log
  (used for ``in_app`` and as the fallback)
- ``WebhookTransport``: POSTs JSON to a configured URL via ``requests``
"""
from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Protocol

import requests

from app.domain.exceptions import DependencyError
from app.enums import NotificationChannel
from app.utils.concurrency import synchronized
from app.utils.time import to_iso, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationPayload:
    title: str
    message: str
    severity: str = "info"
    farm_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "farm_id": self.farm_id,
            "data": self.data,
        }


@dataclass(frozen=True)
class DeliveryResult:
    recipient: str
    channel: NotificationChannel
    success: bool
    error: Optional[str] = None
    attempted_at: datetime = field(default_factory=utc_now)
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipient": self.recipient,
            "channel": str(self.channel),
            "success": self.success,
            "error": self.error,
            "attempted_at": to_iso(self.attempted_at),
            "duration_ms": round(self.duration_ms, 2),
        }


class NotificationTransport(Protocol):
    """Sends one notification; raises on failure."""

    def send(
        self,
        recipient: str,
        payload: NotificationPayload,
        channel: NotificationChannel,
        timeout: float,
    ) -> None:
        ...


class LoggingTransport:
    """Records notifications in the log instead of sending them anywhere."""

    def send(self, recipient, payload, channel, timeout) -> None:
        logger.info(
            "[%s] notification to %s: %s - %s",
            channel,
            recipient,
            payload.title,
            payload.message,
        )


class WebhookTransport:
    """POSTs the notification as JSON to a single endpoint."""

    def __init__(self, url: str, *, session: Optional[requests.Session] = None):
        self.url = url
        self._session = session or requests.Session()

    def send(self, recipient, payload, channel, timeout) -> None:
        try:
            response = self._session.post(
                self.url,
                json={"recipient": recipient, "channel": str(channel), **payload.to_dict()},
                timeout=timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise DependencyError(
                f"Webhook delivery failed: {exc}", code=DependencyError.NOTIFICATION_FAILED
            ) from exc


class NotificationDispatcher:
    """Bounded, non-blocking fan-out of notifications to transports."""

    def __init__(
        self,
        transports: Optional[Mapping[NotificationChannel, NotificationTransport]] = None,
        *,
        default_transport: Optional[NotificationTransport] = None,
        max_workers: int = 4,
        queue_size: int = 100,
        timeout_seconds: float = 5.0,
    ):
        self._transports: Dict[NotificationChannel, NotificationTransport] = dict(transports or {})
        self._default_transport = default_transport
        self._timeout = timeout_seconds
        self._capacity = max_workers + max(0, queue_size)
        self._slots = threading.BoundedSemaphore(self._capacity)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")
        self._lock = threading.Lock()
        self._submitted = 0
        self._delivered = 0
        self._failed = 0
        self._dropped = 0
        self._failures_by_channel: Dict[str, int] = defaultdict(int)
        logger.info(
            "NotificationDispatcher started (workers=%s capacity=%s timeout=%ss)",
            max_workers,
            self._capacity,
            timeout_seconds,
        )

    def deliver(
        self,
        recipient: str,
        payload: NotificationPayload,
        channel: NotificationChannel = NotificationChannel.IN_APP,
    ) -> "Future[DeliveryResult]":
        """Queue one delivery. The returned future always resolves to a ``DeliveryResult``."""
        channel = NotificationChannel(channel)
        if not self._slots.acquire(blocking=False):
            self._record_drop(channel)
            future: Future = Future()
            future.set_result(
                DeliveryResult(recipient=recipient, channel=channel, success=False, error="dispatcher saturated")
            )
            return future

        self._record_submit()
        try:
            future = self._pool.submit(self._send, recipient, payload, channel)
        except RuntimeError:
            self._slots.release()
            raise
        future.add_done_callback(lambda _f: self._slots.release())
        return future

    def _send(self, recipient: str, payload: NotificationPayload, channel: NotificationChannel) -> DeliveryResult:
        started = time.monotonic()
        transport = self._transports.get(channel, self._default_transport)
        try:
            if transport is None:
                raise DependencyError(
                    f"No transport configured for channel {channel}",
                    code=DependencyError.NOTIFICATION_FAILED,
                )
            transport.send(recipient, payload, channel, self._timeout)
        except Exception as exc:
            elapsed = (time.monotonic() - started) * 1000
            self._record_result(channel, success=False)
            logger.warning("Notification to %s via %s failed: %s", recipient, channel, exc)
            return DeliveryResult(recipient, channel, success=False, error=str(exc), duration_ms=elapsed)

        elapsed = (time.monotonic() - started) * 1000
        self._record_result(channel, success=True)
        return DeliveryResult(recipient, channel, success=True, duration_ms=elapsed)

    @synchronized
    def _record_submit(self) -> None:
        self._submitted += 1

    @synchronized
    def _record_result(self, channel: NotificationChannel, *, success: bool) -> None:
        if success:
            self._delivered += 1
        else:
            self._failed += 1
            self._failures_by_channel[str(channel)] += 1

    @synchronized
    def _record_drop(self, channel: NotificationChannel) -> None:
        self._dropped += 1
        self._failures_by_channel[str(channel)] += 1
        if self._dropped == 1 or self._dropped % 10 == 0:
            logger.warning(
                "NotificationDispatcher saturated (capacity=%d); total_dropped=%d",
                self._capacity,
                self._dropped,
            )

    @synchronized
    def get_metrics(self) -> Dict[str, Any]:
        """Return lightweight delivery counters for health endpoints."""
        return {
            "submitted": self._submitted,
            "delivered": self._delivered,
            "failed": self._failed,
            "dropped": self._dropped,
            "failures_by_channel": dict(self._failures_by_channel),
            "capacity": self._capacity,
        }

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
