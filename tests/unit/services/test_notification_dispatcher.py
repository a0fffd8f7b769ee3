import threading
from unittest.mock import MagicMock

import pytest
import requests

from app.domain.exceptions import DependencyError
from app.enums import NotificationChannel
from app.services.utilities.notification_dispatcher import (
    NotificationDispatcher,
    NotificationPayload,
    WebhookTransport,
)

PAYLOAD = NotificationPayload(title="CRITICAL: low moisture", message="Zone z1 at 18%", severity="critical", farm_id="farm-1")


class FailingTransport:
    def send(self, recipient, payload, channel, timeout):
        raise ConnectionError("transport down")


class BlockingTransport:
    def __init__(self):
        self.release = threading.Event()
        self.started = threading.Event()

    def send(self, recipient, payload, channel, timeout):
        self.started.set()
        self.release.wait(5)


@pytest.fixture()
def make_dispatcher():
    created = []

    def factory(*args, **kwargs):
        dispatcher = NotificationDispatcher(*args, **kwargs)
        created.append(dispatcher)
        return dispatcher

    yield factory
    for dispatcher in created:
        dispatcher.shutdown(wait=True)


def test_successful_delivery(make_dispatcher, transport):
    dispatcher = make_dispatcher({NotificationChannel.EMAIL: transport})

    result = dispatcher.deliver("ops@example.com", PAYLOAD, NotificationChannel.EMAIL).result(timeout=5)

    assert result.success is True
    assert result.error is None
    assert transport.sent == [{"recipient": "ops@example.com", "payload": PAYLOAD, "channel": NotificationChannel.EMAIL}]
    assert dispatcher.get_metrics()["delivered"] == 1


def test_transport_failure_resolves_to_failed_result(make_dispatcher):
    dispatcher = make_dispatcher({NotificationChannel.IN_APP: FailingTransport()})

    result = dispatcher.deliver("ops@example.com", PAYLOAD).result(timeout=5)

    assert result.success is False
    assert "transport down" in result.error
    metrics = dispatcher.get_metrics()
    assert metrics["failed"] == 1
    assert metrics["failures_by_channel"] == {"in_app": 1}


def test_missing_transport_is_reported(make_dispatcher):
    dispatcher = make_dispatcher({})
    result = dispatcher.deliver("+34600000000", PAYLOAD, "sms").result(timeout=5)

    assert result.success is False
    assert result.channel == NotificationChannel.SMS
    assert "No transport" in result.error


def test_default_transport_covers_unmapped_channels(make_dispatcher, transport):
    dispatcher = make_dispatcher({}, default_transport=transport)
    assert dispatcher.deliver("ops@example.com", PAYLOAD, NotificationChannel.PUSH).result(timeout=5).success


def test_saturated_dispatcher_drops_without_blocking(make_dispatcher):
    blocking = BlockingTransport()
    dispatcher = make_dispatcher({NotificationChannel.IN_APP: blocking}, max_workers=1, queue_size=0)

    first = dispatcher.deliver("a@example.com", PAYLOAD)
    assert blocking.started.wait(5)
    dropped = dispatcher.deliver("b@example.com", PAYLOAD)

    assert dropped.done()
    assert dropped.result().success is False
    assert dropped.result().error == "dispatcher saturated"

    blocking.release.set()
    assert first.result(timeout=5).success is True
    assert dispatcher.get_metrics()["dropped"] == 1


def test_webhook_transport_posts_json():
    session = MagicMock()
    transport = WebhookTransport("https://hooks.example.com/agrosense", session=session)

    transport.send("ops@example.com", PAYLOAD, NotificationChannel.WEBHOOK, 3.0)

    url = session.post.call_args.args[0]
    kwargs = session.post.call_args.kwargs
    assert url == "https://hooks.example.com/agrosense"
    assert kwargs["timeout"] == 3.0
    assert kwargs["json"]["recipient"] == "ops@example.com"
    assert kwargs["json"]["channel"] == "webhook"
    assert kwargs["json"]["severity"] == "critical"


def test_webhook_transport_wraps_request_errors():
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("refused")
    transport = WebhookTransport("https://hooks.example.com/agrosense", session=session)

    with pytest.raises(DependencyError) as exc_info:
        transport.send("ops@example.com", PAYLOAD, NotificationChannel.WEBHOOK, 3.0)
    assert exc_info.value.code == DependencyError.NOTIFICATION_FAILED
