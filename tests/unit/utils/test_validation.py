from datetime import datetime, timedelta, timezone

import pytest

from app.domain.exceptions import ValidationError
from app.schemas.readings import ReadingPayload
from app.utils.numbers import clamp, round_half_up
from app.utils.time import coerce_datetime, to_iso
from app.utils.validation import parse_model, sanitize_string


def test_parse_model_returns_instance():
    payload = parse_model(ReadingPayload, {"moisture": 40, "battery": 80, "unknown": "ignored"})
    assert payload.moisture == 40
    assert payload.timestamp is None


def test_parse_model_bound_errors_are_out_of_range():
    with pytest.raises(ValidationError) as exc_info:
        parse_model(ReadingPayload, {"moisture": 140, "battery": 120})

    error = exc_info.value
    assert error.code == ValidationError.OUT_OF_RANGE
    assert {e["field"] for e in error.detail["errors"]} == {"moisture", "battery"}


def test_parse_model_mixed_errors_are_malformed():
    with pytest.raises(ValidationError) as exc_info:
        parse_model(ReadingPayload, {"moisture": 140})
    assert exc_info.value.code == ValidationError.MALFORMED_PAYLOAD


@pytest.mark.parametrize("body", [None, [], "moisture=40"])
def test_parse_model_rejects_non_objects(body):
    with pytest.raises(ValidationError) as exc_info:
        parse_model(ReadingPayload, body)
    assert exc_info.value.code == ValidationError.MALFORMED_PAYLOAD


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, None),
        ("   ", None),
        ("  rain expected ", "rain expected"),
        ("<script>", "&lt;script&gt;"),
        (42, "42"),
    ],
)
def test_sanitize_string(raw, expected):
    assert sanitize_string(raw) == expected


def test_sanitize_string_truncates():
    assert sanitize_string("x" * 50, max_length=10) == "x" * 10


@pytest.mark.parametrize("value, expected", [(0.5, 1), (1.5, 2), (2.5, 3), (2.49, 2), (-0.5, 0)])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


def test_clamp():
    assert clamp(1.4, 0.0, 1.0) == 1.0
    assert clamp(-0.2, 0.0, 1.0) == 0.0
    assert clamp(0.3, 0.0, 1.0) == 0.3


def test_coerce_datetime_normalizes_to_utc():
    parsed = coerce_datetime("2026-05-01T08:00:00+02:00")
    assert parsed == datetime(2026, 5, 1, 6, 0, tzinfo=timezone.utc)
    assert coerce_datetime("2026-05-01T06:00:00Z") == parsed
    assert coerce_datetime("2026-05-01T06:00:00").tzinfo == timezone.utc
    assert coerce_datetime("yesterday") is None
    assert coerce_datetime(12) is None


def test_to_iso_sorts_chronologically():
    base = datetime(2026, 5, 1, 6, 0, tzinfo=timezone.utc)
    stamps = [to_iso(base), to_iso(base + timedelta(microseconds=1)), to_iso(base + timedelta(seconds=1))]
    assert stamps == sorted(stamps)
    assert stamps[0] == "2026-05-01T06:00:00.000000+00:00"
