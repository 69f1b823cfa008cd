"""
Timestamp Extraction Tests

Covers every resolution path: structured, repaired string, clamped
string, epoch milliseconds, identifier prefix and the Unknown fallback.

Run: python -m pytest teamlog/tests/test_timestamps.py -v
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from teamlog.core.types import Timestamp
from teamlog.messages.model import (
    Absent,
    EncodedString,
    EpochMillis,
    StructuredTime,
    classify_timestamp,
)
from teamlog.messages.timestamps import (
    extract_timestamp,
    repair_separators,
    resolve_timestamp,
)

UTC = timezone.utc
NOW = Timestamp.from_datetime(datetime(2026, 2, 9, 12, 0, 0, tzinfo=UTC))


def ts(*args: int) -> Timestamp:
    return Timestamp.from_datetime(datetime(*args, tzinfo=UTC))


# =============================================================================
# CLASSIFICATION
# =============================================================================

def test_classify_tags_each_encoding() -> None:
    dt = datetime(2026, 2, 9, tzinfo=UTC)
    assert classify_timestamp(dt) == StructuredTime(dt)
    assert classify_timestamp("2026-02-09") == EncodedString("2026-02-09")
    assert classify_timestamp(1770600000000) == EpochMillis(1770600000000.0)
    assert isinstance(classify_timestamp(None), Absent)
    assert isinstance(classify_timestamp(True), Absent)
    assert isinstance(classify_timestamp(float("nan")), Absent)
    assert isinstance(classify_timestamp({"seconds": 1}), Absent)


# =============================================================================
# STRUCTURED PATH
# =============================================================================

def test_structured_timestamp_returned_unchanged() -> None:
    dt = datetime(2026, 2, 9, 1, 10, 0, 123456, tzinfo=UTC)
    assert extract_timestamp({"ts": dt}, "abc", now=NOW) == Timestamp.from_datetime(dt)


def test_future_structured_timestamp_is_not_clamped() -> None:
    future = NOW.to_datetime() + timedelta(hours=3)
    assert extract_timestamp({"ts": future}, "abc", now=NOW) == Timestamp.from_datetime(future)


def test_naive_structured_timestamp_read_as_utc() -> None:
    naive = datetime(2026, 2, 9, 1, 10, 0)
    assert extract_timestamp({"ts": naive}, "abc", now=NOW) == ts(2026, 2, 9, 1, 10, 0)


# =============================================================================
# STRING PATH
# =============================================================================

def test_repair_separators_fixes_first_time_only() -> None:
    assert repair_separators("2026-02-09T01-10-00Z") == "2026-02-09T01:10:00Z"
    assert repair_separators("2026-02-09T01:10:00Z") == "2026-02-09T01:10:00Z"


def test_hyphenated_string_is_repaired() -> None:
    result = extract_timestamp({"ts": "2026-02-09T01-10-00Z"}, "abc", now=NOW)
    assert result == ts(2026, 2, 9, 1, 10, 0)


def test_well_formed_string_with_offset() -> None:
    result = extract_timestamp({"ts": "2026-02-09T03:10:00+02:00"}, "abc", now=NOW)
    assert result == ts(2026, 2, 9, 1, 10, 0)


def test_string_without_offset_read_as_utc() -> None:
    result = extract_timestamp({"ts": "2026-02-09T01:10:00"}, "abc", now=NOW)
    assert result == ts(2026, 2, 9, 1, 10, 0)


def test_string_far_in_future_is_clamped_to_now() -> None:
    result = extract_timestamp({"ts": "2026-02-09T13:00:00Z"}, "abc", now=NOW)
    assert result == NOW


def test_string_slightly_in_future_is_kept() -> None:
    result = extract_timestamp({"ts": "2026-02-09T12:04:00Z"}, "abc", now=NOW)
    assert result == ts(2026, 2, 9, 12, 4, 0)


def test_skew_tolerance_is_configurable() -> None:
    result = extract_timestamp(
        {"ts": "2026-02-09T12:04:00Z"}, "abc", now=NOW, future_skew_seconds=60,
    )
    assert result == NOW


def test_unparseable_string_falls_back_to_id() -> None:
    result = extract_timestamp({"ts": "yesterday-ish"}, "2026-02-08T09-30-00Z_agent", now=NOW)
    assert result == ts(2026, 2, 8, 9, 30, 0)


# =============================================================================
# NUMERIC PATH
# =============================================================================

def test_number_is_epoch_millis() -> None:
    millis = ts(2026, 2, 9, 1, 10, 0).millis
    assert extract_timestamp({"ts": millis}, "abc", now=NOW) == ts(2026, 2, 9, 1, 10, 0)


def test_future_number_is_not_clamped() -> None:
    future = NOW.plus_seconds(86_400)
    assert extract_timestamp({"ts": future.millis}, "abc", now=NOW) == future


def test_number_beyond_datetime_range_is_not_millis() -> None:
    nanos = 1_770_000_000_000_000_000
    assert extract_timestamp({"ts": nanos}, "abc", now=NOW) == Timestamp.UNKNOWN
    assert extract_timestamp({"ts": -nanos}, "abc", now=NOW) == Timestamp.UNKNOWN

    result = extract_timestamp({"ts": nanos}, "2026-02-08T09-30-00Z_agent", now=NOW)
    assert result == ts(2026, 2, 8, 9, 30, 0)
    assert result.isoformat() == "2026-02-08T09:30:00.000Z"


def test_largest_representable_millis_is_kept() -> None:
    last = ts(9999, 12, 31, 23, 59, 59)
    assert extract_timestamp({"ts": last.millis}, "abc", now=NOW) == last


# =============================================================================
# IDENTIFIER FALLBACK AND UNKNOWN
# =============================================================================

def test_absent_timestamp_uses_id_prefix() -> None:
    result = extract_timestamp({}, "2026-02-09T01-10-00Z_agent", now=NOW)
    assert result == ts(2026, 2, 9, 1, 10, 0)


def test_id_prefix_is_not_clamped() -> None:
    result = extract_timestamp({}, "2099-01-01T00-00-00Z_agent", now=NOW)
    assert result == ts(2099, 1, 1, 0, 0, 0)


def test_nothing_usable_is_unknown() -> None:
    result = extract_timestamp({"ts": "garbage"}, "Xk29sd0aQ", now=NOW)
    assert result == Timestamp.UNKNOWN
    assert not result.is_known


def test_unknown_sorts_before_everything() -> None:
    ordered = sorted([NOW, Timestamp.UNKNOWN, ts(2020, 1, 1)])
    assert ordered[0] == Timestamp.UNKNOWN


def test_resolve_is_total_over_variants() -> None:
    for raw in (Absent(), EncodedString(""), EpochMillis(0.0)):
        assert isinstance(resolve_timestamp(raw, "", now=NOW), Timestamp)
