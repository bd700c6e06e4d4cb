"""Tests for datetime parsing and normalization."""

from datetime import datetime, timedelta, timezone

import pytest

from assetsync.services.datetime_service import (
    format_timestamp,
    normalize_timestamp,
    now_iso,
    now_utc,
    parse_datetime,
)


class TestParseDatetime:
    def test_parse_full_format(self) -> None:
        result = parse_datetime("2026-02-02 22:21:29.975359+00")
        assert result.year == 2026
        assert result.month == 2
        assert result.day == 2
        assert result.hour == 22
        assert result.minute == 21

    def test_parse_date_only(self) -> None:
        result = parse_datetime("2026-02-02")
        assert (result.year, result.month, result.day, result.hour) == (2026, 2, 2, 0)
        assert result.tzinfo is not None

    def test_parse_with_default_timezone(self) -> None:
        result = parse_datetime("2026-02-02 10:30", default_tz="America/New_York")
        assert result.hour == 10
        assert result.utcoffset() == timedelta(hours=-5)

    def test_parse_http_date(self) -> None:
        result = parse_datetime("Wed, 21 Oct 2015 07:28:00 GMT")
        assert result.astimezone(timezone.utc) == datetime(2015, 10, 21, 7, 28, tzinfo=timezone.utc)

    def test_parse_datetime_object(self) -> None:
        dt = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert parse_datetime(dt) == dt

    def test_parse_datetime_naive_adds_tz(self) -> None:
        result = parse_datetime(datetime(2026, 1, 1, 12, 0), default_tz="UTC")
        assert result.tzinfo is not None

    def test_unparseable(self) -> None:
        with pytest.raises(ValueError):
            parse_datetime("unknown")

    @pytest.mark.parametrize("value", ["12:30", "P1D", "2024-01-01/2024-01-02", "now"])
    def test_values_without_a_fixed_date_are_rejected(self, value: str) -> None:
        with pytest.raises(ValueError):
            parse_datetime(value)


class TestFormatting:
    def test_format_timestamp_truncates_to_milliseconds(self) -> None:
        dt = datetime(2026, 2, 2, 22, 21, 29, 975359, tzinfo=timezone.utc)
        assert format_timestamp(dt) == "2026-02-02T22:21:29.975Z"

    def test_format_timestamp_converts_to_utc(self) -> None:
        dt = datetime(2026, 2, 2, 1, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(dt) == "2026-02-01T23:00:00.000Z"

    def test_normalize_absent_values(self) -> None:
        assert normalize_timestamp(None) is None
        assert normalize_timestamp("   ") is None

    def test_normalize_is_stable(self) -> None:
        once = normalize_timestamp("2024-01-01T00:00:00Z")
        assert once == "2024-01-01T00:00:00.000Z"
        assert normalize_timestamp(once) == once

    def test_now_utc(self) -> None:
        assert now_utc().tzinfo is not None

    def test_now_iso_shape(self) -> None:
        value = now_iso()
        assert value.endswith("Z")
        assert len(value) == len("2024-01-01T00:00:00.000Z")
