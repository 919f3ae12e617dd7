from datetime import date, datetime, timezone

import pytest

from vitis.time_utils import day_bounds, next_run_at, parse_iso_date, parse_iso_datetime, to_utc_z


class TestNextRunAt:
    """Digest schedule: Bogota is UTC-5 with no daylight saving."""

    def test_later_today(self):
        now = datetime(2024, 3, 6, 12, 30, tzinfo=timezone.utc)  # 07:30 local
        nxt = next_run_at(now, [8, 12], "America/Bogota")
        assert nxt.astimezone(timezone.utc) == datetime(2024, 3, 6, 13, 0, tzinfo=timezone.utc)

    def test_exact_hour_moves_to_next_slot(self):
        now = datetime(2024, 3, 6, 13, 0, tzinfo=timezone.utc)  # 08:00 local
        nxt = next_run_at(now, [12, 8], "America/Bogota")
        assert nxt.hour == 12
        assert nxt.date() == date(2024, 3, 6)

    def test_rolls_over_to_tomorrow(self):
        now = datetime(2024, 12, 31, 23, 0, tzinfo=timezone.utc)  # 18:00 local
        nxt = next_run_at(now, [8, 12], "America/Bogota")
        assert (nxt.date(), nxt.hour) == (date(2025, 1, 1), 8)

    def test_utc(self):
        now = datetime(2024, 3, 6, 9, 15, tzinfo=timezone.utc)
        assert next_run_at(now, [9], "UTC") == datetime(2024, 3, 7, 9, 0, tzinfo=timezone.utc)

    def test_requires_hours(self):
        with pytest.raises(ValueError):
            next_run_at(datetime.now(timezone.utc), [], "UTC")


class TestParsing:

    def test_parse_iso_datetime_normalizes_to_utc(self):
        assert parse_iso_datetime("2024-03-06T10:00:00-05:00") == datetime(2024, 3, 6, 15, 0)
        assert parse_iso_datetime("2024-03-06T10:00:00Z") == datetime(2024, 3, 6, 10, 0)
        assert parse_iso_datetime("  ") is None

    def test_parse_iso_date(self):
        assert parse_iso_date("2024-03-06") == date(2024, 3, 6)
        assert parse_iso_date(None) is None
        with pytest.raises(ValueError):
            parse_iso_date("March 6")

    def test_day_bounds_and_serialization(self):
        start, end = day_bounds(date(2024, 2, 28))
        assert start == datetime(2024, 2, 28)
        assert end == datetime(2024, 2, 29)
        assert to_utc_z(datetime(2024, 2, 28, 1, 2, 3, 999)) == "2024-02-28T01:02:03Z"
