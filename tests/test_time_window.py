"""Tests for the schedule time-window evaluator."""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from cost_scheduler.errors import ConfigurationError
from cost_scheduler.time_window import is_in_range, parse_days, parse_time

KOLKATA = ZoneInfo("Asia/Kolkata")
WEEKDAYS = ["Mon", "Tue", "Wed", "Thu", "Fri"]


def local(year, month, day, hour, minute=0, zone=KOLKATA):
    return datetime(year, month, day, hour, minute, tzinfo=zone)


class TestDaytimeWindow:
    @pytest.mark.parametrize(
        "hour, minute, expected",
        [
            (8, 59, False),
            (9, 0, True),
            (10, 0, True),
            (17, 59, True),
            (18, 0, False),
            (23, 0, False),
        ],
    )
    def test_boundaries(self, hour, minute, expected):
        now = local(2024, 1, 17, hour, minute)  # Wednesday
        assert is_in_range("09:00:00", "18:00:00", "Asia/Kolkata", WEEKDAYS, now=now) is expected

    def test_inactive_day(self):
        saturday = local(2024, 1, 20, 10)
        assert is_in_range("09:00:00", "18:00:00", "Asia/Kolkata", WEEKDAYS, now=saturday) is False

    def test_now_is_converted_to_schedule_zone(self):
        # 04:30 UTC is 10:00 in Kolkata, outside a 09-18 window in UTC terms would be false
        now = datetime(2024, 1, 17, 4, 30, tzinfo=timezone.utc)
        assert is_in_range("09:00:00", "18:00:00", "Asia/Kolkata", WEEKDAYS, now=now) is True
        assert is_in_range("09:00:00", "18:00:00", "UTC", WEEKDAYS, now=now) is False

    def test_weekday_taken_in_schedule_zone(self):
        # Friday 20:00 UTC is already Saturday 01:30 in Kolkata
        now = datetime(2024, 1, 19, 20, 0, tzinfo=timezone.utc)
        assert is_in_range("00:00:00", "12:00:00", "Asia/Kolkata", ["Sat"], now=now) is True
        assert is_in_range("00:00:00", "12:00:00", "Asia/Kolkata", ["Fri"], now=now) is False


class TestMidnightWindow:
    def test_late_evening_same_day(self):
        now = local(2024, 1, 17, 23, 30)
        assert is_in_range("22:00:00", "06:00:00", "Asia/Kolkata", ["Wed"], now=now) is True

    def test_early_morning_after_listed_day(self):
        now = local(2024, 1, 18, 2, 0)  # Thursday
        assert is_in_range("22:00:00", "06:00:00", "Asia/Kolkata", ["Wed"], now=now) is True

    def test_daytime_is_outside(self):
        now = local(2024, 1, 18, 10, 0)
        assert is_in_range("22:00:00", "06:00:00", "Asia/Kolkata", ["Wed"], now=now) is False

    def test_early_morning_of_listed_day_needs_previous_day(self):
        now = local(2024, 1, 17, 2, 0)  # Wednesday, window began Tuesday
        assert is_in_range("22:00:00", "06:00:00", "Asia/Kolkata", ["Wed"], now=now) is False
        assert is_in_range("22:00:00", "06:00:00", "Asia/Kolkata", ["Tue", "Wed"], now=now) is True


class TestEdgeCases:
    def test_equal_start_and_end_is_never_active(self):
        for hour in (0, 9, 12, 23):
            now = local(2024, 1, 17, hour)
            assert is_in_range("09:00:00", "09:00:00", "Asia/Kolkata", WEEKDAYS, now=now) is False

    def test_empty_days(self):
        assert is_in_range("09:00", "18:00", "Asia/Kolkata", [], now=local(2024, 1, 17, 10)) is False

    def test_dst_transition_day(self):
        # 2024-03-10 is the US spring-forward Sunday; 09:00 EDT is 13:00 UTC
        now = datetime(2024, 3, 10, 13, 0, tzinfo=timezone.utc)
        assert is_in_range("09:00:00", "17:00:00", "America/New_York", ["Sun"], now=now) is True
        before = datetime(2024, 3, 10, 12, 59, tzinfo=timezone.utc)
        assert is_in_range("09:00:00", "17:00:00", "America/New_York", ["Sun"], now=before) is False

    def test_unknown_timezone(self):
        with pytest.raises(ConfigurationError):
            is_in_range("09:00", "18:00", "Mars/Olympus", WEEKDAYS, now=local(2024, 1, 17, 10))

    def test_naive_now_rejected(self):
        with pytest.raises(ValueError):
            is_in_range("09:00", "18:00", "UTC", WEEKDAYS, now=datetime(2024, 1, 17, 10))


class TestParsing:
    def test_parse_time_formats(self):
        assert parse_time("09:30:15").strftime("%H:%M:%S") == "09:30:15"
        assert parse_time("9:05").strftime("%H:%M:%S") == "09:05:00"

    @pytest.mark.parametrize("value", ["24:00", "12:60", "ab:cd", "1:2:3:4"])
    def test_parse_time_invalid(self, value):
        with pytest.raises(ConfigurationError):
            parse_time(value)

    def test_parse_days(self):
        assert parse_days("Mon, tue,WEDNESDAY") == {"mon", "tue", "wed"}
        assert parse_days(["Sun", "bogus"]) == {"sun"}
        assert parse_days(None) == set()
