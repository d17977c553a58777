"""Calendar normalization — activity dates across zones and DST."""

from datetime import date, datetime, timezone

from coursepath.progress.calendar import UTC, days_between, resolve_timezone, to_activity_date, today_in


class TestResolveTimezone:
    def test_known_zone(self):
        assert str(resolve_timezone("America/New_York")) == "America/New_York"

    def test_none_falls_back_to_utc(self):
        assert resolve_timezone(None) is UTC

    def test_empty_falls_back_to_utc(self):
        assert resolve_timezone("") is UTC

    def test_unknown_name_falls_back_to_utc(self):
        assert resolve_timezone("Mars/Olympus_Mons") is UTC

    def test_malformed_name_falls_back_to_utc(self):
        assert resolve_timezone("../../etc/passwd") is UTC


class TestActivityDate:
    def test_utc_instant_in_utc(self):
        ts = datetime(2026, 3, 10, 23, 30, tzinfo=timezone.utc)
        assert to_activity_date(ts, "UTC") == date(2026, 3, 10)

    def test_late_evening_utc_is_next_day_in_tokyo(self):
        ts = datetime(2026, 3, 10, 23, 30, tzinfo=timezone.utc)
        assert to_activity_date(ts, "Asia/Tokyo") == date(2026, 3, 11)

    def test_early_morning_utc_is_previous_day_in_los_angeles(self):
        ts = datetime(2026, 3, 11, 3, 0, tzinfo=timezone.utc)
        assert to_activity_date(ts, "America/Los_Angeles") == date(2026, 3, 10)

    def test_naive_timestamp_treated_as_utc(self):
        naive = datetime(2026, 3, 11, 3, 0)
        aware = naive.replace(tzinfo=timezone.utc)
        assert to_activity_date(naive, "America/Los_Angeles") == to_activity_date(aware, "America/Los_Angeles")

    def test_invalid_zone_uses_utc_dates(self):
        ts = datetime(2026, 3, 10, 23, 30, tzinfo=timezone.utc)
        assert to_activity_date(ts, "Not/AZone") == date(2026, 3, 10)

    def test_dst_spring_forward_day_is_one_date(self):
        """2026-03-08 is 23 hours long in New York; both ends land on that date."""
        start = datetime(2026, 3, 8, 5, 0, tzinfo=timezone.utc)  # 00:00 EST
        end = datetime(2026, 3, 9, 3, 59, tzinfo=timezone.utc)  # 23:59 EDT
        assert to_activity_date(start, "America/New_York") == date(2026, 3, 8)
        assert to_activity_date(end, "America/New_York") == date(2026, 3, 8)

    def test_dst_fall_back_day_is_one_date(self):
        """2026-11-01 is 25 hours long in New York."""
        start = datetime(2026, 11, 1, 4, 0, tzinfo=timezone.utc)  # 00:00 EDT
        end = datetime(2026, 11, 2, 4, 59, tzinfo=timezone.utc)  # 23:59 EST
        assert to_activity_date(start, "America/New_York") == date(2026, 11, 1)
        assert to_activity_date(end, "America/New_York") == date(2026, 11, 1)


class TestDaysBetween:
    def test_consecutive(self):
        assert days_between(date(2026, 2, 28), date(2026, 3, 1)) == 1

    def test_same_day(self):
        assert days_between(date(2026, 3, 1), date(2026, 3, 1)) == 0

    def test_negative(self):
        assert days_between(date(2026, 3, 5), date(2026, 3, 1)) == -4

    def test_across_year(self):
        assert days_between(date(2025, 12, 31), date(2026, 1, 1)) == 1


class TestTodayIn:
    def test_injected_now(self):
        now = datetime(2026, 6, 1, 1, 0, tzinfo=timezone.utc)
        assert today_in("UTC", now) == date(2026, 6, 1)
        assert today_in("America/Chicago", now) == date(2026, 5, 31)

    def test_defaults_to_current_instant(self):
        assert isinstance(today_in(None), date)
