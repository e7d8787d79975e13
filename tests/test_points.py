"""
Tests for the daily attendance points calculator.
"""
from datetime import date

import pytest

from points import DayPoints, get_day_points, parse_local_date, points_for_month


# 2024-09-02 is a Monday
MONDAY = date(2024, 9, 2)
TUESDAY = date(2024, 9, 3)
THURSDAY = date(2024, 9, 5)
FRIDAY = date(2024, 9, 6)
SATURDAY = date(2024, 9, 7)
SUNDAY = date(2024, 9, 8)


class TestWeekdaySchedule:
    """Days without a calendar override."""

    def test_monday(self):
        assert get_day_points(MONDAY) == DayPoints(2, "Motivation Monday", 'standard_low')

    @pytest.mark.parametrize("day", [TUESDAY, date(2024, 9, 4), THURSDAY])
    def test_midweek(self, day):
        result = get_day_points(day)
        assert result.points == 1
        assert result.reason == "Daily Attendance"

    def test_friday(self):
        assert get_day_points(FRIDAY) == DayPoints(5, "Focus Friday", 'standard_high')

    @pytest.mark.parametrize("day", [SATURDAY, SUNDAY])
    def test_weekend(self, day):
        assert get_day_points(day) == DayPoints(0, "No School", 'weekend')

    def test_accepts_iso_string(self):
        assert get_day_points("2024-09-06").points == 5


class TestOverrides:
    """Calendar overrides and their precedence."""

    def test_no_school_beats_weekday(self):
        overrides = {FRIDAY: {'event_type': 'no_school', 'title': 'Staff Development'}}
        assert get_day_points(FRIDAY, overrides) == DayPoints(0, "Staff Development", 'no_school')

    def test_break_without_title(self):
        overrides = {MONDAY: {'event_type': 'break'}}
        assert get_day_points(MONDAY, overrides) == DayPoints(0, "Holiday Break", 'break')

    def test_no_school_beats_override_points(self):
        overrides = {MONDAY: {'event_type': 'no_school', 'override_points': 9}}
        assert get_day_points(MONDAY, overrides).points == 0

    def test_override_points_verbatim(self):
        overrides = {TUESDAY: {'event_type': 'custom', 'override_points': 7}}
        assert get_day_points(TUESDAY, overrides) == DayPoints(7, "Manual Adjustment", 'custom')

    def test_override_points_on_weekend(self):
        overrides = {SATURDAY: {'event_type': 'custom', 'override_points': 3, 'title': 'Saturday School'}}
        assert get_day_points(SATURDAY, overrides) == DayPoints(3, "Saturday School", 'custom')

    def test_zero_override_points_is_respected(self):
        overrides = {FRIDAY: {'event_type': 'custom', 'override_points': 0}}
        assert get_day_points(FRIDAY, overrides).points == 0

    def test_special_event_base(self):
        overrides = {THURSDAY: {'event_type': 'special', 'title': 'Spirit Day'}}
        assert get_day_points(THURSDAY, overrides) == DayPoints(5, "Special Event: Spirit Day", 'special')

    def test_special_event_bonus_and_multiplier(self):
        overrides = {THURSDAY: {'event_type': 'special', 'title': 'Rally', 'bonus_points': 3, 'point_multiplier': 2}}
        assert get_day_points(THURSDAY, overrides).points == 16

    def test_bonus_without_special_type(self):
        overrides = {TUESDAY: {'event_type': 'default', 'title': 'Picture Day', 'bonus_points': 2}}
        result = get_day_points(TUESDAY, overrides)
        assert result.points == 7
        assert result.classification == 'special'

    def test_fractional_multiplier_rounds(self):
        overrides = {TUESDAY: {'event_type': 'special', 'title': 'Half', 'point_multiplier': 1.5}}
        assert get_day_points(TUESDAY, overrides).points == 8

    def test_half_point_rounds_up(self):
        overrides = {TUESDAY: {'event_type': 'special', 'title': 'Half Day', 'point_multiplier': 0.5}}
        assert get_day_points(TUESDAY, overrides).points == 3

    def test_override_keyed_by_iso_string(self):
        overrides = {'2024-09-06': {'event_type': 'break'}}
        assert get_day_points(FRIDAY, overrides).points == 0

    def test_overrides_as_list_of_objects(self):
        class Event:
            date = "2024-09-03"
            event_type = 'custom'
            override_points = 4
            title = None
            bonus_points = None
            point_multiplier = None

        assert get_day_points(TUESDAY, [Event()]).points == 4

    def test_default_override_without_values_uses_schedule(self):
        overrides = {FRIDAY: {'event_type': 'default', 'title': 'Reminder'}}
        assert get_day_points(FRIDAY, overrides).points == 5


class TestDateParsing:

    def test_parse_local_date_components(self):
        assert parse_local_date("2024-03-10") == date(2024, 3, 10)

    def test_parse_local_date_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_local_date("not-a-date")


def test_points_for_month_covers_every_day():
    overrides = {date(2024, 9, 2): {'event_type': 'no_school', 'title': 'Labor Day'}}
    days = points_for_month(2024, 9, overrides)

    assert len(days) == 30
    assert days[0] == (date(2024, 9, 1), DayPoints(0, "No School", 'weekend'))
    assert days[1][1].reason == "Labor Day"
    assert days[5][1].points == 5
