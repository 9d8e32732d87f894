from datetime import date, datetime

import pytest

from norboy_bot.models import Holiday
from norboy_bot.services.clock import Clock, InvalidSimulatedTimeError
from norboy_bot.services.holiday_service import (
    CombinedHolidayCalendar,
    DatabaseHolidayCalendar,
    HolidayCalendar,
    HolidayEntry,
    StaticHolidayCalendar,
)
from norboy_bot.services.schedule_gate import DayWindow, ScheduleGate, ScheduleValidationError, WeeklySchedule


def _gate(moment, calendar=None, **kwargs):
    clock = Clock("America/Bogota", simulated=moment)
    return ScheduleGate(clock, calendar=calendar, schedule=WeeklySchedule(), **kwargs)


class TestWeekdayWindow:
    def test_inside_window(self):
        assert _gate("2026-03-04T16:29:00").is_out_of_hours() is False

    def test_end_is_exclusive(self):
        assert _gate("2026-03-04T16:30:00").is_out_of_hours() is True

    def test_after_close(self):
        assert _gate("2026-03-04T16:31:00").is_out_of_hours() is True

    def test_start_is_inclusive(self):
        assert _gate("2026-03-04T08:00:00").is_out_of_hours() is False
        assert _gate("2026-03-04T07:59:00").is_out_of_hours() is True


class TestWeekend:
    def test_saturday_morning_open(self):
        assert _gate("2026-03-07T11:59:00").is_out_of_hours() is False

    def test_saturday_afternoon_closed(self):
        assert _gate("2026-03-07T12:00:00").is_out_of_hours() is True

    def test_sunday_closed(self):
        assert _gate("2026-03-08T10:00:00").is_out_of_hours() is True


class TestHolidays:
    def test_recurring_holiday_matches_any_year(self):
        calendar = StaticHolidayCalendar([HolidayEntry(date(2020, 7, 20), "Independencia")])
        assert _gate("2027-07-20T10:00:00", calendar).is_out_of_hours() is True

    def test_fixed_holiday_matches_only_its_year(self):
        calendar = StaticHolidayCalendar([HolidayEntry(date(2026, 3, 23), "San José", recurring=False)])
        assert _gate("2026-03-23T10:00:00", calendar).is_out_of_hours() is True
        assert _gate("2027-03-23T10:00:00", calendar).is_out_of_hours() is False

    def test_inactive_entry_ignored(self):
        calendar = StaticHolidayCalendar([HolidayEntry(date(2026, 3, 4), "Borrado", active=False)])
        assert _gate("2026-03-04T10:00:00", calendar).is_out_of_hours() is False

    def test_holiday_wins_over_disabled_schedule_check(self):
        calendar = StaticHolidayCalendar.from_yaml()
        gate = _gate("2026-12-25T10:00:00", calendar, schedule_check_enabled=False)
        assert gate.is_out_of_hours() is True
        assert gate.holiday_name() is not None

    def test_holiday_check_toggle(self):
        calendar = StaticHolidayCalendar.from_yaml()
        gate = _gate("2026-12-08T10:00:00", calendar)
        gate.set_holiday_check(False)
        assert gate.is_out_of_hours() is False

    def test_failing_calendar_treated_as_working_day(self):
        class BrokenCalendar(StaticHolidayCalendar):
            def entries(self):
                raise RuntimeError("calendar unavailable")

        assert _gate("2026-03-04T10:00:00", BrokenCalendar()).is_out_of_hours() is False

    def test_database_calendar(self, db_session_factory):
        db = db_session_factory()
        db.add(Holiday(date="2026-10-12", name="Día de la Raza", recurring=False, active=True))
        db.commit()
        db.close()

        calendar = CombinedHolidayCalendar(StaticHolidayCalendar(), DatabaseHolidayCalendar(db_session_factory))

        assert calendar.is_holiday(date(2026, 10, 12)) is True
        assert calendar.is_holiday(date(2027, 10, 12)) is False

    def test_calendar_base_requires_entries(self):
        with pytest.raises(TypeError):
            HolidayCalendar()

    def test_custom_calendar_only_supplies_entries(self):
        class OneDayCalendar(HolidayCalendar):
            def entries(self):
                return [HolidayEntry(date(2026, 5, 1), "Trabajo")]

        calendar = OneDayCalendar()

        assert calendar.is_holiday(date(2027, 5, 1)) is True
        assert calendar.holiday_for(date(2026, 5, 2)) is None


class TestScheduleCheckToggle:
    def test_disabled_schedule_check_is_always_open(self):
        gate = _gate("2026-03-08T22:00:00")
        gate.set_schedule_check(False)
        assert gate.is_out_of_hours() is False


class TestScheduleUpdates:
    def test_labels(self):
        schedule = WeeklySchedule()
        assert schedule.formatted() == {
            "weekdays": "8:00 AM - 4:30 PM",
            "saturday": "9:00 AM - 12:00 PM",
            "sunday": "Cerrado",
        }

    def test_update_applies(self):
        schedule = WeeklySchedule()
        schedule.update("sunday", enabled=True, start_hour=10, end_hour=13)
        assert schedule.sunday.label() == "10:00 AM - 1:00 PM"

    def test_invalid_hour_rejected(self):
        schedule = WeeklySchedule()
        with pytest.raises(ScheduleValidationError):
            schedule.update("weekdays", end_hour=24)

    def test_end_before_start_rejected_and_unchanged(self):
        schedule = WeeklySchedule()
        with pytest.raises(ScheduleValidationError):
            schedule.update("weekdays", start_hour=17)
        assert schedule.weekdays.start_hour == 8

    def test_unknown_day_type_rejected(self):
        with pytest.raises(ScheduleValidationError):
            WeeklySchedule().update("holidays", enabled=False)

    def test_window_contains_uses_fractional_hours(self):
        window = DayWindow(True, 8, 0, 16, 30)
        assert window.contains(datetime(2026, 3, 4, 16, 29)) is True
        assert window.contains(datetime(2026, 3, 4, 16, 30)) is False


class TestClock:
    def test_simulated_hour_keeps_today(self):
        clock = Clock("America/Bogota")
        clock.set_simulated("07:45")
        now = clock.now()
        assert (now.hour, now.minute) == (7, 45)
        assert now.date() == clock.real_now().date()

    def test_simulated_iso_datetime(self):
        clock = Clock("America/Bogota", simulated="2026-03-04T10:00:00")
        assert clock.today() == date(2026, 3, 4)
        assert clock.simulated == "2026-03-04T10:00:00"

    def test_invalid_simulated_time(self):
        clock = Clock("America/Bogota")
        with pytest.raises(InvalidSimulatedTimeError):
            clock.set_simulated("25:00")

    def test_clear(self):
        clock = Clock("America/Bogota", simulated="06:00")
        clock.clear_simulated()
        assert clock.simulated is None
