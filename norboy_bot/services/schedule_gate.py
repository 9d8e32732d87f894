"""Service-hours gate: weekly timetable plus holiday calendar.

Times are compared as fractional hours (``16:30`` is ``16.5``) with the start
inclusive and the end exclusive. Both sub-checks can be switched off at
runtime independently.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Optional, Tuple

from norboy_bot.config import Settings, settings
from norboy_bot.logging_config import get_logger
from norboy_bot.services.clock import Clock
from norboy_bot.services.holiday_service import HolidayCalendar

logger = get_logger("schedule_gate")

DAY_TYPES = ("weekdays", "saturday", "sunday")
CLOSED_LABEL = "Cerrado"


class ScheduleValidationError(ValueError):
    pass


def _format_clock(hour: int, minute: int) -> str:
    period = "AM" if hour < 12 else "PM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {period}"


@dataclass
class DayWindow:
    enabled: bool = True
    start_hour: int = 8
    start_minute: int = 0
    end_hour: int = 16
    end_minute: int = 30

    @property
    def start(self) -> float:
        return self.start_hour + self.start_minute / 60

    @property
    def end(self) -> float:
        return self.end_hour + self.end_minute / 60

    def contains(self, moment: datetime) -> bool:
        if not self.enabled:
            return False
        current = moment.hour + moment.minute / 60
        return self.start <= current < self.end

    def label(self) -> str:
        if not self.enabled:
            return CLOSED_LABEL
        return f"{_format_clock(self.start_hour, self.start_minute)} - {_format_clock(self.end_hour, self.end_minute)}"

    def validate(self) -> None:
        for name in ("start_hour", "end_hour"):
            value = getattr(self, name)
            if not isinstance(value, int) or not 0 <= value <= 23:
                raise ScheduleValidationError(f"{name} must be between 0 and 23, got {value!r}")
        for name in ("start_minute", "end_minute"):
            value = getattr(self, name)
            if not isinstance(value, int) or not 0 <= value <= 59:
                raise ScheduleValidationError(f"{name} must be between 0 and 59, got {value!r}")
        if self.enabled and self.end <= self.start:
            raise ScheduleValidationError("end time must be after start time")


@dataclass
class WeeklySchedule:
    weekdays: DayWindow = field(default_factory=DayWindow)
    saturday: DayWindow = field(default_factory=lambda: DayWindow(True, 9, 0, 12, 0))
    sunday: DayWindow = field(default_factory=lambda: DayWindow(False, 9, 0, 12, 0))
    # Monday=0 .. Friday=4
    weekday_days: Tuple[int, ...] = (0, 1, 2, 3, 4)

    @classmethod
    def from_settings(cls, config: Settings) -> "WeeklySchedule":
        return cls(
            weekdays=DayWindow(
                True,
                config.weekday_start_hour,
                config.weekday_start_minute,
                config.weekday_end_hour,
                config.weekday_end_minute,
            ),
            saturday=DayWindow(
                config.saturday_enabled,
                config.saturday_start_hour,
                config.saturday_start_minute,
                config.saturday_end_hour,
                config.saturday_end_minute,
            ),
            sunday=DayWindow(
                config.sunday_enabled,
                config.sunday_start_hour,
                config.sunday_start_minute,
                config.sunday_end_hour,
                config.sunday_end_minute,
            ),
        )

    def window_for(self, day: date) -> Optional[DayWindow]:
        weekday = day.weekday()
        if weekday == 5:
            return self.saturday
        if weekday == 6:
            return self.sunday
        if weekday in self.weekday_days:
            return self.weekdays
        return None

    def update(self, day_type: str, **changes) -> DayWindow:
        """Apply validated changes to one day type; nothing changes on error."""
        if day_type not in DAY_TYPES:
            raise ScheduleValidationError(f"Unknown day type '{day_type}', expected one of {DAY_TYPES}")
        current: DayWindow = getattr(self, day_type)
        unknown = set(changes) - set(asdict(current))
        if unknown:
            raise ScheduleValidationError(f"Unknown schedule fields: {sorted(unknown)}")

        candidate = DayWindow(**{**asdict(current), **{k: v for k, v in changes.items() if v is not None}})
        candidate.validate()
        setattr(self, day_type, candidate)
        return candidate

    def formatted(self) -> dict:
        return {
            "weekdays": self.weekdays.label(),
            "saturday": self.saturday.label(),
            "sunday": self.sunday.label(),
        }

    def to_dict(self) -> dict:
        return {
            "weekdays": asdict(self.weekdays),
            "saturday": asdict(self.saturday),
            "sunday": asdict(self.sunday),
            "weekday_days": list(self.weekday_days),
        }


class ScheduleGate:
    def __init__(
        self,
        clock: Clock,
        calendar: Optional[HolidayCalendar] = None,
        schedule: Optional[WeeklySchedule] = None,
        schedule_check_enabled: Optional[bool] = None,
        holiday_check_enabled: Optional[bool] = None,
    ):
        self.clock = clock
        self.calendar = calendar
        self.schedule = schedule or WeeklySchedule.from_settings(settings)
        self.schedule_check_enabled = (
            settings.schedule_check_enabled if schedule_check_enabled is None else schedule_check_enabled
        )
        self.holiday_check_enabled = (
            settings.holiday_check_enabled if holiday_check_enabled is None else holiday_check_enabled
        )

    def set_schedule_check(self, enabled: bool) -> None:
        self.schedule_check_enabled = enabled
        logger.info(f"Schedule check {'enabled' if enabled else 'disabled'}")

    def set_holiday_check(self, enabled: bool) -> None:
        self.holiday_check_enabled = enabled
        logger.info(f"Holiday check {'enabled' if enabled else 'disabled'}")

    def holiday_name(self, day: Optional[date] = None) -> Optional[str]:
        if not self.holiday_check_enabled or self.calendar is None:
            return None
        day = day or self.clock.today()
        try:
            entry = self.calendar.holiday_for(day)
        except Exception as e:
            logger.error(f"Holiday lookup failed, treating {day} as a working day: {e}")
            return None
        return entry.name if entry else None

    def is_holiday(self, day: Optional[date] = None) -> bool:
        return self.holiday_name(day) is not None

    def is_out_of_hours(self, now: Optional[datetime] = None) -> bool:
        now = now or self.clock.now()

        if self.is_holiday(now.date()):
            return True

        if not self.schedule_check_enabled:
            return False

        window = self.schedule.window_for(now.date())
        return window is None or not window.contains(now)

    def status(self) -> dict:
        now = self.clock.now()
        return {
            "now": now.isoformat(),
            "timezone": self.clock.timezone_name,
            "simulated_time": self.clock.simulated,
            "schedule_check_enabled": self.schedule_check_enabled,
            "holiday_check_enabled": self.holiday_check_enabled,
            "holiday": self.holiday_name(now.date()),
            "out_of_hours": self.is_out_of_hours(now),
            "schedule": self.schedule.to_dict(),
            "formatted": self.schedule.formatted(),
        }
