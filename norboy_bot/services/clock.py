"""Canonical wall clock in the configured zone, with an operator override."""

import re
from datetime import date, datetime
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from norboy_bot.config import settings
from norboy_bot.logging_config import get_logger

logger = get_logger("clock")

SIMULATED_TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")


class InvalidSimulatedTimeError(ValueError):
    pass


class Clock:
    def __init__(self, timezone_name: Optional[str] = None, simulated: Optional[str] = None):
        self.timezone_name = timezone_name or settings.timezone
        self.zone = ZoneInfo(self.timezone_name)
        self._simulated_time: Optional[Tuple[int, int]] = None
        self._simulated_datetime: Optional[datetime] = None
        self._simulated_raw: Optional[str] = None
        if simulated:
            self.set_simulated(simulated)

    def real_now(self) -> datetime:
        return datetime.now(self.zone)

    def now(self) -> datetime:
        if self._simulated_datetime is not None:
            return self._simulated_datetime
        current = self.real_now()
        if self._simulated_time is not None:
            hour, minute = self._simulated_time
            return current.replace(hour=hour, minute=minute, second=0, microsecond=0)
        return current

    def today(self) -> date:
        return self.now().date()

    @property
    def simulated(self) -> Optional[str]:
        return self._simulated_raw

    def set_simulated(self, value: str) -> datetime:
        """Pin the clock to ``HH:MM`` today or to a full ISO datetime."""
        raw = (value or "").strip()
        match = SIMULATED_TIME_PATTERN.match(raw)
        if match:
            self._simulated_time = (int(match.group(1)), int(match.group(2)))
            self._simulated_datetime = None
        else:
            try:
                parsed = datetime.fromisoformat(raw)
            except ValueError:
                raise InvalidSimulatedTimeError(f"Invalid simulated time '{value}', expected HH:MM or ISO datetime")
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=self.zone)
            self._simulated_datetime = parsed.astimezone(self.zone)
            self._simulated_time = None

        self._simulated_raw = raw
        logger.info(f"Simulated time set: {raw}")
        return self.now()

    def clear_simulated(self) -> None:
        self._simulated_time = None
        self._simulated_datetime = None
        self._simulated_raw = None
        logger.info("Simulated time cleared")
