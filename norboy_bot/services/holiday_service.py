"""Holiday calendars consulted by the schedule gate (read-only)."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from pathlib import Path
from typing import Callable, List, Optional

import yaml

from norboy_bot.logging_config import get_logger

logger = get_logger("holiday_service")

DEFAULT_HOLIDAYS_PATH = Path(__file__).resolve().parents[1] / "data" / "holidays.yaml"


@dataclass(frozen=True)
class HolidayEntry:
    date: date
    name: str
    description: str = ""
    recurring: bool = True
    active: bool = True

    def matches(self, day: date) -> bool:
        if self.recurring:
            return (self.date.month, self.date.day) == (day.month, day.day)
        return self.date == day

    @classmethod
    def from_mapping(cls, data: dict) -> "HolidayEntry":
        raw_date = data["date"]
        parsed = raw_date if isinstance(raw_date, date) else date.fromisoformat(str(raw_date))
        return cls(
            date=parsed,
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            recurring=bool(data.get("recurring", True)),
            active=bool(data.get("active", True)),
        )


class HolidayCalendar(ABC):
    @abstractmethod
    def entries(self) -> List[HolidayEntry]:
        pass

    def holiday_for(self, day: date) -> Optional[HolidayEntry]:
        for entry in self.entries():
            if entry.active and entry.matches(day):
                return entry
        return None

    def is_holiday(self, day: date) -> bool:
        return self.holiday_for(day) is not None


class StaticHolidayCalendar(HolidayCalendar):
    def __init__(self, entries: Optional[List[HolidayEntry]] = None):
        self._entries = list(entries or [])

    def entries(self) -> List[HolidayEntry]:
        return list(self._entries)

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "StaticHolidayCalendar":
        data = _load_yaml(Path(path) if path else DEFAULT_HOLIDAYS_PATH)
        entries = []
        for item in data.get("holidays") or []:
            try:
                entries.append(HolidayEntry.from_mapping(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid holiday entry {item!r}: {e}")
        return cls(entries)


@lru_cache(maxsize=4)
def _load_yaml(path: Path) -> dict:
    if not path.exists():
        logger.warning(f"Holidays file not found: {path}")
        return {}
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


class DatabaseHolidayCalendar(HolidayCalendar):
    """Reads the ``holidays`` table, cached for ``cache_seconds``."""

    def __init__(self, session_factory: Callable, cache_seconds: int = 3600):
        self._session_factory = session_factory
        self._cache_seconds = cache_seconds
        self._cached: Optional[List[HolidayEntry]] = None
        self._loaded_at = 0.0

    def invalidate(self) -> None:
        self._cached = None

    def entries(self) -> List[HolidayEntry]:
        if self._cached is not None and time.monotonic() - self._loaded_at < self._cache_seconds:
            return list(self._cached)

        from norboy_bot.models import Holiday

        db = self._session_factory()
        try:
            rows = db.query(Holiday).filter(Holiday.active.is_(True)).all()
            entries = []
            for row in rows:
                try:
                    entries.append(
                        HolidayEntry(
                            date=date.fromisoformat(row.date),
                            name=row.name,
                            description=row.description or "",
                            recurring=bool(row.recurring),
                            active=bool(row.active),
                        )
                    )
                except ValueError:
                    logger.warning(f"Holiday row {row.id} has an invalid date: {row.date!r}")
        finally:
            db.close()

        self._cached = entries
        self._loaded_at = time.monotonic()
        return list(entries)


class CombinedHolidayCalendar(HolidayCalendar):
    def __init__(self, *calendars: HolidayCalendar):
        self._calendars = calendars

    def entries(self) -> List[HolidayEntry]:
        combined: List[HolidayEntry] = []
        for calendar in self._calendars:
            combined.extend(calendar.entries())
        return combined
