"""Business-hours schedule."""
import logging
from datetime import datetime, time, timedelta
from typing import List
from zoneinfo import ZoneInfo

from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


class BusinessHours(BaseModel):
    """Weekly calling window (default 9:00am - 5:45pm Eastern, Monday-Friday)."""

    timezone: str = "America/New_York"
    days_of_week: List[int] = [1, 2, 3, 4, 5]  # ISO weekdays, 1 = Monday
    start: time = time(9, 0)
    end: time = time(17, 45)

    @field_validator("days_of_week")
    @classmethod
    def _check_days(cls, days: List[int]) -> List[int]:
        if not days or any(day < 1 or day > 7 for day in days):
            raise ValueError("days_of_week must hold ISO weekdays between 1 and 7")
        return days

    @classmethod
    def from_settings(cls, settings) -> "BusinessHours":
        return cls(
            timezone=settings.business_timezone,
            days_of_week=settings.business_days,
            start=_parse_hhmm(settings.business_start),
            end=_parse_hhmm(settings.business_end),
        )

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def _localize(self, moment: datetime) -> datetime:
        if moment.tzinfo is None:
            # Naive datetimes are treated as UTC
            moment = moment.replace(tzinfo=ZoneInfo("UTC"))
        return moment.astimezone(self.zone)

    def is_business_day(self, moment: datetime) -> bool:
        return self._localize(moment).isoweekday() in self.days_of_week

    def is_within(self, moment: datetime) -> bool:
        """Check whether a moment falls inside the calling window (inclusive)."""
        local = self._localize(moment)
        if local.isoweekday() not in self.days_of_week:
            logger.debug(
                f"[BUSINESS HOURS] Outside business hours - not a business day "
                f"(weekday {local.isoweekday()})"
            )
            return False

        current = local.time().replace(second=0, microsecond=0)
        within = self.start <= current <= self.end
        if not within:
            logger.debug(
                f"[BUSINESS HOURS] Outside business hours - {current:%H:%M} not in "
                f"{self.start:%H:%M}-{self.end:%H:%M}"
            )
        return within

    def next_business_day_at(self, moment: datetime, hour: int, minute: int = 0) -> datetime:
        """The next business day after ``moment`` at the given local time."""
        local = self._localize(moment)
        candidate = local.date() + timedelta(days=1)
        while candidate.isoweekday() not in self.days_of_week:
            candidate += timedelta(days=1)
        return datetime.combine(candidate, time(hour, minute), tzinfo=self.zone)


def default_callback_time(
    business_hours: BusinessHours, now: datetime, hour: int = 10
) -> str:
    """ISO-8601 callback time for the next business day at ``hour``."""
    return business_hours.next_business_day_at(now, hour).isoformat()
