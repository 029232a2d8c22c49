import re
from datetime import timedelta
from typing import Union

from celery.schedules import ParseException, crontab

from expiry_notifier.utils.errors import ConfigurationError

_EVERY_PATTERN = re.compile(
    r"^every\s+(\d+)\s+(second|minute|hour|day)s?$", re.IGNORECASE
)

_UNIT_KWARG = {
    "second": "seconds",
    "minute": "minutes",
    "hour": "hours",
    "day": "days",
}


def parse_cadence(cadence: str) -> Union[timedelta, crontab]:
    """
    Turn a cadence string into a Celery beat schedule.

    Accepted forms:
    - "every 5 minutes", "every 1 hour", "every 2 days"
    - five-field crontab expressions, e.g. "*/5 * * * *"

    Raises:
        ConfigurationError: The cadence is empty, zero, or not recognised
    """
    value = (cadence or "").strip()
    if not value:
        raise ConfigurationError("Sweep cadence must not be empty")

    match = _EVERY_PATTERN.match(value)
    if match:
        amount = int(match.group(1))
        if amount <= 0:
            raise ConfigurationError(f"Sweep cadence must be positive: {cadence!r}")
        unit = _UNIT_KWARG[match.group(2).lower()]
        return timedelta(**{unit: amount})

    fields = value.split()
    if len(fields) == 5:
        minute, hour, day_of_month, month_of_year, day_of_week = fields
        try:
            return crontab(
                minute=minute,
                hour=hour,
                day_of_month=day_of_month,
                month_of_year=month_of_year,
                day_of_week=day_of_week,
            )
        except (ParseException, ValueError) as e:
            raise ConfigurationError(f"Invalid crontab cadence {cadence!r}: {e}")

    raise ConfigurationError(f"Unrecognised sweep cadence: {cadence!r}")
