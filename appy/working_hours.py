from __future__ import annotations

import datetime as dt
from typing import Iterable

from appy.domain import Interval, ValidationError
from appy.models import WorkingHour

TIMES_NOT_IN_ORDER = "pages.working-hours.errors.TIMES_NOT_IN_ORDER"
TIMES_OVERLAP = "pages.working-hours.errors.TIMES_OVERLAP"


def day_of_week(date: dt.date) -> int:
    """Backend weekday number: 0 = Sunday ... 6 = Saturday."""
    return (date.weekday() + 1) % 7


def validate_working_hours(hours: Iterable[WorkingHour]) -> None:
    """Same rules the backend applies before replacing a facility's hours.

    Blocks of the same weekday may neither overlap nor touch.
    """
    hours = list(hours)

    for w in hours:
        if w.time_from is None or w.time_to is None or w.day_of_week is None:
            raise ValidationError("REQUIRED", "Working hour is missing day or times")
        if w.time_from >= w.time_to:
            raise ValidationError(TIMES_NOT_IN_ORDER)

    for day in range(7):
        same_day = [w for w in hours if w.day_of_week == day]
        for i, w1 in enumerate(same_day):
            for w2 in same_day[i + 1:]:
                if w1.time_from <= w2.time_to and w1.time_to >= w2.time_from:
                    raise ValidationError(TIMES_OVERLAP)


def working_hours_for_date(hours: Iterable[WorkingHour], date: dt.date) -> list[WorkingHour]:
    weekday = day_of_week(date)
    return sorted(
        (w for w in hours if w.day_of_week == weekday),
        key=lambda w: w.time_from or dt.time.min,
    )


def working_intervals(hours: Iterable[WorkingHour], date: dt.date) -> list[Interval]:
    return [
        Interval(dt.datetime.combine(date, w.time_from), dt.datetime.combine(date, w.time_to))
        for w in working_hours_for_date(hours, date)
        if w.time_from is not None and w.time_to is not None
    ]
