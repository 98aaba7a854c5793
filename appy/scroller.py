from __future__ import annotations

import datetime as dt
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from appy.config import Settings
from appy.models import Appointment, CalendarDay
from appy.smart_caching import CachedDate, DateSmartCaching
from appy.tween import Tween

logger = logging.getLogger(__name__)

# Used when none of the visible days has working hours or appointments.
FALLBACK_TIME_FROM = dt.timedelta(hours=8)
FALLBACK_TIME_TO = dt.timedelta(hours=14)

# Window shown before anything is loaded.
INITIAL_TIME_FROM = dt.timedelta(hours=8)
INITIAL_TIME_TO = dt.timedelta(hours=20)

HOURS_PER_SCREEN = 8


def _offset(value: dt.time) -> dt.timedelta:
    return dt.timedelta(hours=value.hour, minutes=value.minute, seconds=value.second)


def compute_time_window(
    days: Iterable[CalendarDay],
    shadow_appointments: Sequence[Appointment] = (),
) -> tuple[dt.timedelta, dt.timedelta]:
    """Smallest window (offsets from midnight) covering all working hours and appointments."""
    time_from: Optional[dt.timedelta] = None
    time_to: Optional[dt.timedelta] = None

    def extend(start: dt.timedelta, end: dt.timedelta) -> None:
        nonlocal time_from, time_to
        if time_from is None or start < time_from:
            time_from = start
        if time_to is None or end > time_to:
            time_to = end

    appointments: list[Appointment] = list(shadow_appointments)
    for day in days:
        for wh in day.working_hours:
            if wh.time_from is None or wh.time_to is None:
                continue
            extend(_offset(wh.time_from), _offset(wh.time_to))
        appointments.extend(day.appointments)

    for appointment in appointments:
        if appointment.time is None or appointment.duration is None:
            continue
        start = _offset(appointment.time)
        extend(start, start + appointment.duration)

    return (
        time_from if time_from is not None else FALLBACK_TIME_FROM,
        time_to if time_to is not None else FALLBACK_TIME_TO,
    )


class AppointmentsScroller:
    """Keeps the calendar days around `date` loaded and animates the shared time window."""

    def __init__(
        self,
        load_day: Callable[[dt.date], Awaitable[CalendarDay]],
        *,
        date: dt.date,
        days_to_show: int = 1,
        preload_days: int = 1,
        tween_duration_ms: int = 300,
        clock: Callable[[], float] = time.monotonic,
        on_date_change: Optional[Callable[[dt.date], None]] = None,
    ) -> None:
        self._date = date
        self._days_to_show = days_to_show
        self._shadow_appointments: Sequence[Appointment] = []
        self.tween_duration_ms = tween_duration_ms
        self.on_date_change = on_date_change

        self.smart_caching: DateSmartCaching[CalendarDay] = DateSmartCaching(load_day, days_to_show, preload_days)

        self.time_from = INITIAL_TIME_FROM
        self.time_to = INITIAL_TIME_TO

        self._time_from_tween = Tween(
            lambda: self.time_from.total_seconds(),
            lambda v: setattr(self, "time_from", dt.timedelta(seconds=round(v))),
            clock,
        )
        self._time_to_tween = Tween(
            lambda: self.time_to.total_seconds(),
            lambda v: setattr(self, "time_to", dt.timedelta(seconds=round(v))),
            clock,
        )

        self._unsubscribe = self.smart_caching.on_data_loaded(self._on_data_loaded)

    @classmethod
    def from_settings(
        cls,
        load_day: Callable[[dt.date], Awaitable[CalendarDay]],
        settings: Settings,
        *,
        date: dt.date,
        **kwargs: Any,
    ) -> AppointmentsScroller:
        return cls(
            load_day,
            date=date,
            days_to_show=settings.days_to_show,
            preload_days=settings.preload_days,
            tween_duration_ms=settings.tween_duration_ms,
            **kwargs,
        )

    @property
    def date(self) -> dt.date:
        return self._date

    @date.setter
    def date(self, value: dt.date) -> None:
        if self._date == value:
            return
        self._date = value
        self.load()
        if self.on_date_change is not None:
            self.on_date_change(value)

    @property
    def days_to_show(self) -> int:
        return self._days_to_show

    @days_to_show.setter
    def days_to_show(self, value: int) -> None:
        if self._days_to_show == value:
            return
        self._days_to_show = value
        self.smart_caching.show_count = value
        self.load()

    @property
    def shadow_appointments(self) -> Sequence[Appointment]:
        return self._shadow_appointments

    @shadow_appointments.setter
    def shadow_appointments(self, value: Sequence[Appointment]) -> None:
        if self._shadow_appointments is value:
            return
        self._shadow_appointments = value
        self.refresh_from_to_time()

    def load(self) -> None:
        self.smart_caching.load(self._date)
        self.refresh_from_to_time()

    def visible_days(self) -> list[CachedDate[CalendarDay]]:
        return self.smart_caching.visible()

    def _on_data_loaded(self, entry: CachedDate[CalendarDay]) -> None:
        logger.debug("Calendar day %s loaded", entry.key.isoformat())
        self.refresh_from_to_time()

    def refresh_from_to_time(self) -> None:
        days = [entry.data for entry in self.visible_days() if entry.data is not None]
        time_from, time_to = compute_time_window(days, self._shadow_appointments)

        self._time_from_tween.tween_to(time_from.total_seconds(), self.tween_duration_ms)
        self._time_to_tween.tween_to(time_to.total_seconds(), self.tween_duration_ms)

    def step(self) -> bool:
        """Advance the window animation; True while it is still moving."""
        moving_from = self._time_from_tween.step()
        moving_to = self._time_to_tween.step()
        return moving_from or moving_to

    def finish_animation(self) -> None:
        self._time_from_tween.finish()
        self._time_to_tween.finish()

    def get_height(self) -> float:
        """Column height in viewport-height units (8 hours fill one screen)."""
        hours = (self.time_to - self.time_from).total_seconds() / 3600
        return hours / HOURS_PER_SCREEN * 100

    def dispose(self) -> None:
        self._unsubscribe()
        self.smart_caching.dispose()
