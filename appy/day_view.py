from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from appy.domain import RenderedInterval
from appy.models import Appointment, FreeTime, WorkingHour
from appy.rendering import invert_times, render_interval
from appy.working_hours import working_intervals

logger = logging.getLogger(__name__)

FREE_TIME = "free-time"
TAKEN_TIME = "taken-time"
CLOSED_TIME = "closed-time"

# Offsets from midnight; the default window spans the whole day.
DEFAULT_TIME_FROM = dt.timedelta(0)
DEFAULT_TIME_TO = dt.timedelta(hours=23, minutes=59)

CLICK_ROUNDING_MINUTES = 5


@dataclass(frozen=True)
class HourCell:
    label: str
    height: float


def _split(offset: dt.timedelta) -> tuple[int, int]:
    total_minutes = int(offset.total_seconds()) // 60
    return total_minutes // 60, total_minutes % 60


class DayView:
    """View-model of a single calendar day column.

    time_from/time_to are offsets from midnight of `date`. Every setter
    re-renders only the layers that depend on the changed input.
    """

    def __init__(
        self,
        date: dt.date,
        *,
        color_for: Optional[Callable[[Optional[int]], Optional[str]]] = None,
    ) -> None:
        self._date = date
        self._color_for = color_for

        self._appointments: Optional[Sequence[Appointment]] = None
        self._shadow_appointments: Sequence[Appointment] = []
        self._working_hours: Optional[Sequence[WorkingHour]] = None
        self._free_times: Optional[Sequence[FreeTime]] = None

        self._time_from = DEFAULT_TIME_FROM
        self._time_to = DEFAULT_TIME_TO

        self.rendered_appointments: list[RenderedInterval[Appointment]] = []
        self.rendered_shadow_appointments: list[RenderedInterval[Appointment]] = []
        self.rendered_time_statuses: list[RenderedInterval[str]] = []

    # -- inputs ------------------------------------------------------------

    @property
    def date(self) -> dt.date:
        return self._date

    @date.setter
    def date(self, value: dt.date) -> None:
        if self._date == value:
            return
        self._date = value
        self.render()

    @property
    def appointments(self) -> Optional[Sequence[Appointment]]:
        return self._appointments

    @appointments.setter
    def appointments(self, value: Optional[Sequence[Appointment]]) -> None:
        if self._appointments is value:
            return
        self._appointments = value
        self.render_appointments()

    @property
    def shadow_appointments(self) -> Sequence[Appointment]:
        return self._shadow_appointments

    @shadow_appointments.setter
    def shadow_appointments(self, value: Sequence[Appointment]) -> None:
        if self._shadow_appointments is value:
            return
        self._shadow_appointments = value
        self.render_shadow_appointments()

    @property
    def working_hours(self) -> Optional[Sequence[WorkingHour]]:
        return self._working_hours

    @working_hours.setter
    def working_hours(self, value: Optional[Sequence[WorkingHour]]) -> None:
        if self._working_hours is value:
            return
        self._working_hours = value
        self.render_time_statuses()

    @property
    def free_times(self) -> Optional[Sequence[FreeTime]]:
        return self._free_times

    @free_times.setter
    def free_times(self, value: Optional[Sequence[FreeTime]]) -> None:
        if self._free_times is value:
            return
        self._free_times = value
        self.render_time_statuses()

    @property
    def time_from(self) -> dt.timedelta:
        return self._time_from

    @time_from.setter
    def time_from(self, value: dt.timedelta) -> None:
        if self._time_from == value:
            return
        self._time_from = value
        self.render()

    @property
    def time_to(self) -> dt.timedelta:
        return self._time_to

    @time_to.setter
    def time_to(self, value: dt.timedelta) -> None:
        if self._time_to == value:
            return
        self._time_to = value
        self.render()

    def set_window(self, time_from: dt.timedelta, time_to: dt.timedelta) -> None:
        if self._time_from == time_from and self._time_to == time_to:
            return
        self._time_from = time_from
        self._time_to = time_to
        self.render()

    @property
    def window_from(self) -> dt.datetime:
        return dt.datetime.combine(self._date, dt.time.min) + self._time_from

    @property
    def window_to(self) -> dt.datetime:
        return dt.datetime.combine(self._date, dt.time.min) + self._time_to

    # -- rendering ---------------------------------------------------------

    def render(self) -> None:
        if self._time_to <= self._time_from:
            logger.warning("Empty day window %s - %s, nothing rendered", self._time_from, self._time_to)
            self.rendered_appointments = []
            self.rendered_shadow_appointments = []
            self.rendered_time_statuses = []
            return

        self.render_appointments()
        self.render_shadow_appointments()
        self.render_time_statuses()

    def render_appointments(self) -> None:
        self.rendered_appointments = self._render_appointment_list(self._appointments or [])

    def render_shadow_appointments(self) -> None:
        self.rendered_shadow_appointments = self._render_appointment_list(self._shadow_appointments)

    def _render_appointment_list(self, appointments: Sequence[Appointment]) -> list[RenderedInterval[Appointment]]:
        if self._time_to <= self._time_from:
            return []

        rendered: list[RenderedInterval[Appointment]] = []
        for appointment in appointments:
            ri = self._render_appointment(appointment)
            if ri is not None:
                rendered.append(ri)
        return rendered

    def _render_appointment(self, appointment: Appointment) -> Optional[RenderedInterval[Appointment]]:
        if appointment.date != self._date or appointment.start is None or appointment.duration is None:
            return None

        color = None
        if self._color_for is not None and appointment.service is not None:
            color = self._color_for(appointment.service.color_id)

        return render_interval(
            self.window_from,
            self.window_to,
            appointment,
            appointment.start,
            appointment.duration,
            color,
            allow_negative_offset=True,
        )

    def render_time_statuses(self) -> None:
        self.rendered_time_statuses = []
        if self._time_to <= self._time_from:
            return

        window_from = self.window_from
        window_to = self.window_to

        def add(status: str, start: dt.datetime, end: dt.datetime) -> None:
            ri = render_interval(window_from, window_to, status, start, end - start)
            if ri is not None:
                self.rendered_time_statuses.append(ri)

        if self._free_times is not None:
            for free_time in self._free_times:
                add(FREE_TIME, free_time.from_, free_time.to_including_duration)

            taken = invert_times(
                self._free_times,
                lambda t: t.from_,
                lambda t: t.to_including_duration,
                window_from,
                window_to,
            )
            for interval in taken:
                add(TAKEN_TIME, interval.start, interval.end)

        if self._working_hours is not None:
            closed = invert_times(
                working_intervals(self._working_hours, self._date),
                lambda i: i.start,
                lambda i: i.end,
                window_from,
                window_to,
            )
            for interval in closed:
                add(CLOSED_TIME, interval.start, interval.end)

    # -- helpers for the view ----------------------------------------------

    def current_time_offset(self, now: Optional[dt.datetime] = None) -> float:
        now = now or dt.datetime.now()
        window = (self.window_to - self.window_from).total_seconds()
        return (now - self.window_from).total_seconds() / window

    def get_hours_to_render(self) -> list[HourCell]:
        """Hour cells of the time ruler; heights are fractions of the ruler."""
        from_hours, from_minutes = _split(self._time_from)
        to_hours, to_minutes = _split(self._time_to)

        if from_hours == to_hours:
            return [HourCell(f"{from_hours}:{from_minutes:02d}", 1.0)]

        cells = [(f"{from_hours}:{from_minutes:02d}", (60 - from_minutes) / 60)]
        for hour in range(from_hours + 1, to_hours):
            cells.append((f"{hour}:00", 1.0))
        if to_minutes > 0:
            cells.append((f"{to_hours}:00", to_minutes / 60))

        return [HourCell(label, height / len(cells)) for label, height in cells]

    def time_at_offset(self, fraction: float) -> dt.datetime:
        """Datetime under a click at `fraction` of the column height, rounded to 5 minutes."""
        seconds = self._time_from.total_seconds() + (self._time_to - self._time_from).total_seconds() * fraction
        hours, minutes = _split(dt.timedelta(seconds=int(seconds)))

        minutes = round(minutes / CLICK_ROUNDING_MINUTES) * CLICK_ROUNDING_MINUTES
        if minutes >= 60:
            hours += 1
            minutes = 0

        return dt.datetime.combine(self._date, dt.time.min) + dt.timedelta(hours=hours, minutes=minutes)
