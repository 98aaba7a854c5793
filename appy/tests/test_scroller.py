from __future__ import annotations

import asyncio
import datetime as dt

import pytest

from appy.config import Settings
from appy.models import Appointment, CalendarDay, WorkingHour
from appy.scroller import FALLBACK_TIME_FROM, FALLBACK_TIME_TO, AppointmentsScroller, compute_time_window
from appy.tween import Tween, ease_in_out

D = dt.date(2024, 3, 4)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _day(date: dt.date, hours: tuple[int, int] | None = None, appointment_at: int | None = None) -> CalendarDay:
    day = CalendarDay(date=date)
    if hours is not None:
        day.working_hours.append(
            WorkingHour(id=1, day_of_week=1, time_from=dt.time(hours[0]), time_to=dt.time(hours[1]))
        )
    if appointment_at is not None:
        day.appointments.append(
            Appointment(id=1, date=date, time=dt.time(appointment_at), duration=dt.timedelta(minutes=90))
        )
    return day


def test_compute_time_window_defaults_when_nothing_loaded() -> None:
    assert compute_time_window([]) == (FALLBACK_TIME_FROM, FALLBACK_TIME_TO)


def test_compute_time_window_covers_hours_and_appointments() -> None:
    days = [_day(D, hours=(9, 17)), _day(D, appointment_at=17)]

    assert compute_time_window(days) == (dt.timedelta(hours=9), dt.timedelta(hours=18, minutes=30))


def test_compute_time_window_includes_shadow_appointments() -> None:
    shadow = [Appointment(id=9, date=D, time=dt.time(7), duration=dt.timedelta(hours=1))]

    time_from, time_to = compute_time_window([_day(D, hours=(9, 17))], shadow)

    assert (time_from, time_to) == (dt.timedelta(hours=7), dt.timedelta(hours=17))


def test_tween_interpolates_and_finishes() -> None:
    clock = FakeClock()
    box = {"value": 0.0}
    tween = Tween(lambda: box["value"], lambda v: box.update(value=v), clock)

    tween.tween_to(100.0, 1000)
    clock.now = 0.5
    assert tween.step()
    assert box["value"] == pytest.approx(50.0)

    clock.now = 2.0
    assert not tween.step()
    assert box["value"] == 100.0
    assert not tween.is_running()


def test_tween_with_zero_duration_jumps() -> None:
    box = {"value": 0.0}
    tween = Tween(lambda: box["value"], lambda v: box.update(value=v), FakeClock())

    tween.tween_to(5.0, 0)

    assert box["value"] == 5.0
    assert not tween.is_running()


def test_ease_in_out_endpoints() -> None:
    assert ease_in_out(0) == 0
    assert ease_in_out(1) == 1
    assert ease_in_out(0.25) < 0.25 < 0.75 < ease_in_out(0.75)


def test_scroller_animates_to_loaded_window() -> None:
    async def scenario() -> None:
        clock = FakeClock()
        days = {D: _day(D, hours=(9, 17))}

        async def load_day(date: dt.date) -> CalendarDay:
            return days.get(date, CalendarDay(date=date))

        scroller = AppointmentsScroller(load_day, date=D, preload_days=0, tween_duration_ms=300, clock=clock)
        scroller.load()

        # Nothing loaded yet: heading for the fallback window.
        clock.now = 1.0
        scroller.step()
        assert (scroller.time_from, scroller.time_to) == (FALLBACK_TIME_FROM, FALLBACK_TIME_TO)

        for _ in range(5):
            await asyncio.sleep(0)

        clock.now = 2.0
        assert not scroller.step()
        assert (scroller.time_from, scroller.time_to) == (dt.timedelta(hours=9), dt.timedelta(hours=17))
        assert scroller.get_height() == pytest.approx(100.0)
        scroller.dispose()

    asyncio.run(scenario())


def test_scroller_date_change_reloads_and_notifies() -> None:
    async def scenario() -> None:
        loaded: list[dt.date] = []
        changes: list[dt.date] = []

        async def load_day(date: dt.date) -> CalendarDay:
            loaded.append(date)
            return CalendarDay(date=date)

        scroller = AppointmentsScroller(load_day, date=D, preload_days=0, on_date_change=changes.append)
        scroller.load()
        for _ in range(5):
            await asyncio.sleep(0)

        scroller.date = D
        scroller.date = D + dt.timedelta(days=1)
        for _ in range(5):
            await asyncio.sleep(0)

        assert loaded == [D, D + dt.timedelta(days=1)]
        assert changes == [D + dt.timedelta(days=1)]
        scroller.dispose()

    asyncio.run(scenario())


def test_scroller_days_to_show_widens_visible_range() -> None:
    async def scenario() -> None:
        async def load_day(date: dt.date) -> CalendarDay:
            return CalendarDay(date=date)

        scroller = AppointmentsScroller(load_day, date=D, preload_days=0)
        scroller.load()
        scroller.days_to_show = 3

        assert [e.key for e in scroller.visible_days()] == [D + dt.timedelta(days=i) for i in range(3)]
        scroller.dispose()

    asyncio.run(scenario())


def test_tween_run_reaches_target() -> None:
    box = {"value": 0.0}
    tween = Tween(lambda: box["value"], lambda v: box.update(value=v))

    tween.tween_to(10.0, 20)
    asyncio.run(tween.run(frame_seconds=0.005))

    assert box["value"] == 10.0
    assert not tween.is_running()


def test_finish_animation_jumps_to_target_window() -> None:
    async def scenario() -> None:
        async def load_day(date: dt.date) -> CalendarDay:
            return _day(date, hours=(9, 17))

        scroller = AppointmentsScroller(load_day, date=D, preload_days=0, clock=FakeClock())
        scroller.load()
        for _ in range(5):
            await asyncio.sleep(0)

        assert scroller.time_from != dt.timedelta(hours=9)
        scroller.finish_animation()

        assert (scroller.time_from, scroller.time_to) == (dt.timedelta(hours=9), dt.timedelta(hours=17))
        assert not scroller.step()
        scroller.dispose()

    asyncio.run(scenario())


def test_scroller_from_settings() -> None:
    settings = Settings(api_url="https://appy.example/api/", days_to_show=2, preload_days=0, tween_duration_ms=0)

    async def scenario() -> None:
        loaded: list[dt.date] = []

        async def load_day(date: dt.date) -> CalendarDay:
            loaded.append(date)
            return _day(date, hours=(10, 12))

        scroller = AppointmentsScroller.from_settings(load_day, settings, date=D)
        scroller.load()
        for _ in range(5):
            await asyncio.sleep(0)

        assert sorted(loaded) == [D, D + dt.timedelta(days=1)]
        # A zero tween duration applies the window without animating.
        assert (scroller.time_from, scroller.time_to) == (dt.timedelta(hours=10), dt.timedelta(hours=12))
        scroller.dispose()

    asyncio.run(scenario())
