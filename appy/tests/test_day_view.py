from __future__ import annotations

import datetime as dt

import pytest

from appy.day_view import CLOSED_TIME, FREE_TIME, TAKEN_TIME, DayView, HourCell
from appy.models import Appointment, FreeTime, Service, WorkingHour

MONDAY = dt.date(2024, 3, 4)


def _appointment(appointment_id: int, hour: int, minutes: int = 60, date: dt.date = MONDAY) -> Appointment:
    return Appointment(
        id=appointment_id,
        date=date,
        time=dt.time(hour, 0),
        duration=dt.timedelta(minutes=minutes),
        service=Service(id=1, facility_id=1, name="Haircut", color_id=3),
    )


def _view(time_from: int = 8, time_to: int = 20, **kwargs) -> DayView:
    view = DayView(MONDAY, **kwargs)
    view.set_window(dt.timedelta(hours=time_from), dt.timedelta(hours=time_to))
    return view


def test_renders_only_appointments_of_the_day() -> None:
    view = _view()

    view.appointments = [_appointment(1, 9), _appointment(2, 9, date=MONDAY + dt.timedelta(days=1))]

    assert [ri.entity.id for ri in view.rendered_appointments] == [1]
    assert view.rendered_appointments[0].offset == pytest.approx(1 / 12)


def test_appointment_starting_before_window_keeps_negative_offset() -> None:
    view = _view()

    view.appointments = [_appointment(1, 7, minutes=120)]

    ri = view.rendered_appointments[0]
    assert ri.offset == pytest.approx(-1 / 12)
    assert ri.height == pytest.approx(2 / 12)


def test_color_comes_from_service_color() -> None:
    view = _view(color_for=lambda color_id: f"color-{color_id}")

    view.appointments = [_appointment(1, 9)]

    assert view.rendered_appointments[0].color == "color-3"


def test_shadow_appointments_render_separately() -> None:
    view = _view()

    view.shadow_appointments = [_appointment(5, 10)]

    assert view.rendered_appointments == []
    assert [ri.entity.id for ri in view.rendered_shadow_appointments] == [5]


def test_changing_window_rerenders() -> None:
    view = _view()
    view.appointments = [_appointment(1, 9)]

    view.time_from = dt.timedelta(hours=9)

    assert view.rendered_appointments[0].offset == pytest.approx(0)


def test_closed_time_is_inverse_of_working_hours() -> None:
    view = _view()

    # Monday is day 1 on the backend (0 = Sunday); the Sunday block is ignored.
    view.working_hours = [
        WorkingHour(id=1, day_of_week=1, time_from=dt.time(9), time_to=dt.time(12)),
        WorkingHour(id=2, day_of_week=1, time_from=dt.time(13), time_to=dt.time(17)),
        WorkingHour(id=3, day_of_week=0, time_from=dt.time(8), time_to=dt.time(20)),
    ]

    closed = [(ri.offset, ri.height) for ri in view.rendered_time_statuses if ri.entity == CLOSED_TIME]
    assert closed == [
        (pytest.approx(0), pytest.approx(1 / 12)),
        (pytest.approx(4 / 12), pytest.approx(1 / 12)),
        (pytest.approx(9 / 12), pytest.approx(3 / 12)),
    ]


def test_free_and_taken_times() -> None:
    view = _view()

    view.free_times = [
        FreeTime(dt.datetime.combine(MONDAY, dt.time(10)), dt.datetime.combine(MONDAY, dt.time(11))),
    ]

    statuses = [(ri.entity, round(ri.offset, 4), round(ri.height, 4)) for ri in view.rendered_time_statuses]
    assert statuses == [
        (FREE_TIME, round(2 / 12, 4), round(1 / 12, 4)),
        (TAKEN_TIME, 0.0, round(2 / 12, 4)),
        (TAKEN_TIME, round(3 / 12, 4), round(9 / 12, 4)),
    ]


def test_empty_window_renders_nothing() -> None:
    view = _view()
    view.appointments = [_appointment(1, 9)]

    view.set_window(dt.timedelta(hours=10), dt.timedelta(hours=10))

    assert view.rendered_appointments == []
    assert view.rendered_time_statuses == []


def test_current_time_offset() -> None:
    view = _view()

    assert view.current_time_offset(dt.datetime.combine(MONDAY, dt.time(14))) == pytest.approx(0.5)


def test_hours_to_render_full_hours() -> None:
    view = _view(8, 11)

    assert view.get_hours_to_render() == [
        HourCell("8:00", pytest.approx(1 / 3)),
        HourCell("9:00", pytest.approx(1 / 3)),
        HourCell("10:00", pytest.approx(1 / 3)),
    ]


def test_hours_to_render_partial_hours() -> None:
    view = DayView(MONDAY)
    view.set_window(dt.timedelta(hours=8, minutes=30), dt.timedelta(hours=10, minutes=15))

    cells = view.get_hours_to_render()

    assert [c.label for c in cells] == ["8:30", "9:00", "10:00"]
    assert [c.height for c in cells] == [
        pytest.approx(0.5 / 3),
        pytest.approx(1 / 3),
        pytest.approx(0.25 / 3),
    ]


def test_hours_to_render_within_single_hour() -> None:
    view = DayView(MONDAY)
    view.set_window(dt.timedelta(hours=8, minutes=10), dt.timedelta(hours=8, minutes=50))

    assert view.get_hours_to_render() == [HourCell("8:10", 1.0)]


@pytest.mark.parametrize(
    "fraction,expected",
    [
        (0.0, dt.time(8, 0)),
        (0.5, dt.time(14, 0)),
        # 8:00 + 12h * 0.1 = 9:12 -> 9:10
        (0.1, dt.time(9, 10)),
        # 8:00 + 12h * 0.33125 = 11:58:30 -> 12:00
        (0.33125, dt.time(12, 0)),
    ],
)
def test_time_at_offset_rounds_to_five_minutes(fraction: float, expected: dt.time) -> None:
    view = _view()

    assert view.time_at_offset(fraction) == dt.datetime.combine(MONDAY, expected)
