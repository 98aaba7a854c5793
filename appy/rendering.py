from __future__ import annotations

import datetime as dt
from typing import Callable, Iterable, Optional, TypeVar

from appy.domain import Interval, RenderedInterval

T = TypeVar("T")


def get_rendered_interval(
    time_from: dt.datetime,
    time_to: dt.datetime,
    entity: T,
    start: dt.datetime,
    duration: dt.timedelta,
    color: Optional[str] = None,
) -> RenderedInterval[T]:
    """Project [start, start + duration) onto the window [time_from, time_to).

    The result is not cropped: offset may be negative and offset + height may
    exceed 1. Use crop_rendered_interval() before drawing.
    """
    window = (time_to - time_from).total_seconds()
    if window <= 0:
        raise ValueError("time_to must be after time_from")

    offset = (start - time_from).total_seconds() / window
    height = duration.total_seconds() / window
    return RenderedInterval(entity=entity, offset=offset, height=height, color=color)


def crop_rendered_interval(
    ri: RenderedInterval[T],
    allow_negative_offset: bool = False,
) -> Optional[RenderedInterval[T]]:
    """Clip ri to the [0, 1] window; None when nothing of it is visible.

    With allow_negative_offset an interval that starts above the window keeps
    its negative offset and only its bottom is clipped.
    """
    top = ri.offset
    bottom = ri.offset + ri.height

    if bottom <= 0 or top >= 1:
        return None

    if top < 0 and not allow_negative_offset:
        top = 0.0
    if bottom > 1:
        bottom = 1.0

    return RenderedInterval(entity=ri.entity, offset=top, height=bottom - top, color=ri.color)


def render_interval(
    time_from: dt.datetime,
    time_to: dt.datetime,
    entity: T,
    start: dt.datetime,
    duration: dt.timedelta,
    color: Optional[str] = None,
    allow_negative_offset: bool = False,
) -> Optional[RenderedInterval[T]]:
    ri = get_rendered_interval(time_from, time_to, entity, start, duration, color)
    return crop_rendered_interval(ri, allow_negative_offset)


def invert_times(
    items: Iterable[T],
    get_from: Callable[[T], dt.datetime],
    get_to: Callable[[T], dt.datetime],
    window_from: dt.datetime,
    window_to: dt.datetime,
) -> list[Interval]:
    """Spans of [window_from, window_to) not covered by any item.

    Overlapping or touching items are merged; gaps of zero length are dropped.
    """
    covering = sorted(((get_from(i), get_to(i)) for i in items), key=lambda span: span[0])

    gaps: list[Interval] = []
    cursor = window_from
    for start, end in covering:
        if end <= cursor:
            continue
        if start >= window_to:
            break
        if start > cursor:
            gaps.append(Interval(cursor, start))
        cursor = end

    if cursor < window_to:
        gaps.append(Interval(cursor, window_to))

    return gaps
