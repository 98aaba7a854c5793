from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, order=True)
class Interval:
    """A half-open time span [start, end)."""

    start: dt.datetime
    end: dt.datetime

    @property
    def duration(self) -> dt.timedelta:
        return self.end - self.start


@dataclass
class RenderedInterval(Generic[T]):
    """An interval projected onto a display window.

    offset and height are fractions of the window height: 0 is the top edge
    (time_from), 1 is the bottom edge (time_to).
    """

    entity: T
    offset: float
    height: float
    color: Optional[str] = None


class SortOrderError(RuntimeError):
    """A page arrived in an order that does not match the datasource comparator.

    Usually means the backend sorts differently from the client.
    """


class DuplicateEntityError(RuntimeError):
    """A single-entity datasource matched more than one entity."""


class ValidationError(ValueError):
    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(message or code)
        self.code = code


class ApiError(RuntimeError):
    def __init__(self, status_code: int, payload: Any = None) -> None:
        super().__init__(f"API responded with HTTP {status_code}")
        self.status_code = status_code
        self.payload = payload

    @property
    def validation_errors(self) -> dict[str, str]:
        if isinstance(self.payload, dict) and isinstance(self.payload.get("errors"), dict):
            return self.payload["errors"]
        return {}
