from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CachedDate(Generic[T]):
    key: dt.date
    data: Optional[T] = None
    show: bool = False
    loading: bool = False


class DateSmartCaching(Generic[T]):
    """Per-date cache with a sliding window.

    load(date) shows `show_count` dates starting at `date` and keeps
    `preload_count` dates on each side warm. Dates already loaded or loading
    are never fetched twice; dates leaving the kept range are evicted.
    """

    def __init__(
        self,
        load_function: Callable[[dt.date], Awaitable[T]],
        show_count: int = 1,
        preload_count: int = 1,
    ) -> None:
        if show_count < 1:
            raise ValueError("show_count must be >= 1")
        if preload_count < 0:
            raise ValueError("preload_count must be >= 0")

        self._load_function = load_function
        self.show_count = show_count
        self.preload_count = preload_count

        self.data: list[CachedDate[T]] = []
        self._tasks: dict[dt.date, asyncio.Task[None]] = {}
        self._listeners: list[Callable[[CachedDate[T]], None]] = []
        self._disposed = False

    def on_data_loaded(self, listener: Callable[[CachedDate[T]], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def load(self, date: dt.date) -> None:
        if self._disposed:
            raise RuntimeError("DateSmartCaching is disposed")

        day = dt.timedelta(days=1)
        visible = {date + day * i for i in range(self.show_count)}
        first = date - day * self.preload_count
        kept = [first + day * i for i in range(self.show_count + 2 * self.preload_count)]

        cached = {entry.key: entry for entry in self.data}
        for key in set(cached) - set(kept):
            task = self._tasks.pop(key, None)
            if task is not None:
                task.cancel()

        entries: list[CachedDate[T]] = []
        for key in kept:
            entry = cached.get(key) or CachedDate(key=key)
            entry.show = key in visible
            entries.append(entry)
        self.data = entries

        for entry in entries:
            if entry.data is None and entry.key not in self._tasks:
                entry.loading = True
                self._tasks[entry.key] = asyncio.get_running_loop().create_task(self._load(entry))

    async def _load(self, entry: CachedDate[T]) -> None:
        try:
            value = await self._load_function(entry.key)
        except asyncio.CancelledError:
            entry.loading = False
            raise
        except Exception as e:
            logger.error("Loading %s failed (%s: %s)", entry.key.isoformat(), type(e).__name__, e)
            entry.loading = False
            self._tasks.pop(entry.key, None)
            return

        entry.data = value
        entry.loading = False
        self._tasks.pop(entry.key, None)

        if self._disposed:
            return
        for listener in list(self._listeners):
            listener(entry)

    def visible(self) -> list[CachedDate[T]]:
        return [entry for entry in self.data if entry.show]

    def is_loading(self) -> bool:
        return bool(self._tasks)

    def dispose(self) -> None:
        self._disposed = True
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()
        self._listeners.clear()
