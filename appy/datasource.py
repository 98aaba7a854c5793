from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Iterable, Literal, Optional, Sequence, TypeVar

from appy.domain import DuplicateEntityError, SortOrderError
from appy.models import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)
V = TypeVar("V")

Direction = Literal["forwards", "backwards"]
Comparator = Callable[[T, T], int]
FilterPredicate = Callable[[T], bool]
LoadFunction = Callable[[Direction, int, int], Awaitable[Sequence[T]]]


class Subscriber(Generic[V]):
    """Receives snapshots from a datasource until closed.

    An error is terminal: the subscriber is closed after on_error runs.
    """

    def __init__(
        self,
        on_next: Callable[[V], None],
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> None:
        self._on_next = on_next
        self._on_error = on_error
        self.closed = False

    def next(self, value: V) -> None:
        if self.closed:
            return
        self._on_next(value)

    def error(self, exc: BaseException) -> None:
        if self.closed:
            return
        self.closed = True
        if self._on_error is not None:
            self._on_error(exc)
        else:
            logger.error("Unhandled datasource error (%s: %s)", type(exc).__name__, exc)

    def unsubscribe(self) -> None:
        self.closed = True


def is_sorted(items: Sequence[T], compare: Comparator) -> bool:
    return all(compare(items[i], items[i + 1]) <= 0 for i in range(len(items) - 1))


def get_insert_index(items: Sequence[T], item: T, compare: Comparator) -> int:
    # First position whose element is not less than item.
    lo, hi = 0, len(items)
    while lo < hi:
        mid = (lo + hi) // 2
        if compare(items[mid], item) < 0:
            lo = mid + 1
        else:
            hi = mid
    return lo


def _find_in(entities: Iterable[T], entity_id: Any) -> Optional[T]:
    for entity in entities:
        if entity.get_id() == entity_id:
            return entity
    return None


class Datasource(Generic[T]):
    """Unordered working set mirrored from the backend."""

    def __init__(self, filter_predicate: Optional[FilterPredicate] = None) -> None:
        self.data: list[T] = []
        self.filter_predicate = filter_predicate
        self.is_loaded = False

    def _find(self, entity_id: Any) -> Optional[T]:
        return _find_in(self.data, entity_id)

    def _accepts(self, entity: T) -> bool:
        return self.filter_predicate is None or self.filter_predicate(entity)

    def add(self, entities: Iterable[T]) -> None:
        entities = list(entities)

        # The first (possibly empty) result still has to reach the subscriber.
        if not self.is_loaded and not entities:
            self.is_loaded = True
            self.notify_subscriber()
            return

        self.is_loaded = True

        new_entities: list[T] = []
        for entity in entities:
            pending = _find_in(new_entities, entity.get_id())
            if pending is not None:
                # Repeated identity within one batch: the later copy wins.
                pending.apply_update(entity)
                if not self._accepts(pending):
                    new_entities.remove(pending)
            elif self._find(entity.get_id()) is None:
                if not self._accepts(entity):
                    continue
                new_entities.append(entity)
            else:
                self.update(entity)

        # Newest entities go first.
        self.data[0:0] = new_entities

        if new_entities:
            self.notify_subscriber()

    def update(self, entity: T) -> None:
        if not self.is_loaded:
            return

        old = self._find(entity.get_id())
        if old is None:
            self.add([entity])
            return

        old.apply_update(entity)

        if not self._accepts(old):
            self.data.remove(old)

        self.notify_subscriber()

    def delete(self, entity_id: Any) -> None:
        if not self.is_loaded:
            return

        old = self._find(entity_id)
        if old is None:
            return

        self.data.remove(old)
        self.notify_subscriber()

    def empty(self) -> None:
        self.is_loaded = True
        self.data.clear()
        self.notify_subscriber()

    def notify_subscriber(self) -> None:
        raise NotImplementedError

    def is_unsubscribed(self) -> bool:
        raise NotImplementedError


class ListDatasource(Datasource[T]):
    def __init__(self, subscriber: Subscriber[list[T]], filter_predicate: Optional[FilterPredicate] = None) -> None:
        super().__init__(filter_predicate)
        self.subscriber = subscriber

    def notify_subscriber(self) -> None:
        # Always a copy: subscribers must never hold the live list.
        self.subscriber.next(list(self.data))

    def is_unsubscribed(self) -> bool:
        return self.subscriber.closed


class SingleDatasource(Datasource[T]):
    def __init__(self, subscriber: Subscriber[Optional[T]], filter_predicate: FilterPredicate) -> None:
        super().__init__(filter_predicate)
        self.subscriber = subscriber

    def notify_subscriber(self) -> None:
        if not self.data:
            self.subscriber.next(None)
        elif len(self.data) == 1:
            self.subscriber.next(self.data[0])
        else:
            raise DuplicateEntityError(
                f"Single datasource matched {len(self.data)} entities; "
                "ids are not unique or get_id() is implemented incorrectly"
            )

    def is_unsubscribed(self) -> bool:
        return self.subscriber.closed


class PageableListDatasource(Generic[T]):
    """A sorted window of entities loaded page by page in both directions.

    At most one forwards and one backwards fetch are in flight at any time;
    page requests made while a fetch of that direction is running are dropped.
    Until the first page of load() arrives, paging requests are ignored and
    new subscribers get no snapshot. A failed or rejected first page lifts
    that gate, so paging retries from the start of the window.
    """

    def __init__(
        self,
        load_function: LoadFunction,
        compare: Comparator,
        filter_predicate: Optional[FilterPredicate] = None,
        *,
        page_size: int = 20,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")

        self._load_function = load_function
        self._compare = compare
        self._filter_predicate = filter_predicate
        self.page_size = page_size

        self.data: list[T] = []

        self._reached_end_forwards = False
        self._reached_end_backwards = False

        self._forwards_skip = 0
        self._backwards_skip = 0

        self._next_page_task: Optional[asyncio.Task[None]] = None
        self._previous_page_task: Optional[asyncio.Task[None]] = None

        self._is_first_loading = False
        self._first_page_merged = False
        self._disposed = False

        self._subscribers: list[Subscriber[list[T]]] = []

    # -- merging -----------------------------------------------------------

    def _find(self, entity_id: Any) -> Optional[T]:
        return _find_in(self.data, entity_id)

    def add(self, entities: Iterable[T], force_notify: bool = False) -> None:
        entities = list(entities)
        if not is_sorted(entities, self._compare):
            raise SortOrderError("Received entities are not correctly sorted. Check that the backend sort matches the client sort.")

        changed = False
        for entity in entities:
            if self._find(entity.get_id()) is None:
                changed = self._try_add_single(entity) or changed
            else:
                changed = self._try_update(entity) or changed

        if force_notify or changed:
            self.notify_subscribers()

    def _try_add_single(self, entity: T) -> bool:
        if self._filter_predicate is not None and not self._filter_predicate(entity):
            return False

        index = get_insert_index(self.data, entity, self._compare)
        self.data.insert(index, entity)
        return True

    def update(self, entity: T) -> None:
        if self._try_update(entity):
            self.notify_subscribers()

    def _try_update(self, entity: T) -> bool:
        old = self._find(entity.get_id())
        if old is None:
            return self._try_add_single(entity)

        # The update may move the entity, so take it out and re-insert it in order.
        self.data.remove(old)
        old.apply_update(entity)
        self._try_add_single(old)
        return True

    def delete(self, entity_id: Any) -> None:
        old = self._find(entity_id)
        if old is None:
            return

        self.data.remove(old)
        self.notify_subscribers()

    def notify_subscribers(self) -> None:
        for subscriber in list(self._subscribers):
            subscriber.next(list(self.data))

    def notify_error_subscribers(self, exc: BaseException) -> None:
        for subscriber in list(self._subscribers):
            subscriber.error(exc)

    # -- paging ------------------------------------------------------------

    def load(self) -> None:
        """Drop everything loaded so far and fetch the first forwards page."""
        self._cancel_tasks()

        self.data = []
        self._forwards_skip = 0
        self._backwards_skip = 0
        self._reached_end_forwards = False
        self._reached_end_backwards = False

        self._is_first_loading = True
        self._first_page_merged = False
        self._start_next_page()

    def load_next_page(self) -> None:
        if self._is_first_loading or self._reached_end_forwards or self._next_page_task is not None:
            return
        self._start_next_page()

    def load_previous_page(self) -> None:
        if self._is_first_loading or self._reached_end_backwards or self._previous_page_task is not None:
            return
        self._previous_page_task = asyncio.get_running_loop().create_task(self._fetch_previous_page())

    def _start_next_page(self) -> None:
        self._next_page_task = asyncio.get_running_loop().create_task(self._fetch_next_page())

    async def _fetch_next_page(self) -> None:
        try:
            items = list(await self._load_function("forwards", self._forwards_skip, self.page_size))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._next_page_task = None
            self._is_first_loading = False
            self._on_fetch_error("forwards", e)
            return

        if self._disposed:
            return

        self._next_page_task = None
        self._is_first_loading = False
        if not self._check_page_order("forwards", items):
            return

        self._forwards_skip += len(items)
        if len(items) < self.page_size:
            self._reached_end_forwards = True

        # Until a first page has been merged, even an empty one must reach subscribers.
        force_notify = not self._first_page_merged
        self._first_page_merged = True
        self.add(items, force_notify)

    async def _fetch_previous_page(self) -> None:
        try:
            items = list(await self._load_function("backwards", self._backwards_skip, self.page_size))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._previous_page_task = None
            self._on_fetch_error("backwards", e)
            return

        if self._disposed:
            return

        self._previous_page_task = None
        # Backwards pages come ordered from the cursor outwards.
        items.reverse()
        if not self._check_page_order("backwards", items):
            return

        self._backwards_skip += len(items)
        if len(items) < self.page_size:
            self._reached_end_backwards = True

        self.add(items)

    def _check_page_order(self, direction: Direction, items: list[T]) -> bool:
        if is_sorted(items, self._compare):
            return True

        # Cursors stay put so the same page is requested again on the next call.
        e = SortOrderError(
            f"Received {direction} page is not correctly sorted. Check that the backend sort matches the client sort."
        )
        logger.error("Rejected page (%s)", e)
        self.notify_error_subscribers(e)
        return False

    def _on_fetch_error(self, direction: Direction, exc: Exception) -> None:
        logger.error("Loading %s page failed (%s: %s)", direction, type(exc).__name__, exc)
        if not self._disposed:
            self.notify_error_subscribers(exc)

    # -- lifecycle ---------------------------------------------------------

    def subscribe(
        self,
        on_next: Callable[[list[T]], None],
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> Subscriber[list[T]]:
        subscriber: Subscriber[list[T]] = Subscriber(on_next, on_error)
        if self._disposed:
            subscriber.unsubscribe()
            return subscriber

        self._subscribers.append(subscriber)
        if not self._is_first_loading:
            subscriber.next(list(self.data))
        return subscriber

    def is_unsubscribed(self) -> bool:
        return not self._subscribers or all(s.closed for s in self._subscribers)

    def _cancel_tasks(self) -> None:
        for task in (self._next_page_task, self._previous_page_task):
            if task is not None:
                task.cancel()
        self._next_page_task = None
        self._previous_page_task = None

    def dispose(self) -> None:
        self._disposed = True
        self._cancel_tasks()

        for subscriber in self._subscribers:
            subscriber.unsubscribe()

    def is_loading_next(self) -> bool:
        return self._next_page_task is not None

    def is_loading_previous(self) -> bool:
        return self._previous_page_task is not None

    def is_reached_end_forwards(self) -> bool:
        return self._reached_end_forwards

    def is_reached_end_backwards(self) -> bool:
        return self._reached_end_backwards
