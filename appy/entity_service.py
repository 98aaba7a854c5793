from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Callable, Generic, Iterable, Mapping, Optional, TypeVar, Union

from appy.api_client import ApiClient
from appy.config import Settings
from appy.datasource import (
    Comparator,
    Datasource,
    Direction,
    FilterPredicate,
    ListDatasource,
    PageableListDatasource,
    SingleDatasource,
    Subscriber,
)
from appy.domain import ApiError
from appy.models import (
    Appointment,
    BaseModel,
    CalendarDay,
    Client,
    Facility,
    Service,
    User,
    WorkingHour,
    compare_appointments,
)
from appy.working_hours import validate_working_hours

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

ErrorCallback = Optional[Callable[[BaseException], None]]
TrackedDatasource = Union[Datasource[Any], PageableListDatasource[Any]]


class EntityService(Generic[T]):
    """CRUD access to one backend controller plus live datasources over its entities.

    Every successful save/add_new/delete is broadcast to all datasources created
    by this service, so every view showing the entity stays in sync.
    """

    controller_name: str = ""
    model_type: type[T]

    def __init__(self, api: ApiClient, *, page_size: int = 20) -> None:
        self.api = api
        self.page_size = page_size
        self._datasources: list[TrackedDatasource] = []

    @classmethod
    def from_settings(cls, api: ApiClient, settings: Settings) -> EntityService[T]:
        return cls(api, page_size=settings.page_size)

    def _path(self, action: str) -> str:
        return f"{self.controller_name}/{action}"

    def _path_id(self, entity_id: Any) -> Any:
        return entity_id

    def _from_dto(self, dto: Any) -> T:
        return self.model_type.from_dto(dto)  # type: ignore[attr-defined]

    def _track(self, datasource: TrackedDatasource) -> None:
        self._datasources.append(datasource)

    def _live_datasources(self) -> list[TrackedDatasource]:
        live = [d for d in self._datasources if not d.is_unsubscribed()]
        self._datasources = live
        return live

    # -- datasources -------------------------------------------------------

    def create_datasource(
        self,
        initial: Iterable[T],
        on_next: Callable[[list[T]], None],
        on_error: ErrorCallback = None,
        filter_predicate: Optional[FilterPredicate] = None,
    ) -> Subscriber[list[T]]:
        subscriber: Subscriber[list[T]] = Subscriber(on_next, on_error)
        datasource: ListDatasource[T] = ListDatasource(subscriber, filter_predicate)
        self._track(datasource)
        datasource.add(initial)
        return subscriber

    async def get_all(
        self,
        on_next: Callable[[list[T]], None],
        on_error: ErrorCallback = None,
        *,
        params: Optional[Mapping[str, Any]] = None,
        filter_predicate: Optional[FilterPredicate] = None,
    ) -> Subscriber[list[T]]:
        subscriber: Subscriber[list[T]] = Subscriber(on_next, on_error)
        datasource: ListDatasource[T] = ListDatasource(subscriber, filter_predicate)
        self._track(datasource)

        try:
            payload = await self.api.get(self._path("getAll"), params)
        except Exception as e:
            logger.error("%s/getAll failed (%s: %s)", self.controller_name, type(e).__name__, e)
            subscriber.error(e)
            return subscriber

        datasource.add([self._from_dto(o) for o in payload or []])
        return subscriber

    def get_list(
        self,
        params: Optional[Mapping[str, Any]],
        compare: Comparator,
        filter_predicate: Optional[FilterPredicate] = None,
    ) -> PageableListDatasource[T]:
        """Pageable datasource over {controller}/getList; the first page starts loading immediately.

        Must be called from a running event loop.
        """
        base_params = dict(params or {})

        async def load_page(direction: Direction, skip: int, take: int) -> list[T]:
            p = {**base_params, "direction": direction, "skip": skip, "take": take}
            payload = await self.api.get(self._path("getList"), p)
            return [self._from_dto(o) for o in payload or []]

        datasource: PageableListDatasource[T] = PageableListDatasource(
            load_page,
            compare,
            filter_predicate,
            page_size=self.page_size,
        )
        self._track(datasource)
        datasource.load()
        return datasource

    async def get(self, entity_id: Any) -> T:
        return self._from_dto(await self.api.get(self._path(f"get/{self._path_id(entity_id)}")))

    async def get_with_datasource(
        self,
        entity_id: Any,
        on_next: Callable[[Optional[T]], None],
        on_error: ErrorCallback = None,
    ) -> Subscriber[Optional[T]]:
        subscriber: Subscriber[Optional[T]] = Subscriber(on_next, on_error)
        datasource: SingleDatasource[T] = SingleDatasource(subscriber, lambda e: e.get_id() == entity_id)
        self._track(datasource)

        try:
            payload = await self.api.get(self._path(f"get/{self._path_id(entity_id)}"))
        except ApiError as e:
            if e.status_code == 404:
                datasource.empty()
            else:
                subscriber.error(e)
            return subscriber
        except Exception as e:
            logger.error("%s/get/%s failed (%s: %s)", self.controller_name, entity_id, type(e).__name__, e)
            subscriber.error(e)
            return subscriber

        datasource.add([self._from_dto(payload)])
        return subscriber

    # -- mutations ---------------------------------------------------------

    async def save(self, entity: T, params: Optional[Mapping[str, Any]] = None) -> T:
        try:
            payload = await self.api.put(self._path(f"edit/{self._path_id(entity.get_id())}"), entity.to_dto(), params)
        except ApiError as e:
            self._apply_validation_errors(entity, e)
            raise

        updated = self._from_dto(payload)
        self.notify_updated(updated)
        return updated

    async def add_new(self, entity: T, params: Optional[Mapping[str, Any]] = None) -> T:
        try:
            payload = await self.api.post(self._path("addNew"), entity.to_dto(), params)
        except ApiError as e:
            self._apply_validation_errors(entity, e)
            raise

        created = self._from_dto(payload)
        self.notify_added(created)
        return created

    async def delete(self, entity_id: Any) -> None:
        await self.api.delete(self._path(f"delete/{self._path_id(entity_id)}"))
        self.notify_deleted(entity_id)

    @staticmethod
    def _apply_validation_errors(entity: T, error: ApiError) -> None:
        errors = error.validation_errors
        if errors:
            entity.apply_server_validation_errors(errors)

    # -- entity tracker ----------------------------------------------------

    def notify_added(self, entity: T) -> None:
        for datasource in self._live_datasources():
            datasource.add([entity])

    def notify_updated(self, entity: T) -> None:
        for datasource in self._live_datasources():
            datasource.update(entity)

    def notify_deleted(self, entity_id: Any) -> None:
        for datasource in self._live_datasources():
            datasource.delete(entity_id)


class FacilityService(EntityService[Facility]):
    controller_name = "facility"
    model_type = Facility


class ServiceService(EntityService[Service]):
    controller_name = "service"
    model_type = Service

    def _path_id(self, entity_id: Any) -> Any:
        # Composite identity (id, facility_id); URLs carry only the id.
        return entity_id[0] if isinstance(entity_id, tuple) else entity_id


class ClientService(EntityService[Client]):
    controller_name = "client"
    model_type = Client


class UserService(EntityService[User]):
    controller_name = "user"
    model_type = User


class WorkingHourService(EntityService[WorkingHour]):
    controller_name = "workingHour"
    model_type = WorkingHour

    async def set_working_hours(self, hours: Iterable[WorkingHour]) -> None:
        """Replace all working hours of the selected facility.

        Validated locally with the backend's rules before sending; live
        datasources of this service should be reloaded afterwards.
        """
        hours = list(hours)
        validate_working_hours(hours)
        await self.api.put(self._path("setWorkingHours"), [w.to_dto() for w in hours])


class AppointmentService(EntityService[Appointment]):
    controller_name = "appointment"
    model_type = Appointment

    def get_appointments(
        self,
        date_from: Optional[dt.date] = None,
        client_id: Optional[int] = None,
        filter_predicate: Optional[FilterPredicate] = None,
    ) -> PageableListDatasource[Appointment]:
        """Chronological pageable list; backwards pages go into the past from date_from."""
        params = {"dateFrom": date_from, "clientId": client_id}
        return self.get_list(params, compare_appointments, filter_predicate)


class CalendarDayService:
    controller_name = "calendarDay"

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def get_days(self, date_from: dt.date, days: int = 1) -> list[CalendarDay]:
        payload = await self.api.get(f"{self.controller_name}/getAll", {"date": date_from, "days": days})
        return [CalendarDay.from_dto(d) for d in payload or []]

    async def get_day(self, date: dt.date) -> CalendarDay:
        for day in await self.get_days(date, 1):
            if day.date == date:
                return day
        return CalendarDay(date=date)
