from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional


def parse_date(raw: str | None) -> dt.date | None:
    if not raw:
        return None
    # Backend DateOnly: YYYY-MM-DD (a trailing time part is tolerated)
    return dt.date.fromisoformat(raw[:10])


def format_date(value: dt.date | None) -> str | None:
    return value.isoformat() if value is not None else None


def parse_time(raw: str | None) -> dt.time | None:
    if not raw:
        return None
    return dt.time.fromisoformat(raw)


def format_time(value: dt.time | None) -> str | None:
    return value.strftime("%H:%M:%S") if value is not None else None


_TIMESPAN_RE = re.compile(r"^(-)?(?:(\d+)\.)?(\d{1,2}):(\d{2}):(\d{2})(?:\.(\d{1,7}))?$")


def parse_timespan(raw: str | None) -> dt.timedelta | None:
    """Parse a .NET TimeSpan string such as "01:30:00" or "1.02:00:00"."""
    if not raw:
        return None

    m = _TIMESPAN_RE.match(raw.strip())
    if not m:
        raise ValueError(f"Invalid duration: {raw!r}")

    sign, days, hours, minutes, seconds, fraction = m.groups()
    value = dt.timedelta(
        days=int(days or 0),
        hours=int(hours),
        minutes=int(minutes),
        seconds=int(seconds),
        microseconds=int((fraction or "0").ljust(7, "0")[:6]),
    )
    return -value if sign else value


def format_timespan(value: dt.timedelta | None) -> str | None:
    if value is None:
        return None

    total = int(value.total_seconds())
    sign = "-" if total < 0 else ""
    total = abs(total)
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    prefix = f"{days}." if days else ""
    return f"{sign}{prefix}{hours:02d}:{minutes:02d}:{seconds:02d}"


def is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and value == "":
        return False
    return True


@dataclass(frozen=True)
class Validation:
    property_name: str
    is_valid: Callable[[], bool]
    error_code: str
    # Other properties whose change should re-run this validation.
    responsible_properties: tuple[str, ...] = ()


class BaseModel:
    """Common behaviour of entities mirrored from the backend.

    Subclasses are dataclasses. MUTABLE_FIELDS lists the fields copied by
    apply_update(); everything else (identity, bookkeeping) is left alone so
    that references held elsewhere keep pointing at the same object.
    """

    MUTABLE_FIELDS: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        self._broken_validations: dict[str, list[str]] = {}
        self._property_listeners: list[Callable[[str], None]] = []
        self.validations: list[Validation] = self.build_validations()

    def build_validations(self) -> list[Validation]:
        return []

    def get_id(self) -> Any:
        return getattr(self, "id")

    def to_dto(self) -> dict[str, Any]:
        raise NotImplementedError

    def apply_update(self, other: BaseModel) -> None:
        if type(other) is not type(self):
            raise TypeError(f"Cannot update {type(self).__name__} from {type(other).__name__}")
        for name in self.MUTABLE_FIELDS:
            setattr(self, name, getattr(other, name))

    def set_field(self, name: str, value: Any) -> None:
        if name not in self.MUTABLE_FIELDS:
            raise AttributeError(f"{type(self).__name__}.{name} is not a mutable field")
        setattr(self, name, value)
        self.property_changed(name)

    def on_property_changed(self, listener: Callable[[str], None]) -> Callable[[], None]:
        self._property_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._property_listeners:
                self._property_listeners.remove(listener)

        return unsubscribe

    def property_changed(self, name: str) -> None:
        self.validate_property(name)
        for listener in list(self._property_listeners):
            listener(name)

    def validate_property(self, name: str) -> None:
        self._broken_validations[name] = []

        for validation in self.validations:
            if validation.property_name != name and name not in validation.responsible_properties:
                continue

            codes = self._broken_validations.setdefault(validation.property_name, [])
            if not validation.is_valid():
                if validation.error_code not in codes:
                    codes.append(validation.error_code)
            elif validation.error_code in codes:
                codes.remove(validation.error_code)

    def validate(self) -> bool:
        is_valid = True
        self._broken_validations = {}

        for validation in self.validations:
            if not validation.is_valid():
                self._broken_validations.setdefault(validation.property_name, []).append(validation.error_code)
                is_valid = False

        return is_valid

    def get_validation_error(self, name: str) -> str | None:
        codes = self._broken_validations.get(name)
        return codes[0] if codes else None

    def apply_server_validation_errors(self, errors: dict[str, str]) -> None:
        for name, code in errors.items():
            self._broken_validations.setdefault(name, []).append(code)


def _required(model: BaseModel, name: str) -> Validation:
    return Validation(name, lambda: is_present(getattr(model, name)), "REQUIRED")


@dataclass(eq=False)
class Facility(BaseModel):
    MUTABLE_FIELDS = ("name",)

    id: Optional[int] = None
    name: Optional[str] = None

    def build_validations(self) -> list[Validation]:
        return [_required(self, "name")]

    @classmethod
    def from_dto(cls, dto: dict[str, Any] | None) -> Facility:
        dto = dto or {}
        return cls(id=dto.get("id"), name=dto.get("name"))

    def to_dto(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass(eq=False)
class Service(BaseModel):
    MUTABLE_FIELDS = ("name", "duration", "color_id")

    id: Optional[int] = None
    facility_id: Optional[int] = None
    name: Optional[str] = None
    duration: Optional[dt.timedelta] = None
    color_id: Optional[int] = None

    def build_validations(self) -> list[Validation]:
        return [
            _required(self, "name"),
            _required(self, "duration"),
            Validation("duration", lambda: self.duration is None or self.duration > dt.timedelta(0), "POSITIVE"),
        ]

    def get_id(self) -> Any:
        # Services are keyed by (id, facility) on the backend.
        return (self.id, self.facility_id)

    @classmethod
    def from_dto(cls, dto: dict[str, Any] | None) -> Service:
        dto = dto or {}
        return cls(
            id=dto.get("id"),
            facility_id=dto.get("facilityId"),
            name=dto.get("name"),
            duration=parse_timespan(dto.get("duration")),
            color_id=dto.get("colorId"),
        )

    def to_dto(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "facilityId": self.facility_id,
            "name": self.name,
            "duration": format_timespan(self.duration),
            "colorId": self.color_id,
        }


@dataclass(eq=False)
class Client(BaseModel):
    MUTABLE_FIELDS = ("name", "surname", "phone_number", "email")

    id: Optional[int] = None
    name: Optional[str] = None
    surname: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None

    def build_validations(self) -> list[Validation]:
        return [_required(self, "name"), _required(self, "surname")]

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.name, self.surname) if p)

    @classmethod
    def from_dto(cls, dto: dict[str, Any] | None) -> Client:
        dto = dto or {}
        return cls(
            id=dto.get("id"),
            name=dto.get("name"),
            surname=dto.get("surname"),
            phone_number=dto.get("phoneNumber"),
            email=dto.get("email"),
        )

    def to_dto(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "surname": self.surname,
            "phoneNumber": self.phone_number,
            "email": self.email,
        }


@dataclass(eq=False)
class User(BaseModel):
    MUTABLE_FIELDS = ("email", "name", "surname", "selected_facility_id")

    id: Optional[int] = None
    email: Optional[str] = None
    name: Optional[str] = None
    surname: Optional[str] = None
    selected_facility_id: Optional[int] = None

    def build_validations(self) -> list[Validation]:
        return [_required(self, "email"), _required(self, "name"), _required(self, "surname")]

    @classmethod
    def from_dto(cls, dto: dict[str, Any] | None) -> User:
        dto = dto or {}
        return cls(
            id=dto.get("id"),
            email=dto.get("email"),
            name=dto.get("name"),
            surname=dto.get("surname"),
            selected_facility_id=dto.get("selectedFacilityId"),
        )

    def to_dto(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "surname": self.surname,
            "selectedFacilityId": self.selected_facility_id,
        }


@dataclass(eq=False)
class WorkingHour(BaseModel):
    MUTABLE_FIELDS = ("day_of_week", "time_from", "time_to")

    id: Optional[int] = None
    # 0 = Sunday ... 6 = Saturday
    day_of_week: Optional[int] = None
    time_from: Optional[dt.time] = None
    time_to: Optional[dt.time] = None

    def build_validations(self) -> list[Validation]:
        return [
            _required(self, "day_of_week"),
            _required(self, "time_from"),
            _required(self, "time_to"),
            Validation(
                "time_to",
                lambda: self.time_from is None or self.time_to is None or self.time_from < self.time_to,
                "TIMES_NOT_IN_ORDER",
                responsible_properties=("time_from",),
            ),
        ]

    @classmethod
    def from_dto(cls, dto: dict[str, Any] | None) -> WorkingHour:
        dto = dto or {}
        return cls(
            id=dto.get("id"),
            day_of_week=dto.get("dayOfWeek"),
            time_from=parse_time(dto.get("timeFrom")),
            time_to=parse_time(dto.get("timeTo")),
        )

    def to_dto(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "dayOfWeek": self.day_of_week,
            "timeFrom": format_time(self.time_from),
            "timeTo": format_time(self.time_to),
        }


@dataclass(eq=False)
class Appointment(BaseModel):
    MUTABLE_FIELDS = ("date", "time", "duration", "service", "client")

    id: Optional[int] = None
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None
    duration: Optional[dt.timedelta] = None
    service: Optional[Service] = None
    client: Optional[Client] = None

    def build_validations(self) -> list[Validation]:
        return [
            _required(self, "date"),
            _required(self, "time"),
            _required(self, "duration"),
            _required(self, "service"),
            _required(self, "client"),
        ]

    @property
    def start(self) -> dt.datetime | None:
        if self.date is None or self.time is None:
            return None
        return dt.datetime.combine(self.date, self.time)

    @property
    def end(self) -> dt.datetime | None:
        start = self.start
        if start is None or self.duration is None:
            return None
        return start + self.duration

    @classmethod
    def from_dto(cls, dto: dict[str, Any] | None) -> Appointment:
        dto = dto or {}
        return cls(
            id=dto.get("id"),
            date=parse_date(dto.get("date")),
            time=parse_time(dto.get("time")),
            duration=parse_timespan(dto.get("duration")),
            service=Service.from_dto(dto["service"]) if dto.get("service") else None,
            client=Client.from_dto(dto["client"]) if dto.get("client") else None,
        )

    def to_dto(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": format_date(self.date),
            "time": format_time(self.time),
            "duration": format_timespan(self.duration),
            "service": self.service.to_dto() if self.service else None,
            "client": self.client.to_dto() if self.client else None,
        }


def compare_appointments(a: Appointment, b: Appointment) -> int:
    """Chronological order; ties broken by id so the order is total."""
    ka = (a.start or dt.datetime.min, a.id or 0)
    kb = (b.start or dt.datetime.min, b.id or 0)
    return (ka > kb) - (ka < kb)


@dataclass(frozen=True)
class FreeTime:
    from_: dt.datetime
    to_including_duration: dt.datetime

    @classmethod
    def from_dto(cls, dto: dict[str, Any]) -> FreeTime:
        return cls(
            from_=dt.datetime.fromisoformat(dto["from"]),
            to_including_duration=dt.datetime.fromisoformat(dto["toIncludingDuration"]),
        )


@dataclass
class CalendarDay:
    date: Optional[dt.date] = None
    appointments: list[Appointment] = field(default_factory=list)
    working_hours: list[WorkingHour] = field(default_factory=list)

    @classmethod
    def from_dto(cls, dto: dict[str, Any] | None) -> CalendarDay:
        dto = dto or {}
        return cls(
            date=parse_date(dto.get("date")),
            appointments=[Appointment.from_dto(a) for a in dto.get("appointments") or []],
            working_hours=[WorkingHour.from_dto(w) for w in dto.get("workingHours") or []],
        )
