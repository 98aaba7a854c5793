import argparse
import asyncio
import datetime as dt
import logging

from appy.api_client import ApiClient
from appy.config import Settings, load_settings
from appy.day_view import CLOSED_TIME, DayView
from appy.entity_service import CalendarDayService
from appy.models import CalendarDay
from appy.scroller import compute_time_window

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _parse_date(raw: str) -> dt.date:
    try:
        return dt.date.fromisoformat(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid date {raw!r}, expected YYYY-MM-DD") from e


def _format_offset(offset: dt.timedelta) -> str:
    minutes = int(offset.total_seconds()) // 60
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_day(day: CalendarDay, time_from: dt.timedelta, time_to: dt.timedelta) -> str:
    view = DayView(day.date)
    view.set_window(time_from, time_to)
    view.appointments = day.appointments
    view.working_hours = day.working_hours

    lines = [f"{day.date.isoformat()}  ({_format_offset(time_from)} - {_format_offset(time_to)})"]

    closed = [ri for ri in view.rendered_time_statuses if ri.entity == CLOSED_TIME]
    for ri in closed:
        lines.append(f"  [closed]   top={ri.offset:6.1%} height={ri.height:6.1%}")

    if not view.rendered_appointments:
        lines.append("  no appointments")

    for ri in view.rendered_appointments:
        appointment = ri.entity
        service = appointment.service.name if appointment.service else "?"
        client = appointment.client.full_name if appointment.client else "?"
        lines.append(
            f"  {appointment.time.strftime('%H:%M')}  {service} / {client}"
            f"  top={ri.offset:6.1%} height={ri.height:6.1%}"
        )

    return "\n".join(lines)


async def _run(settings: Settings, date: dt.date, days: int) -> None:
    async with ApiClient.from_settings(settings) as api:
        service = CalendarDayService(api)
        calendar_days = [d for d in await service.get_days(date, days) if d.date is not None]

    logger.info("Loaded %d calendar day(s) from %s", len(calendar_days), date.isoformat())

    time_from, time_to = compute_time_window(calendar_days)
    for day in calendar_days:
        print(format_day(day, time_from, time_to))
        print()


def main() -> int:
    parser = argparse.ArgumentParser(description="Appy: print the calendar day view")
    parser.add_argument("--date", type=_parse_date, default=dt.date.today(), help="First day (YYYY-MM-DD)")
    parser.add_argument("--days", type=int, default=None, help="Number of days (default: DAYS_TO_SHOW)")
    args = parser.parse_args()

    _setup_logging()
    settings = load_settings()
    days = args.days if args.days is not None else settings.days_to_show
    if days < 1:
        parser.error("--days must be >= 1")

    try:
        asyncio.run(_run(settings, args.date, days))
        return 0
    except Exception as e:
        logger.error("Failed to load calendar (%s: %s)", type(e).__name__, e)
        raise


if __name__ == "__main__":
    raise SystemExit(main())
