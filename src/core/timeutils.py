import calendar
import logging
from datetime import date, datetime, timezone, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def get_zone(tz_name: Optional[str]) -> tzinfo:
    if not tz_name:
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Invalid TIMEZONE '{tz_name}', falling back to UTC")
        return timezone.utc


def local_now(tz_name: Optional[str] = None) -> datetime:
    return datetime.now(get_zone(tz_name))


def local_today(tz_name: Optional[str] = None) -> date:
    return local_now(tz_name).date()


def current_month(tz_name: Optional[str] = None) -> str:
    return local_today(tz_name).strftime("%Y-%m")


def month_bounds(month: str) -> Tuple[date, date]:
    """First and last calendar day of a YYYY-MM month."""
    year, month_num = (int(part) for part in month.split("-"))
    last_day = calendar.monthrange(year, month_num)[1]
    return date(year, month_num, 1), date(year, month_num, last_day)


def format_month(month: str) -> str:
    """'2025-01' -> 'January 2025'."""
    year, month_num = month.split("-")
    return f"{calendar.month_name[int(month_num)]} {year}"
