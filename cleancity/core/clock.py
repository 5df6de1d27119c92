from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise a datetime to aware UTC. Naive values are assumed to already be UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_date(moment: datetime, tz_name: str) -> date:
    return as_utc(moment).astimezone(ZoneInfo(tz_name)).date()


def start_of_local_day(moment: datetime, tz_name: str) -> datetime:
    """Midnight of the local calendar day containing `moment`, expressed in UTC."""
    tz = ZoneInfo(tz_name)
    day = as_utc(moment).astimezone(tz).date()
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)


def next_local_midnight(moment: datetime, tz_name: str) -> datetime:
    tz = ZoneInfo(tz_name)
    tomorrow = as_utc(moment).astimezone(tz).date() + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=tz).astimezone(timezone.utc)
