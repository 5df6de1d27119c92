import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy import func

from cleancity.core.clock import as_utc, next_local_midnight, start_of_local_day
from cleancity.core.context import EngineContext
from cleancity.models import ReportStatus, SpamReason, WasteReport
from cleancity.services.geo import bounding_box, calculate_distance_meters

logger = logging.getLogger(__name__)


@dataclass
class SpamCheckResult:
    is_spam: bool
    reason: Optional[SpamReason] = None
    retry_after_seconds: Optional[int] = None


def check_spam(ctx: EngineContext, device_id: str, latitude: float, longitude: float) -> SpamCheckResult:
    """
    Runs the abuse checks in priority order and stops at the first violation:
    daily limit, then cooldown, then duplicate location. Read only.
    """
    exceeded, count = check_daily_limit(ctx, device_id)
    if exceeded:
        logger.info("Daily limit exceeded for device %s (%d reports today)", device_id, count)
        return SpamCheckResult(
            is_spam=True,
            reason=SpamReason.DAILY_LIMIT,
            retry_after_seconds=seconds_until_midnight(ctx.now(), ctx.settings.TIMEZONE),
        )

    active, wait_seconds = check_cooldown(ctx, device_id)
    if active:
        logger.info("Cooldown active for device %s, %ss remaining", device_id, wait_seconds)
        return SpamCheckResult(is_spam=True, reason=SpamReason.COOLDOWN, retry_after_seconds=wait_seconds)

    if check_duplicate(ctx, latitude, longitude):
        logger.info("Duplicate report from device %s at (%s, %s)", device_id, latitude, longitude)
        return SpamCheckResult(is_spam=True, reason=SpamReason.DUPLICATE)

    return SpamCheckResult(is_spam=False)


def check_daily_limit(ctx: EngineContext, device_id: str) -> Tuple[bool, int]:
    since = start_of_local_day(ctx.now(), ctx.settings.TIMEZONE)
    count = (
        ctx.db.query(func.count(WasteReport.id))
        .filter(WasteReport.device_id == device_id, WasteReport.created_at >= since)
        .scalar()
    ) or 0
    return count >= ctx.settings.MAX_REPORTS_PER_DAY, count


def check_cooldown(ctx: EngineContext, device_id: str) -> Tuple[bool, Optional[int]]:
    last_report = (
        ctx.db.query(WasteReport.created_at)
        .filter(WasteReport.device_id == device_id)
        .order_by(WasteReport.created_at.desc())
        .first()
    )
    if last_report is None:
        return False, None

    elapsed = (ctx.now() - as_utc(last_report.created_at)).total_seconds()
    cooldown_seconds = ctx.settings.COOLDOWN_MINUTES * 60
    if elapsed < cooldown_seconds:
        return True, math.ceil(cooldown_seconds - elapsed)
    return False, None


def check_duplicate(ctx: EngineContext, latitude: float, longitude: float) -> bool:
    """True when an OPEN report from the duplicate window lies within the duplicate radius."""
    radius = ctx.settings.DUPLICATE_RADIUS_METERS
    window_start = ctx.now() - timedelta(hours=ctx.settings.DUPLICATE_WINDOW_HOURS)
    min_lat, max_lat, min_lon, max_lon = bounding_box(latitude, longitude, radius)

    candidates = (
        ctx.db.query(WasteReport.latitude, WasteReport.longitude)
        .filter(
            WasteReport.status == ReportStatus.OPEN,
            WasteReport.created_at > window_start,
            WasteReport.latitude.between(min_lat, max_lat),
            WasteReport.longitude.between(min_lon, max_lon),
        )
        .all()
    )
    for report_lat, report_lng in candidates:
        if calculate_distance_meters(latitude, longitude, report_lat, report_lng) <= radius:
            return True
    return False


def seconds_until_midnight(now: datetime, tz_name: str) -> int:
    return math.ceil((next_local_midnight(now, tz_name) - as_utc(now)).total_seconds())
