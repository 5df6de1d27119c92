import hashlib
import logging
from dataclasses import asdict, dataclass
from typing import List, Optional

from cleancity.core.clock import local_date
from cleancity.core.config import Settings
from cleancity.core.context import EngineContext
from cleancity.models import BadgeType, Citizen, PointReason, PointsHistory, ReportStatus, Severity, WasteReport
from cleancity.services.geo import bounding_box, calculate_distance_meters

logger = logging.getLogger(__name__)

# Highest threshold first; each bound is inclusive
BADGE_THRESHOLDS = [
    (500, BadgeType.CLEANUP_LEGEND),
    (200, BadgeType.COMMUNITY_CHAMPION),
    (50, BadgeType.ECO_WARRIOR),
    (0, BadgeType.CLEANLINESS_ROOKIE),
]


@dataclass
class PointsBreakdown:
    base: int
    severity_bonus: int
    pioneer_bonus: int
    streak_bonus: int
    total: int


@dataclass
class LeaderboardEntry:
    rank: int
    device_id: str
    points: int
    reports_count: int
    badge: str


@dataclass
class CitizenStats:
    total_points: int
    current_badge: BadgeType
    rank: int
    reports_count: int
    streak_days: int
    area_rank: int = 0


def calculate_points_for_report(
    severity: Optional[Severity], is_first_in_area: bool, streak_days: int, config: Settings
) -> PointsBreakdown:
    """All bonuses are additive on top of the flat base."""
    base = config.POINTS_REPORT_VERIFIED
    severity_bonus = config.POINTS_HIGH_SEVERITY_BONUS if severity == Severity.HIGH else 0
    pioneer_bonus = config.POINTS_FIRST_IN_AREA if is_first_in_area else 0
    streak_bonus = max(0, streak_days) * config.POINTS_PER_STREAK_DAY
    return PointsBreakdown(
        base=base,
        severity_bonus=severity_bonus,
        pioneer_bonus=pioneer_bonus,
        streak_bonus=streak_bonus,
        total=base + severity_bonus + pioneer_bonus + streak_bonus,
    )


def calculate_badge(total_points: int) -> BadgeType:
    for threshold, badge in BADGE_THRESHOLDS:
        if total_points >= threshold:
            return badge
    return BadgeType.CLEANLINESS_ROOKIE


def check_streak(ctx: EngineContext, device_id: str) -> int:
    """
    Returns the citizen's streak, advancing it when the last report was yesterday
    and restarting it at 1 after a longer gap. Changes are flushed, not committed:
    the caller owns the transaction.
    """
    citizen = ctx.db.get(Citizen, device_id)
    if citizen is None or citizen.last_report_date is None:
        return 0

    today = local_date(ctx.now(), ctx.settings.TIMEZONE)
    gap = (today - citizen.last_report_date).days

    if gap == 0:
        return citizen.streak_days or 0
    if gap == 1:
        citizen.streak_days = (citizen.streak_days or 0) + 1
    else:
        citizen.streak_days = 1
    citizen.last_report_date = today
    ctx.db.flush()
    return citizen.streak_days


def is_first_in_area(ctx: EngineContext, report: WasteReport) -> bool:
    """True when no other resolved report lies strictly inside the pioneer radius."""
    radius = ctx.settings.PIONEER_RADIUS_METERS
    min_lat, max_lat, min_lon, max_lon = bounding_box(report.latitude, report.longitude, radius)
    candidates = (
        ctx.db.query(WasteReport.latitude, WasteReport.longitude)
        .filter(
            WasteReport.id != report.id,
            WasteReport.status == ReportStatus.RESOLVED,
            WasteReport.latitude.between(min_lat, max_lat),
            WasteReport.longitude.between(min_lon, max_lon),
        )
        .all()
    )
    for lat, lng in candidates:
        if calculate_distance_meters(report.latitude, report.longitude, lat, lng) < radius:
            return False
    return True


def award_points(ctx: EngineContext, report: WasteReport) -> PointsBreakdown:
    """
    Credits the reporting citizen for an approved report: ledger row, running total,
    badge and the report's points_awarded. Runs inside the caller's transaction.
    The streak is read as stored; only report submission moves it.
    """
    citizen = (
        ctx.db.query(Citizen)
        .filter(Citizen.device_id == report.device_id)
        .with_for_update()
        .populate_existing()
        .one()
    )
    first_in_area = is_first_in_area(ctx, report)
    breakdown = calculate_points_for_report(report.severity, first_in_area, citizen.streak_days or 0, ctx.settings)

    citizen.total_points = (citizen.total_points or 0) + breakdown.total
    citizen.current_badge = calculate_badge(citizen.total_points).value
    citizen.last_active = ctx.now()

    ctx.db.add(PointsHistory(
        device_id=report.device_id,
        report_id=report.id,
        points=breakdown.total,
        reason=PointReason.REPORT_VERIFIED,
        created_at=ctx.now(),
    ))
    report.points_awarded = breakdown.total
    ctx.db.flush()

    logger.info("Awarding %d points to %s for report %s: %s", breakdown.total, report.device_id, report.id, asdict(breakdown))
    return breakdown


def anonymize_device_id(device_id: str) -> str:
    digest = hashlib.sha256(device_id.encode("utf-8")).hexdigest()
    return f"user_{digest[:8]}***"


def _rank_of(ctx: EngineContext, citizen: Citizen, area: Optional[str] = None) -> int:
    query = ctx.db.query(Citizen).filter(Citizen.total_points > citizen.total_points)
    if area is not None:
        query = query.filter(Citizen.area == area)
    return query.count() + 1


def get_citizen_stats(ctx: EngineContext, device_id: str) -> CitizenStats:
    citizen = ctx.db.get(Citizen, device_id)
    if citizen is None:
        return CitizenStats(
            total_points=0,
            current_badge=BadgeType.CLEANLINESS_ROOKIE,
            rank=0,
            reports_count=0,
            streak_days=0,
        )
    return CitizenStats(
        total_points=citizen.total_points,
        current_badge=calculate_badge(citizen.total_points),
        rank=_rank_of(ctx, citizen),
        reports_count=citizen.reports_count,
        streak_days=citizen.streak_days,
        area_rank=_rank_of(ctx, citizen, citizen.area) if citizen.area else 0,
    )


def get_leaderboard(
    ctx: EngineContext, scope: str = "city", area: Optional[str] = None, limit: int = 10
) -> List[LeaderboardEntry]:
    cache_key = f"leaderboard:{scope}:{area or 'all'}:{limit}"

    def load() -> List[LeaderboardEntry]:
        query = ctx.db.query(Citizen)
        if scope == "area" and area:
            query = query.filter(Citizen.area == area)
        rows = query.order_by(Citizen.total_points.desc(), Citizen.first_seen.asc()).limit(limit).all()
        return [
            LeaderboardEntry(
                rank=position,
                device_id=anonymize_device_id(row.device_id),
                points=row.total_points,
                reports_count=row.reports_count,
                badge=row.current_badge,
            )
            for position, row in enumerate(rows, start=1)
        ]

    return ctx.leaderboard_cache.get_or_load(cache_key, load)


def points_ledger_total(ctx: EngineContext, device_id: str) -> int:
    rows: List[PointsHistory] = ctx.db.query(PointsHistory).filter(PointsHistory.device_id == device_id).all()
    return sum(row.points for row in rows)
