import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from cleancity.core.clock import as_utc, local_date
from cleancity.core.context import EngineContext
from cleancity.core.exceptions import ErrorCode
from cleancity.models import Citizen, ReportStatus, Severity, SpamReason, Verification, WasteReport
from cleancity.services import workers
from cleancity.services.abuse import check_spam
from cleancity.services.geo import calculate_distance_meters
from cleancity.services.notifications import StatusEvent
from cleancity.services.points import check_streak
from cleancity.services.verification import (
    calculate_time_spent,
    validate_photo_timing,
    validate_worker_proximity,
)

logger = logging.getLogger(__name__)

# OPEN -> ASSIGNED -> IN_PROGRESS -> VERIFIED -> RESOLVED, plus VERIFIED -> ASSIGNED on rejection
VALID_TRANSITIONS = {
    ReportStatus.OPEN: (ReportStatus.ASSIGNED,),
    ReportStatus.ASSIGNED: (ReportStatus.IN_PROGRESS,),
    ReportStatus.IN_PROGRESS: (ReportStatus.VERIFIED,),
    ReportStatus.VERIFIED: (ReportStatus.RESOLVED, ReportStatus.ASSIGNED),
    ReportStatus.RESOLVED: (),
}

SEVERITY_WEIGHTS = {
    Severity.HIGH: 100,
    Severity.MEDIUM: 50,
    Severity.LOW: 10,
}

SPAM_ERRORS = {
    SpamReason.DAILY_LIMIT: (ErrorCode.DAILY_LIMIT_REACHED, "Daily report limit reached. Try again tomorrow."),
    SpamReason.COOLDOWN: (ErrorCode.COOLDOWN_ACTIVE, "Please wait before submitting another report."),
    SpamReason.DUPLICATE: (ErrorCode.DUPLICATE_REPORT, "This spot has already been reported recently."),
}


@dataclass
class TransitionResult:
    is_valid: bool
    from_status: ReportStatus
    to_status: ReportStatus
    error: Optional[str] = None


@dataclass
class LifecycleResult:
    success: bool
    report: Optional[WasteReport] = None
    verification: Optional[Verification] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    retry_after_seconds: Optional[int] = None
    distance: Optional[float] = None
    time_spent: Optional[int] = None


def validate_transition(current: ReportStatus, target: ReportStatus) -> TransitionResult:
    result = TransitionResult(is_valid=False, from_status=current, to_status=target)
    allowed = VALID_TRANSITIONS[current]
    if current == target:
        result.error = f"Status is already {current.value}"
    elif not allowed:
        result.error = f"No transitions allowed from {current.value} (terminal state)"
    elif target not in allowed:
        result.error = (
            f"Invalid transition from {current.value} to {target.value}. "
            f"Allowed: {', '.join(s.value for s in allowed)}"
        )
    else:
        result.is_valid = True
    return result


def apply_transition(report: WasteReport, target: ReportStatus, now: datetime) -> TransitionResult:
    """Moves the report to `target` and stamps that state's timestamp. Leaves it untouched when illegal."""
    result = validate_transition(report.status, target)
    if not result.is_valid:
        return result

    if target == ReportStatus.ASSIGNED:
        # First-assignment time survives a rejection round trip
        if report.assigned_at is None:
            report.assigned_at = now
        report.in_progress_at = None
        report.verified_at = None
    elif target == ReportStatus.IN_PROGRESS:
        report.in_progress_at = now
    elif target == ReportStatus.VERIFIED:
        report.verified_at = now
    elif target == ReportStatus.RESOLVED:
        report.resolved_at = now
    else:
        raise ValueError(f"Unhandled report status {target!r}")

    report.status = target
    return result


def _fail(ctx: EngineContext, code: ErrorCode, message: str, **extra) -> LifecycleResult:
    # Release any row locks taken while checking preconditions
    ctx.db.rollback()
    return LifecycleResult(success=False, error=message, error_code=code, **extra)


def _commit(ctx: EngineContext, action: str, report_id: Optional[str]) -> None:
    try:
        ctx.db.commit()
    except SQLAlchemyError:
        logging.exception("Failed to %s for report %s; rolling back DB transaction", action, report_id)
        ctx.db.rollback()
        raise


def _lock_report(ctx: EngineContext, report_id: str) -> Optional[WasteReport]:
    return ctx.db.query(WasteReport).filter(WasteReport.id == report_id).with_for_update().populate_existing().first()


def _clean_waste_types(waste_types: Optional[Iterable[str]]) -> List[str]:
    seen = []
    for item in waste_types or []:
        value = str(item).strip().lower()
        if value and value not in seen:
            seen.append(value)
    return seen


def validate_report_input(
    ctx: EngineContext, latitude: float, longitude: float, accuracy: float, description: Optional[str]
) -> List[str]:
    errors = []
    if latitude is None or not math.isfinite(latitude) or not -90.0 <= latitude <= 90.0:
        errors.append("Latitude must be between -90 and 90")
    if longitude is None or not math.isfinite(longitude) or not -180.0 <= longitude <= 180.0:
        errors.append("Longitude must be between -180 and 180")
    if accuracy is not None and (not math.isfinite(accuracy) or accuracy < 0):
        errors.append("Accuracy must be non-negative")
    if description and len(description) > ctx.settings.MAX_DESCRIPTION_LENGTH:
        errors.append(f"Description must be at most {ctx.settings.MAX_DESCRIPTION_LENGTH} characters")
    return errors


def create_report(
    ctx: EngineContext,
    device_id: str,
    latitude: float,
    longitude: float,
    accuracy: float = 0.0,
    description: Optional[str] = None,
    severity: Optional[Severity] = None,
    waste_types: Optional[Iterable[str]] = None,
    photo_url: Optional[str] = None,
    area: Optional[str] = None,
) -> LifecycleResult:
    """
    Files a new OPEN report once the abuse checks pass.
    Citizen upsert, report insert and the report counter update commit together.
    """
    errors = validate_report_input(ctx, latitude, longitude, accuracy, description)
    if not device_id:
        errors.append("Device id is required")
    if errors:
        return LifecycleResult(success=False, error="; ".join(errors), error_code=ErrorCode.VALIDATION_ERROR)

    spam = check_spam(ctx, device_id, latitude, longitude)
    if spam.is_spam:
        code, message = SPAM_ERRORS[spam.reason]
        return _fail(ctx, code, message, retry_after_seconds=spam.retry_after_seconds)

    now = ctx.now()
    try:
        citizen = ctx.db.get(Citizen, device_id)
        if citizen is None:
            citizen = Citizen(device_id=device_id, first_seen=now, last_active=now, total_points=0, reports_count=0)
            ctx.db.add(citizen)
            ctx.db.flush()
        else:
            citizen.last_active = now
            check_streak(ctx, device_id)

        description = description.strip() if description else None
        report = WasteReport(
            device_id=device_id,
            latitude=latitude,
            longitude=longitude,
            location_accuracy=accuracy or 0.0,
            photo_url=photo_url,
            area=area or None,
            description=description or None,
            status=ReportStatus.OPEN,
            severity=severity,
            waste_types=_clean_waste_types(waste_types),
            created_at=now,
        )
        ctx.db.add(report)

        citizen.reports_count = (citizen.reports_count or 0) + 1
        if area and not citizen.area:
            citizen.area = area
        citizen.last_report_date = local_date(now, ctx.settings.TIMEZONE)
        ctx.db.commit()
    except SQLAlchemyError:
        logging.exception("Failed to create report for device %s; rolling back DB transaction", device_id)
        ctx.db.rollback()
        raise

    logger.info("Report %s created by device %s", report.id, device_id)
    return LifecycleResult(success=True, report=report)


def assign_worker(ctx: EngineContext, report_id: str, worker_id: str) -> LifecycleResult:
    report = _lock_report(ctx, report_id)
    if report is None:
        return _fail(ctx, ErrorCode.NOT_FOUND, "Report not found")

    worker = workers.get_worker(ctx, worker_id)
    if worker is None or not worker.is_active:
        return _fail(ctx, ErrorCode.NOT_FOUND, "Worker not found or inactive")

    old_status = report.status
    # VERIFIED -> ASSIGNED exists too, but only the rejection path may take it
    if old_status != ReportStatus.OPEN:
        return _fail(ctx, ErrorCode.INVALID_TRANSITION, f"Cannot assign report in status {old_status.value}")

    report.worker_id = worker.id
    apply_transition(report, ReportStatus.ASSIGNED, ctx.now())
    _commit(ctx, "assign worker", report_id)

    logger.info("Report %s assigned to worker %s", report_id, worker_id)
    ctx.events.publish(StatusEvent(report.id, old_status, report.status))
    return LifecycleResult(success=True, report=report)


def start_task(
    ctx: EngineContext,
    report_id: str,
    worker_id: str,
    worker_lat: float,
    worker_lng: float,
    before_photo_url: str,
) -> LifecycleResult:
    """Worker captures the before photo on site; requires the worker to be near the report."""
    report = _lock_report(ctx, report_id)
    if report is None:
        return _fail(ctx, ErrorCode.NOT_FOUND, "Report not found")

    old_status = report.status
    transition = validate_transition(old_status, ReportStatus.IN_PROGRESS)
    if not transition.is_valid:
        return _fail(ctx, ErrorCode.INVALID_TRANSITION, transition.error)
    if report.worker_id != worker_id:
        return _fail(ctx, ErrorCode.VALIDATION_ERROR, "Worker is not assigned to this report")

    proximity = validate_worker_proximity(
        worker_lat, worker_lng, report.latitude, report.longitude,
        max_allowed=ctx.settings.MAX_WORKER_DISTANCE_METERS,
    )
    if not proximity.is_valid:
        logger.info("Worker %s too far from report %s (%.1fm)", worker_id, report_id, proximity.distance)
        return _fail(ctx, ErrorCode.PROXIMITY_ERROR, proximity.error, distance=proximity.distance)

    now = ctx.now()
    verification = Verification(
        report_id=report.id,
        worker_id=worker_id,
        before_photo_url=before_photo_url,
        started_at=now,
        worker_lat=worker_lat,
        worker_lng=worker_lng,
        time_spent=0,
    )
    ctx.db.add(verification)
    apply_transition(report, ReportStatus.IN_PROGRESS, now)
    _commit(ctx, "start task", report_id)

    logger.info("Task started: report %s, verification %s, worker %s", report_id, verification.id, worker_id)
    ctx.events.publish(StatusEvent(report.id, old_status, report.status))
    return LifecycleResult(success=True, report=report, verification=verification, distance=proximity.distance)


def _open_verification(ctx: EngineContext, report_id: str) -> Optional[Verification]:
    return (
        ctx.db.query(Verification)
        .filter(Verification.report_id == report_id, Verification.completed_at.is_(None))
        .order_by(Verification.started_at.desc())
        .first()
    )


def complete_task(ctx: EngineContext, report_id: str, worker_id: str, after_photo_url: str) -> LifecycleResult:
    """Worker captures the after photo; the report becomes VERIFIED and awaits admin approval."""
    report = _lock_report(ctx, report_id)
    if report is None:
        return _fail(ctx, ErrorCode.NOT_FOUND, "Report not found")

    old_status = report.status
    transition = validate_transition(old_status, ReportStatus.VERIFIED)
    if not transition.is_valid:
        return _fail(ctx, ErrorCode.INVALID_TRANSITION, transition.error)

    verification = _open_verification(ctx, report_id)
    if verification is None:
        return _fail(ctx, ErrorCode.NOT_FOUND, "No verification found for this report. Start task first.")
    if verification.worker_id != worker_id:
        return _fail(ctx, ErrorCode.VALIDATION_ERROR, "Only the worker who started the task can complete it")

    now = ctx.now()
    timing = validate_photo_timing(
        verification.started_at, now,
        min_required=ctx.settings.MIN_MINUTES_BETWEEN_PHOTOS,
        max_allowed=ctx.settings.MAX_MINUTES_BETWEEN_PHOTOS,
    )
    if not timing.is_valid:
        return _fail(ctx, ErrorCode.TIMING_ERROR, timing.error)

    verification.after_photo_url = after_photo_url
    verification.completed_at = now
    verification.time_spent = calculate_time_spent(verification.started_at, now)
    apply_transition(report, ReportStatus.VERIFIED, now)
    _commit(ctx, "complete task", report_id)

    logger.info("Task completed: report %s, verification %s, %d minutes", report_id, verification.id, verification.time_spent)
    ctx.events.publish(StatusEvent(report.id, old_status, report.status))
    return LifecycleResult(success=True, report=report, verification=verification, time_spent=verification.time_spent)


def get_report(ctx: EngineContext, report_id: str) -> Optional[WasteReport]:
    return ctx.db.get(WasteReport, report_id)


def get_reports_for_device(ctx: EngineContext, device_id: str) -> List[WasteReport]:
    return (
        ctx.db.query(WasteReport)
        .filter(WasteReport.device_id == device_id)
        .order_by(WasteReport.created_at.desc())
        .all()
    )


def task_priority(report: WasteReport, now: datetime) -> float:
    """severity weight + age in hours; higher is more urgent."""
    weight = SEVERITY_WEIGHTS[report.severity or Severity.LOW]
    age_hours = (as_utc(now) - as_utc(report.created_at)).total_seconds() / 3600.0
    return weight + age_hours


def get_worker_tasks(
    ctx: EngineContext, worker_id: str, status: Optional[ReportStatus] = None
) -> List[WasteReport]:
    statuses = [status] if status else [ReportStatus.ASSIGNED, ReportStatus.IN_PROGRESS]
    tasks = (
        ctx.db.query(WasteReport)
        .filter(WasteReport.worker_id == worker_id, WasteReport.status.in_(statuses))
        .all()
    )
    now = ctx.now()
    return sorted(tasks, key=lambda r: task_priority(r, now), reverse=True)


@dataclass
class PoolTask:
    report: WasteReport
    priority: float
    distance: Optional[float] = None


def get_tasks_for_zones(
    ctx: EngineContext,
    zones: Iterable[str],
    worker_lat: Optional[float] = None,
    worker_lng: Optional[float] = None,
    status: Optional[ReportStatus] = None,
) -> List[PoolTask]:
    """
    Open and in-flight reports filed in any of `zones`, most urgent first.
    Distance from the worker is filled in when their position is known.
    """
    zones = [zone for zone in zones or [] if zone]
    if not zones:
        return []

    statuses = [status] if status else [ReportStatus.OPEN, ReportStatus.ASSIGNED, ReportStatus.IN_PROGRESS]
    reports = (
        ctx.db.query(WasteReport)
        .filter(WasteReport.area.in_(zones), WasteReport.status.in_(statuses))
        .order_by(WasteReport.created_at.asc())
        .all()
    )

    now = ctx.now()
    located = worker_lat is not None and worker_lng is not None
    tasks = [
        PoolTask(
            report=report,
            priority=task_priority(report, now),
            distance=(
                calculate_distance_meters(worker_lat, worker_lng, report.latitude, report.longitude)
                if located else None
            ),
        )
        for report in reports
    ]
    return sorted(tasks, key=lambda task: task.priority, reverse=True)
