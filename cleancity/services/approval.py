import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from cleancity.core.clock import as_utc, start_of_local_day
from cleancity.core.context import EngineContext
from cleancity.core.exceptions import ErrorCode
from cleancity.models import ApprovalStatus, ReportStatus, Verification, WasteReport
from cleancity.services.lifecycle import apply_transition
from cleancity.services.notifications import StatusEvent
from cleancity.services.points import award_points

logger = logging.getLogger(__name__)


@dataclass
class ApprovalResult:
    success: bool
    report_id: Optional[str] = None
    verification_id: Optional[str] = None
    points_awarded: Optional[int] = None
    new_status: Optional[ReportStatus] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None


@dataclass
class ApprovalStats:
    pending_count: int
    approved_today: int
    rejected_today: int
    avg_approval_hours: float


def _decision_error(verification: Verification, report: WasteReport, decision: ApprovalStatus) -> Optional[str]:
    """Why `decision` cannot be applied right now, or None when the verification is still open for review."""
    status = verification.approval_status
    if status == ApprovalStatus.APPROVED:
        if decision == ApprovalStatus.APPROVED:
            return "Verification already approved"
        return "Verification already approved. Cannot reject."
    if status == ApprovalStatus.REJECTED:
        if decision == ApprovalStatus.APPROVED:
            return "Verification was rejected. Cannot approve."
        return "Verification already rejected"
    if report is None or report.status != ReportStatus.VERIFIED:
        current = report.status.value if report is not None else "missing"
        return f"Invalid report state: report is {current}, expected {ReportStatus.VERIFIED.value}"
    return None


def _claim(
    ctx: EngineContext,
    verification_id: str,
    decision: ApprovalStatus,
    admin_id: Optional[str],
    reason: Optional[str] = None,
) -> bool:
    """
    Compare-and-swap PENDING -> decision. Exactly one concurrent caller sees a row count of 1,
    whatever the backend.
    """
    result = ctx.db.execute(
        update(Verification)
        .where(Verification.id == verification_id, Verification.approval_status == ApprovalStatus.PENDING)
        .values(approval_status=decision, reviewed_by=admin_id, reviewed_at=ctx.now(), rejection_reason=reason)
    )
    return result.rowcount == 1


def _decide(
    ctx: EngineContext,
    verification_id: str,
    decision: ApprovalStatus,
    admin_id: Optional[str],
    reason: Optional[str] = None,
) -> ApprovalResult:
    verification = ctx.db.get(Verification, verification_id)
    if verification is None:
        ctx.db.rollback()
        return ApprovalResult(success=False, verification_id=verification_id,
                              error="Verification not found", error_code=ErrorCode.NOT_FOUND)

    report_id = verification.report_id
    error = _decision_error(verification, verification.report, decision)
    if error is None and not _claim(ctx, verification_id, decision, admin_id, reason):
        # Lost the race: re-read what the winner left behind
        ctx.db.rollback()
        verification = ctx.db.get(Verification, verification_id)
        error = _decision_error(verification, verification.report, decision) or "Verification is no longer pending"

    report = None
    if error is None:
        report = ctx.db.query(WasteReport).filter(WasteReport.id == report_id).with_for_update().populate_existing().one()
        if report.status != ReportStatus.VERIFIED:
            error = f"Invalid report state: report is {report.status.value}, expected {ReportStatus.VERIFIED.value}"

    if error is not None:
        ctx.db.rollback()
        logger.info("Cannot %s verification %s: %s", decision.value, verification_id, error)
        return ApprovalResult(success=False, report_id=report_id, verification_id=verification_id,
                              error=error, error_code=ErrorCode.INVALID_TRANSITION)

    old_status = report.status
    points = None
    try:
        if decision == ApprovalStatus.APPROVED:
            apply_transition(report, ReportStatus.RESOLVED, ctx.now())
            points = award_points(ctx, report).total
        else:
            apply_transition(report, ReportStatus.ASSIGNED, ctx.now())
        ctx.db.commit()
    except SQLAlchemyError:
        logging.exception("Failed to %s verification %s; rolling back DB transaction", decision.value, verification_id)
        ctx.db.rollback()
        raise

    new_status = report.status
    if points is not None:
        ctx.leaderboard_cache.invalidate()
    logger.info(
        "Verification %s %s by admin %s (report %s, points=%s, reason=%s)",
        verification_id, decision.value, admin_id, report_id, points, reason,
    )
    ctx.events.publish(StatusEvent(report_id, old_status, new_status, points))
    return ApprovalResult(
        success=True,
        report_id=report_id,
        verification_id=verification_id,
        points_awarded=points,
        new_status=new_status,
    )


def approve(ctx: EngineContext, verification_id: str, admin_id: Optional[str] = None) -> ApprovalResult:
    """Resolves the report and credits the citizen, all in one transaction."""
    return _decide(ctx, verification_id, ApprovalStatus.APPROVED, admin_id)


def reject(
    ctx: EngineContext, verification_id: str, reason: Optional[str] = None, admin_id: Optional[str] = None
) -> ApprovalResult:
    """Sends the task back to the worker's queue (ASSIGNED). Never credits points."""
    return _decide(ctx, verification_id, ApprovalStatus.REJECTED, admin_id, reason)


def list_pending_verifications(ctx: EngineContext, limit: int = 50, offset: int = 0) -> List[Verification]:
    return (
        ctx.db.query(Verification)
        .join(WasteReport, Verification.report_id == WasteReport.id)
        .filter(
            Verification.approval_status == ApprovalStatus.PENDING,
            Verification.completed_at.isnot(None),
            WasteReport.status == ReportStatus.VERIFIED,
        )
        .order_by(Verification.completed_at.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def get_approval_stats(ctx: EngineContext) -> ApprovalStats:
    since = start_of_local_day(ctx.now(), ctx.settings.TIMEZONE)

    def count(status: ApprovalStatus, today_only: bool) -> int:
        query = ctx.db.query(Verification).filter(Verification.approval_status == status)
        if status == ApprovalStatus.PENDING:
            query = query.filter(Verification.completed_at.isnot(None))
        if today_only:
            query = query.filter(Verification.reviewed_at >= since)
        return query.count()

    approved = (
        ctx.db.query(Verification.completed_at, WasteReport.resolved_at)
        .join(WasteReport, Verification.report_id == WasteReport.id)
        .filter(Verification.approval_status == ApprovalStatus.APPROVED, WasteReport.resolved_at.isnot(None))
        .all()
    )
    hours = [
        (as_utc(resolved_at) - as_utc(completed_at)).total_seconds() / 3600.0
        for completed_at, resolved_at in approved
        if completed_at is not None
    ]
    return ApprovalStats(
        pending_count=count(ApprovalStatus.PENDING, False),
        approved_today=count(ApprovalStatus.APPROVED, True),
        rejected_today=count(ApprovalStatus.REJECTED, True),
        avg_approval_hours=sum(hours) / len(hours) if hours else 0.0,
    )
