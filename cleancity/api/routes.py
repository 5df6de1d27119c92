import logging
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from cleancity.api.deps import get_admin_id, get_context, get_device_id, get_worker_id
from cleancity.core.context import EngineContext
from cleancity.core.exceptions import raise_for_failure
from cleancity.models import ReportStatus
from cleancity.schemas.schemas import (
    ApprovalResponse,
    ApprovalStatsResponse,
    AssignRequest,
    CitizenStatsResponse,
    CompleteTaskRequest,
    LeaderboardEntryResponse,
    PoolTaskResponse,
    RejectRequest,
    ReportCreate,
    ReportResponse,
    ReportSubmissionResponse,
    StartTaskRequest,
    TaskActionResponse,
    VerificationResponse,
    WorkerCreate,
    WorkerResponse,
)
from cleancity.services import approval, lifecycle, points, workers

router = APIRouter()


# --- Citizen ---

@router.post("/reports/", response_model=ReportSubmissionResponse, status_code=status.HTTP_201_CREATED)
def submit_report(
    payload: ReportCreate,
    device_id: str = Depends(get_device_id),
    ctx: EngineContext = Depends(get_context),
):
    result = lifecycle.create_report(
        ctx,
        device_id=device_id,
        latitude=payload.latitude,
        longitude=payload.longitude,
        accuracy=payload.accuracy,
        description=payload.description,
        severity=payload.severity,
        waste_types=payload.waste_types,
        photo_url=payload.photo_url,
        area=payload.area,
    )
    raise_for_failure(result)
    return {
        "report_id": result.report.id,
        "status": result.report.status,
        "message": "Report submitted successfully!",
    }


@router.get("/reports/mine", response_model=List[ReportResponse])
def my_reports(device_id: str = Depends(get_device_id), ctx: EngineContext = Depends(get_context)):
    return lifecycle.get_reports_for_device(ctx, device_id)


@router.get("/reports/{report_id}", response_model=ReportResponse)
def get_report(report_id: str, ctx: EngineContext = Depends(get_context)):
    report = lifecycle.get_report(ctx, report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


@router.get("/citizens/me/stats", response_model=CitizenStatsResponse)
def my_stats(device_id: str = Depends(get_device_id), ctx: EngineContext = Depends(get_context)):
    stats = points.get_citizen_stats(ctx, device_id)
    return {
        "total_points": stats.total_points,
        "current_badge": stats.current_badge.value,
        "rank": stats.rank,
        "area_rank": stats.area_rank,
        "reports_count": stats.reports_count,
        "streak_days": stats.streak_days,
    }


@router.get("/leaderboard", response_model=List[LeaderboardEntryResponse])
def leaderboard(
    scope: str = Query("city", pattern="^(city|area)$"),
    area: Optional[str] = None,
    limit: int = Query(10, ge=1, le=100),
    ctx: EngineContext = Depends(get_context),
):
    return [asdict(entry) for entry in points.get_leaderboard(ctx, scope, area, limit)]


# --- Worker ---

@router.get("/worker/tasks", response_model=List[ReportResponse])
def worker_tasks(
    status_filter: Optional[ReportStatus] = Query(None, alias="status"),
    worker_id: str = Depends(get_worker_id),
    ctx: EngineContext = Depends(get_context),
):
    return lifecycle.get_worker_tasks(ctx, worker_id, status_filter)


@router.get("/worker/pool", response_model=List[PoolTaskResponse])
def task_pool(
    lat: Optional[float] = Query(None, ge=-90.0, le=90.0),
    lng: Optional[float] = Query(None, ge=-180.0, le=180.0),
    status_filter: Optional[ReportStatus] = Query(None, alias="status"),
    worker_id: str = Depends(get_worker_id),
    ctx: EngineContext = Depends(get_context),
):
    worker = workers.get_worker(ctx, worker_id)
    if worker is None or not worker.is_active:
        raise HTTPException(status_code=404, detail="Worker not found or inactive")
    tasks = lifecycle.get_tasks_for_zones(ctx, worker.zones, lat, lng, status_filter)
    return [{"report": task.report, "distance": task.distance, "priority": task.priority} for task in tasks]


@router.post("/worker/tasks/{report_id}/start", response_model=TaskActionResponse)
def start_task(
    report_id: str,
    payload: StartTaskRequest,
    worker_id: str = Depends(get_worker_id),
    ctx: EngineContext = Depends(get_context),
):
    result = lifecycle.start_task(
        ctx, report_id, worker_id, payload.worker_lat, payload.worker_lng, payload.before_photo_url
    )
    raise_for_failure(result)
    return {
        "report_id": result.report.id,
        "status": result.report.status,
        "verification_id": result.verification.id,
        "distance": result.distance,
    }


@router.post("/worker/tasks/{report_id}/complete", response_model=TaskActionResponse)
def complete_task(
    report_id: str,
    payload: CompleteTaskRequest,
    worker_id: str = Depends(get_worker_id),
    ctx: EngineContext = Depends(get_context),
):
    result = lifecycle.complete_task(ctx, report_id, worker_id, payload.after_photo_url)
    raise_for_failure(result)
    return {
        "report_id": result.report.id,
        "status": result.report.status,
        "verification_id": result.verification.id,
        "time_spent": result.time_spent,
    }


# --- Admin ---

@router.post("/admin/workers/", response_model=WorkerResponse, status_code=status.HTTP_201_CREATED)
def create_worker(
    payload: WorkerCreate,
    admin_id: str = Depends(get_admin_id),
    ctx: EngineContext = Depends(get_context),
):
    worker = workers.register_worker(ctx, payload.name, payload.zones)
    logging.info("Admin %s registered worker %s", admin_id, worker.id)
    return worker


@router.post("/admin/reports/{report_id}/assign", response_model=ReportResponse)
def assign_report(
    report_id: str,
    payload: AssignRequest,
    admin_id: str = Depends(get_admin_id),
    ctx: EngineContext = Depends(get_context),
):
    result = lifecycle.assign_worker(ctx, report_id, payload.worker_id)
    raise_for_failure(result)
    return result.report


@router.get("/admin/verifications/pending", response_model=List[VerificationResponse])
def pending_verifications(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin_id: str = Depends(get_admin_id),
    ctx: EngineContext = Depends(get_context),
):
    return approval.list_pending_verifications(ctx, limit, offset)


@router.get("/admin/verifications/stats", response_model=ApprovalStatsResponse)
def approval_stats(admin_id: str = Depends(get_admin_id), ctx: EngineContext = Depends(get_context)):
    return asdict(approval.get_approval_stats(ctx))


@router.post("/admin/verifications/{verification_id}/approve", response_model=ApprovalResponse)
def approve_verification(
    verification_id: str,
    admin_id: str = Depends(get_admin_id),
    ctx: EngineContext = Depends(get_context),
):
    result = approval.approve(ctx, verification_id, admin_id)
    raise_for_failure(result)
    return asdict(result)


@router.post("/admin/verifications/{verification_id}/reject", response_model=ApprovalResponse)
def reject_verification(
    verification_id: str,
    payload: RejectRequest,
    admin_id: str = Depends(get_admin_id),
    ctx: EngineContext = Depends(get_context),
):
    result = approval.reject(ctx, verification_id, payload.reason, admin_id)
    raise_for_failure(result)
    return asdict(result)
