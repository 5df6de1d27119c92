from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from cleancity.models.enums import ApprovalStatus, ReportStatus, Severity


class ReportCreate(BaseModel):
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    accuracy: float = Field(0.0, ge=0.0)
    description: Optional[str] = Field(None, max_length=50)
    severity: Optional[Severity] = None
    waste_types: List[str] = Field(default_factory=list)
    photo_url: Optional[str] = None
    area: Optional[str] = None


class ReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    device_id: str
    latitude: float
    longitude: float
    location_accuracy: float
    photo_url: Optional[str] = None
    description: Optional[str] = None
    status: ReportStatus
    severity: Optional[Severity] = None
    waste_types: List[str]
    area: Optional[str] = None
    created_at: datetime
    assigned_at: Optional[datetime] = None
    in_progress_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    worker_id: Optional[str] = None
    points_awarded: int


class ReportSubmissionResponse(BaseModel):
    report_id: str
    status: ReportStatus
    message: str
    estimated_cleanup_time: str = "Within 24 hours"


class AssignRequest(BaseModel):
    worker_id: str


class StartTaskRequest(BaseModel):
    worker_lat: float = Field(..., ge=-90.0, le=90.0)
    worker_lng: float = Field(..., ge=-180.0, le=180.0)
    before_photo_url: str


class CompleteTaskRequest(BaseModel):
    after_photo_url: str


class VerificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    report_id: str
    worker_id: str
    before_photo_url: str
    after_photo_url: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    worker_lat: float
    worker_lng: float
    time_spent: int
    approval_status: ApprovalStatus


class TaskActionResponse(BaseModel):
    report_id: str
    status: ReportStatus
    verification_id: Optional[str] = None
    distance: Optional[float] = None
    time_spent: Optional[int] = None


class PoolTaskResponse(BaseModel):
    report: ReportResponse
    distance: Optional[float] = None
    priority: float


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class ApprovalResponse(BaseModel):
    success: bool
    report_id: Optional[str] = None
    verification_id: Optional[str] = None
    points_awarded: Optional[int] = None
    new_status: Optional[ReportStatus] = None


class ApprovalStatsResponse(BaseModel):
    pending_count: int
    approved_today: int
    rejected_today: int
    avg_approval_hours: float


class WorkerCreate(BaseModel):
    name: str
    zones: List[str] = Field(default_factory=list)


class WorkerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    zones: List[str]
    is_active: bool


class CitizenStatsResponse(BaseModel):
    total_points: int
    current_badge: str
    rank: int
    area_rank: int
    reports_count: int
    streak_days: int


class LeaderboardEntryResponse(BaseModel):
    rank: int
    device_id: str
    points: int
    reports_count: int
    badge: str
