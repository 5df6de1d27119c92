import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    TypeDecorator,
)
from sqlalchemy.orm import relationship

from cleancity.core.clock import as_utc
from cleancity.core.database import Base
from cleancity.models.enums import ApprovalStatus, BadgeType, PointReason, ReportStatus, Severity


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes, including on backends that drop the offset (SQLite)."""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value)

    def process_result_value(self, value, dialect):
        return as_utc(value)


def _utcnow():
    return datetime.now(timezone.utc)


def _uuid():
    return str(uuid.uuid4())


def _enum(enum_cls, name):
    # Persist the lowercase values rather than the member names
    return Enum(enum_cls, name=name, native_enum=False, values_callable=lambda e: [m.value for m in e])


class Citizen(Base):
    __tablename__ = "citizens"
    device_id = Column(String(128), primary_key=True)
    first_seen = Column(UTCDateTime, default=_utcnow)
    last_active = Column(UTCDateTime, default=_utcnow)
    total_points = Column(Integer, nullable=False, default=0)
    reports_count = Column(Integer, nullable=False, default=0)
    current_badge = Column(String(64), nullable=False, default=BadgeType.CLEANLINESS_ROOKIE.value)
    streak_days = Column(Integer, nullable=False, default=0)
    last_report_date = Column(Date, nullable=True)
    area = Column(String, nullable=True, index=True)
    city = Column(String, nullable=True)
    reports = relationship("WasteReport", back_populates="citizen")


class Worker(Base):
    __tablename__ = "workers"
    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    zones = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, default=_utcnow)
    reports = relationship("WasteReport", back_populates="worker")


class WasteReport(Base):
    __tablename__ = "reports"
    id = Column(String(36), primary_key=True, default=_uuid)
    device_id = Column(String(128), ForeignKey("citizens.device_id"), nullable=False, index=True)
    latitude = Column(Float, nullable=False, index=True)
    longitude = Column(Float, nullable=False, index=True)
    location_accuracy = Column(Float, nullable=False, default=0.0)
    photo_url = Column(String, nullable=True)
    description = Column(String(50), nullable=True)
    status = Column(_enum(ReportStatus, "report_status"), nullable=False, default=ReportStatus.OPEN, index=True)
    severity = Column(_enum(Severity, "severity"), nullable=True)
    waste_types = Column(JSON, nullable=False, default=list)
    area = Column(String, nullable=True, index=True)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow, index=True)
    assigned_at = Column(UTCDateTime, nullable=True)
    in_progress_at = Column(UTCDateTime, nullable=True)
    verified_at = Column(UTCDateTime, nullable=True)
    resolved_at = Column(UTCDateTime, nullable=True)
    worker_id = Column(String(36), ForeignKey("workers.id"), nullable=True, index=True)
    points_awarded = Column(Integer, nullable=False, default=0)
    citizen = relationship("Citizen", back_populates="reports")
    worker = relationship("Worker", back_populates="reports")
    verifications = relationship("Verification", back_populates="report", order_by="Verification.started_at")


class Verification(Base):
    __tablename__ = "verifications"
    id = Column(String(36), primary_key=True, default=_uuid)
    report_id = Column(String(36), ForeignKey("reports.id"), nullable=False, index=True)
    worker_id = Column(String(36), ForeignKey("workers.id"), nullable=False)
    before_photo_url = Column(String, nullable=False)
    after_photo_url = Column(String, nullable=True)
    started_at = Column(UTCDateTime, nullable=False)
    completed_at = Column(UTCDateTime, nullable=True)
    worker_lat = Column(Float, nullable=False)
    worker_lng = Column(Float, nullable=False)
    time_spent = Column(Integer, nullable=False, default=0)
    approval_status = Column(
        _enum(ApprovalStatus, "approval_status"), nullable=False, default=ApprovalStatus.PENDING, index=True
    )
    reviewed_by = Column(String, nullable=True)
    reviewed_at = Column(UTCDateTime, nullable=True)
    rejection_reason = Column(String, nullable=True)
    report = relationship("WasteReport", back_populates="verifications")
    worker = relationship("Worker")


class PointsHistory(Base):
    __tablename__ = "points_history"
    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(String(128), ForeignKey("citizens.device_id"), nullable=False, index=True)
    report_id = Column(String(36), ForeignKey("reports.id"), nullable=False)
    points = Column(Integer, nullable=False)
    reason = Column(_enum(PointReason, "point_reason"), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)
