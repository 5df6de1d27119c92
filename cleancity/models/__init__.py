from cleancity.core.database import Base
from cleancity.models.enums import (
    ApprovalStatus,
    BadgeType,
    PointReason,
    ReportStatus,
    Severity,
    SpamReason,
)
from cleancity.models.models import (
    Citizen,
    PointsHistory,
    UTCDateTime,
    Verification,
    WasteReport,
    Worker,
)
