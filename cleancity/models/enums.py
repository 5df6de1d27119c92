from enum import Enum


class ReportStatus(str, Enum):
    OPEN = "open"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    VERIFIED = "verified"
    RESOLVED = "resolved"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class BadgeType(str, Enum):
    CLEANLINESS_ROOKIE = "Cleanliness Rookie"
    ECO_WARRIOR = "Eco Warrior"
    COMMUNITY_CHAMPION = "Community Champion"
    CLEANUP_LEGEND = "Cleanup Legend"


class PointReason(str, Enum):
    REPORT_VERIFIED = "report_verified"
    HIGH_SEVERITY_REPORT = "high_severity_report"
    CONSECUTIVE_DAYS = "consecutive_days"
    FIRST_IN_AREA = "first_in_area"


class SpamReason(str, Enum):
    DAILY_LIMIT = "daily_limit"
    COOLDOWN = "cooldown"
    DUPLICATE = "duplicate"
