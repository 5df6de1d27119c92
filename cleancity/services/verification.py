import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from cleancity.core.clock import as_utc
from cleancity.services.geo import calculate_distance_meters


@dataclass
class ProximityResult:
    is_valid: bool
    distance: float
    max_allowed: float
    error: Optional[str] = None


@dataclass
class TimingResult:
    is_valid: bool
    time_between_minutes: float
    min_required: int
    max_allowed: int
    error: Optional[str] = None


def validate_worker_proximity(
    worker_lat: float,
    worker_lng: float,
    report_lat: float,
    report_lng: float,
    max_allowed: float,
) -> ProximityResult:
    """A worker may start a task only when standing within `max_allowed` meters of the report (inclusive)."""
    distance = calculate_distance_meters(worker_lat, worker_lng, report_lat, report_lng)
    if distance > max_allowed:
        return ProximityResult(
            is_valid=False,
            distance=distance,
            max_allowed=max_allowed,
            error=(
                f"Worker must be within {max_allowed:g} meters of report location. "
                f"Current distance: {round(distance)} meters"
            ),
        )
    return ProximityResult(is_valid=True, distance=distance, max_allowed=max_allowed)


def validate_photo_timing(
    before: datetime,
    after: datetime,
    min_required: int,
    max_allowed: int,
) -> TimingResult:
    """
    The after photo must follow the before photo by at least `min_required`
    and at most `max_allowed` minutes, both bounds inclusive.
    """
    minutes = (as_utc(after) - as_utc(before)).total_seconds() / 60.0
    result = TimingResult(
        is_valid=False,
        time_between_minutes=minutes,
        min_required=min_required,
        max_allowed=max_allowed,
    )

    if minutes < 0:
        result.error = "After photo cannot be taken before the before photo"
    elif minutes < min_required:
        result.error = (
            f"Time between photos must be at least {min_required} minutes. Current: {minutes:.1f} minutes"
        )
    elif minutes > max_allowed:
        result.error = (
            f"Time between photos must not exceed {max_allowed} minutes. Current: {minutes:.1f} minutes"
        )
    else:
        result.is_valid = True
    return result


def calculate_time_spent(started_at: datetime, completed_at: datetime) -> int:
    """Whole minutes between start and completion, rounded half up, never negative."""
    minutes = (as_utc(completed_at) - as_utc(started_at)).total_seconds() / 60.0
    return max(0, math.floor(minutes + 0.5))
