import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from cleancity.models.enums import ReportStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusEvent:
    """A report status change, handed to the notification subsystem for delivery."""
    report_id: str
    old_status: Optional[ReportStatus]
    new_status: ReportStatus
    points_awarded: Optional[int] = None


class StatusEventPublisher:
    """Fans status events out to subscribers after the owning transaction has committed."""

    def __init__(self):
        self._subscribers: List[Callable[[StatusEvent], None]] = []

    def subscribe(self, handler: Callable[[StatusEvent], None]) -> None:
        self._subscribers.append(handler)

    def publish(self, event: StatusEvent) -> None:
        logger.info(
            "Report %s status %s -> %s (points=%s)",
            event.report_id,
            event.old_status.value if event.old_status else None,
            event.new_status.value,
            event.points_awarded,
        )
        for handler in self._subscribers:
            try:
                handler(event)
            except Exception:
                # The state change is already committed; delivery problems must not undo it
                logger.exception("Status event handler failed for report %s", event.report_id)
