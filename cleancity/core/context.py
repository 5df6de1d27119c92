from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from cleancity.core.cache import LeaderboardCache
from cleancity.core.clock import utc_now
from cleancity.core.config import Settings
from cleancity.services.notifications import StatusEventPublisher


@dataclass
class EngineContext:
    """
    Everything an engine operation needs, passed in explicitly.
    The session is request-scoped; the publisher and cache are owned by the process entry point.
    """
    db: Session
    settings: Settings
    events: StatusEventPublisher = field(default_factory=StatusEventPublisher)
    leaderboard_cache: Optional[LeaderboardCache] = None
    clock: Callable[[], datetime] = utc_now

    def __post_init__(self):
        if self.leaderboard_cache is None:
            self.leaderboard_cache = LeaderboardCache(self.settings.LEADERBOARD_CACHE_TTL_SECONDS)

    def now(self) -> datetime:
        return self.clock()
