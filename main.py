import logging

from fastapi import FastAPI

from cleancity.api.routes import router
from cleancity.core.cache import LeaderboardCache
from cleancity.core.clock import utc_now
from cleancity.core.config import settings
from cleancity.core.database import engine
from cleancity.core.exceptions import global_exception_handler
from cleancity.models import Base
from cleancity.services.notifications import StatusEventPublisher

# Basic logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

# Optionally create tables locally (set AUTO_CREATE_TABLES=true for dev/migrations-free environments)
if settings.AUTO_CREATE_TABLES:
    Base.metadata.create_all(bind=engine)

app = FastAPI(title="CleanCity Report Engine")

# Process-wide collaborators; each request builds its EngineContext around these
app.state.status_events = StatusEventPublisher()
app.state.leaderboard_cache = LeaderboardCache(settings.LEADERBOARD_CACHE_TTL_SECONDS)
app.state.clock = utc_now

app.add_exception_handler(Exception, global_exception_handler)
app.include_router(router)
