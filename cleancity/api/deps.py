from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from cleancity.core.config import settings
from cleancity.core.context import EngineContext
from cleancity.core.database import get_db


def get_context(request: Request, db: Session = Depends(get_db)) -> EngineContext:
    """Builds the per-request engine context around process-wide collaborators kept on app.state."""
    state = request.app.state
    return EngineContext(
        db=db,
        settings=settings,
        events=state.status_events,
        leaderboard_cache=state.leaderboard_cache,
        clock=state.clock,
    )


# The authentication layer in front of this service has already verified these identities.

def _require(value: Optional[str], header: str) -> str:
    if not value:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {header} header",
        )
    return value


def get_device_id(x_device_id: Optional[str] = Header(None)) -> str:
    return _require(x_device_id, "X-Device-Id")


def get_worker_id(x_worker_id: Optional[str] = Header(None)) -> str:
    return _require(x_worker_id, "X-Worker-Id")


def get_admin_id(x_admin_id: Optional[str] = Header(None)) -> str:
    return _require(x_admin_id, "X-Admin-Id")
