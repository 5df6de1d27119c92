import logging
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from cleancity.core.context import EngineContext
from cleancity.models import Worker


def register_worker(ctx: EngineContext, name: str, zones: Optional[Iterable[str]] = None) -> Worker:
    worker = Worker(name=name, zones=sorted(set(zones or [])), is_active=True, created_at=ctx.now())
    try:
        ctx.db.add(worker)
        ctx.db.commit()
    except SQLAlchemyError:
        logging.exception("Failed to register worker %s; rolling back DB transaction", name)
        ctx.db.rollback()
        raise
    ctx.db.refresh(worker)
    return worker


def get_worker(ctx: EngineContext, worker_id: str) -> Optional[Worker]:
    if not worker_id:
        return None
    return ctx.db.get(Worker, worker_id)
