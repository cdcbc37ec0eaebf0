"""
Prefetch Scheduler API Routes
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional
from pydantic import BaseModel, Field

from tms.config import settings
from tms.database import get_app_db
from tms.models import User, OracleConnection
from tms.core.rbac import get_current_user, require_permission
from tms.core.errors import NotFound, InvalidRequest
from tms.services.prefetch_scheduler import PrefetchScheduler
from tms.api.common import ok

router = APIRouter()


class StartRequest(BaseModel):
    interval_seconds: float = Field(default_factory=lambda: settings.SCHEDULER_DEFAULT_INTERVAL_SECONDS, gt=0)


class SchedulerUpdate(BaseModel):
    interval_seconds: Optional[float] = Field(None, gt=0)
    enabled: Optional[bool] = None


def get_scheduler(request: Request) -> PrefetchScheduler:
    """Scheduler instance created in the application lifespan."""
    return request.app.state.prefetch_scheduler


def _require_active(db: Session, connection_id: str) -> None:
    if not db.query(OracleConnection.id).filter(
        OracleConnection.id == connection_id,
        OracleConnection.is_active == True
    ).first():
        raise NotFound("Connection not found or inactive")


def _state_or_404(scheduler: PrefetchScheduler, connection_id: str):
    state = scheduler.get_state(connection_id)
    if state is None:
        raise NotFound("No schedule for this connection")
    return state


@router.get("")
async def list_schedules(
    current_user: User = Depends(get_current_user),
    scheduler: PrefetchScheduler = Depends(get_scheduler)
):
    return ok([state.to_dict() for state in scheduler.states()])


@router.post("/{connection_id}/start")
async def start_schedule(
    connection_id: str,
    body: Optional[StartRequest] = None,
    current_user: User = Depends(require_permission("monitoring")),
    db: Session = Depends(get_app_db),
    scheduler: PrefetchScheduler = Depends(get_scheduler)
):
    """Collect now and then every interval_seconds."""
    _require_active(db, connection_id)
    body = body or StartRequest()
    state = scheduler.start(connection_id, body.interval_seconds)
    return ok(state.to_dict())


@router.post("/{connection_id}/stop")
async def stop_schedule(
    connection_id: str,
    current_user: User = Depends(require_permission("monitoring")),
    scheduler: PrefetchScheduler = Depends(get_scheduler)
):
    stopped = scheduler.stop(connection_id)
    state = scheduler.get_state(connection_id)
    return ok(state.to_dict() if state else None, stopped=stopped)


@router.post("/{connection_id}/trigger")
async def trigger_schedule(
    connection_id: str,
    current_user: User = Depends(require_permission("monitoring")),
    scheduler: PrefetchScheduler = Depends(get_scheduler)
):
    """Run one collection outside the timer."""
    state = _state_or_404(scheduler, connection_id)
    if not state.is_active:
        raise InvalidRequest("Schedule is not active")

    succeeded = await scheduler.trigger(connection_id)
    return ok(state.to_dict(), triggered=succeeded)


@router.patch("/{connection_id}")
async def update_schedule(
    connection_id: str,
    update: SchedulerUpdate,
    current_user: User = Depends(require_permission("monitoring")),
    db: Session = Depends(get_app_db),
    scheduler: PrefetchScheduler = Depends(get_scheduler)
):
    """Change the interval or enable/disable a schedule."""
    if update.enabled:
        _require_active(db, connection_id)
        if scheduler.get_state(connection_id) is None and update.interval_seconds is None:
            update.interval_seconds = settings.SCHEDULER_DEFAULT_INTERVAL_SECONDS
    else:
        _state_or_404(scheduler, connection_id)

    state = scheduler.update_config(
        connection_id,
        interval_seconds=update.interval_seconds,
        enabled=update.enabled
    )
    return ok(state.to_dict() if state else None)
