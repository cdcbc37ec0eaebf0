"""
Plan Baseline API Routes
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel

from tms.database import get_app_db
from tms.models import User, OracleConnection, PlanBaseline, AuditActionType
from tms.core.rbac import get_current_user, require_permission
from tms.core.audit import AuditLogger
from tms.core.errors import InvalidRequest, NotFound
from tms.api.common import ALL, ok

router = APIRouter()


# ============================================================================
# SCHEMAS
# ============================================================================

class PlanBaselineBody(BaseModel):
    """Create and full-replace payload; presence of key fields is checked explicitly."""
    oracle_connection_id: Optional[str] = None
    sql_id: Optional[str] = None
    plan_hash_value: Optional[int] = None
    plan_name: Optional[str] = None
    sql_handle: Optional[str] = None
    is_enabled: Optional[bool] = None
    is_accepted: Optional[bool] = None
    is_fixed: Optional[bool] = None
    plan_table: Optional[List[Dict[str, Any]]] = None
    cost: Optional[float] = None
    executions: Optional[int] = None
    avg_elapsed_time_ms: Optional[float] = None
    avg_buffer_gets: Optional[float] = None
    created_in_oracle_at: Optional[datetime] = None
    last_modified_at: Optional[datetime] = None


# ============================================================================
# HELPERS
# ============================================================================

def _get_baseline(db: Session, baseline_id: str) -> PlanBaseline:
    baseline = db.query(PlanBaseline).filter(PlanBaseline.id == baseline_id).first()
    if not baseline:
        raise NotFound("Plan baseline not found")
    return baseline


def _require_connection(db: Session, connection_id: str) -> None:
    if not db.query(OracleConnection.id).filter(OracleConnection.id == connection_id).first():
        raise NotFound("Connection not found")


def _require_key_fields(body: PlanBaselineBody, fields) -> None:
    missing = [f for f in fields if getattr(body, f) in (None, "")]
    if missing:
        raise InvalidRequest(f"Missing required fields: {', '.join(missing)}")


def _check_plan_name(db: Session, plan_name: Optional[str], exclude_id: Optional[str] = None) -> None:
    if not plan_name:
        return
    query = db.query(PlanBaseline.id).filter(PlanBaseline.plan_name == plan_name)
    if exclude_id:
        query = query.filter(PlanBaseline.id != exclude_id)
    if query.first():
        raise InvalidRequest(f"Plan name '{plan_name}' already exists")


def _apply_full_replace(baseline: PlanBaseline, body: PlanBaselineBody) -> None:
    """Every replaceable field is set; omitted ones return to their defaults."""
    values = body.model_dump()
    for field, default in PlanBaseline.REPLACEABLE_FIELDS.items():
        value = values.get(field)
        if value is None:
            value = default() if callable(default) else default
        setattr(baseline, field, value)


# ============================================================================
# API ENDPOINTS
# ============================================================================

@router.get("")
async def list_plan_baselines(
    connection_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_app_db)
):
    """Tracked baselines, newest first."""
    query = db.query(PlanBaseline)
    if connection_id and connection_id != ALL:
        query = query.filter(PlanBaseline.oracle_connection_id == connection_id)

    baselines = query.order_by(PlanBaseline.created_at.desc(), PlanBaseline.id).all()
    return ok([b.to_dict() for b in baselines])


@router.post("")
async def create_plan_baseline(
    body: PlanBaselineBody,
    request: Request,
    current_user: User = Depends(require_permission("tuning")),
    db: Session = Depends(get_app_db)
):
    _require_key_fields(body, ("oracle_connection_id", "sql_id", "plan_hash_value"))
    _require_connection(db, body.oracle_connection_id)
    _check_plan_name(db, body.plan_name)

    baseline = PlanBaseline(oracle_connection_id=body.oracle_connection_id, created_by=current_user.id)
    _apply_full_replace(baseline, body)
    db.add(baseline)
    db.commit()
    db.refresh(baseline)

    AuditLogger(db, request).log(
        action=AuditActionType.BASELINE_CREATE.value,
        user=current_user,
        resource_type="plan_baseline",
        resource_id=baseline.id,
        connection_id=baseline.oracle_connection_id,
        details={"sql_id": baseline.sql_id, "plan_hash_value": baseline.plan_hash_value}
    )

    return ok(baseline.to_dict())


@router.get("/{baseline_id}")
async def get_plan_baseline(
    baseline_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_app_db)
):
    return ok(_get_baseline(db, baseline_id).to_dict())


@router.put("/{baseline_id}")
async def replace_plan_baseline(
    baseline_id: str,
    body: PlanBaselineBody,
    request: Request,
    current_user: User = Depends(require_permission("tuning")),
    db: Session = Depends(get_app_db)
):
    """Full replace of a baseline."""
    baseline = _get_baseline(db, baseline_id)
    _require_key_fields(body, ("sql_id", "plan_hash_value"))
    if body.oracle_connection_id and body.oracle_connection_id != baseline.oracle_connection_id:
        _require_connection(db, body.oracle_connection_id)
        baseline.oracle_connection_id = body.oracle_connection_id
    _check_plan_name(db, body.plan_name, exclude_id=baseline.id)

    _apply_full_replace(baseline, body)
    db.commit()
    db.refresh(baseline)

    AuditLogger(db, request).log(
        action=AuditActionType.BASELINE_REPLACE.value,
        user=current_user,
        resource_type="plan_baseline",
        resource_id=baseline.id,
        connection_id=baseline.oracle_connection_id
    )

    return ok(baseline.to_dict())


@router.delete("/{baseline_id}")
async def delete_plan_baseline(
    baseline_id: str,
    request: Request,
    current_user: User = Depends(require_permission("tuning")),
    db: Session = Depends(get_app_db)
):
    baseline = _get_baseline(db, baseline_id)
    connection_id = baseline.oracle_connection_id
    db.delete(baseline)
    db.commit()

    AuditLogger(db, request).log(
        action=AuditActionType.BASELINE_DELETE.value,
        user=current_user,
        resource_type="plan_baseline",
        resource_id=baseline_id,
        connection_id=connection_id
    )

    return ok({"id": baseline_id})
