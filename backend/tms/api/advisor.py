"""
Advisor API Routes - SQL Tuning Advisor and SQL Access Advisor
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Optional
from pydantic import BaseModel

from tms.database import get_app_db
from tms.models import User, AuditActionType
from tms.core.rbac import get_current_user, require_permission
from tms.core.audit import AuditLogger
from tms.core.errors import InvalidRequest
from tms.connections import get_config_resolver, ConfigResolver, get_query_executor, QueryExecutor
from tms.services.advisor_service import (
    AdvisorService, SqlTuningService, SqlAccessTaskService, ACCESS_ANALYSIS_SCOPES, pending_task_body
)
from tms.services.sql_engine import QueryValidator
from tms.api.common import ok, require, require_connection_id

router = APIRouter()

# DBMS_ADVISOR task names end up inside a scheduler job action
MAX_TASK_NAME_LENGTH = 30


# ============================================================================
# SCHEMAS
# ============================================================================

class TuningTaskRequest(BaseModel):
    connection_id: Optional[str] = None
    task_name: Optional[str] = None
    sql_text: Optional[str] = None
    sql_id: Optional[str] = None
    time_limit: int = 60
    description: Optional[str] = None
    execute: bool = True


class TaskNameRequest(BaseModel):
    connection_id: Optional[str] = None
    task_name: Optional[str] = None


class ApplyProfileRequest(BaseModel):
    connection_id: Optional[str] = None
    task_name: Optional[str] = None
    profile_name: Optional[str] = None
    category: str = "DEFAULT"
    force_match: bool = False
    replace: bool = False


class AccessTaskRequest(BaseModel):
    connection_id: Optional[str] = None
    task_name: Optional[str] = None
    analysis_scope: str = "ALL"
    time_limit: int = 300
    description: Optional[str] = None
    max_statements: int = 20


def _task_name(value: Optional[str]) -> str:
    """Upper-cased unquoted identifier short enough for DBMS_ADVISOR."""
    name = require(value, "Task name is required").strip().upper()
    if len(name) > MAX_TASK_NAME_LENGTH or not QueryValidator.is_identifier(name):
        raise InvalidRequest(
            f"Task name must be a plain identifier of at most {MAX_TASK_NAME_LENGTH} characters"
        )
    return name


# ============================================================================
# SQL TUNING ADVISOR
# ============================================================================

@router.post("/sql-tuning/create")
async def create_tuning_task(
    body: TuningTaskRequest,
    request: Request,
    current_user: User = Depends(require_permission("tuning")),
    db: Session = Depends(get_app_db),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Create a tuning task for a statement and execute it."""
    connection_id = require_connection_id(body.connection_id)
    task_name = _task_name(body.task_name)
    if not body.sql_text and not body.sql_id:
        raise InvalidRequest("Either SQL text or SQL ID is required")
    if body.time_limit < 1:
        raise InvalidRequest("time_limit must be positive")

    config = resolver.get_oracle_config(connection_id)
    data = await SqlTuningService(executor, config).create_task(
        task_name,
        sql_text=body.sql_text,
        sql_id=body.sql_id,
        time_limit=body.time_limit,
        description=body.description,
        execute=body.execute
    )

    AuditLogger(db, request).log(
        action=AuditActionType.ADVISOR_TASK.value,
        user=current_user,
        resource_type="sql_tuning_task",
        resource_id=task_name,
        connection_id=connection_id,
        details={"sql_id": body.sql_id, "executed": body.execute}
    )

    return ok(data, message="SQL tuning task created")


@router.post("/sql-tuning/execute")
async def execute_tuning_task(
    body: TaskNameRequest,
    current_user: User = Depends(require_permission("tuning")),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Execute an existing tuning task."""
    connection_id = require_connection_id(body.connection_id)
    task_name = _task_name(body.task_name)

    config = resolver.get_oracle_config(connection_id)
    data = await SqlTuningService(executor, config).execute_task(task_name)

    if not data["completed"]:
        message = f"Task is still running. Current status: {data['status']}"
    elif data["recommendation_count"]:
        message = f"Task completed with {data['recommendation_count']} findings"
    else:
        message = "Task completed without findings"
    return ok(data, message=message)


@router.get("/sql-tuning/tasks")
async def list_tuning_tasks(
    connection_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    connection_id = require_connection_id(connection_id)
    config = resolver.get_oracle_config(connection_id)
    data = await SqlTuningService(executor, config).list_tasks()
    return ok(data["tasks"], count=len(data["tasks"]), view_type=data["view_type"])


@router.get("/sql-tuning/recommendations")
async def get_tuning_recommendations(
    connection_id: Optional[str] = None,
    task_name: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """
    Findings of a tuning task with the text report and script.

    A task that exists but has not completed answers 202 with its status
    and a hint on what to do next.
    """
    connection_id = require_connection_id(connection_id)
    task_name = _task_name(task_name)

    config = resolver.get_oracle_config(connection_id)
    service = SqlTuningService(executor, config)

    status = await service.task_status(task_name)
    if status and status["status"] != "COMPLETED":
        return JSONResponse(status_code=202, content=pending_task_body(task_name, status))

    data = await service.recommendations(task_name)
    return ok(data)


@router.get("/sql-tuning/profiles")
async def list_sql_profiles(
    connection_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    connection_id = require_connection_id(connection_id)
    config = resolver.get_oracle_config(connection_id)
    data = await SqlTuningService(executor, config).list_profiles()
    return ok(data["profiles"], count=len(data["profiles"]), view_type=data["view_type"])


@router.post("/sql-tuning/apply-profile")
async def apply_sql_profile(
    body: ApplyProfileRequest,
    request: Request,
    current_user: User = Depends(require_permission("tuning")),
    db: Session = Depends(get_app_db),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Accept the SQL profile recommended by a tuning task."""
    connection_id = require_connection_id(body.connection_id)
    task_name = _task_name(body.task_name)

    config = resolver.get_oracle_config(connection_id)
    data = await SqlTuningService(executor, config).accept_profile(
        task_name,
        profile_name=body.profile_name,
        category=body.category,
        force_match=body.force_match,
        replace=body.replace
    )

    AuditLogger(db, request).log(
        action=AuditActionType.SQL_PROFILE_APPLY.value,
        user=current_user,
        resource_type="sql_profile",
        resource_id=data["profile_name"],
        connection_id=connection_id,
        details={"task_name": task_name, "category": body.category, "force_match": body.force_match}
    )

    return ok(data, message=f"SQL profile {data['profile_name']} accepted")


# ============================================================================
# SQL ACCESS ADVISOR
# ============================================================================

@router.post("/sql-access/create")
async def create_access_task(
    body: AccessTaskRequest,
    request: Request,
    current_user: User = Depends(require_permission("tuning")),
    db: Session = Depends(get_app_db),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Create a SQL Access Advisor task over the current workload and submit it."""
    connection_id = require_connection_id(body.connection_id)
    task_name = _task_name(body.task_name)
    scope = (body.analysis_scope or "ALL").upper()
    if scope not in ACCESS_ANALYSIS_SCOPES:
        raise InvalidRequest(f"analysis_scope must be one of {', '.join(sorted(ACCESS_ANALYSIS_SCOPES))}")
    if body.time_limit < 1:
        raise InvalidRequest("time_limit must be positive")
    if not 1 <= body.max_statements <= 1000:
        raise InvalidRequest("max_statements must be between 1 and 1000")

    config = resolver.get_oracle_config(connection_id)
    data = await SqlAccessTaskService(executor, config).create_task(
        task_name,
        analysis_scope=scope,
        time_limit=body.time_limit,
        description=body.description,
        max_statements=body.max_statements
    )

    AuditLogger(db, request).log(
        action=AuditActionType.ADVISOR_TASK.value,
        user=current_user,
        resource_type="sql_access_task",
        resource_id=task_name,
        connection_id=connection_id,
        details={"analysis_scope": data["analysis_scope"], "statement_count": data["statement_count"]}
    )

    return ok(data, message=f"SQL Access Advisor task {task_name} submitted")


@router.get("/sql-access/tasks")
async def list_access_tasks(
    connection_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    connection_id = require_connection_id(connection_id)
    config = resolver.get_oracle_config(connection_id)
    data = await SqlAccessTaskService(executor, config).list_tasks()
    return ok(
        data["tasks"],
        count=len(data["tasks"]),
        view_type=data["view_type"],
        advisor_available=data["advisor_available"]
    )


@router.get("/sql-access/recommendations")
async def get_sql_access_recommendations(
    connection_id: Optional[str] = None,
    task_name: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """SQL Access Advisor recommendations for one task."""
    connection_id = require_connection_id(connection_id)
    task_name = require(task_name, "Task name is required")

    config = resolver.get_oracle_config(connection_id)
    data = await AdvisorService(executor, config).recommendations(task_name)

    return ok(data)
