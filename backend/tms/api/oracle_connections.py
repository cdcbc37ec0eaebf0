"""
Oracle Connection API Routes - Monitored instance management
"""
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from tms.database import get_app_db
from tms.models import (
    User, OracleConnection, ConnectionType, HealthStatus, AuditActionType,
    PlanBaseline, HISTORY_MODELS
)
from tms.core.rbac import get_current_user, require_permission
from tms.core.crypto import encrypt_value
from tms.core.audit import AuditLogger
from tms.core.errors import InvalidRequest, NotFound
from tms.connections import health_monitor, get_config_resolver, ConfigResolver, get_query_executor, QueryExecutor
from tms.connections.config_resolver import OracleConnectionConfig, normalize_privilege, record_pool_key
from tms.connections.connectors.base_connector import HealthCheckResult
from tms.api.common import ok, parse_int

router = APIRouter()


# ============================================================================
# SCHEMAS
# ============================================================================

class OracleConnectionCreate(BaseModel):
    """Schema for registering an Oracle instance."""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    host: str = Field(..., min_length=1)
    port: int = Field(1521, ge=1, le=65535)
    service_name: Optional[str] = None
    sid: Optional[str] = None
    connection_type: ConnectionType = ConnectionType.SERVICE_NAME
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    privilege: Optional[str] = None
    is_default: bool = False
    max_connections: int = Field(10, ge=1, le=100)
    connection_timeout: int = Field(30000, ge=1000)


class OracleConnectionUpdate(BaseModel):
    """Partial edit; only the fields sent are applied."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = Field(None, ge=1, le=65535)
    service_name: Optional[str] = None
    sid: Optional[str] = None
    connection_type: Optional[ConnectionType] = None
    username: Optional[str] = None
    password: Optional[str] = None
    privilege: Optional[str] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None
    max_connections: Optional[int] = Field(None, ge=1, le=100)
    connection_timeout: Optional[int] = Field(None, ge=1000)


class OracleConnectionTest(BaseModel):
    """Unsaved target to check."""
    name: Optional[str] = None
    host: str = Field(..., min_length=1)
    port: int = Field(1521, ge=1, le=65535)
    service_name: Optional[str] = None
    sid: Optional[str] = None
    connection_type: ConnectionType = ConnectionType.SERVICE_NAME
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    privilege: Optional[str] = None


# Fields whose change makes an existing pool stale
POOL_FIELDS = (
    "host", "port", "service_name", "sid", "connection_type", "username", "password", "privilege",
    "max_connections", "connection_timeout"
)


# ============================================================================
# HELPERS
# ============================================================================

def serialize_connection(connection: OracleConnection) -> dict:
    """Connection record without its credential."""
    return {
        "id": connection.id,
        "name": connection.name,
        "description": connection.description,
        "host": connection.host,
        "port": connection.port,
        "service_name": connection.service_name,
        "sid": connection.sid,
        "connection_type": connection.connection_type,
        "username": connection.username,
        "privilege": connection.privilege,
        "oracle_version": connection.oracle_version,
        "oracle_edition": connection.oracle_edition,
        "is_active": connection.is_active,
        "is_default": connection.is_default,
        "max_connections": connection.max_connections,
        "connection_timeout": connection.connection_timeout,
        "health_status": connection.health_status,
        "last_connected_at": connection.last_connected_at.isoformat() if connection.last_connected_at else None,
        "last_health_check_at": connection.last_health_check_at.isoformat() if connection.last_health_check_at else None,
        "created_at": connection.created_at.isoformat() if connection.created_at else None,
        "updated_at": connection.updated_at.isoformat() if connection.updated_at else None,
    }


def serialize_health(result: HealthCheckResult) -> dict:
    return {
        "is_healthy": result.is_healthy,
        "response_time_ms": result.response_time_ms,
        "error": result.error_message,
        "version": result.version,
        "version_label": result.version_label,
        "edition": result.edition,
        "instance_name": result.instance_name,
        "host_name": result.host_name,
        "timestamp": result.timestamp.isoformat() if result.timestamp else None,
    }


def _target_fields(connection_type: ConnectionType, service_name: Optional[str], sid: Optional[str]) -> dict:
    """Service name and SID are mutually exclusive; keep the one the type selects."""
    if connection_type == ConnectionType.SID:
        if not sid:
            raise InvalidRequest("SID is required")
        return {"service_name": None, "sid": sid}
    if not service_name:
        raise InvalidRequest("Service name is required")
    return {"service_name": service_name, "sid": None}


def _get_connection(db: Session, connection_id: str) -> OracleConnection:
    connection = db.query(OracleConnection).filter(OracleConnection.id == connection_id).first()
    if not connection:
        raise NotFound("Connection not found")
    return connection


def _check_unique(db: Session, host: str, port: int, service_name: Optional[str], sid: Optional[str],
                  username: str, name: str, exclude_id: Optional[str] = None) -> None:
    query = db.query(OracleConnection).filter(
        OracleConnection.host == host,
        OracleConnection.port == port,
        OracleConnection.service_name == service_name if service_name else OracleConnection.service_name.is_(None),
        OracleConnection.sid == sid if sid else OracleConnection.sid.is_(None),
        OracleConnection.username == username
    )
    if exclude_id:
        query = query.filter(OracleConnection.id != exclude_id)
    if query.first():
        raise InvalidRequest("A connection to this target with this user already exists")

    query = db.query(OracleConnection).filter(OracleConnection.name == name)
    if exclude_id:
        query = query.filter(OracleConnection.id != exclude_id)
    if query.first():
        raise InvalidRequest(f"Connection '{name}' already exists")


def _clear_other_defaults(db: Session, keep_id: Optional[str] = None) -> None:
    query = db.query(OracleConnection).filter(OracleConnection.is_default == True)
    if keep_id:
        query = query.filter(OracleConnection.id != keep_id)
    query.update({OracleConnection.is_default: False}, synchronize_session="fetch")


def _is_referenced(db: Session, connection_id: str) -> bool:
    for model in HISTORY_MODELS + (PlanBaseline,):
        if db.query(model.id).filter(model.oracle_connection_id == connection_id).first():
            return True
    return False


# ============================================================================
# API ENDPOINTS
# ============================================================================

@router.get("")
async def list_connections(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_app_db)
):
    """List registered connections, default first."""
    connections = db.query(OracleConnection).order_by(
        OracleConnection.is_default.desc(), OracleConnection.name
    ).all()
    return ok([serialize_connection(c) for c in connections])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_connection(
    connection: OracleConnectionCreate,
    request: Request,
    current_user: User = Depends(require_permission("connections")),
    db: Session = Depends(get_app_db),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Register a connection after proving the target is reachable."""
    target = _target_fields(connection.connection_type, connection.service_name, connection.sid)
    privilege = normalize_privilege(connection.privilege)

    _check_unique(db, connection.host, connection.port, target["service_name"], target["sid"],
                  connection.username, connection.name)

    config = OracleConnectionConfig(
        name=connection.name,
        host=connection.host,
        port=connection.port,
        username=connection.username,
        password=connection.password,
        connection_type=connection.connection_type.value,
        privilege=privilege,
        max_connections=connection.max_connections,
        connection_timeout=connection.connection_timeout,
        **target
    )
    health = await executor.check_unsaved(config)
    if not health.is_healthy:
        raise InvalidRequest("Connection test failed", details=health.error_message or "Unable to connect to database")

    if connection.is_default:
        _clear_other_defaults(db)

    now = datetime.utcnow()
    record = OracleConnection(
        name=connection.name,
        description=connection.description,
        host=connection.host,
        port=connection.port,
        connection_type=connection.connection_type.value,
        username=connection.username,
        password_encrypted=encrypt_value(connection.password),
        privilege=privilege,
        oracle_version=health.version_label,
        oracle_edition=health.edition,
        is_default=connection.is_default,
        max_connections=connection.max_connections,
        connection_timeout=connection.connection_timeout,
        health_status=HealthStatus.HEALTHY.value,
        last_connected_at=now,
        last_health_check_at=now,
        created_by=current_user.id,
        **target
    )
    db.add(record)
    db.commit()
    db.refresh(record)

    AuditLogger(db, request).log(
        action=AuditActionType.CONNECTION_CREATE.value,
        user=current_user,
        resource_type="oracle_connection",
        resource_id=record.id,
        connection_id=record.id,
        details={"name": record.name, "host": record.host, "target": record.target}
    )

    return ok(serialize_connection(record))


@router.post("/test")
async def test_connection(
    connection: OracleConnectionTest,
    current_user: User = Depends(require_permission("connections")),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Check an unsaved target; nothing is stored."""
    target = _target_fields(connection.connection_type, connection.service_name, connection.sid)
    config = OracleConnectionConfig(
        name=connection.name or "Test Connection",
        host=connection.host,
        port=connection.port,
        username=connection.username,
        password=connection.password,
        connection_type=connection.connection_type.value,
        privilege=normalize_privilege(connection.privilege),
        max_connections=1,
        **target
    )

    health = await executor.check_unsaved(config)
    if not health.is_healthy:
        raise InvalidRequest("Connection test failed", details=health.error_message or "Unable to connect to database")

    return ok(serialize_health(health), message="Connection test successful")


@router.get("/{connection_id}")
async def get_connection(
    connection_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_app_db)
):
    return ok(serialize_connection(_get_connection(db, connection_id)))


@router.patch("/{connection_id}")
async def update_connection(
    connection_id: str,
    update: OracleConnectionUpdate,
    request: Request,
    current_user: User = Depends(require_permission("connections")),
    db: Session = Depends(get_app_db),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Partially edit a connection."""
    record = _get_connection(db, connection_id)
    changes = update.model_dump(exclude_unset=True)
    if not changes:
        return ok(serialize_connection(record))

    old_pool_key = record_pool_key(record)

    connection_type = changes.get("connection_type") or ConnectionType(record.connection_type)
    target = _target_fields(
        connection_type,
        changes.get("service_name", record.service_name),
        changes.get("sid", record.sid)
    )
    host = changes.get("host") or record.host
    port = changes.get("port") or record.port
    username = changes.get("username") or record.username
    name = changes.get("name") or record.name
    _check_unique(db, host, port, target["service_name"], target["sid"], username, name, exclude_id=record.id)

    record.host = host
    record.port = port
    record.username = username
    record.name = name
    record.connection_type = connection_type.value
    record.service_name = target["service_name"]
    record.sid = target["sid"]

    if "description" in changes:
        record.description = changes["description"]
    if "privilege" in changes:
        record.privilege = normalize_privilege(changes["privilege"])
    if changes.get("password"):
        record.password_encrypted = encrypt_value(changes["password"])
    for field in ("max_connections", "connection_timeout", "is_active"):
        if changes.get(field) is not None:
            setattr(record, field, changes[field])

    if changes.get("is_default"):
        _clear_other_defaults(db, keep_id=record.id)
        record.is_default = True
    elif changes.get("is_default") is False:
        record.is_default = False

    db.commit()
    db.refresh(record)

    resolver.invalidate(record.id)
    if any(field in changes for field in POOL_FIELDS) or record.is_active is False:
        executor.discard(old_pool_key)

    AuditLogger(db, request).log(
        action=AuditActionType.CONNECTION_UPDATE.value,
        user=current_user,
        resource_type="oracle_connection",
        resource_id=record.id,
        connection_id=record.id,
        details={"fields": sorted(field for field in changes if field != "password"),
                 "password_changed": bool(changes.get("password"))}
    )

    return ok(serialize_connection(record))


@router.delete("/{connection_id}")
async def delete_connection(
    connection_id: str,
    request: Request,
    current_user: User = Depends(require_permission("connections")),
    db: Session = Depends(get_app_db),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Delete a connection, or deactivate it when history still points at it."""
    record = _get_connection(db, connection_id)
    pool_key = record_pool_key(record)
    name = record.name

    if _is_referenced(db, connection_id):
        record.is_active = False
        record.is_default = False
        action = AuditActionType.CONNECTION_DEACTIVATE
        deactivated = True
    else:
        db.delete(record)
        action = AuditActionType.CONNECTION_DELETE
        deactivated = False
    db.commit()

    resolver.invalidate(connection_id)
    executor.discard(pool_key)

    AuditLogger(db, request).log(
        action=action.value,
        user=current_user,
        resource_type="oracle_connection",
        resource_id=connection_id,
        connection_id=connection_id,
        details={"name": name}
    )

    return ok({"id": connection_id, "deactivated": deactivated})


@router.get("/{connection_id}/health")
async def check_connection_health(
    connection_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_app_db),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Run a health check now and record it."""
    record = _get_connection(db, connection_id)
    if not record.is_active:
        raise NotFound("Connection not found or inactive")
    result = await health_monitor.check_connection(db, record, executor, checked_by="user")

    data = serialize_health(result)
    data["health_status"] = record.health_status
    return ok(data)


@router.get("/{connection_id}/health/history")
async def get_health_history(
    connection_id: str,
    limit: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_app_db)
):
    """Recorded health checks, newest first."""
    record = _get_connection(db, connection_id)
    history = health_monitor.get_health_history(
        db, record.id, parse_int(limit, "limit", default=50, minimum=1, maximum=500)
    )

    return ok([
        {
            "timestamp": log.timestamp.isoformat() if log.timestamp else None,
            "status": log.status,
            "response_time_ms": log.response_time_ms,
            "error_message": log.error_message,
            "oracle_version": log.oracle_version,
            "checked_by": log.checked_by
        }
        for log in history
    ], connection_id=record.id, connection_name=record.name)
