"""
Monitoring API Routes - Live Oracle performance views and collected history
"""
import asyncio
from datetime import datetime
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional, Union
from pydantic import BaseModel
import structlog

from tms.database import get_app_db
from tms.models import (
    User, OracleConnection, AuditActionType,
    SqlStatisticsSnapshot, WaitEventSnapshot, StatsCollectionHistory
)
from tms.core.rbac import get_current_user, require_permission
from tms.core.audit import AuditLogger
from tms.core.errors import InvalidRequest, NotFound, PermissionDenied, QueryTimeout, UpstreamFailure
from tms.connections import get_config_resolver, ConfigResolver, get_query_executor, QueryExecutor, QueryOptions
from tms.connections.row_mapping import (
    WAIT_EVENT_FIELDS, WAIT_CLASS_SUMMARY_FIELDS, SESSION_FIELDS, SQL_STATISTICS_FIELDS,
    EXECUTION_PLAN_FIELDS, INSTANCE_FIELDS, SESSION_COUNT_FIELDS, TABLESPACE_FIELDS,
    LOCK_FIELDS, ASH_SAMPLE_FIELDS, AWR_SNAPSHOT_FIELDS
)
from tms.services import oracle_queries
from tms.services.collection_service import CollectionService
from tms.api.common import ALL, ok, require, require_connection_id, parse_int, parse_float

logger = structlog.get_logger()

router = APIRouter()

DEFAULT_METHOD_OPT = "FOR ALL COLUMNS SIZE AUTO"

ASH_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# ALTER SYSTEM KILL SESSION failures the dashboard can explain
KILL_SESSION_ERRORS = {
    "ORA-00031": (PermissionDenied, "Not allowed to kill this session. ALTER SYSTEM privilege is required."),
    "ORA-00030": (NotFound, "User session ID does not exist"),
    "ORA-00027": (InvalidRequest, "Cannot kill the session. It may already be terminated or inaccessible."),
}


# ============================================================================
# SCHEMAS
# ============================================================================

class KillSessionRequest(BaseModel):
    connection_id: Optional[str] = None
    sid: Optional[Union[int, str]] = None
    serial: Optional[Union[int, str]] = None


class CollectRequest(BaseModel):
    connection_id: Optional[str] = None
    top_n: int = 500


class GatherStatsRequest(BaseModel):
    connection_id: Optional[str] = None
    owner: Optional[str] = None
    table_name: Optional[str] = None
    estimate_percent: float = 10
    cascade: bool = True
    degree: int = 4
    method_opt: str = DEFAULT_METHOD_OPT


# ============================================================================
# HELPERS
# ============================================================================

def _optional_filter(value: Optional[str]) -> Optional[str]:
    """Empty and "all" mean no filter."""
    if not value or value.lower() == ALL:
        return None
    return value


def _as_int(value, name: str) -> int:
    if isinstance(value, bool) or value is None:
        raise InvalidRequest(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise InvalidRequest(f"{name} must be an integer")


def _active_connection(db: Session, connection_id: str) -> OracleConnection:
    connection = db.query(OracleConnection).filter(
        OracleConnection.id == connection_id,
        OracleConnection.is_active == True
    ).first()
    if not connection:
        raise NotFound("Connection not found")
    return connection


def _require_enterprise(connection: OracleConnection, feature: str) -> None:
    """AWR needs Enterprise Edition with the Diagnostics Pack; an unknown edition is let through."""
    edition = connection.oracle_edition
    if edition and "enterprise" not in edition.lower():
        raise PermissionDenied(
            f"{feature} requires Oracle Enterprise Edition with the Diagnostics Pack",
            edition=edition,
            requires_enterprise=True
        )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_sql_snapshot(row: SqlStatisticsSnapshot) -> dict:
    return {
        "id": row.id,
        "collected_at": _iso(row.collected_at),
        "sql_id": row.sql_id,
        "plan_hash_value": row.plan_hash_value,
        "module": row.module,
        "schema_name": row.schema_name,
        "sql_text": row.sql_text,
        "elapsed_time_ms": row.elapsed_time_ms,
        "cpu_time_ms": row.cpu_time_ms,
        "buffer_gets": row.buffer_gets,
        "disk_reads": row.disk_reads,
        "executions": row.executions,
        "rows_processed": row.rows_processed,
        "avg_elapsed_time_ms": row.avg_elapsed_time_ms,
        "gets_per_exec": row.gets_per_exec,
        "status": row.status,
        "priority": row.priority,
    }


def serialize_wait_snapshot(row: WaitEventSnapshot) -> dict:
    return {
        "id": row.id,
        "collected_at": _iso(row.collected_at),
        "event_name": row.event_name,
        "wait_class": row.wait_class,
        "total_waits": row.total_waits,
        "total_timeouts": row.total_timeouts,
        "time_waited_ms": row.time_waited_ms,
        "average_wait_ms": row.average_wait_ms,
    }


def serialize_stats_history(row: StatsCollectionHistory) -> dict:
    return {
        "id": row.id,
        "oracle_connection_id": row.oracle_connection_id,
        "owner": row.owner,
        "table_name": row.table_name,
        "operation": row.operation,
        "status": row.status,
        "start_time": _iso(row.start_time),
        "end_time": _iso(row.end_time),
        "duration_seconds": row.duration_seconds,
        "error_message": row.error_message,
        "created_at": _iso(row.created_at),
    }


# ============================================================================
# LIVE VIEWS
# ============================================================================

@router.get("/wait-events")
async def get_wait_events(
    connection_id: Optional[str] = None,
    wait_class: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Non-idle system wait events with a per-class summary."""
    connection_id = require_connection_id(connection_id)
    config = resolver.get_oracle_config(connection_id)
    class_filter = _optional_filter(wait_class)

    events_result, summary_result = await asyncio.gather(
        executor.run(
            config,
            oracle_queries.WAIT_EVENTS_SQL,
            {"wait_class": class_filter},
            QueryOptions(timeout_ms=30000, max_rows=1000),
        ),
        executor.run(
            config,
            oracle_queries.WAIT_CLASS_SUMMARY_SQL,
            options=QueryOptions(timeout_ms=30000, max_rows=100),
        ),
    )

    events = WAIT_EVENT_FIELDS.map_rows(events_result.rows)
    if class_filter:
        events = [e for e in events if e["wait_class"] == class_filter]
    events.sort(key=lambda e: e["time_waited"], reverse=True)

    return {
        "success": True,
        "data": events,
        "summary": WAIT_CLASS_SUMMARY_FIELDS.map_rows(summary_result.rows),
        "count": len(events),
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/sessions")
async def get_sessions(
    connection_id: Optional[str] = None,
    status: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """User sessions from v$session."""
    connection_id = require_connection_id(connection_id)
    config = resolver.get_oracle_config(connection_id)
    status_filter = _optional_filter(status)

    result = await executor.run(
        config,
        oracle_queries.SESSIONS_SQL,
        {"status": status_filter.upper() if status_filter else None},
        QueryOptions(timeout_ms=30000, max_rows=1000),
    )
    sessions = SESSION_FIELDS.map_rows(result.rows)

    return ok(sessions, count=len(sessions), timestamp=datetime.utcnow().isoformat())


@router.post("/sessions/kill")
async def kill_session(
    body: KillSessionRequest,
    request: Request,
    current_user: User = Depends(require_permission("tuning")),
    db: Session = Depends(get_app_db),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """ALTER SYSTEM KILL SESSION for one sid/serial pair."""
    connection_id = require_connection_id(body.connection_id)
    if body.sid is None or body.serial is None:
        raise InvalidRequest("Connection ID, SID, and Serial number are required")
    sid = _as_int(body.sid, "sid")
    serial = _as_int(body.serial, "serial")

    config = resolver.get_oracle_config(connection_id)
    auditor = AuditLogger(db, request)
    details = {"sid": sid, "serial": serial}

    try:
        await executor.run(config, f"ALTER SYSTEM KILL SESSION '{sid},{serial}' IMMEDIATE")
    except UpstreamFailure as e:
        auditor.log(
            action=AuditActionType.SESSION_KILL.value,
            user=current_user,
            resource_type="oracle_session",
            resource_id=f"{sid},{serial}",
            connection_id=connection_id,
            details=details,
            status="failure",
            error_message=e.message
        )
        mapped = KILL_SESSION_ERRORS.get(e.error_code)
        if mapped:
            error_class, message = mapped
            raise error_class(message) from e
        raise

    auditor.log(
        action=AuditActionType.SESSION_KILL.value,
        user=current_user,
        resource_type="oracle_session",
        resource_id=f"{sid},{serial}",
        connection_id=connection_id,
        details=details
    )

    return ok(
        {"sid": sid, "serial": serial, "killed_at": datetime.utcnow().isoformat()},
        message=f"Session {sid},{serial} was killed"
    )


@router.get("/sql-statistics")
async def get_sql_statistics(
    connection_id: Optional[str] = None,
    order_by: Optional[str] = None,
    limit: Optional[str] = None,
    min_elapsed_time: Optional[str] = None,
    min_buffer_gets: Optional[str] = None,
    min_executions: Optional[str] = None,
    module: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Top statements from v$sql."""
    require(connection_id, "Connection ID is required")
    if connection_id == ALL:
        return ok([], count=0)

    order_key = order_by or "buffer_gets"
    order_column = oracle_queries.SQL_STATISTICS_ORDER_COLUMNS.get(order_key)
    if not order_column:
        raise InvalidRequest(
            f"order_by must be one of: {', '.join(oracle_queries.SQL_STATISTICS_ORDER_COLUMNS)}"
        )
    max_rows = parse_int(limit, "limit", default=100, minimum=1, maximum=1000)
    binds = {
        "min_elapsed_time": parse_float(min_elapsed_time, "min_elapsed_time"),
        "min_buffer_gets": parse_float(min_buffer_gets, "min_buffer_gets"),
        "min_executions": parse_float(min_executions, "min_executions"),
        "module": module or None,
    }

    config = resolver.get_oracle_config(connection_id)
    result = await executor.run(
        config,
        oracle_queries.SQL_STATISTICS_SQL.format(order_column=order_column),
        binds,
        QueryOptions(timeout_ms=60000, max_rows=max_rows, fetch_array_size=min(max_rows, 500)),
    )
    statistics = SQL_STATISTICS_FIELDS.map_rows(result.rows)

    return ok(statistics, count=len(statistics))


@router.get("/execution-plan")
async def get_execution_plan(
    connection_id: Optional[str] = None,
    sql_id: Optional[str] = None,
    plan_hash_value: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Cached plan lines from v$sql_plan."""
    connection_id = require_connection_id(connection_id)
    require(sql_id, "SQL ID is required")
    plan_hash = parse_int(plan_hash_value, "plan_hash_value")

    config = resolver.get_oracle_config(connection_id)
    result = await executor.run(
        config,
        oracle_queries.EXECUTION_PLAN_SQL,
        {"sql_id": sql_id, "plan_hash_value": plan_hash},
        QueryOptions(timeout_ms=30000, max_rows=1000),
    )
    plan = EXECUTION_PLAN_FIELDS.map_rows(result.rows)

    return ok(plan, sql_id=sql_id, plan_hash_value=plan_hash, count=len(plan))


@router.get("/metrics")
async def get_metrics(
    connection_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Dashboard overview: instance, session counts, top waits, tablespaces."""
    connection_id = require_connection_id(connection_id)
    config = resolver.get_oracle_config(connection_id)
    options = QueryOptions(timeout_ms=30000, max_rows=100)

    instance, session_counts, top_waits, tablespaces = await asyncio.gather(
        executor.run(config, oracle_queries.INSTANCE_SQL, options=options),
        executor.run(config, oracle_queries.SESSION_COUNTS_SQL, options=options),
        executor.run(config, oracle_queries.WAIT_EVENTS_SQL, {"wait_class": None},
                     QueryOptions(timeout_ms=30000, max_rows=5)),
        executor.run(config, oracle_queries.TABLESPACE_USAGE_SQL, options=options),
    )

    instances = INSTANCE_FIELDS.map_rows(instance.rows)
    counts = SESSION_COUNT_FIELDS.map_rows(session_counts.rows)

    return ok({
        "instance": instances[0] if instances else None,
        "sessions": counts[0] if counts else SESSION_COUNT_FIELDS.map_row({}),
        "top_wait_events": WAIT_EVENT_FIELDS.map_rows(top_waits.rows),
        "tablespaces": TABLESPACE_FIELDS.map_rows(tablespaces.rows),
    }, timestamp=datetime.utcnow().isoformat())


@router.get("/locks")
async def get_locks(
    connection_id: Optional[str] = None,
    lock_type: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Locked objects with their holder and any session waiting on it."""
    connection_id = require_connection_id(connection_id)
    object_type = _optional_filter(lock_type)

    config = resolver.get_oracle_config(connection_id)
    result = await executor.run(
        config,
        oracle_queries.LOCKS_SQL,
        {"object_type": object_type.upper() if object_type else None},
        QueryOptions(timeout_ms=30000, max_rows=1000),
    )

    collected_at = datetime.utcnow().isoformat()
    locks = []
    for lock in LOCK_FIELDS.map_rows(result.rows):
        lock["id"] = f"{connection_id}-{lock['holding_session']}-{lock['object_id']}"
        lock["oracle_connection_id"] = connection_id
        lock["collected_at"] = collected_at
        locks.append(lock)

    return ok(locks, count=len(locks), timestamp=collected_at)


@router.get("/ash")
async def get_ash_samples(
    connection_id: Optional[str] = None,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """
    Active Session History samples in a time window, newest first.

    The in-memory buffer is read first; when it is not accessible the AWR
    copy is used. data_source names the view that answered.
    """
    connection_id = require_connection_id(connection_id)
    if not start_time or not end_time:
        raise InvalidRequest("Start time and end time are required")
    for value in (start_time, end_time):
        try:
            datetime.strptime(value, ASH_TIME_FORMAT)
        except ValueError:
            raise InvalidRequest(f"Invalid datetime format, expected YYYY-MM-DD HH:MI:SS: {value}")

    config = resolver.get_oracle_config(connection_id)
    binds = {"start_time": start_time, "end_time": end_time}
    options = QueryOptions(timeout_ms=30000, max_rows=5000)

    last_error = None
    for source in oracle_queries.ASH_SAMPLE_SOURCES:
        try:
            result = await executor.run(config, oracle_queries.ASH_SAMPLES_SQL.format(source=source), binds, options)
        except QueryTimeout:
            raise
        except UpstreamFailure as e:
            logger.info("ash_source_unavailable", source=source, connection_id=connection_id, error=e.message)
            last_error = e
            continue
        samples = ASH_SAMPLE_FIELDS.map_rows(result.rows)
        return ok(samples, count=len(samples), data_source=source)

    raise last_error


@router.get("/awr/snapshots")
async def get_awr_snapshots(
    connection_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_app_db),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Newest 100 AWR snapshots."""
    connection_id = require_connection_id(connection_id)
    _require_enterprise(_active_connection(db, connection_id), "AWR")

    config = resolver.get_oracle_config(connection_id)
    result = await executor.run(
        config, oracle_queries.AWR_SNAPSHOTS_SQL, options=QueryOptions(timeout_ms=30000, max_rows=100)
    )
    snapshots = AWR_SNAPSHOT_FIELDS.map_rows(result.rows)

    return ok(snapshots, count=len(snapshots))


# ============================================================================
# COLLECTION AND HISTORY
# ============================================================================

@router.post("/collect")
async def collect_performance(
    body: CollectRequest,
    request: Request,
    current_user: User = Depends(require_permission("monitoring")),
    db: Session = Depends(get_app_db),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Snapshot SQL statistics and wait events into history."""
    connection_id = require_connection_id(body.connection_id)
    if body.top_n < 1:
        raise InvalidRequest("top_n must be positive")

    result = await CollectionService(db, resolver, executor).collect(connection_id, top_n=body.top_n)

    AuditLogger(db, request).log(
        action=AuditActionType.STATS_COLLECT.value,
        user=current_user,
        resource_type="performance_snapshot",
        connection_id=connection_id,
        details={"records_inserted": result["records_inserted"]}
    )

    return ok(result, message=f"Collected {result['records_inserted']} records")


@router.get("/history")
async def get_history(
    connection_id: Optional[str] = None,
    kind: str = "sql",
    limit: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_app_db)
):
    """Collected snapshots, newest first."""
    connection_id = require_connection_id(connection_id)
    max_rows = parse_int(limit, "limit", default=100, minimum=1, maximum=1000)
    _active_connection(db, connection_id)

    if kind == "sql":
        rows = db.query(SqlStatisticsSnapshot).filter(
            SqlStatisticsSnapshot.oracle_connection_id == connection_id
        ).order_by(SqlStatisticsSnapshot.collected_at.desc(), SqlStatisticsSnapshot.id.desc()).limit(max_rows).all()
        data = [serialize_sql_snapshot(r) for r in rows]
    elif kind == "wait":
        rows = db.query(WaitEventSnapshot).filter(
            WaitEventSnapshot.oracle_connection_id == connection_id
        ).order_by(WaitEventSnapshot.collected_at.desc(), WaitEventSnapshot.id.desc()).limit(max_rows).all()
        data = [serialize_wait_snapshot(r) for r in rows]
    else:
        raise InvalidRequest("kind must be 'sql' or 'wait'")

    return ok(data, kind=kind, count=len(data))


@router.post("/stats/gather")
async def gather_table_stats(
    body: GatherStatsRequest,
    request: Request,
    current_user: User = Depends(require_permission("tuning")),
    db: Session = Depends(get_app_db),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Run DBMS_STATS.GATHER_TABLE_STATS and record the outcome."""
    connection_id = require_connection_id(body.connection_id)
    if not body.owner or not body.table_name:
        raise InvalidRequest("Connection ID, owner, and table_name are required")
    if not 0 < body.estimate_percent <= 100:
        raise InvalidRequest("estimate_percent must be between 0 and 100")
    if body.degree < 1:
        raise InvalidRequest("degree must be positive")

    config = resolver.get_oracle_config(connection_id)
    owner = body.owner.upper()
    table_name = body.table_name.upper()
    auditor = AuditLogger(db, request)

    start_time = datetime.utcnow()
    error = None
    try:
        await executor.run(
            config,
            oracle_queries.GATHER_TABLE_STATS_PLSQL,
            {
                "owner": owner,
                "table_name": table_name,
                "estimate_percent": body.estimate_percent,
                "method_opt": body.method_opt,
                "degree": body.degree,
                "cascade": 1 if body.cascade else 0,
            },
            QueryOptions(timeout_ms=600000),
        )
    except UpstreamFailure as e:
        error = e

    end_time = datetime.utcnow()
    history = StatsCollectionHistory(
        oracle_connection_id=connection_id,
        owner=owner,
        table_name=table_name,
        status="FAILED" if error else "SUCCESS",
        start_time=start_time,
        end_time=end_time,
        duration_seconds=round((end_time - start_time).total_seconds()),
        error_message=error.message if error else None,
        created_by=current_user.id
    )
    db.add(history)
    db.commit()
    db.refresh(history)

    auditor.log(
        action=AuditActionType.STATS_GATHER.value,
        user=current_user,
        resource_type="table",
        resource_id=f"{owner}.{table_name}",
        connection_id=connection_id,
        details={"estimate_percent": body.estimate_percent, "degree": body.degree, "cascade": body.cascade},
        status="failure" if error else "success",
        error_message=error.message if error else None
    )

    if error:
        raise error

    return ok(
        serialize_stats_history(history),
        message=f"Statistics gathered successfully for {owner}.{table_name}",
        duration_seconds=history.duration_seconds
    )


@router.get("/stats/history")
async def get_stats_history(
    connection_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_app_db)
):
    """Newest 100 DBMS_STATS runs for a connection."""
    if not connection_id or connection_id == ALL:
        raise InvalidRequest("Connection ID required")
    _active_connection(db, connection_id)

    rows = db.query(StatsCollectionHistory).filter(
        StatsCollectionHistory.oracle_connection_id == connection_id
    ).order_by(StatsCollectionHistory.created_at.desc(), StatsCollectionHistory.id.desc()).limit(100).all()

    return ok([serialize_stats_history(r) for r in rows])
