"""
Declared field maps from Oracle result columns to API fields

The driver returns unquoted column aliases in upper case. Each endpoint
declares a FieldMap listing exactly which API field comes from which column
and how it is converted, so the JSON contract does not depend on the SQL
text.
"""
import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional


def safe_int(value: Any, default: int = 0) -> int:
    """Floor numeric values; anything unparseable becomes the default."""
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return int(math.floor(number))


def safe_float(value: Any, default: float = 0.0, digits: Optional[int] = 2) -> float:
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return round(number, digits) if digits is not None else number


def to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def to_iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def to_number(value: Any) -> Any:
    """Keep integers integral and everything else as float."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value


@dataclass(frozen=True)
class Field:
    name: str
    column: str
    convert: Optional[Callable[[Any], Any]] = None


class FieldMap:
    """Ordered mapping of API field name to driver column and converter."""

    def __init__(self, *fields: Field):
        self.fields = fields

    @property
    def names(self) -> List[str]:
        return [f.name for f in self.fields]

    def map_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        mapped = {}
        for f in self.fields:
            value = row.get(f.column)
            mapped[f.name] = f.convert(value) if f.convert else to_number(value)
        return mapped

    def map_rows(self, rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [self.map_row(row) for row in rows]


# ============================================================================
# ENDPOINT FIELD MAPS
# ============================================================================

WAIT_EVENT_FIELDS = FieldMap(
    Field("event_name", "EVENT", to_text),
    Field("wait_class", "WAIT_CLASS", to_text),
    Field("total_waits", "TOTAL_WAITS", safe_int),
    Field("total_timeouts", "TOTAL_TIMEOUTS", safe_int),
    Field("time_waited", "TIME_WAITED", safe_int),
    Field("average_wait", "AVERAGE_WAIT", safe_float),
    Field("time_waited_ms", "TIME_WAITED_MS", safe_float),
    Field("average_wait_ms", "AVERAGE_WAIT_MS", safe_float),
    Field("wait_class_id", "WAIT_CLASS_ID", safe_int),
    Field("event_id", "EVENT_ID", safe_int),
    Field("pct_total_time", "PCT_TOTAL_TIME", safe_float),
)

WAIT_CLASS_SUMMARY_FIELDS = FieldMap(
    Field("wait_class", "WAIT_CLASS", to_text),
    Field("event_count", "EVENT_COUNT", safe_int),
    Field("total_waits", "TOTAL_WAITS", safe_int),
    Field("time_waited_ms", "TIME_WAITED_MS", safe_float),
)

SESSION_FIELDS = FieldMap(
    Field("sid", "SID", safe_int),
    Field("serial_number", "SERIAL#", safe_int),
    Field("username", "USERNAME", to_text),
    Field("osuser", "OSUSER", to_text),
    Field("machine", "MACHINE", to_text),
    Field("program", "PROGRAM", to_text),
    Field("module", "MODULE", to_text),
    Field("status", "STATUS", to_text),
    Field("state", "STATE", to_text),
    Field("sql_id", "SQL_ID", to_text),
    Field("event", "EVENT", to_text),
    Field("wait_class", "WAIT_CLASS", to_text),
    Field("wait_time_ms", "WAIT_TIME_MS", safe_int),
    Field("cpu_time_ms", "CPU_TIME_MS", safe_int),
    Field("logical_reads", "LOGICAL_READS", safe_int),
    Field("logon_time", "LOGON_TIME", to_iso),
    Field("last_call_et", "LAST_CALL_ET", safe_int),
    Field("blocking_session", "BLOCKING_SESSION", lambda v: safe_int(v) if v is not None else None),
    Field("sql_text", "SQL_TEXT", lambda v: (to_text(v) or "")[:500] or None),
)

SQL_STATISTICS_FIELDS = FieldMap(
    Field("sql_id", "SQL_ID", to_text),
    Field("sql_text", "SQL_TEXT", to_text),
    Field("module", "MODULE", to_text),
    Field("schema_name", "SCHEMA_NAME", to_text),
    Field("executions", "EXECUTIONS", safe_int),
    Field("elapsed_time_ms", "ELAPSED_TIME_MS", safe_float),
    Field("cpu_time_ms", "CPU_TIME_MS", safe_float),
    Field("buffer_gets", "BUFFER_GETS", safe_int),
    Field("disk_reads", "DISK_READS", safe_int),
    Field("rows_processed", "ROWS_PROCESSED", safe_int),
    Field("avg_elapsed_time_ms", "AVG_ELAPSED_TIME_MS", safe_float),
    Field("gets_per_exec", "GETS_PER_EXEC", safe_float),
    Field("first_load_time", "FIRST_LOAD_TIME", to_text),
    Field("last_active_time", "LAST_ACTIVE_TIME", to_iso),
    Field("plan_hash_value", "PLAN_HASH_VALUE", safe_int),
)

EXECUTION_PLAN_FIELDS = FieldMap(
    Field("id", "ID", safe_int),
    Field("parent_id", "PARENT_ID", lambda v: safe_int(v) if v is not None else None),
    Field("depth", "DEPTH", safe_int),
    Field("operation", "OPERATION", to_text),
    Field("options", "OPTIONS", to_text),
    Field("object_owner", "OBJECT_OWNER", to_text),
    Field("object_name", "OBJECT_NAME", to_text),
    Field("cost", "COST", lambda v: safe_int(v) if v is not None else None),
    Field("cardinality", "CARDINALITY", lambda v: safe_int(v) if v is not None else None),
    Field("bytes", "BYTES", lambda v: safe_int(v) if v is not None else None),
    Field("access_predicates", "ACCESS_PREDICATES", to_text),
    Field("filter_predicates", "FILTER_PREDICATES", to_text),
)

ADVISOR_RECOMMENDATION_FIELDS = FieldMap(
    Field("rec_id", "REC_ID", safe_int),
    Field("rank", "RANK", safe_int),
    Field("benefit", "BENEFIT", safe_float),
    Field("type", "TYPE", to_text),
)

ADVISOR_ACTION_FIELDS = FieldMap(
    Field("action_id", "ACTION_ID", safe_int),
    Field("command", "COMMAND", to_text),
    Field("object_name", "ATTR1", to_text),
    Field("table_name", "ATTR2", to_text),
    Field("columns", "ATTR3", to_text),
)

INSTANCE_FIELDS = FieldMap(
    Field("instance_name", "INSTANCE_NAME", to_text),
    Field("host_name", "HOST_NAME", to_text),
    Field("version", "VERSION", to_text),
    Field("status", "STATUS", to_text),
    Field("startup_time", "STARTUP_TIME", to_iso),
    Field("database_status", "DATABASE_STATUS", to_text),
)

SESSION_COUNT_FIELDS = FieldMap(
    Field("total_sessions", "TOTAL_SESSIONS", safe_int),
    Field("active_sessions", "ACTIVE_SESSIONS", safe_int),
    Field("blocked_sessions", "BLOCKED_SESSIONS", safe_int),
)

TABLESPACE_FIELDS = FieldMap(
    Field("tablespace_name", "TABLESPACE_NAME", to_text),
    Field("total_mb", "TOTAL_MB", safe_float),
    Field("used_mb", "USED_MB", safe_float),
    Field("used_pct", "USED_PCT", safe_float),
)

LOCK_FIELDS = FieldMap(
    Field("holding_session", "HOLDING_SESSION", safe_int),
    Field("holding_serial", "HOLDING_SERIAL", safe_int),
    Field("holding_username", "HOLDING_USERNAME", to_text),
    Field("holding_osuser", "HOLDING_OSUSER", to_text),
    Field("holding_machine", "HOLDING_MACHINE", to_text),
    Field("holding_program", "HOLDING_PROGRAM", to_text),
    Field("oracle_username", "ORACLE_USERNAME", to_text),
    Field("os_user_name", "OS_USER_NAME", to_text),
    Field("process", "PROCESS", to_text),
    Field("object_id", "OBJECT_ID", safe_int),
    Field("object_owner", "OBJECT_OWNER", to_text),
    Field("object_name", "OBJECT_NAME", to_text),
    Field("object_type", "OBJECT_TYPE", to_text),
    Field("locked_mode", "LOCKED_MODE", safe_int),
    Field("lock_mode_name", "LOCK_MODE_NAME", to_text),
    Field("lock_duration_sec", "LOCK_DURATION_SEC", safe_int),
    Field("sql_id", "SQL_ID", to_text),
    Field("sql_text", "SQL_TEXT", lambda v: (to_text(v) or "")[:500]),
    Field("waiting_session", "WAITING_SESSION", lambda v: safe_int(v) if v is not None else None),
    Field("waiting_serial", "WAITING_SERIAL", lambda v: safe_int(v) if v is not None else None),
    Field("waiting_username", "WAITING_USERNAME", to_text),
    Field("waiting_event", "WAITING_EVENT", to_text),
    Field("wait_time", "WAIT_TIME", safe_int),
    Field("seconds_in_wait", "SECONDS_IN_WAIT", safe_int),
)

ASH_SAMPLE_FIELDS = FieldMap(
    Field("sample_id", "SAMPLE_ID", safe_int),
    Field("sample_time", "SAMPLE_TIME", to_iso),
    Field("session_id", "SESSION_ID", safe_int),
    Field("session_serial", "SESSION_SERIAL", safe_int),
    Field("user_id", "USER_ID", safe_int),
    Field("sql_id", "SQL_ID", to_text),
    Field("sql_plan_hash_value", "SQL_PLAN_HASH_VALUE", safe_int),
    Field("event", "EVENT", to_text),
    Field("wait_class", "WAIT_CLASS", to_text),
    Field("wait_time_ms", "WAIT_TIME", safe_int),
    Field("session_state", "SESSION_STATE", to_text),
    Field("blocking_session", "BLOCKING_SESSION", lambda v: safe_int(v) if v is not None else None),
    Field("program", "PROGRAM", to_text),
    Field("module", "MODULE", to_text),
    Field("machine", "MACHINE", to_text),
)

AWR_SNAPSHOT_FIELDS = FieldMap(
    Field("snap_id", "SNAP_ID", safe_int),
    Field("snap_time", "SNAP_TIME", to_iso),
    Field("begin_time", "BEGIN_TIME", to_iso),
    Field("startup_time", "STARTUP_TIME", to_iso),
    Field("instance_number", "INSTANCE_NUMBER", safe_int),
)

ADVISOR_TASK_FIELDS = FieldMap(
    Field("task_id", "TASK_ID", safe_int),
    Field("task_name", "TASK_NAME", to_text),
    Field("owner", "OWNER", to_text),
    Field("status", "STATUS", to_text),
    Field("description", "DESCRIPTION", to_text),
    Field("created", "CREATED", to_iso),
    Field("last_modified", "LAST_MODIFIED", to_iso),
    Field("execution_start", "EXECUTION_START", to_iso),
    Field("execution_end", "EXECUTION_END", to_iso),
)

TUNING_TASK_FIELDS = FieldMap(*ADVISOR_TASK_FIELDS.fields, Field("finding_count", "FINDING_COUNT", safe_int))

ACCESS_TASK_FIELDS = FieldMap(
    *ADVISOR_TASK_FIELDS.fields, Field("recommendation_count", "RECOMMENDATION_COUNT", safe_int)
)

TUNING_FINDING_FIELDS = FieldMap(
    Field("finding_id", "FINDING_ID", safe_int),
    Field("type", "FINDING_TYPE", to_text),
    Field("message", "FINDING_MESSAGE", to_text),
    Field("impact", "IMPACT", safe_float),
)

TUNING_RECOMMENDATION_FIELDS = FieldMap(
    Field("rec_id", "REC_ID", safe_int),
    Field("type", "REC_TYPE", to_text),
    Field("benefit", "REC_BENEFIT", safe_float),
)

TUNING_ACTION_FIELDS = FieldMap(
    Field("action_id", "ACTION_ID", safe_int),
    Field("command", "ACTION_COMMAND", to_text),
    Field("message", "ACTION_MESSAGE", to_text),
    Field("attr1", "ATTR1", to_text),
    Field("attr2", "ATTR2", to_text),
    Field("attr3", "ATTR3", to_text),
)

SQL_PROFILE_FIELDS = FieldMap(
    Field("name", "NAME", to_text),
    Field("category", "CATEGORY", to_text),
    Field("signature", "SIGNATURE", to_text),
    Field("sql_text", "SQL_TEXT", to_text),
    Field("type", "TYPE", to_text),
    Field("status", "STATUS", to_text),
    Field("force_matching", "FORCE_MATCHING", lambda v: to_text(v) == "YES"),
    Field("created", "CREATED", to_iso),
    Field("last_modified", "LAST_MODIFIED", to_iso),
    Field("description", "DESCRIPTION", to_text),
    Field("task_exec_name", "TASK_EXEC_NAME", to_text),
)
