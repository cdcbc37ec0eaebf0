"""
Oracle Connector - pooled python-oracledb access to one target instance
"""
import re
import time
from typing import Any, Dict, List, Optional

import oracledb
import structlog

from tms.config import settings
from tms.connections.connectors.base_connector import (
    BaseConnector, Binds, QueryOptions, QueryResult, HealthCheckResult
)
from tms.connections.errors import translate_driver_error
from tms.core.errors import UpstreamFailure, QueryTimeout
from tms.services.sql_engine import QueryValidator, StatementType, classify_statement

logger = structlog.get_logger()

EDITION_PATTERN = re.compile(
    r'\b(Enterprise Edition|Standard Edition One|Standard Edition|Express Edition|Personal Edition)\b',
    re.IGNORECASE
)
VERSION_LABEL_PATTERN = re.compile(r'Database\s+(\d+[gc])\s+', re.IGNORECASE)


def parse_edition(banner: str) -> str:
    match = EDITION_PATTERN.search(banner or "")
    return match.group(1) if match else ""


def parse_version_label(banner: str, version: str) -> str:
    """
    Marketing label such as "19c", read from the banner or derived from the
    numeric instance version when the banner does not carry one.
    """
    match = VERSION_LABEL_PATTERN.search(banner or "")
    if match:
        return match.group(1).lower()

    numeric = re.match(r'^(\d+)\.', version or "")
    if not numeric:
        return version or ""

    major = int(numeric.group(1))
    if major >= 21:
        return "21c"
    if major >= 19:
        return "19c"
    if major >= 18:
        return "18c"
    if major >= 12:
        return "12c"
    if major >= 11:
        return "11g"
    return version


def _column_metadata(description) -> List[Dict[str, Any]]:
    metadata = []
    for column in description or []:
        db_type = column[1]
        metadata.append({
            "name": column[0],
            "type": getattr(db_type, "name", str(db_type)),
            "nullable": bool(column[6]) if len(column) > 6 else True,
        })
    return metadata


class OracleConnector(BaseConnector):
    """
    Runs statements on connections borrowed from one driver pool.

    Every call acquires a connection and hands it back in a finally block, so
    the pool's busy count returns to where it was whether the statement
    succeeds or raises.
    """

    def __init__(self, pool, name: str = None):
        self.pool = pool
        self.name = name

    def execute(self, query: str, binds: Binds = None, options: Optional[QueryOptions] = None) -> QueryResult:
        options = options or QueryOptions()
        statement_type = classify_statement(query)
        start_time = time.time()

        connection = None
        cursor = None
        schema_switched = False
        try:
            connection = self.pool.acquire()
            connection.call_timeout = options.timeout_ms or settings.ORACLE_DEFAULT_TIMEOUT_MS
            if options.current_schema:
                schema_switched = self._switch_schema(connection, options.current_schema)
            cursor = connection.cursor()

            if statement_type == StatementType.SELECT:
                result = self._fetch(cursor, query, binds, options)
            else:
                cursor.execute(query, binds or [])
                if statement_type == StatementType.DDL or options.auto_commit:
                    connection.commit()
                result = QueryResult(
                    statement_type=statement_type,
                    rows_affected=cursor.rowcount if cursor.rowcount is not None and cursor.rowcount >= 0 else 0,
                )

            result.execution_time_ms = int((time.time() - start_time) * 1000)
            return result

        except oracledb.Error as e:
            error = translate_driver_error(e)
            logger.warning(
                "oracle_query_failed",
                connector=self.name,
                statement_type=statement_type.value,
                error_code=error.error_code,
                timeout=isinstance(error, QueryTimeout),
            )
            raise error from e

        finally:
            if cursor is not None:
                try:
                    cursor.close()
                except oracledb.Error as e:
                    logger.debug("cursor_close_failed", connector=self.name, error=str(e))
            if connection is not None:
                # Switched sessions are not returned to the pool
                if schema_switched:
                    self.pool.drop(connection)
                else:
                    self.pool.release(connection)

    def _switch_schema(self, connection, schema: str) -> bool:
        """Switch CURRENT_SCHEMA; a failure is logged and the statement runs in the login schema."""
        if not QueryValidator.is_identifier(schema):
            logger.warning("schema_switch_rejected", connector=self.name, schema=schema)
            return False
        try:
            with connection.cursor() as cursor:
                cursor.execute(f"ALTER SESSION SET CURRENT_SCHEMA = {schema.upper()}")
        except oracledb.Error as e:
            logger.warning("schema_switch_failed", connector=self.name, schema=schema, error=str(e))
            return False
        return True

    def _fetch(self, cursor, query: str, binds: Binds, options: QueryOptions) -> QueryResult:
        max_rows = options.max_rows or settings.ORACLE_DEFAULT_MAX_ROWS
        cursor.arraysize = options.fetch_array_size or settings.ORACLE_DEFAULT_FETCH_SIZE
        cursor.prefetchrows = cursor.arraysize + 1

        cursor.execute(query, binds or [])
        columns = [column[0] for column in cursor.description or []]

        # One extra row tells us whether the limit truncated the result
        raw_rows = cursor.fetchmany(max_rows + 1)
        has_more = len(raw_rows) > max_rows

        return QueryResult(
            statement_type=StatementType.SELECT,
            rows=[dict(zip(columns, row)) for row in raw_rows[:max_rows]],
            metadata=_column_metadata(cursor.description),
            has_more=has_more,
        )

    def test_connection(self) -> HealthCheckResult:
        start_time = time.time()
        try:
            banner_result = self.execute(
                "SELECT banner AS BANNER FROM v$version WHERE rownum = 1",
                options=QueryOptions(timeout_ms=10000, max_rows=1),
            )
            instance_result = self.execute(
                "SELECT instance_name AS INSTANCE_NAME, host_name AS HOST_NAME, "
                "version AS VERSION, status AS STATUS FROM v$instance",
                options=QueryOptions(timeout_ms=10000, max_rows=1),
            )
        except UpstreamFailure as e:
            return HealthCheckResult(
                is_healthy=False,
                response_time_ms=int((time.time() - start_time) * 1000),
                error_message=e.message,
            )

        banner = (banner_result.rows[0].get("BANNER") if banner_result.rows else "") or ""
        instance = instance_result.rows[0] if instance_result.rows else {}
        version = instance.get("VERSION") or ""

        return HealthCheckResult(
            is_healthy=True,
            response_time_ms=int((time.time() - start_time) * 1000),
            version=version,
            version_label=parse_version_label(banner, version),
            edition=parse_edition(banner),
            instance_name=instance.get("INSTANCE_NAME"),
            host_name=instance.get("HOST_NAME"),
        )

    def close(self) -> None:
        self.pool.close(force=True)
