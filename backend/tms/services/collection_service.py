"""
Performance Collection Service
Snapshots SQL statistics and wait events into the append-only history tables
"""
import time
from datetime import datetime
from typing import Any, Dict
from sqlalchemy.orm import Session
import structlog

from tms.connections.config_resolver import ConfigResolver
from tms.connections.connectors.base_connector import QueryOptions
from tms.connections.query_executor import QueryExecutor
from tms.connections.row_mapping import SQL_STATISTICS_FIELDS, WAIT_EVENT_FIELDS
from tms.database import get_app_db_context
from tms.models import SqlStatisticsSnapshot, WaitEventSnapshot
from tms.services import oracle_queries

logger = structlog.get_logger()

DEFAULT_TOP_N = 500

DEFAULT_THRESHOLDS = {
    "elapsed_critical": 10000,
    "elapsed_warning": 5000,
    "buffer_critical": 1000000,
    "buffer_warning": 500000,
}


def grade_sql(avg_elapsed_time_ms: float, buffer_gets: int, thresholds: Dict[str, float] = None) -> Dict[str, str]:
    """Status and priority of one statement against the alerting thresholds."""
    t = thresholds or DEFAULT_THRESHOLDS

    if avg_elapsed_time_ms >= t["elapsed_critical"] or buffer_gets >= t["buffer_critical"]:
        return {"status": "CRITICAL", "priority": "CRITICAL"}
    if avg_elapsed_time_ms >= t["elapsed_warning"] or buffer_gets >= t["buffer_warning"]:
        return {"status": "WARNING", "priority": "HIGH"}
    return {"status": "NORMAL", "priority": "MEDIUM"}


class CollectionService:
    """Runs one collection pass for a connection."""

    def __init__(self, db: Session, resolver: ConfigResolver, executor: QueryExecutor):
        self.db = db
        self.resolver = resolver
        self.executor = executor

    async def collect(self, connection_id: str, top_n: int = DEFAULT_TOP_N) -> Dict[str, Any]:
        """
        Collect SQL statistics and wait events for one connection.

        Both snapshots share one collected_at timestamp. Nothing is written
        unless both queries succeed.

        Raises:
            NotFound: unknown or inactive connection
            UpstreamFailure: either Oracle query failed
        """
        config = self.resolver.get_oracle_config(connection_id)
        start_time = time.time()

        sql_result = await self.executor.run(
            config,
            oracle_queries.COLLECT_SQL_STATISTICS_SQL,
            {"top_n": top_n},
            QueryOptions(timeout_ms=60000, max_rows=top_n, fetch_array_size=500),
        )
        wait_result = await self.executor.run(
            config,
            oracle_queries.WAIT_EVENTS_SQL,
            {"wait_class": None},
            QueryOptions(timeout_ms=30000, max_rows=1000),
        )

        collected_at = datetime.utcnow()

        sql_rows = SQL_STATISTICS_FIELDS.map_rows(sql_result.rows)
        for row in sql_rows:
            grade = grade_sql(row["avg_elapsed_time_ms"], row["buffer_gets"])
            self.db.add(SqlStatisticsSnapshot(
                oracle_connection_id=connection_id,
                collected_at=collected_at,
                sql_id=row["sql_id"],
                plan_hash_value=row["plan_hash_value"],
                module=row["module"],
                schema_name=row["schema_name"],
                sql_text=row["sql_text"],
                elapsed_time_ms=row["elapsed_time_ms"],
                cpu_time_ms=row["cpu_time_ms"],
                buffer_gets=row["buffer_gets"],
                disk_reads=row["disk_reads"],
                executions=row["executions"],
                rows_processed=row["rows_processed"],
                avg_elapsed_time_ms=row["avg_elapsed_time_ms"],
                gets_per_exec=row["gets_per_exec"],
                **grade
            ))

        wait_rows = WAIT_EVENT_FIELDS.map_rows(wait_result.rows)
        for row in wait_rows:
            self.db.add(WaitEventSnapshot(
                oracle_connection_id=connection_id,
                collected_at=collected_at,
                event_name=row["event_name"],
                wait_class=row["wait_class"],
                total_waits=row["total_waits"],
                total_timeouts=row["total_timeouts"],
                time_waited_ms=row["time_waited_ms"],
                average_wait_ms=row["average_wait_ms"],
            ))

        self.db.commit()

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "performance_collected",
            connection_id=connection_id,
            sql_statistics=len(sql_rows),
            wait_events=len(wait_rows),
            duration_ms=duration_ms
        )

        return {
            "connection_id": connection_id,
            "collected_at": collected_at.isoformat(),
            "sql_statistics": len(sql_rows),
            "wait_events": len(wait_rows),
            "records_inserted": len(sql_rows) + len(wait_rows),
            "duration_ms": duration_ms,
        }


def scheduled_collector(executor: QueryExecutor):
    """Collect callable for the prefetch scheduler; each run opens its own session."""

    async def collect(connection_id: str) -> Dict[str, Any]:
        with get_app_db_context() as db:
            service = CollectionService(db, ConfigResolver(db), executor)
            return await service.collect(connection_id)

    return collect
