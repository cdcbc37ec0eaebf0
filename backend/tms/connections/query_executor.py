"""
Query Executor - runs statements against resolved Oracle configs
"""
from typing import Optional

from starlette.concurrency import run_in_threadpool

from tms.connections.config_resolver import OracleConnectionConfig
from tms.connections.connection_manager import ConnectionManager, connection_manager
from tms.connections.connectors.base_connector import Binds, QueryOptions, QueryResult, HealthCheckResult
from tms.core.errors import UpstreamFailure


class QueryExecutor:
    """
    Entry point route handlers use to talk to Oracle.

    execute() blocks; run() offloads it to the threadpool so several
    statements can be awaited together with asyncio.gather.
    """

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    def execute(
        self,
        config: OracleConnectionConfig,
        query: str,
        binds: Binds = None,
        options: Optional[QueryOptions] = None
    ) -> QueryResult:
        return self.manager.get_connector(config).execute(query, binds, options)

    async def run(
        self,
        config: OracleConnectionConfig,
        query: str,
        binds: Binds = None,
        options: Optional[QueryOptions] = None
    ) -> QueryResult:
        return await run_in_threadpool(self.execute, config, query, binds, options)

    def health_check(self, config: OracleConnectionConfig) -> HealthCheckResult:
        """Check a target; a pool that cannot be created reports unhealthy."""
        try:
            connector = self.manager.get_connector(config)
        except UpstreamFailure as e:
            return HealthCheckResult(is_healthy=False, response_time_ms=0, error_message=e.message)
        return connector.test_connection()

    async def check_health(self, config: OracleConnectionConfig) -> HealthCheckResult:
        return await run_in_threadpool(self.health_check, config)

    async def check_unsaved(self, config: OracleConnectionConfig) -> HealthCheckResult:
        """Test an unsaved config on its own pool, leaving shared pools alone."""
        return await run_in_threadpool(self.manager.check_unsaved, config)

    def discard(self, pool_key: str) -> None:
        """Close the pool for a target, e.g. after its credentials changed."""
        self.manager.close_connection(pool_key)


query_executor = QueryExecutor(connection_manager)


def get_query_executor() -> QueryExecutor:
    """Dependency returning the process-wide executor."""
    return query_executor
