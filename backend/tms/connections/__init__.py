"""
Connections Package - Oracle config resolution, pooling and query execution
"""
from tms.connections.config_resolver import (
    ConfigResolver, OracleConnectionConfig, get_config_resolver
)
from tms.connections.connection_manager import connection_manager, ConnectionManager
from tms.connections.query_executor import query_executor, QueryExecutor, get_query_executor
from tms.connections.health_monitor import health_monitor, HealthMonitor
from tms.connections.connectors.base_connector import QueryOptions, QueryResult, HealthCheckResult

__all__ = [
    "ConfigResolver",
    "OracleConnectionConfig",
    "get_config_resolver",
    "connection_manager",
    "ConnectionManager",
    "query_executor",
    "QueryExecutor",
    "get_query_executor",
    "health_monitor",
    "HealthMonitor",
    "QueryOptions",
    "QueryResult",
    "HealthCheckResult",
]
