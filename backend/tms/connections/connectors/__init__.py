"""
Connectors Package - Oracle connector implementation
"""
from tms.connections.connectors.base_connector import (
    BaseConnector,
    QueryOptions,
    QueryResult,
    HealthCheckResult
)
from tms.connections.connectors.oracle_connector import OracleConnector

__all__ = [
    "BaseConnector",
    "QueryOptions",
    "QueryResult",
    "HealthCheckResult",
    "OracleConnector",
]
