"""
Connector result types and the interface every target connector implements
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Union
from dataclasses import dataclass, field
from datetime import datetime

from tms.services.sql_engine import StatementType

Binds = Optional[Union[Sequence[Any], Dict[str, Any]]]


@dataclass
class QueryOptions:
    """Per-call execution options."""
    timeout_ms: Optional[int] = None
    max_rows: Optional[int] = None
    fetch_array_size: Optional[int] = None
    auto_commit: bool = True
    # ALTER SESSION SET CURRENT_SCHEMA before the statement
    current_schema: Optional[str] = None


@dataclass
class QueryResult:
    """Query execution result; rows are keyed by driver column name."""
    statement_type: StatementType
    rows: List[Dict[str, Any]] = field(default_factory=list)
    metadata: List[Dict[str, Any]] = field(default_factory=list)
    rows_affected: Optional[int] = None
    has_more: bool = False
    execution_time_ms: int = 0

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass
class HealthCheckResult:
    """Health check result."""
    is_healthy: bool
    response_time_ms: int
    error_message: Optional[str] = None
    version: Optional[str] = None
    version_label: Optional[str] = None
    edition: Optional[str] = None
    instance_name: Optional[str] = None
    host_name: Optional[str] = None
    timestamp: datetime = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.utcnow()


class BaseConnector(ABC):
    """Interface for a pooled connector bound to one target."""

    @abstractmethod
    def execute(self, query: str, binds: Binds = None, options: Optional[QueryOptions] = None) -> QueryResult:
        """Run one statement and release the connection before returning."""
        pass

    @abstractmethod
    def test_connection(self) -> HealthCheckResult:
        """Check the target; never raises."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the underlying pool."""
        pass
