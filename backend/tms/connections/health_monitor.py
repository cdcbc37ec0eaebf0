"""
Health Monitor Service - Checks Oracle connections and records the result
"""
from typing import List, Optional
from datetime import datetime
import logging
from sqlalchemy.orm import Session

from tms.models import OracleConnection, HealthStatus, ConnectionHealthLog
from tms.core.crypto import decrypt_value
from tms.connections.config_resolver import config_from_record
from tms.connections.connectors.base_connector import HealthCheckResult
from tms.connections.query_executor import QueryExecutor

logger = logging.getLogger(__name__)


class HealthMonitor:
    """
    Monitors Oracle connection health.

    Each check updates the connection record's health fields and appends a
    ConnectionHealthLog row.
    """

    async def check_connection(
        self,
        db: Session,
        connection: OracleConnection,
        executor: QueryExecutor,
        checked_by: str = "user"
    ) -> HealthCheckResult:
        """
        Check health of a single connection.

        Args:
            db: Database session
            connection: OracleConnection to check
            executor: Query executor used to reach the target
            checked_by: Who triggered the check

        Raises:
            DecryptionError: the stored credential is unreadable
        """
        config = config_from_record(connection, decrypt_value(connection.password_encrypted))
        result = await executor.check_health(config)

        now = datetime.utcnow()
        connection.last_health_check_at = now
        if result.is_healthy:
            connection.health_status = HealthStatus.HEALTHY.value
            connection.last_connected_at = now
            if result.version_label:
                connection.oracle_version = result.version_label
            if result.edition:
                connection.oracle_edition = result.edition
        else:
            connection.health_status = HealthStatus.ERROR.value

        self.log_health_status(
            db=db,
            connection_id=connection.id,
            status=connection.health_status,
            response_time_ms=result.response_time_ms,
            error_message=result.error_message,
            oracle_version=result.version_label,
            checked_by=checked_by
        )

        db.commit()

        if result.is_healthy:
            logger.info(f"Health check for {connection.name}: {connection.health_status} ({result.response_time_ms}ms)")
        else:
            logger.warning(f"Health check failed for {connection.name}: {result.error_message}")

        return result

    def log_health_status(
        self,
        db: Session,
        connection_id: str,
        status: str,
        response_time_ms: int,
        error_message: Optional[str] = None,
        oracle_version: Optional[str] = None,
        checked_by: str = "system"
    ) -> ConnectionHealthLog:
        """Append a health log row; the caller commits."""
        log = ConnectionHealthLog(
            oracle_connection_id=connection_id,
            status=status,
            response_time_ms=response_time_ms,
            error_message=error_message,
            oracle_version=oracle_version,
            checked_by=checked_by
        )
        db.add(log)
        return log

    def get_health_history(
        self,
        db: Session,
        connection_id: str,
        limit: int = 50
    ) -> List[ConnectionHealthLog]:
        """Most recent health checks for a connection, newest first."""
        return db.query(ConnectionHealthLog).filter(
            ConnectionHealthLog.oracle_connection_id == connection_id
        ).order_by(ConnectionHealthLog.timestamp.desc(), ConnectionHealthLog.id.desc()).limit(limit).all()


# Global health monitor instance
health_monitor = HealthMonitor()
