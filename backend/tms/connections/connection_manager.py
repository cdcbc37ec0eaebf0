"""
Connection Manager - owns one driver pool per Oracle target
"""
from typing import Callable, Dict, List, Optional
import threading
import logging

import oracledb

from tms.config import settings
from tms.connections.config_resolver import OracleConnectionConfig
from tms.connections.connectors.base_connector import HealthCheckResult
from tms.connections.connectors.oracle_connector import OracleConnector
from tms.connections.errors import translate_driver_error
from tms.models import ConnectionType, Privilege

logger = logging.getLogger(__name__)

_driver_lock = threading.Lock()
_driver_configured = False

PRIVILEGE_MODES = {
    Privilege.SYSDBA.value: oracledb.AUTH_MODE_SYSDBA,
    Privilege.SYSOPER.value: oracledb.AUTH_MODE_SYSOPER,
}


def configure_driver() -> None:
    """One-time driver setup: thick mode when requested, LOBs fetched as str/bytes."""
    global _driver_configured
    with _driver_lock:
        if _driver_configured:
            return
        if settings.ORACLE_THICK_MODE:
            oracledb.init_oracle_client(lib_dir=settings.ORACLE_CLIENT_LIB_DIR)
            logger.info("Oracle client initialized in thick mode")
        oracledb.defaults.fetch_lobs = False
        _driver_configured = True


def build_dsn(config: OracleConnectionConfig) -> str:
    if config.connection_type == ConnectionType.SID.value:
        return oracledb.makedsn(config.host, config.port, sid=config.sid)
    return oracledb.makedsn(config.host, config.port, service_name=config.service_name)


def create_oracle_pool(config: OracleConnectionConfig):
    """Default pool factory backed by oracledb.create_pool."""
    configure_driver()

    params = {
        "user": config.username,
        "password": config.password,
        "dsn": build_dsn(config),
        "min": min(settings.ORACLE_POOL_MIN, config.max_connections),
        "max": config.max_connections,
        "increment": settings.ORACLE_POOL_INCREMENT,
        "timeout": 60,
        "getmode": oracledb.POOL_GETMODE_TIMEDWAIT,
        "wait_timeout": config.connection_timeout,
        "tcp_connect_timeout": config.connection_timeout / 1000,
    }
    mode = PRIVILEGE_MODES.get(config.privilege or "")
    if mode is not None:
        params["mode"] = mode

    return oracledb.create_pool(**params)


class ConnectionManager:
    """
    Manages driver pools keyed by target address.

    Pools are created lazily through the pool factory and reused for every
    request that resolves to the same host, port, service or SID, and user.
    """

    def __init__(self, pool_factory: Optional[Callable[[OracleConnectionConfig], object]] = None):
        self._connectors: Dict[str, OracleConnector] = {}
        self._lock = threading.Lock()
        self.pool_factory = pool_factory or create_oracle_pool

    def get_connector(self, config: OracleConnectionConfig) -> OracleConnector:
        """
        Get or create the connector for a resolved config.

        Raises:
            UpstreamFailure: the pool could not be created
        """
        key = config.pool_key
        with self._lock:
            connector = self._connectors.get(key)
            if connector is not None:
                return connector

            try:
                pool = self.pool_factory(config)
            except oracledb.Error as e:
                raise translate_driver_error(e) from e

            connector = OracleConnector(pool, name=config.name or key)
            self._connectors[key] = connector
            logger.info(f"Created Oracle pool for {config.host}:{config.port}/{config.target}")
            return connector

    def check_unsaved(self, config: OracleConnectionConfig) -> HealthCheckResult:
        """
        Health check on a throwaway pool built from the config.

        Registered pools are neither reused nor closed, so the credentials
        and privilege in the config are exactly what gets tested.
        """
        try:
            pool = self.pool_factory(config)
        except oracledb.Error as e:
            return HealthCheckResult(
                is_healthy=False, response_time_ms=0, error_message=translate_driver_error(e).message
            )

        connector = OracleConnector(pool, name=config.name or config.pool_key)
        try:
            return connector.test_connection()
        finally:
            try:
                connector.close()
            except oracledb.Error as e:
                logger.warning(f"Error closing throwaway pool for {config.host}:{config.port}/{config.target}: {e}")

    def close_connection(self, key: str) -> bool:
        with self._lock:
            connector = self._connectors.pop(key, None)
        if connector is None:
            return False
        try:
            connector.close()
        except oracledb.Error as e:
            logger.warning(f"Error closing pool {key}: {e}")
        return True

    def close_all_connections(self) -> None:
        for key in list(self._connectors.keys()):
            self.close_connection(key)

    def pool_statistics(self) -> List[dict]:
        stats = []
        for key, connector in list(self._connectors.items()):
            stats.append({
                "key": key,
                "opened": getattr(connector.pool, "opened", None),
                "busy": getattr(connector.pool, "busy", None),
                "max": getattr(connector.pool, "max", None),
            })
        return stats


# Global connection manager instance
connection_manager = ConnectionManager()
