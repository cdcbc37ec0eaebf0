"""
Config Resolver - turns a connection id into a usable Oracle descriptor
"""
from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import Depends
from sqlalchemy.orm import Session
import structlog

from tms.core.crypto import decrypt_value
from tms.core.errors import NotFound, DecryptionError
from tms.database import get_app_db
from tms.models import OracleConnection, ConnectionType, Privilege

logger = structlog.get_logger()


def make_pool_key(host: str, port: int, target: Optional[str], username: str,
                  privilege: Optional[str] = None) -> str:
    key = f"{host}:{port}:{target}:{username}"
    if privilege:
        # SYSDBA and SYSOPER sessions never share a pool with normal ones
        key += f":{privilege}"
    return key


@dataclass(frozen=True)
class OracleConnectionConfig:
    """Decrypted, ready-to-connect descriptor of one Oracle target."""
    host: str
    port: int
    username: str
    password: str
    id: Optional[str] = None
    name: Optional[str] = None
    service_name: Optional[str] = None
    sid: Optional[str] = None
    connection_type: str = ConnectionType.SERVICE_NAME.value
    privilege: Optional[str] = None
    max_connections: int = 10
    connection_timeout: int = 30000

    @property
    def target(self) -> Optional[str]:
        if self.connection_type == ConnectionType.SID.value:
            return self.sid
        return self.service_name

    @property
    def pool_key(self) -> str:
        return make_pool_key(self.host, self.port, self.target, self.username, self.privilege)

    def __repr__(self):
        # Never render the password
        return (
            f"OracleConnectionConfig(id={self.id!r}, host={self.host!r}, port={self.port}, "
            f"target={self.target!r}, username={self.username!r})"
        )


def normalize_privilege(privilege: Optional[str]) -> Optional[str]:
    """NORMAL and empty values mean no administrative privilege."""
    if not privilege or privilege.upper() == Privilege.NORMAL.value:
        return None
    return privilege.upper()


class ConfigResolver:
    """
    Resolves connection records against the auxiliary store.

    Resolved configs are cached on the resolver instance, which lives for one
    request, so repeated lookups inside a handler hit the store once.
    """

    def __init__(self, db: Session):
        self.db = db
        self._cache: Dict[str, OracleConnectionConfig] = {}

    def get_oracle_config(self, connection_id: str) -> OracleConnectionConfig:
        """
        Args:
            connection_id: OracleConnection primary key

        Raises:
            NotFound: unknown or inactive connection id
            DecryptionError: stored ciphertext cannot be decrypted
        """
        cached = self._cache.get(connection_id)
        if cached is not None:
            return cached

        connection = self.db.query(OracleConnection).filter(
            OracleConnection.id == connection_id,
            OracleConnection.is_active == True
        ).first()

        if not connection:
            raise NotFound("Connection not found or inactive")

        try:
            password = decrypt_value(connection.password_encrypted)
        except DecryptionError:
            logger.error("credential_decryption_failed", connection_id=connection_id)
            raise

        config = config_from_record(connection, password)
        self._cache[connection_id] = config
        return config

    def invalidate(self, connection_id: Optional[str] = None) -> None:
        """Drop one cached entry, or all of them."""
        if connection_id is None:
            self._cache.clear()
        else:
            self._cache.pop(connection_id, None)


def config_from_record(connection: OracleConnection, password: str) -> OracleConnectionConfig:
    return OracleConnectionConfig(
        id=connection.id,
        name=connection.name,
        host=connection.host,
        port=connection.port or 1521,
        service_name=connection.service_name,
        sid=connection.sid,
        username=connection.username,
        password=password,
        connection_type=connection.connection_type or ConnectionType.SERVICE_NAME.value,
        privilege=normalize_privilege(connection.privilege),
        max_connections=connection.max_connections or 10,
        connection_timeout=connection.connection_timeout or 30000,
    )


def record_pool_key(connection: OracleConnection) -> str:
    """Pool key of a stored record, without decrypting its password."""
    return make_pool_key(
        connection.host,
        connection.port or 1521,
        connection.target,
        connection.username,
        normalize_privilege(connection.privilege),
    )


def get_config_resolver(db: Session = Depends(get_app_db)) -> ConfigResolver:
    """Dependency providing a request-scoped resolver."""
    return ConfigResolver(db)
