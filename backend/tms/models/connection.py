"""
Oracle Connection Model - Stores monitored Oracle instance descriptors
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON, UniqueConstraint
from sqlalchemy.sql import func
from tms.database import Base
import enum
import uuid


class ConnectionType(str, enum.Enum):
    """How the target is addressed."""
    SERVICE_NAME = "SERVICE_NAME"
    SID = "SID"


class Privilege(str, enum.Enum):
    """Administrative privilege requested at logon."""
    SYSDBA = "SYSDBA"
    SYSOPER = "SYSOPER"
    NORMAL = "NORMAL"


class HealthStatus(str, enum.Enum):
    """Connection health status."""
    HEALTHY = "HEALTHY"
    WARNING = "WARNING"
    ERROR = "ERROR"
    UNKNOWN = "UNKNOWN"


def generate_id() -> str:
    return str(uuid.uuid4())


class OracleConnection(Base):
    """Monitored Oracle instance and its encrypted credential."""
    __tablename__ = "oracle_connections"
    __table_args__ = (
        UniqueConstraint("host", "port", "service_name", "sid", "username", name="uq_oracle_connection_target"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)

    # Target
    host = Column(String(255), nullable=False)
    port = Column(Integer, nullable=False, default=1521)
    service_name = Column(String(100), nullable=True)
    sid = Column(String(100), nullable=True)
    connection_type = Column(String(20), nullable=False, default=ConnectionType.SERVICE_NAME.value)

    # Credential (password is encrypted, never stored plain)
    username = Column(String(100), nullable=False)
    password_encrypted = Column(Text, nullable=False)
    privilege = Column(String(20), nullable=True)

    # Discovered at creation / health check
    oracle_version = Column(String(50), nullable=True)
    oracle_edition = Column(String(50), nullable=True)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)

    # Pool settings
    max_connections = Column(Integer, default=10)
    connection_timeout = Column(Integer, default=30000)  # milliseconds

    # Health
    last_connected_at = Column(DateTime(timezone=True), nullable=True)
    last_health_check_at = Column(DateTime(timezone=True), nullable=True)
    health_status = Column(String(20), default=HealthStatus.UNKNOWN.value)

    extra_metadata = Column("metadata", JSON, nullable=True)

    # Audit
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def target(self) -> str:
        """Service name or SID, whichever the connection type selects."""
        if self.connection_type == ConnectionType.SID.value:
            return self.sid
        return self.service_name

    def __repr__(self):
        return f"<OracleConnection(id={self.id}, name='{self.name}', target='{self.host}:{self.port}/{self.target}')>"
