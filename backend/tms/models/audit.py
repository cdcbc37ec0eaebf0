"""
Audit Log Model
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum

from tms.database import Base


class AuditActionType(str, enum.Enum):
    """Types of auditable actions"""
    # Connection Management
    CONNECTION_CREATE = "connection_create"
    CONNECTION_UPDATE = "connection_update"
    CONNECTION_DELETE = "connection_delete"
    CONNECTION_DEACTIVATE = "connection_deactivate"

    # Tuning operations against Oracle
    QUERY_EXECUTE = "query_execute"
    SESSION_KILL = "session_kill"
    STATS_GATHER = "stats_gather"
    STATS_COLLECT = "stats_collect"

    # Plan baselines
    BASELINE_CREATE = "baseline_create"
    BASELINE_REPLACE = "baseline_replace"
    BASELINE_DELETE = "baseline_delete"

    # Advisors
    ADVISOR_TASK = "advisor_task"
    SQL_PROFILE_APPLY = "sql_profile_apply"

    # Authentication
    USER_SIGNUP = "user_signup"
    USER_LOGIN = "user_login"
    USER_LOGIN_FAILED = "user_login_failed"
    PASSWORD_CHANGE = "password_change"


class AuditLog(Base):
    """Audit log for tracking all operations."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Actor
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), index=True)
    user_email = Column(String(255))  # Denormalized for historical tracking
    ip_address = Column(String(50))

    # Oracle connection context (no FK: the trail outlives deleted connections)
    oracle_connection_id = Column(String(36), nullable=True, index=True)

    # Action
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(100), index=True)
    resource_id = Column(String(100))

    # Details
    details = Column(JSON)
    status = Column(String(20), default='success')  # 'success', 'failure'
    error_message = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    # Relationships
    user = relationship("User", back_populates="audit_logs")
