"""
Models Package - Export all SQLAlchemy models
"""
from tms.models.user import User, Role
from tms.models.audit import AuditLog, AuditActionType
from tms.models.connection import (
    OracleConnection,
    ConnectionType,
    Privilege,
    HealthStatus
)
from tms.models.history import (
    WaitEventSnapshot,
    SqlStatisticsSnapshot,
    StatsCollectionHistory,
    ConnectionHealthLog,
    HISTORY_MODELS
)
from tms.models.plan_baseline import PlanBaseline

__all__ = [
    # User & Auth
    "User",
    "Role",

    # Audit
    "AuditLog",
    "AuditActionType",

    # Connections
    "OracleConnection",
    "ConnectionType",
    "Privilege",
    "HealthStatus",

    # History
    "WaitEventSnapshot",
    "SqlStatisticsSnapshot",
    "StatsCollectionHistory",
    "ConnectionHealthLog",
    "HISTORY_MODELS",

    # Baselines
    "PlanBaseline",
]
