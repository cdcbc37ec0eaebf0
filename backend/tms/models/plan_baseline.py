"""
Plan Baseline Model - Tracked SQL plan baselines
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, Float, BigInteger
from sqlalchemy.sql import func

from tms.database import Base
from tms.models.connection import generate_id


class PlanBaseline(Base):
    """A pinned execution plan for one SQL id on one connection."""
    __tablename__ = "plan_baselines"

    id = Column(String(36), primary_key=True, default=generate_id)
    oracle_connection_id = Column(String(36), ForeignKey("oracle_connections.id", ondelete="CASCADE"), nullable=False, index=True)

    sql_id = Column(String(13), nullable=False, index=True)
    plan_hash_value = Column(BigInteger, nullable=False)
    plan_name = Column(String(128), unique=True, nullable=True)
    sql_handle = Column(String(128), nullable=True)

    # Flags
    is_enabled = Column(Boolean, nullable=False, default=True)
    is_accepted = Column(Boolean, nullable=False, default=True)
    is_fixed = Column(Boolean, nullable=False, default=False)

    # Plan and execution stats
    plan_table = Column(JSON, nullable=False, default=list)
    cost = Column(Float, nullable=True)
    executions = Column(BigInteger, nullable=False, default=0)
    avg_elapsed_time_ms = Column(Float, nullable=True)
    avg_buffer_gets = Column(Float, nullable=True)

    created_in_oracle_at = Column(DateTime(timezone=True), nullable=True)
    last_modified_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Fields a full replace may set; anything omitted returns to its default
    REPLACEABLE_FIELDS = {
        "sql_id": None,
        "plan_hash_value": None,
        "plan_name": None,
        "sql_handle": None,
        "is_enabled": True,
        "is_accepted": True,
        "is_fixed": False,
        "plan_table": list,
        "cost": None,
        "executions": 0,
        "avg_elapsed_time_ms": None,
        "avg_buffer_gets": None,
        "created_in_oracle_at": None,
        "last_modified_at": None,
    }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "oracle_connection_id": self.oracle_connection_id,
            "sql_id": self.sql_id,
            "plan_hash_value": self.plan_hash_value,
            "plan_name": self.plan_name,
            "sql_handle": self.sql_handle,
            "is_enabled": self.is_enabled,
            "is_accepted": self.is_accepted,
            "is_fixed": self.is_fixed,
            "plan_table": self.plan_table,
            "cost": self.cost,
            "executions": self.executions,
            "avg_elapsed_time_ms": self.avg_elapsed_time_ms,
            "avg_buffer_gets": self.avg_buffer_gets,
            "created_in_oracle_at": self.created_in_oracle_at.isoformat() if self.created_in_oracle_at else None,
            "last_modified_at": self.last_modified_at.isoformat() if self.last_modified_at else None,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
