"""
History Models - Append-only monitoring and maintenance snapshots

Rows in these tables are written once by collection runs and never updated.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Float, BigInteger, event
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from tms.database import Base
from tms.core.errors import ImmutableRecordError


class WaitEventSnapshot(Base):
    """One system wait event as seen by one collection run."""
    __tablename__ = "wait_event_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    oracle_connection_id = Column(String(36), ForeignKey("oracle_connections.id", ondelete="CASCADE"), nullable=False, index=True)
    collected_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    event_name = Column(String(64), nullable=False)
    wait_class = Column(String(64))
    total_waits = Column(BigInteger, default=0)
    total_timeouts = Column(BigInteger, default=0)
    time_waited_ms = Column(Float, default=0)
    average_wait_ms = Column(Float, default=0)

    connection = relationship("OracleConnection")


class SqlStatisticsSnapshot(Base):
    """One cursor from v$sql as seen by one collection run."""
    __tablename__ = "sql_statistics_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    oracle_connection_id = Column(String(36), ForeignKey("oracle_connections.id", ondelete="CASCADE"), nullable=False, index=True)
    collected_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    sql_id = Column(String(13), nullable=False, index=True)
    plan_hash_value = Column(BigInteger)
    module = Column(String(64))
    schema_name = Column(String(128))
    sql_text = Column(Text)

    elapsed_time_ms = Column(Float, default=0)
    cpu_time_ms = Column(Float, default=0)
    buffer_gets = Column(BigInteger, default=0)
    disk_reads = Column(BigInteger, default=0)
    executions = Column(BigInteger, default=0)
    rows_processed = Column(BigInteger, default=0)
    avg_elapsed_time_ms = Column(Float, default=0)
    gets_per_exec = Column(Float, default=0)

    status = Column(String(20), default="NORMAL")  # NORMAL, WARNING, CRITICAL
    priority = Column(String(20), default="MEDIUM")  # MEDIUM, HIGH, CRITICAL

    connection = relationship("OracleConnection")


class StatsCollectionHistory(Base):
    """One DBMS_STATS run, recorded after it finished."""
    __tablename__ = "stats_collection_history"

    id = Column(Integer, primary_key=True, index=True)
    oracle_connection_id = Column(String(36), ForeignKey("oracle_connections.id", ondelete="CASCADE"), nullable=False, index=True)
    owner = Column(String(128), nullable=False)
    table_name = Column(String(128), nullable=False)
    operation = Column(String(50), nullable=False, default="GATHER_TABLE_STATS")
    status = Column(String(20), nullable=False)  # SUCCESS, FAILED
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True))
    duration_seconds = Column(Integer)
    error_message = Column(Text)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    connection = relationship("OracleConnection")


class ConnectionHealthLog(Base):
    """Log of connection health checks."""
    __tablename__ = "connection_health_logs"

    id = Column(Integer, primary_key=True, index=True)
    oracle_connection_id = Column(String(36), ForeignKey("oracle_connections.id", ondelete="CASCADE"), nullable=False, index=True)

    # Health check results
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    status = Column(String(20), nullable=False)  # HEALTHY, ERROR
    response_time_ms = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    oracle_version = Column(String(50), nullable=True)

    # Who triggered the check
    checked_by = Column(String(50), nullable=False, default="system")  # system, user, scheduler

    connection = relationship("OracleConnection")


HISTORY_MODELS = (WaitEventSnapshot, SqlStatisticsSnapshot, StatsCollectionHistory, ConnectionHealthLog)


def _reject_update(mapper, connection, target):
    raise ImmutableRecordError(f"{type(target).__name__} rows are append-only")


for _model in HISTORY_MODELS:
    event.listen(_model, "before_update", _reject_update)
