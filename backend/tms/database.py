"""
Database connection and session management for the auxiliary store
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
from typing import Generator

from tms.config import settings

# ============================================================================
# AUXILIARY STORE
# Used for: Users, Roles, Oracle connection records, history snapshots,
#           plan baselines, audit logs
# Configured via: DATABASE_URL environment variable
# ============================================================================


def _engine_options(database_url: str) -> dict:
    """Engine keyword arguments for the configured backend."""
    if database_url.startswith("sqlite"):
        options = {
            "echo": settings.DEBUG,
            "connect_args": {"check_same_thread": False},
        }
        # In-memory databases live on a single shared connection
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options

    return {
        "pool_size": 20,
        "max_overflow": 30,
        "pool_pre_ping": True,
        "echo": settings.DEBUG,
        "connect_args": {"connect_timeout": 10},
    }


app_engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

AppSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=app_engine)

Base = declarative_base()


def get_app_db() -> Generator[Session, None, None]:
    """Dependency for a request-scoped session."""
    db = AppSessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_app_db_context() -> Generator[Session, None, None]:
    """Context manager for sessions used outside a request."""
    db = AppSessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# Legacy alias
get_db = get_app_db
