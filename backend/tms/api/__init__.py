"""
API Package
"""
from tms.api import (
    auth, profile, oracle_connections, oracle_execute, monitoring,
    plan_baselines, advisor, llm, scheduler
)

__all__ = [
    "auth", "profile", "oracle_connections", "oracle_execute", "monitoring",
    "plan_baselines", "advisor", "llm", "scheduler"
]
