"""
Services Package
"""
from tms.services.sql_engine import QueryValidator, StatementType, classify_statement

__all__ = [
    "QueryValidator", "StatementType", "classify_statement",
]
