"""
Ad hoc SQL API Route
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional
from pydantic import BaseModel, Field
import structlog

from tms.database import get_app_db
from tms.models import User, AuditActionType
from tms.core.rbac import get_current_user, require_permission
from tms.core.audit import AuditLogger
from tms.core.errors import InvalidRequest, UpstreamFailure
from tms.connections import get_config_resolver, ConfigResolver, get_query_executor, QueryExecutor, QueryOptions
from tms.connections.row_mapping import to_number
from tms.services.sql_engine import QueryValidator, StatementType
from tms.api.common import require_connection_id, require

logger = structlog.get_logger()

router = APIRouter()


# ============================================================================
# SCHEMAS
# ============================================================================

class ExecuteOptions(BaseModel):
    max_rows: int = Field(1000, ge=1, le=100000)
    fetch_size: int = Field(100, ge=1, le=10000)
    timeout_ms: Optional[int] = Field(None, ge=1000)


class ExecuteRequest(BaseModel):
    connection_id: Optional[str] = None
    query: Optional[str] = None
    schema_name: Optional[str] = Field(None, alias="schema")
    options: ExecuteOptions = ExecuteOptions()

    class Config:
        populate_by_name = True


# ============================================================================
# API ENDPOINTS
# ============================================================================

@router.post("")
async def execute_query(
    body: ExecuteRequest,
    request: Request,
    current_user: User = Depends(require_permission("tuning")),
    db: Session = Depends(get_app_db),
    resolver: ConfigResolver = Depends(get_config_resolver),
    executor: QueryExecutor = Depends(get_query_executor)
):
    """Run one statement typed into the SQL editor."""
    connection_id = require_connection_id(body.connection_id)
    query = QueryValidator.strip_trailing_semicolons(require(body.query, "Query is required"))
    if not query:
        raise InvalidRequest("Query is required")
    if body.schema_name and not QueryValidator.is_identifier(body.schema_name):
        raise InvalidRequest("Invalid schema name")

    config = resolver.get_oracle_config(connection_id)
    auditor = AuditLogger(db, request)
    statement_type = QueryValidator.get_statement_type(query)

    options = QueryOptions(
        timeout_ms=body.options.timeout_ms,
        max_rows=body.options.max_rows,
        fetch_array_size=body.options.fetch_size,
        current_schema=body.schema_name,
    )

    try:
        result = await executor.run(config, query, options=options)
    except UpstreamFailure as e:
        auditor.log(
            action=AuditActionType.QUERY_EXECUTE.value,
            user=current_user,
            resource_type="sql",
            connection_id=connection_id,
            status="failure",
            error_message=e.message,
            details={"statement_type": statement_type.value, "error_code": e.error_code}
        )
        raise

    auditor.log(
        action=AuditActionType.QUERY_EXECUTE.value,
        user=current_user,
        resource_type="sql",
        connection_id=connection_id,
        details={"statement_type": statement_type.value, "schema": body.schema_name}
    )
    logger.info(
        "adhoc_query_executed",
        connection_id=connection_id,
        statement_type=statement_type.value,
        execution_time_ms=result.execution_time_ms
    )

    response = {
        "success": True,
        "query_type": result.statement_type.value,
        "execution_time": result.execution_time_ms,
    }
    if result.statement_type == StatementType.SELECT:
        response.update({
            "rows": [{key: to_number(value) for key, value in row.items()} for row in result.rows],
            "metadata": result.metadata,
            "row_count": result.row_count,
            "has_more": result.has_more,
        })
    else:
        rows_affected = result.rows_affected or 0
        response.update({
            "rows_affected": rows_affected,
            "message": f"Query executed successfully. {rows_affected} row(s) affected.",
        })
    return response
