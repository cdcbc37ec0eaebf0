"""
Oracle Advisor Services
SQL Tuning Advisor tasks and profiles, SQL Access Advisor tasks and their
recommendations turned into runnable DDL
"""
import asyncio
from typing import Any, Dict, List, Optional, Tuple
import structlog

from tms.connections.config_resolver import OracleConnectionConfig
from tms.connections.connectors.base_connector import QueryOptions, QueryResult
from tms.connections.query_executor import QueryExecutor
from tms.connections.row_mapping import (
    ADVISOR_RECOMMENDATION_FIELDS, ADVISOR_ACTION_FIELDS, TUNING_TASK_FIELDS, ACCESS_TASK_FIELDS,
    TUNING_FINDING_FIELDS, TUNING_RECOMMENDATION_FIELDS, TUNING_ACTION_FIELDS, SQL_PROFILE_FIELDS,
    safe_int, to_iso, to_text
)
from tms.core.errors import Conflict, InvalidRequest, NotFound, PermissionDenied, QueryTimeout, UpstreamFailure
from tms.services import oracle_queries

logger = structlog.get_logger()


def build_action_ddl(action: Dict[str, Any]) -> str:
    """
    DDL for one USER_ADVISOR_ACTIONS row.

    Commands without a direct statement (partitioning, retain) are rendered
    as SQL comments so the generated script stays runnable.
    """
    command = action.get("COMMAND") or ""
    attr1 = action.get("ATTR1") or ""
    attr2 = action.get("ATTR2") or ""
    attr3 = action.get("ATTR3") or ""
    attr4 = action.get("ATTR4")

    if command == "CREATE INDEX":
        ddl = f"CREATE INDEX {attr1} ON {attr2}({attr3})"
        if attr4:
            ddl += f" {attr4}"
    elif command == "CREATE MATERIALIZED VIEW":
        ddl = f"CREATE MATERIALIZED VIEW {attr1} AS {attr3}"
    elif command == "PARTITION TABLE":
        ddl = f"-- Partition table {attr1} by {attr2}"
    elif command in ("RETAIN INDEX", "RETAIN MATERIALIZED VIEW"):
        ddl = f"-- {command}: {attr1}"
    else:
        ddl = f"-- {command}: {attr1} {attr2} {attr3}"

    return ddl.strip()


class AdvisorService:
    """Recommendation reader for one SQL Access Advisor task."""

    def __init__(self, executor: QueryExecutor, config: OracleConnectionConfig):
        self.executor = executor
        self.config = config

    async def _actions(self, task_name: str, rec_id: int) -> List[Dict[str, Any]]:
        result = await self.executor.run(
            self.config,
            oracle_queries.ADVISOR_ACTIONS_SQL,
            {"task_name": task_name, "rec_id": rec_id},
            QueryOptions(timeout_ms=15000, max_rows=1000),
        )
        actions = []
        for row in result.rows:
            action = ADVISOR_ACTION_FIELDS.map_row(row)
            action["ddl"] = build_action_ddl(row)
            actions.append(action)
        return actions

    async def _enrichment(self, query: str, column: str, task_name: str) -> str:
        result = await self.executor.run(
            self.config, query, {"task_name": task_name}, QueryOptions(timeout_ms=30000, max_rows=1)
        )
        return (to_text(result.rows[0].get(column)) if result.rows else None) or ""

    async def recommendations(self, task_name: str) -> Dict[str, Any]:
        """
        Recommendations with their actions, plus the task script and report.

        Action queries fan out concurrently and any failure aborts the call.
        The script and report are optional: each failure is logged, the part
        degrades to an empty string and its name lands in enrichment_errors.
        """
        rec_result = await self.executor.run(
            self.config,
            oracle_queries.ADVISOR_RECOMMENDATIONS_SQL,
            {"task_name": task_name},
            QueryOptions(timeout_ms=30000, max_rows=1000),
        )
        recommendations = ADVISOR_RECOMMENDATION_FIELDS.map_rows(rec_result.rows)

        action_lists = await asyncio.gather(
            *(self._actions(task_name, rec["rec_id"]) for rec in recommendations)
        )
        for rec, actions in zip(recommendations, action_lists):
            rec["actions"] = actions

        enrichment = {}
        enrichment_errors = []
        for part, query, column in (
            ("script", oracle_queries.ADVISOR_SCRIPT_SQL, "SCRIPT"),
            ("report", oracle_queries.ADVISOR_REPORT_SQL, "REPORT"),
        ):
            try:
                enrichment[part] = await self._enrichment(query, column, task_name)
            except UpstreamFailure as e:
                logger.warning(
                    "advisor_enrichment_failed",
                    part=part,
                    task_name=task_name,
                    connection_id=self.config.id,
                    error=e.message
                )
                enrichment[part] = ""
                enrichment_errors.append(part)

        return {
            "task_name": task_name,
            "recommendations": recommendations,
            "script": enrichment["script"],
            "report": enrichment["report"],
            "total_count": len(recommendations),
            "enrichment_errors": enrichment_errors,
        }


# ============================================================================
# SHARED ADVISOR PLUMBING
# ============================================================================

# DBMS_ADVISOR and DBMS_SQLTUNE failures the dashboard can explain
ADVISOR_ERRORS = {
    "ORA-13600": (PermissionDenied, "The advisor is not available. It requires Enterprise Edition with the Tuning Pack."),
    "ORA-13604": (PermissionDenied, "Insufficient privileges. Connect as the task owner or grant the ADVISOR privilege."),
    "ORA-13605": (NotFound, "Advisor task not found. It may have been deleted."),
    "ORA-13607": (Conflict, "An advisor task with this name already exists."),
    "ORA-13831": (InvalidRequest, "This task has no SQL profile to accept. It may have been applied already."),
    "ORA-13846": (Conflict, "A SQL profile with this name already exists."),
    "ORA-00942": (PermissionDenied, "Advisor views are not accessible. The ADVISOR privilege is required."),
    "ORA-06550": (PermissionDenied, "The advisor package could not be called. DBA privileges are required."),
}

TUNING_TASK_STATUS_MESSAGES = {
    "INITIAL": ("The task has not been executed yet.", "Execute the task to start the analysis."),
    "EXECUTING": (
        "The task is still executing.",
        "Complex statements can take several minutes to analyse. Refresh later."
    ),
    "INTERRUPTED": (
        "The task was interrupted.",
        "The analysis hit its time limit or lost its session. Execute the task again."
    ),
    "CANCELLED": ("The task was cancelled.", "Create a new task to analyse the statement again."),
    "ERROR": (
        "The task failed while executing.",
        "Check the statement text and your privileges, then execute the task again."
    ),
}

ACCESS_ANALYSIS_SCOPES = {
    "ALL": "ALL",
    "INDEX": "INDEX",
    "PARTITION": "PARTITION",
    "MV": "MVIEW",
    "MVIEW": "MVIEW",
}


def raise_advisor_error(error: UpstreamFailure) -> None:
    """Re-raise with an explanation for well-known advisor ORA codes."""
    mapped = ADVISOR_ERRORS.get(error.error_code)
    if not mapped:
        raise error
    error_class, message = mapped
    raise error_class(message, details=error.message) from error


class AdvisorTaskService:
    """Base for services that read advisor dictionary views."""

    def __init__(self, executor: QueryExecutor, config: OracleConnectionConfig):
        self.executor = executor
        self.config = config

    async def _call(self, query: str, binds: Dict[str, Any], timeout_ms: int) -> QueryResult:
        try:
            return await self.executor.run(self.config, query, binds, QueryOptions(timeout_ms=timeout_ms))
        except UpstreamFailure as e:
            raise_advisor_error(e)

    async def _dictionary_query(
        self,
        template: str,
        binds: Optional[Dict[str, Any]] = None,
        options: Optional[QueryOptions] = None
    ) -> Tuple[QueryResult, str]:
        """
        Run a query against DBA_ advisor views, retrying on USER_ views.

        Returns the result and the view prefix that answered. A timeout is
        not retried. When every prefix fails the last error is raised.
        """
        last_error = None
        for prefix in oracle_queries.ADVISOR_VIEW_PREFIXES:
            owner = "t.owner" if prefix == "DBA" else "USER"
            query = template.format(prefix=prefix, owner=owner)
            try:
                result = await self.executor.run(self.config, query, binds, options)
                return result, prefix
            except QueryTimeout:
                raise
            except UpstreamFailure as e:
                logger.info(
                    "advisor_view_fallback",
                    view_prefix=prefix,
                    connection_id=self.config.id,
                    error=e.message
                )
                last_error = e
        raise last_error


# ============================================================================
# SQL TUNING ADVISOR
# ============================================================================

class SqlTuningService(AdvisorTaskService):
    """DBMS_SQLTUNE tasks for one connection."""

    async def create_task(
        self,
        task_name: str,
        sql_text: Optional[str] = None,
        sql_id: Optional[str] = None,
        time_limit: int = 60,
        description: Optional[str] = None,
        execute: bool = True
    ) -> Dict[str, Any]:
        """Create a tuning task for a statement text or a cached SQL_ID, and run it."""
        binds = {"task_name": task_name, "time_limit": time_limit, "description": description}
        if sql_text:
            query = oracle_queries.CREATE_TUNING_TASK_BY_TEXT_PLSQL
            binds["sql_text"] = sql_text
        else:
            query = oracle_queries.CREATE_TUNING_TASK_BY_SQL_ID_PLSQL
            binds["sql_id"] = sql_id

        await self._call(query, binds, 30000)
        logger.info("tuning_task_created", task_name=task_name, connection_id=self.config.id)

        if not execute:
            return {"task_name": task_name, "status": "CREATED"}

        await self._call(oracle_queries.EXECUTE_TUNING_TASK_PLSQL, {"task_name": task_name}, (time_limit + 60) * 1000)
        return {"task_name": task_name, "status": "CREATED_AND_EXECUTED"}

    async def execute_task(self, task_name: str) -> Dict[str, Any]:
        """
        Run an existing task.

        When the call times out the task keeps running in the database, so
        its current status is reported instead of an error.
        """
        try:
            await self._call(oracle_queries.EXECUTE_TUNING_TASK_PLSQL, {"task_name": task_name}, 120000)
        except QueryTimeout:
            status = await self.task_status(task_name)
            logger.warning("tuning_task_execute_timeout", task_name=task_name, connection_id=self.config.id)
            return {
                "task_name": task_name,
                "status": status["status"] if status else "EXECUTING",
                "completed": False,
            }

        result, _ = await self._dictionary_query(
            oracle_queries.TUNING_FINDING_COUNT_SQL,
            {"task_name": task_name},
            QueryOptions(timeout_ms=10000, max_rows=1),
        )
        count = safe_int(result.rows[0].get("FINDING_COUNT")) if result.rows else 0
        return {"task_name": task_name, "status": "COMPLETED", "completed": True, "recommendation_count": count}

    async def task_status(self, task_name: str) -> Optional[Dict[str, Any]]:
        """Status and execution window of a task, or None when it cannot be read."""
        try:
            result, _ = await self._dictionary_query(
                oracle_queries.TUNING_TASK_STATUS_SQL,
                {"task_name": task_name},
                QueryOptions(timeout_ms=10000, max_rows=1),
            )
        except UpstreamFailure as e:
            logger.warning("tuning_task_status_unavailable", task_name=task_name, error=e.message)
            return None
        if not result.rows:
            return None
        row = result.rows[0]
        return {
            "status": to_text(row.get("STATUS")),
            "execution_start": to_iso(row.get("EXECUTION_START")),
            "execution_end": to_iso(row.get("EXECUTION_END")),
        }

    async def list_tasks(self) -> Dict[str, Any]:
        result, prefix = await self._dictionary_query(
            oracle_queries.TUNING_TASKS_SQL, options=QueryOptions(timeout_ms=15000)
        )
        return {"tasks": TUNING_TASK_FIELDS.map_rows(result.rows), "view_type": prefix}

    async def recommendations(self, task_name: str) -> Dict[str, Any]:
        """
        Findings of a completed task, each with its recommendations and actions.

        The report and script are optional like the SQL Access Advisor ones.
        """
        try:
            result, prefix = await self._dictionary_query(
                oracle_queries.TUNING_FINDINGS_SQL,
                {"task_name": task_name},
                QueryOptions(timeout_ms=30000, max_rows=5000),
            )
        except UpstreamFailure as e:
            raise_advisor_error(e)

        findings = group_findings(result.rows)

        enrichment = {}
        enrichment_errors = []
        for part, query, column in (
            ("report", oracle_queries.TUNING_REPORT_SQL, "REPORT"),
            ("script", oracle_queries.TUNING_SCRIPT_SQL, "SCRIPT"),
        ):
            try:
                rows = (await self.executor.run(
                    self.config, query, {"task_name": task_name}, QueryOptions(timeout_ms=30000, max_rows=1)
                )).rows
                enrichment[part] = (to_text(rows[0].get(column)) if rows else None) or ""
            except UpstreamFailure as e:
                logger.warning("tuning_enrichment_failed", part=part, task_name=task_name, error=e.message)
                enrichment[part] = ""
                enrichment_errors.append(part)

        return {
            "task_name": task_name,
            "findings": findings,
            "total_count": len(findings),
            "view_type": prefix,
            "report": enrichment["report"],
            "script": enrichment["script"],
            "enrichment_errors": enrichment_errors,
        }

    async def list_profiles(self) -> Dict[str, Any]:
        result, prefix = await self._dictionary_query(
            oracle_queries.SQL_PROFILES_SQL, options=QueryOptions(timeout_ms=10000, max_rows=1000)
        )
        return {"profiles": SQL_PROFILE_FIELDS.map_rows(result.rows), "view_type": prefix}

    async def accept_profile(
        self,
        task_name: str,
        profile_name: Optional[str] = None,
        category: str = "DEFAULT",
        force_match: bool = False,
        replace: bool = False
    ) -> Dict[str, Any]:
        """Accept the SQL profile a tuning task recommended."""
        profile_name = profile_name or f"PROF_{task_name}"[:128]
        await self._call(
            oracle_queries.ACCEPT_SQL_PROFILE_PLSQL,
            {
                "task_name": task_name,
                "profile_name": profile_name,
                "category": category,
                "force_match": 1 if force_match else 0,
                "replace": 1 if replace else 0,
            },
            60000,
        )
        logger.info("sql_profile_accepted", task_name=task_name, profile_name=profile_name)
        return {
            "task_name": task_name,
            "profile_name": profile_name,
            "category": category,
            "force_match": force_match,
        }


def group_findings(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Fold the findings/recommendations/actions join back into a tree."""
    findings: Dict[int, Dict[str, Any]] = {}
    recommendations: Dict[Tuple[int, int], Dict[str, Any]] = {}

    for row in rows:
        finding_id = safe_int(row.get("FINDING_ID"))
        finding = findings.get(finding_id)
        if finding is None:
            finding = TUNING_FINDING_FIELDS.map_row(row)
            finding["recommendations"] = []
            findings[finding_id] = finding

        if row.get("REC_ID") is None:
            continue
        key = (finding_id, safe_int(row.get("REC_ID")))
        recommendation = recommendations.get(key)
        if recommendation is None:
            recommendation = TUNING_RECOMMENDATION_FIELDS.map_row(row)
            recommendation["actions"] = []
            recommendations[key] = recommendation
            finding["recommendations"].append(recommendation)

        if row.get("ACTION_ID") is not None:
            recommendation["actions"].append(TUNING_ACTION_FIELDS.map_row(row))

    return list(findings.values())


def pending_task_body(task_name: str, status: Dict[str, Any]) -> Dict[str, Any]:
    """202 body for a tuning task that has not completed."""
    task_status = status["status"]
    message, guide = TUNING_TASK_STATUS_MESSAGES.get(
        task_status, (f"The task has not completed yet. Current status: {task_status}", "Check again later.")
    )
    return {
        "success": False,
        "error": message,
        "guide": guide,
        "task_status": task_status,
        "task_name": task_name,
        "execution_start": status.get("execution_start"),
        "execution_end": status.get("execution_end"),
        "data": [],
        "count": 0,
    }


# ============================================================================
# SQL ACCESS ADVISOR TASKS
# ============================================================================

class SqlAccessTaskService(AdvisorTaskService):
    """DBMS_ADVISOR SQL Access tasks for one connection."""

    async def create_task(
        self,
        task_name: str,
        analysis_scope: str = "ALL",
        time_limit: int = 300,
        description: Optional[str] = None,
        max_statements: int = 20
    ) -> Dict[str, Any]:
        """
        Build a task over the heaviest cached statements and submit it.

        Steps: drop any same-named task and workload, create the task,
        create and fill the workload, link it, then run EXECUTE_TASK in a
        scheduler job. Filling the workload is best effort.
        """
        scope = ACCESS_ANALYSIS_SCOPES[analysis_scope]
        workload_name = f"{task_name}_WL"
        job_name = f"JOB_{task_name}"
        names = {"task_name": task_name, "workload_name": workload_name}

        await self._call(oracle_queries.DROP_ACCESS_TASK_PLSQL, names, 15000)
        await self._call(
            oracle_queries.CREATE_ACCESS_TASK_PLSQL,
            {
                "task_name": task_name,
                "description": description or f"SQL Access Advisor task {task_name}",
                "time_limit": time_limit,
                "analysis_scope": scope,
            },
            30000,
        )
        await self._call(oracle_queries.CREATE_ACCESS_WORKLOAD_PLSQL, names, 30000)

        statement_count = 0
        try:
            await self.executor.run(
                self.config,
                oracle_queries.POPULATE_ACCESS_WORKLOAD_PLSQL,
                {"workload_name": workload_name, "max_statements": max_statements},
                QueryOptions(timeout_ms=60000),
            )
            count_result = await self.executor.run(
                self.config,
                oracle_queries.ACCESS_WORKLOAD_COUNT_SQL,
                {"workload_name": workload_name},
                QueryOptions(timeout_ms=10000, max_rows=1),
            )
            if count_result.rows:
                statement_count = safe_int(count_result.rows[0].get("STATEMENT_COUNT"))
        except UpstreamFailure as e:
            logger.warning("access_workload_populate_failed", task_name=task_name, error=e.message)

        await self._call(oracle_queries.LINK_ACCESS_WORKLOAD_PLSQL, names, 30000)
        await self._call(oracle_queries.SUBMIT_ACCESS_TASK_JOB_PLSQL, {"job_name": job_name, "task_name": task_name}, 15000)

        logger.info(
            "access_task_submitted",
            task_name=task_name,
            connection_id=self.config.id,
            statement_count=statement_count
        )
        return {
            "task_name": task_name,
            "workload_name": workload_name,
            "job_name": job_name,
            "analysis_scope": scope,
            "time_limit": time_limit,
            "statement_count": statement_count,
            "status": "SUBMITTED",
        }

    async def list_tasks(self) -> Dict[str, Any]:
        """
        SQL Access Advisor tasks, newest first.

        ORA-00942 on every view means the advisor is not usable on this
        target; that is reported as an empty list rather than an error.
        """
        try:
            result, prefix = await self._dictionary_query(
                oracle_queries.ACCESS_TASKS_SQL, options=QueryOptions(timeout_ms=15000)
            )
        except QueryTimeout:
            raise
        except UpstreamFailure as e:
            if e.error_code != "ORA-00942":
                raise
            return {"tasks": [], "view_type": None, "advisor_available": False}
        return {"tasks": ACCESS_TASK_FIELDS.map_rows(result.rows), "view_type": prefix, "advisor_available": True}
