"""
Tests for the SQL Tuning Advisor and SQL Access Advisor routes
"""
import pytest

from tms.core.errors import QueryTimeout, UpstreamFailure
from tms.services.advisor_service import build_action_ddl

RECOMMENDATIONS = "FROM user_advisor_recommendations r"
ACTIONS = "FROM user_advisor_actions a"


class TestBuildActionDdl:

    @pytest.mark.parametrize("action,expected", [
        ({"COMMAND": "CREATE INDEX", "ATTR1": "HR.IDX$_0001", "ATTR2": "HR.EMPLOYEES", "ATTR3": "DEPARTMENT_ID"},
         "CREATE INDEX HR.IDX$_0001 ON HR.EMPLOYEES(DEPARTMENT_ID)"),
        ({"COMMAND": "CREATE INDEX", "ATTR1": "I1", "ATTR2": "T", "ATTR3": "A, B", "ATTR4": "COMPUTE STATISTICS"},
         "CREATE INDEX I1 ON T(A, B) COMPUTE STATISTICS"),
        ({"COMMAND": "CREATE MATERIALIZED VIEW", "ATTR1": "MV1", "ATTR3": "SELECT 1 FROM dual"},
         "CREATE MATERIALIZED VIEW MV1 AS SELECT 1 FROM dual"),
        ({"COMMAND": "PARTITION TABLE", "ATTR1": "SALES", "ATTR2": "RANGE(SALE_DATE)"},
         "-- Partition table SALES by RANGE(SALE_DATE)"),
        ({"COMMAND": "RETAIN INDEX", "ATTR1": "EMP_PK"}, "-- RETAIN INDEX: EMP_PK"),
        ({"COMMAND": "GATHER TABLE STATISTICS", "ATTR1": "HR.EMPLOYEES"}, "-- GATHER TABLE STATISTICS: HR.EMPLOYEES"),
    ])
    def test_ddl(self, action, expected):
        assert build_action_ddl(action) == expected


class TestRecommendations:

    def _respond_with_task(self, fake_executor):
        fake_executor.respond(RECOMMENDATIONS, rows=[
            {"REC_ID": 1, "RANK": 1, "TYPE": "ACTIONS", "BENEFIT": 42.5},
            {"REC_ID": 2, "RANK": 2, "TYPE": "ACTIONS", "BENEFIT": 10},
        ])
        fake_executor.respond(ACTIONS, rows=[
            {"ACTION_ID": 7, "COMMAND": "CREATE INDEX", "ATTR1": "IDX1", "ATTR2": "HR.EMP", "ATTR3": "DEPT_ID"},
        ])

    def test_recommendations_with_actions(self, client, fake_executor, connection_id):
        self._respond_with_task(fake_executor)
        fake_executor.respond("GET_TASK_SCRIPT", rows=[{"SCRIPT": "CREATE INDEX IDX1 ON HR.EMP(DEPT_ID);"}])
        fake_executor.respond("GET_TASK_REPORT", rows=[{"REPORT": b"Summary of task"}])

        response = client.get(
            "/api/advisor/sql-access/recommendations",
            params={"connection_id": connection_id, "task_name": "TUNE_HR"}
        )
        data = response.json()["data"]

        assert data["total_count"] == 2
        assert data["recommendations"][0]["actions"][0]["ddl"] == "CREATE INDEX IDX1 ON HR.EMP(DEPT_ID)"
        assert data["script"].startswith("CREATE INDEX")
        assert data["report"] == "Summary of task"
        assert data["enrichment_errors"] == []
        assert sorted(c["binds"]["rec_id"] for c in fake_executor.calls if ACTIONS in c["query"]) == [1, 2]

    def test_enrichment_failure_degrades(self, client, fake_executor, connection_id):
        self._respond_with_task(fake_executor)
        fake_executor.respond("GET_TASK_SCRIPT", error=UpstreamFailure("ORA-13605", error_code="ORA-13605"))

        response = client.get(
            "/api/advisor/sql-access/recommendations",
            params={"connection_id": connection_id, "task_name": "TUNE_HR"}
        )
        data = response.json()["data"]

        assert response.status_code == 200
        assert data["script"] == ""
        assert data["report"] == ""
        assert data["enrichment_errors"] == ["script"]

    def test_action_failure_aborts(self, client, fake_executor, connection_id):
        fake_executor.respond(RECOMMENDATIONS, rows=[{"REC_ID": 1, "RANK": 1}])
        fake_executor.respond(ACTIONS, error=UpstreamFailure("ORA-00942", error_code="ORA-00942"))

        response = client.get(
            "/api/advisor/sql-access/recommendations",
            params={"connection_id": connection_id, "task_name": "TUNE_HR"}
        )
        assert response.status_code == 500
        assert response.json()["error_code"] == "ORA-00942"

    def test_task_name_required(self, client, fake_executor, connection_id):
        response = client.get("/api/advisor/sql-access/recommendations", params={"connection_id": connection_id})
        assert response.status_code == 400
        assert response.json()["error"] == "Task name is required"
        assert fake_executor.calls == []


class TestCreateTuningTask:

    def test_create_by_sql_id_and_execute(self, client, fake_executor, connection_id):
        response = client.post("/api/advisor/sql-tuning/create", json={
            "connection_id": connection_id, "task_name": "tune_hr_1", "sql_id": "9babjv8yq8ru3"
        })
        body = response.json()
        create, execute = fake_executor.calls

        assert response.status_code == 200
        assert body["data"] == {"task_name": "TUNE_HR_1", "status": "CREATED_AND_EXECUTED"}
        assert "sql_id      => :sql_id" in create["query"]
        assert create["binds"]["sql_id"] == "9babjv8yq8ru3"
        assert create["binds"]["task_name"] == "TUNE_HR_1"
        assert "EXECUTE_TUNING_TASK" in execute["query"]
        assert execute["options"].timeout_ms == 120000

    def test_create_by_text_without_execute(self, client, fake_executor, connection_id):
        response = client.post("/api/advisor/sql-tuning/create", json={
            "connection_id": connection_id,
            "task_name": "TUNE_TEXT",
            "sql_text": "SELECT * FROM hr.employees WHERE salary > 1000",
            "execute": False,
        })

        assert response.json()["data"]["status"] == "CREATED"
        assert len(fake_executor.calls) == 1
        assert fake_executor.calls[0]["binds"]["sql_text"].startswith("SELECT")

    def test_statement_required(self, client, fake_executor, connection_id):
        response = client.post("/api/advisor/sql-tuning/create", json={
            "connection_id": connection_id, "task_name": "T1"
        })
        assert response.status_code == 400
        assert response.json()["error"] == "Either SQL text or SQL ID is required"
        assert fake_executor.calls == []

    @pytest.mark.parametrize("task_name", ["1TASK", "bad name", "x" * 31, "T1'); DROP TABLE t; --"])
    def test_task_name_must_be_identifier(self, client, fake_executor, connection_id, task_name):
        response = client.post("/api/advisor/sql-tuning/create", json={
            "connection_id": connection_id, "task_name": task_name, "sql_id": "abc"
        })
        assert response.status_code == 400
        assert fake_executor.calls == []

    def test_duplicate_task(self, client, fake_executor, connection_id):
        fake_executor.respond("CREATE_TUNING_TASK", error=UpstreamFailure("ORA-13607", error_code="ORA-13607"))
        response = client.post("/api/advisor/sql-tuning/create", json={
            "connection_id": connection_id, "task_name": "T1", "sql_id": "abc"
        })
        assert response.status_code == 409
        assert response.json()["details"] == "ORA-13607"


class TestExecuteTuningTask:

    def test_completed_with_findings(self, client, fake_executor, connection_id):
        fake_executor.respond("COUNT(*) AS FINDING_COUNT", rows=[{"FINDING_COUNT": 3}])

        response = client.post("/api/advisor/sql-tuning/execute", json={
            "connection_id": connection_id, "task_name": "T1"
        })
        body = response.json()

        assert body["data"] == {
            "task_name": "T1", "status": "COMPLETED", "completed": True, "recommendation_count": 3
        }
        assert body["message"] == "Task completed with 3 findings"

    def test_timeout_reports_current_status(self, client, fake_executor, connection_id):
        fake_executor.respond("EXECUTE_TUNING_TASK", error=QueryTimeout("cancelled", error_code="DPY-4024"))
        fake_executor.respond("AS EXECUTION_END\nFROM DBA_advisor_tasks t", rows=[{"STATUS": "EXECUTING"}])

        response = client.post("/api/advisor/sql-tuning/execute", json={
            "connection_id": connection_id, "task_name": "T1"
        })

        assert response.status_code == 200
        assert response.json()["data"] == {"task_name": "T1", "status": "EXECUTING", "completed": False}

    @pytest.mark.parametrize("code,status", [("ORA-13604", 403), ("ORA-13605", 404)])
    def test_error_mapping(self, client, fake_executor, connection_id, code, status):
        fake_executor.respond("EXECUTE_TUNING_TASK", error=UpstreamFailure(f"{code}: failure", error_code=code))

        response = client.post("/api/advisor/sql-tuning/execute", json={
            "connection_id": connection_id, "task_name": "T1"
        })

        assert response.status_code == status
        assert response.json()["details"] == f"{code}: failure"


class TestTuningRecommendations:

    def test_pending_task_answers_202(self, client, fake_executor, connection_id):
        fake_executor.respond("AS EXECUTION_END\nFROM DBA_advisor_tasks t", rows=[{"STATUS": "EXECUTING"}])

        response = client.get("/api/advisor/sql-tuning/recommendations", params={
            "connection_id": connection_id, "task_name": "T1"
        })
        body = response.json()

        assert response.status_code == 202
        assert body["success"] is False
        assert body["task_status"] == "EXECUTING"
        assert body["guide"]
        assert not fake_executor.queries("_advisor_findings f")

    def test_findings_tree_with_user_view_fallback(self, client, fake_executor, connection_id):
        fake_executor.respond("AS EXECUTION_END\nFROM DBA_advisor_tasks t", rows=[{"STATUS": "COMPLETED"}])
        fake_executor.respond(
            "FROM DBA_advisor_findings f", error=UpstreamFailure("ORA-00942", error_code="ORA-00942")
        )
        fake_executor.respond("FROM USER_advisor_findings f", rows=[
            {"FINDING_ID": 1, "FINDING_TYPE": "SQL PROFILE", "IMPACT": 98.2, "REC_ID": 1, "REC_TYPE": "SQL PROFILE",
             "ACTION_ID": 1, "ACTION_COMMAND": "ACCEPT SQL PROFILE"},
            {"FINDING_ID": 1, "FINDING_TYPE": "SQL PROFILE", "IMPACT": 98.2, "REC_ID": 2, "REC_TYPE": "INDEX",
             "ACTION_ID": 2, "ACTION_COMMAND": "CREATE INDEX", "ATTR1": "HR.IDX$$_0001"},
            {"FINDING_ID": 2, "FINDING_TYPE": "STATISTICS", "IMPACT": None, "REC_ID": None, "ACTION_ID": None},
        ])
        fake_executor.respond("REPORT_TUNING_TASK", rows=[{"REPORT": "GENERAL INFORMATION SECTION"}])
        fake_executor.respond("SCRIPT_TUNING_TASK", error=UpstreamFailure("ORA-13631", error_code="ORA-13631"))

        response = client.get("/api/advisor/sql-tuning/recommendations", params={
            "connection_id": connection_id, "task_name": "T1"
        })
        data = response.json()["data"]

        assert response.status_code == 200
        assert data["view_type"] == "USER"
        assert data["total_count"] == 2
        first, second = data["findings"]
        assert [r["type"] for r in first["recommendations"]] == ["SQL PROFILE", "INDEX"]
        assert first["recommendations"][1]["actions"][0]["attr1"] == "HR.IDX$$_0001"
        assert second["recommendations"] == []
        assert data["report"] == "GENERAL INFORMATION SECTION"
        assert data["enrichment_errors"] == ["script"]

    def test_unreadable_status_still_reads_findings(self, client, fake_executor, connection_id):
        fake_executor.respond("_advisor_tasks t", error=UpstreamFailure("ORA-00942", error_code="ORA-00942"))

        response = client.get("/api/advisor/sql-tuning/recommendations", params={
            "connection_id": connection_id, "task_name": "T1"
        })

        assert response.status_code == 200
        assert response.json()["data"]["findings"] == []


class TestTuningTasksAndProfiles:

    def test_tasks_from_dba_views(self, client, fake_executor, connection_id):
        fake_executor.respond("FROM DBA_advisor_tasks t", rows=[
            {"TASK_ID": 5, "TASK_NAME": "T1", "OWNER": "PERFSTAT", "STATUS": "COMPLETED", "FINDING_COUNT": 2}
        ])

        body = client.get("/api/advisor/sql-tuning/tasks", params={"connection_id": connection_id}).json()

        assert body["view_type"] == "DBA"
        assert body["data"][0]["finding_count"] == 2
        assert "t.owner AS OWNER" in fake_executor.calls[0]["query"]

    def test_profiles_fall_back_to_user_view(self, client, fake_executor, connection_id):
        fake_executor.respond("FROM DBA_sql_profiles", error=UpstreamFailure("ORA-00942", error_code="ORA-00942"))
        fake_executor.respond("FROM USER_sql_profiles", rows=[
            {"NAME": "PROF_T1", "CATEGORY": "DEFAULT", "FORCE_MATCHING": "YES", "STATUS": "ENABLED"}
        ])

        body = client.get("/api/advisor/sql-tuning/profiles", params={"connection_id": connection_id}).json()

        assert body["view_type"] == "USER"
        assert body["data"][0]["force_matching"] is True

    def test_apply_profile_default_name(self, client, fake_executor, connection_id):
        response = client.post("/api/advisor/sql-tuning/apply-profile", json={
            "connection_id": connection_id, "task_name": "T1", "force_match": True
        })

        assert response.status_code == 200
        assert response.json()["data"]["profile_name"] == "PROF_T1"
        assert fake_executor.calls[0]["binds"] == {
            "task_name": "T1", "profile_name": "PROF_T1", "category": "DEFAULT", "force_match": 1, "replace": 0
        }

    @pytest.mark.parametrize("code,status", [("ORA-13831", 400), ("ORA-13846", 409), ("ORA-06550", 403)])
    def test_apply_profile_errors(self, client, fake_executor, connection_id, code, status):
        fake_executor.respond("ACCEPT_SQL_PROFILE", error=UpstreamFailure(code, error_code=code))
        response = client.post("/api/advisor/sql-tuning/apply-profile", json={
            "connection_id": connection_id, "task_name": "T1"
        })
        assert response.status_code == status


class TestSqlAccessTasks:

    def test_create_submits_job(self, client, fake_executor, connection_id):
        fake_executor.respond("AS STATEMENT_COUNT", rows=[{"STATEMENT_COUNT": 17}])

        response = client.post("/api/advisor/sql-access/create", json={
            "connection_id": connection_id, "task_name": "saa_hr", "analysis_scope": "mv"
        })
        data = response.json()["data"]

        assert response.status_code == 200
        assert data["task_name"] == "SAA_HR"
        assert data["workload_name"] == "SAA_HR_WL"
        assert data["job_name"] == "JOB_SAA_HR"
        assert data["analysis_scope"] == "MVIEW"
        assert data["statement_count"] == 17
        assert data["status"] == "SUBMITTED"

        steps = [c["query"] for c in fake_executor.calls]
        assert "DELETE_TASK" in steps[0]
        assert "CREATE_TASK" in steps[1]
        assert "CREATE_SQLWKLD" in steps[2]
        assert "ADD_SQLWKLD_STATEMENT" in steps[3]
        assert "ADD_SQLWKLD_REF" in steps[5]
        assert "DBMS_SCHEDULER.CREATE_JOB" in steps[6]
        create_binds = fake_executor.calls[1]["binds"]
        assert create_binds["analysis_scope"] == "MVIEW"
        assert create_binds["time_limit"] == 300
        assert fake_executor.calls[3]["binds"]["max_statements"] == 20

    def test_workload_fill_failure_is_tolerated(self, client, fake_executor, connection_id):
        fake_executor.respond("ADD_SQLWKLD_STATEMENT", error=UpstreamFailure("ORA-13600", error_code="ORA-13600"))

        response = client.post("/api/advisor/sql-access/create", json={
            "connection_id": connection_id, "task_name": "SAA_HR"
        })

        assert response.status_code == 200
        assert response.json()["data"]["statement_count"] == 0
        assert fake_executor.queries("DBMS_SCHEDULER.CREATE_JOB")

    @pytest.mark.parametrize("code,status", [
        ("ORA-13600", 403), ("ORA-13607", 409), ("ORA-13604", 403), ("ORA-00942", 403),
    ])
    def test_create_error_mapping(self, client, fake_executor, connection_id, code, status):
        fake_executor.respond("DBMS_ADVISOR.CREATE_TASK", error=UpstreamFailure(code, error_code=code))

        response = client.post("/api/advisor/sql-access/create", json={
            "connection_id": connection_id, "task_name": "SAA_HR"
        })

        assert response.status_code == status
        assert not fake_executor.queries("DBMS_SCHEDULER")

    def test_unknown_scope(self, client, fake_executor, connection_id):
        response = client.post("/api/advisor/sql-access/create", json={
            "connection_id": connection_id, "task_name": "SAA_HR", "analysis_scope": "TABLESPACE"
        })
        assert response.status_code == 400
        assert fake_executor.calls == []

    def test_task_list(self, client, fake_executor, connection_id):
        fake_executor.respond("FROM DBA_advisor_tasks t", rows=[
            {"TASK_ID": 9, "TASK_NAME": "SAA_HR", "STATUS": "COMPLETED", "RECOMMENDATION_COUNT": 4}
        ])

        body = client.get("/api/advisor/sql-access/tasks", params={"connection_id": connection_id}).json()

        assert body["advisor_available"] is True
        assert body["data"][0]["recommendation_count"] == 4
        assert "'SQL Access Advisor'" in fake_executor.calls[0]["query"]

    def test_task_list_without_advisor_views(self, client, fake_executor, connection_id):
        fake_executor.respond("_advisor_tasks t", error=UpstreamFailure("ORA-00942", error_code="ORA-00942"))

        response = client.get("/api/advisor/sql-access/tasks", params={"connection_id": connection_id})
        body = response.json()

        assert response.status_code == 200
        assert body["data"] == []
        assert body["advisor_available"] is False
        assert len(fake_executor.calls) == 2
