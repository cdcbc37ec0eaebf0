"""
Tests for plan baseline tracking
"""
from tms.models import PlanBaseline

PLAN_TABLE = [
    {"id": 0, "operation": "SELECT STATEMENT", "cost": 3},
    {"id": 1, "operation": "INDEX", "options": "UNIQUE SCAN", "object_name": "EMP_PK", "cost": 1},
]


class TestPlanBaselines:

    def test_create_list_replace_delete(self, client, connection_id):
        response = client.post("/api/plan-baselines", json={
            "oracle_connection_id": connection_id,
            "sql_id": "abcd1234efgh5",
            "plan_hash_value": 3456789012,
            "plan_name": "SQL_PLAN_emp_lookup",
            "is_fixed": True,
            "plan_table": PLAN_TABLE,
            "executions": 42,
        })
        assert response.status_code == 200
        created = response.json()["data"]
        assert created["is_enabled"] is True
        assert created["is_accepted"] is True
        assert created["is_fixed"] is True
        assert created["plan_table"] == PLAN_TABLE

        listed = client.get("/api/plan-baselines", params={"connection_id": connection_id}).json()["data"]
        assert [b["id"] for b in listed] == [created["id"]]

        response = client.put(f"/api/plan-baselines/{created['id']}", json={
            "sql_id": "abcd1234efgh5",
            "plan_hash_value": 1111111111,
        })
        replaced = response.json()["data"]
        assert replaced["plan_hash_value"] == 1111111111
        assert replaced["plan_name"] is None
        assert replaced["is_fixed"] is False
        assert replaced["plan_table"] == []
        assert replaced["executions"] == 0
        assert replaced["oracle_connection_id"] == connection_id

        response = client.delete(f"/api/plan-baselines/{created['id']}")
        assert response.json()["data"] == {"id": created["id"]}
        assert client.get(f"/api/plan-baselines/{created['id']}").status_code == 404

    def test_missing_key_fields(self, client, connection_id):
        response = client.post("/api/plan-baselines", json={"oracle_connection_id": connection_id})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields: sql_id, plan_hash_value"

    def test_unknown_connection(self, client):
        response = client.post("/api/plan-baselines", json={
            "oracle_connection_id": "missing", "sql_id": "abcd1234efgh5", "plan_hash_value": 1
        })
        assert response.status_code == 404

    def test_duplicate_plan_name(self, client, connection_id, db_session):
        payload = {
            "oracle_connection_id": connection_id,
            "sql_id": "abcd1234efgh5",
            "plan_hash_value": 1,
            "plan_name": "SQL_PLAN_dup",
        }
        assert client.post("/api/plan-baselines", json=payload).status_code == 200
        response = client.post("/api/plan-baselines", json=dict(payload, plan_hash_value=2))

        assert response.status_code == 400
        assert db_session.query(PlanBaseline).count() == 1

    def test_replace_requires_key_fields(self, client, connection_id):
        created = client.post("/api/plan-baselines", json={
            "oracle_connection_id": connection_id, "sql_id": "abcd1234efgh5", "plan_hash_value": 1
        }).json()["data"]
        response = client.put(f"/api/plan-baselines/{created['id']}", json={"sql_id": "abcd1234efgh5"})
        assert response.status_code == 400
