"""
Tests for Oracle connection management routes
"""
import pytest

from tms.main import app
from tms.connections import get_query_executor
from tms.connections.config_resolver import OracleConnectionConfig
from tms.connections.connection_manager import ConnectionManager
from tms.connections.query_executor import QueryExecutor
from tms.connections.connectors.base_connector import HealthCheckResult
from tms.core.crypto import decrypt_value
from tms.models import OracleConnection, WaitEventSnapshot
from conftest import FakePool, TEST_ORACLE_PASSWORD, driver_error

NEW_CONNECTION = {
    "name": "PROD",
    "host": "db01",
    "port": 1521,
    "service_name": "ORCL",
    "username": "perfstat",
    "password": "tiger",
}


def unhealthy(message="ORA-12541: no listener"):
    return HealthCheckResult(is_healthy=False, response_time_ms=3, error_message=message)


def stored_config(**overrides):
    fields = dict(host="db01", port=1521, service_name="ORCL", username="perfstat", password=TEST_ORACLE_PASSWORD)
    fields.update(overrides)
    return OracleConnectionConfig(**fields)


class TestCreateConnection:

    def test_create_stores_health_and_encrypts_password(self, client, fake_executor, db_session):
        response = client.post("/api/oracle/connections", json=NEW_CONNECTION)
        assert response.status_code == 201
        data = response.json()["data"]

        assert data["oracle_version"] == "19c"
        assert data["oracle_edition"] == "Enterprise Edition"
        assert data["health_status"] == "HEALTHY"
        assert "password" not in data and "password_encrypted" not in data

        record = db_session.query(OracleConnection).filter(OracleConnection.id == data["id"]).one()
        assert record.password_encrypted != "tiger"
        assert decrypt_value(record.password_encrypted) == "tiger"
        assert fake_executor.unsaved_checks[0].password == "tiger"
        assert fake_executor.health_checks == []

    def test_service_name_required(self, client, fake_executor):
        payload = dict(NEW_CONNECTION, service_name=None)
        response = client.post("/api/oracle/connections", json=payload)

        assert response.status_code == 400
        assert response.json()["error"] == "Service name is required"
        assert fake_executor.unsaved_checks == []

    def test_sid_connection_drops_service_name(self, client):
        payload = dict(NEW_CONNECTION, connection_type="SID", sid="PRODSID")
        data = client.post("/api/oracle/connections", json=payload).json()["data"]

        assert data["sid"] == "PRODSID"
        assert data["service_name"] is None

    def test_duplicate_target_and_user(self, client, make_connection):
        make_connection(name="EXISTING")
        response = client.post("/api/oracle/connections", json=NEW_CONNECTION)
        assert response.status_code == 400
        assert "already exists" in response.json()["error"]

    def test_duplicate_name(self, client, make_connection):
        make_connection(host="db99")
        response = client.post("/api/oracle/connections", json=NEW_CONNECTION)
        assert response.status_code == 400
        assert response.json()["error"] == "Connection 'PROD' already exists"

    def test_unreachable_target_is_not_stored(self, client, fake_executor, db_session):
        fake_executor.health = unhealthy()
        response = client.post("/api/oracle/connections", json=NEW_CONNECTION)

        assert response.status_code == 400
        assert response.json()["error"] == "Connection test failed"
        assert response.json()["details"] == "ORA-12541: no listener"
        assert fake_executor.discarded == []
        assert db_session.query(OracleConnection).count() == 0

    def test_single_default(self, client):
        first = client.post("/api/oracle/connections", json=dict(NEW_CONNECTION, is_default=True)).json()["data"]
        second = client.post(
            "/api/oracle/connections", json=dict(NEW_CONNECTION, name="DEV", host="db02", is_default=True)
        ).json()["data"]

        listed = client.get("/api/oracle/connections").json()["data"]
        defaults = [c["id"] for c in listed if c["is_default"]]
        assert defaults == [second["id"]]
        assert listed[0]["id"] == second["id"]
        assert first["id"] in [c["id"] for c in listed]


class TestTestConnection:

    def test_healthy(self, client, fake_executor):
        payload = {k: v for k, v in NEW_CONNECTION.items() if k != "name"}
        response = client.post("/api/oracle/connections/test", json=payload)

        assert response.status_code == 200
        assert response.json()["data"]["version_label"] == "19c"
        assert fake_executor.unsaved_checks[0].max_connections == 1
        assert fake_executor.discarded == []

    def test_unhealthy(self, client, fake_executor):
        fake_executor.health = unhealthy("Invalid username or password.")
        response = client.post("/api/oracle/connections/test", json=NEW_CONNECTION)

        assert response.status_code == 400
        assert response.json()["details"] == "Invalid username or password."
        assert fake_executor.discarded == []


class TestTestConnectionAgainstPooledTarget:

    @pytest.fixture
    def pools(self):
        return []

    @pytest.fixture
    def executor(self, client, pools):
        def factory(config):
            if config.password != TEST_ORACLE_PASSWORD:
                raise driver_error("ORA-01017", "ORA-01017: invalid username/password; logon denied")
            pool = FakePool(columns=("BANNER",), rows=[("Oracle Database 19c Enterprise Edition",)])
            pools.append(pool)
            return pool

        executor = QueryExecutor(ConnectionManager(pool_factory=factory))
        app.dependency_overrides[get_query_executor] = lambda: executor
        return executor

    def test_wrong_password_is_rejected_and_shared_pool_survives(self, client, executor, pools):
        shared = executor.manager.get_connector(stored_config())

        response = client.post("/api/oracle/connections/test", json=dict(NEW_CONNECTION, password="WRONG"))

        assert response.status_code == 400
        assert response.json()["details"] == "Invalid username or password."
        assert pools[0].closed is False
        assert executor.manager.get_connector(stored_config()) is shared

    def test_throwaway_pool_is_closed_and_not_registered(self, client, executor, pools):
        response = client.post("/api/oracle/connections/test", json=NEW_CONNECTION)

        assert response.status_code == 200
        assert response.json()["data"]["version_label"] == "19c"
        assert len(pools) == 1 and pools[0].closed is True
        assert executor.manager.pool_statistics() == []


class TestUpdateConnection:

    def test_password_change_reencrypts_and_discards_pool(self, client, fake_executor, make_connection, db_session):
        record = make_connection()
        response = client.patch(f"/api/oracle/connections/{record.id}", json={"password": "lion"})
        assert response.status_code == 200

        db_session.expire_all()
        stored = db_session.query(OracleConnection).filter(OracleConnection.id == record.id).one()
        assert decrypt_value(stored.password_encrypted) == "lion"
        assert fake_executor.discarded == ["db01:1521:ORCL:perfstat"]

    def test_description_change_keeps_pool(self, client, fake_executor, make_connection):
        record = make_connection()
        response = client.patch(f"/api/oracle/connections/{record.id}", json={"description": "Primary OLTP"})

        assert response.json()["data"]["description"] == "Primary OLTP"
        assert fake_executor.discarded == []

    def test_host_change_discards_old_pool_key(self, client, fake_executor, make_connection):
        record = make_connection()
        response = client.patch(f"/api/oracle/connections/{record.id}", json={"host": "db03"})

        assert response.json()["data"]["host"] == "db03"
        assert fake_executor.discarded == ["db01:1521:ORCL:perfstat"]

    def test_pool_limit_change_discards_pool(self, client, fake_executor, make_connection):
        record = make_connection()
        client.patch(f"/api/oracle/connections/{record.id}", json={"max_connections": 20})
        client.patch(f"/api/oracle/connections/{record.id}", json={"connection_timeout": 5000})

        assert fake_executor.discarded == ["db01:1521:ORCL:perfstat"] * 2

    def test_unknown_connection(self, client):
        assert client.patch("/api/oracle/connections/missing", json={"name": "X"}).status_code == 404


class TestDeleteConnection:

    def test_unreferenced_connection_is_deleted(self, client, fake_executor, make_connection, db_session):
        record = make_connection()
        response = client.delete(f"/api/oracle/connections/{record.id}")

        assert response.json()["data"] == {"id": record.id, "deactivated": False}
        db_session.expire_all()
        assert db_session.query(OracleConnection).count() == 0
        assert fake_executor.discarded == ["db01:1521:ORCL:perfstat"]

    def test_referenced_connection_is_deactivated(self, client, make_connection, db_session):
        record = make_connection()
        db_session.add(WaitEventSnapshot(oracle_connection_id=record.id, event_name="db file sequential read"))
        db_session.commit()

        response = client.delete(f"/api/oracle/connections/{record.id}")
        assert response.json()["data"]["deactivated"] is True

        db_session.expire_all()
        stored = db_session.query(OracleConnection).filter(OracleConnection.id == record.id).one()
        assert stored.is_active is False
        assert db_session.query(WaitEventSnapshot).count() == 1

        response = client.get("/api/monitoring/sessions", params={"connection_id": record.id})
        assert response.status_code == 404


class TestConnectionHealth:

    def test_health_check_is_recorded(self, client, fake_executor, connection_id):
        response = client.get(f"/api/oracle/connections/{connection_id}/health")
        assert response.status_code == 200
        assert response.json()["data"]["health_status"] == "HEALTHY"

        fake_executor.health = unhealthy()
        response = client.get(f"/api/oracle/connections/{connection_id}/health")
        assert response.json()["data"]["health_status"] == "ERROR"

        history = client.get(f"/api/oracle/connections/{connection_id}/health/history").json()["data"]
        assert [h["status"] for h in history] == ["ERROR", "HEALTHY"]
        assert history[0]["checked_by"] == "user"

    def test_inactive_connection_is_not_checked(self, client, fake_executor, make_connection):
        record = make_connection(is_active=False)
        response = client.get(f"/api/oracle/connections/{record.id}/health")

        assert response.status_code == 404
        assert fake_executor.health_checks == []
