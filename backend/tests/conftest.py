# Test Configuration
import os
import sys
from pathlib import Path
from types import SimpleNamespace

# Add backend directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Settings are read once at import, so the environment must be in place first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key-0123456789abcdef"
os.environ["FEATURE_AI_TUNING_GUIDE"] = "false"

import oracledb
import pytest
from fastapi.testclient import TestClient

from tms.main import app
from tms.database import Base, app_engine, AppSessionLocal
from tms.core.crypto import encrypt_value
from tms.models import OracleConnection
from tms.connections import get_query_executor
from tms.connections.connectors.base_connector import QueryResult, HealthCheckResult
from tms.services.sql_engine import StatementType, classify_statement

TEST_USER = {"email": "tuner@example.com", "password": "correct-horse", "full_name": "Test Tuner"}
TEST_ORACLE_PASSWORD = "tiger"


# ============================================================================
# FAKE EXECUTOR (route tests)
# ============================================================================

class FakeExecutor:
    """
    Stands in for QueryExecutor. Responses are matched by SQL fragment in
    registration order; unmatched statements return an empty result.
    """

    def __init__(self):
        self.calls = []
        self.responses = []
        self.discarded = []
        self.health_checks = []
        self.unsaved_checks = []
        self.health = HealthCheckResult(
            is_healthy=True,
            response_time_ms=4,
            version="19.0.0.0.0",
            version_label="19c",
            edition="Enterprise Edition",
            instance_name="ORCL",
            host_name="db01",
        )

    def respond(self, fragment, rows=None, error=None, rows_affected=None):
        self.responses.append((fragment, rows, error, rows_affected))

    def queries(self, fragment=None):
        return [c["query"] for c in self.calls if fragment is None or fragment in c["query"]]

    def execute(self, config, query, binds=None, options=None):
        self.calls.append({"config": config, "query": query, "binds": binds, "options": options})
        statement_type = classify_statement(query)
        for fragment, rows, error, rows_affected in self.responses:
            if fragment in query:
                if error is not None:
                    raise error
                return QueryResult(
                    statement_type=statement_type,
                    rows=list(rows or []),
                    rows_affected=rows_affected,
                )
        return QueryResult(
            statement_type=statement_type,
            rows_affected=None if statement_type == StatementType.SELECT else 0,
        )

    async def run(self, config, query, binds=None, options=None):
        return self.execute(config, query, binds, options)

    async def check_health(self, config):
        self.health_checks.append(config)
        return self.health

    async def check_unsaved(self, config):
        self.unsaved_checks.append(config)
        return self.health

    def discard(self, pool_key):
        self.discarded.append(pool_key)


# ============================================================================
# FAKE DRIVER POOL (executor tests)
# ============================================================================

def driver_error(full_code, message=None, offset=0, error_class=oracledb.DatabaseError):
    """oracledb exception carrying the attributes the driver puts on args[0]."""
    detail = SimpleNamespace(full_code=full_code, offset=offset, message=message or f"{full_code}: failure")
    return error_class(detail)


class FakeCursor:
    def __init__(self, connection):
        self.connection = connection
        self.description = None
        self.rowcount = 0
        self.arraysize = 100
        self.prefetchrows = 2
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def execute(self, query, binds=None):
        pool = self.connection.pool
        pool.executed.append((query, binds))
        for fragment, error in pool.failures:
            if fragment in query:
                raise error
        if classify_statement(query) == StatementType.SELECT:
            self.description = [
                (name, oracledb.DB_TYPE_VARCHAR, None, None, None, None, True) for name in pool.columns
            ]
            self._rows = list(pool.rows)
        else:
            self.rowcount = pool.rowcount

    def fetchmany(self, size):
        batch, self._rows = self._rows[:size], self._rows[size:]
        return batch

    def close(self):
        self.connection.cursors_closed += 1


class FakeConnection:
    def __init__(self, pool):
        self.pool = pool
        self.call_timeout = 0
        self.commits = 0
        self.cursors_closed = 0

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1


class FakePool:
    """Counts borrowed connections the way oracledb.ConnectionPool reports busy."""

    def __init__(self, columns=("VALUE",), rows=(), rowcount=1):
        self.columns = list(columns)
        self.rows = list(rows)
        self.rowcount = rowcount
        self.failures = []
        self.executed = []
        self.connections = []
        self.busy = 0
        self.opened = 0
        self.dropped = 0
        self.closed = False

    def fail_on(self, fragment, error):
        self.failures.append((fragment, error))

    def acquire(self):
        connection = FakeConnection(self)
        self.connections.append(connection)
        self.busy += 1
        self.opened = max(self.opened, self.busy)
        return connection

    def release(self, connection):
        self.busy -= 1

    def drop(self, connection):
        self.busy -= 1
        self.dropped += 1

    def close(self, force=False):
        self.closed = True


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def fake_executor():
    executor = FakeExecutor()
    app.dependency_overrides[get_query_executor] = lambda: executor
    yield executor
    app.dependency_overrides.pop(get_query_executor, None)


@pytest.fixture
def app_client(fake_executor):
    """Unauthenticated client on a fresh auxiliary store."""
    Base.metadata.create_all(bind=app_engine)
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=app_engine)


@pytest.fixture
def client(app_client):
    """Client holding a session cookie for a freshly signed-up user."""
    response = app_client.post("/api/auth/signup", json=TEST_USER)
    assert response.status_code == 201
    response = app_client.post(
        "/api/auth/login", json={"email": TEST_USER["email"], "password": TEST_USER["password"]}
    )
    assert response.status_code == 200
    return app_client


@pytest.fixture
def db_session(app_client):
    session = AppSessionLocal()
    yield session
    session.close()


@pytest.fixture
def make_connection(db_session):
    """Insert an Oracle connection record directly into the store."""

    def _make(name="PROD", host="db01", service_name="ORCL", username="perfstat", **fields):
        record = OracleConnection(
            name=name,
            host=host,
            port=fields.pop("port", 1521),
            service_name=service_name,
            username=username,
            password_encrypted=fields.pop("password_encrypted", encrypt_value(TEST_ORACLE_PASSWORD)),
            **fields
        )
        db_session.add(record)
        db_session.commit()
        db_session.refresh(record)
        return record

    return _make


@pytest.fixture
def connection_id(make_connection):
    return make_connection().id
