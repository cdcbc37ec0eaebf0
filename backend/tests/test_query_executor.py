"""
Tests for pooled statement execution against a stand-in driver pool
"""
import oracledb
import pytest

from tms.connections.config_resolver import OracleConnectionConfig
from tms.connections.connection_manager import ConnectionManager
from tms.connections.connectors.base_connector import QueryOptions
from tms.connections.connectors.oracle_connector import parse_edition, parse_version_label
from tms.connections.query_executor import QueryExecutor
from tms.core.errors import UpstreamFailure, QueryTimeout
from tms.services.sql_engine import StatementType
from conftest import FakePool, driver_error


def make_config(**overrides):
    fields = dict(host="db01", port=1521, service_name="ORCL", username="perfstat", password="tiger", name="PROD")
    fields.update(overrides)
    return OracleConnectionConfig(**fields)


@pytest.fixture
def pools():
    return {}


@pytest.fixture
def executor(pools):
    def factory(config):
        pool = pools.setdefault(config.pool_key, FakePool(
            columns=("OWNER", "TABLE_NAME"),
            rows=[("HR", "EMPLOYEES"), ("HR", "DEPARTMENTS"), ("SCOTT", "EMP")],
        ))
        return pool

    return QueryExecutor(ConnectionManager(pool_factory=factory))


class TestExecute:

    def test_select_returns_keyed_rows(self, executor, pools):
        result = executor.execute(make_config(), "SELECT owner, table_name FROM all_tables")
        pool = pools["db01:1521:ORCL:perfstat"]

        assert result.statement_type == StatementType.SELECT
        assert result.rows[0] == {"OWNER": "HR", "TABLE_NAME": "EMPLOYEES"}
        assert result.row_count == 3
        assert result.has_more is False
        assert [c["name"] for c in result.metadata] == ["OWNER", "TABLE_NAME"]
        assert pool.busy == 0

    def test_max_rows_sets_has_more(self, executor):
        result = executor.execute(make_config(), "SELECT * FROM all_tables", options=QueryOptions(max_rows=2))
        assert result.row_count == 2
        assert result.has_more is True

    def test_exact_fit_has_no_more(self, executor):
        result = executor.execute(make_config(), "SELECT * FROM all_tables", options=QueryOptions(max_rows=3))
        assert result.has_more is False

    def test_dml_reports_rows_affected_and_commits(self, executor, pools):
        result = executor.execute(make_config(), "UPDATE t SET x = 1")
        pool = pools["db01:1521:ORCL:perfstat"]

        assert result.statement_type == StatementType.DML
        assert result.rows_affected == 1
        assert pool.connections[0].commits == 1

    def test_dml_without_auto_commit(self, executor, pools):
        executor.execute(make_config(), "DELETE FROM t", options=QueryOptions(auto_commit=False))
        assert pools["db01:1521:ORCL:perfstat"].connections[0].commits == 0

    def test_ddl_always_commits(self, executor, pools):
        executor.execute(make_config(), "CREATE INDEX i ON t(x)", options=QueryOptions(auto_commit=False))
        assert pools["db01:1521:ORCL:perfstat"].connections[0].commits == 1

    def test_timeout_applied_to_connection(self, executor, pools):
        executor.execute(make_config(), "SELECT 1 FROM dual", options=QueryOptions(timeout_ms=1234))
        assert pools["db01:1521:ORCL:perfstat"].connections[0].call_timeout == 1234


class TestDriverErrors:

    def test_oracle_error_becomes_upstream_failure(self, executor, pools):
        config = make_config()
        executor.execute(config, "SELECT 1 FROM dual")
        pool = pools[config.pool_key]
        pool.fail_on("missing_table", driver_error("ORA-00904", "ORA-00904: invalid identifier", offset=7))

        with pytest.raises(UpstreamFailure) as exc_info:
            executor.execute(config, "SELECT bogus FROM missing_table")

        assert exc_info.value.error_code == "ORA-00904"
        assert exc_info.value.offset == 7
        assert exc_info.value.status_code == 500
        assert pool.busy == 0

    def test_friendly_message_for_known_code(self, executor, pools):
        config = make_config()
        executor.execute(config, "SELECT 1 FROM dual")
        pools[config.pool_key].fail_on("nowhere", driver_error("ORA-00942"))

        with pytest.raises(UpstreamFailure) as exc_info:
            executor.execute(config, "SELECT * FROM nowhere")
        assert "does not exist" in exc_info.value.message

    def test_call_timeout_becomes_query_timeout(self, executor, pools):
        config = make_config()
        executor.execute(config, "SELECT 1 FROM dual")
        pools[config.pool_key].fail_on("slow_view", driver_error("DPY-4024", "DPY-4024: call timeout exceeded"))

        with pytest.raises(QueryTimeout) as exc_info:
            executor.execute(config, "SELECT * FROM slow_view")
        assert exc_info.value.to_response()["timeout"] is True
        assert pools[config.pool_key].busy == 0

    def test_pool_creation_failure(self):
        def factory(config):
            raise driver_error("ORA-12541", error_class=oracledb.OperationalError)

        executor = QueryExecutor(ConnectionManager(pool_factory=factory))
        with pytest.raises(UpstreamFailure) as exc_info:
            executor.execute(make_config(), "SELECT 1 FROM dual")
        assert exc_info.value.error_code == "ORA-12541"

    def test_health_check_reports_pool_failure_unhealthy(self):
        def factory(config):
            raise driver_error("ORA-01017", error_class=oracledb.DatabaseError)

        result = QueryExecutor(ConnectionManager(pool_factory=factory)).health_check(make_config())
        assert result.is_healthy is False
        assert result.error_message == "Invalid username or password."


class TestSchemaSwitch:

    def test_switched_connection_is_dropped(self, executor, pools):
        config = make_config()
        executor.execute(config, "SELECT * FROM employees", options=QueryOptions(current_schema="hr"))
        pool = pools[config.pool_key]

        assert pool.executed[0][0] == "ALTER SESSION SET CURRENT_SCHEMA = HR"
        assert pool.dropped == 1
        assert pool.busy == 0

    def test_invalid_schema_is_not_interpolated(self, executor, pools):
        config = make_config()
        executor.execute(config, "SELECT 1 FROM dual", options=QueryOptions(current_schema="HR; DROP USER X"))
        pool = pools[config.pool_key]

        assert all("ALTER SESSION" not in query for query, _ in pool.executed)
        assert pool.dropped == 0


class TestPooling:

    def test_same_target_reuses_pool(self, executor, pools):
        executor.execute(make_config(), "SELECT 1 FROM dual")
        executor.execute(make_config(name="PROD-ALIAS"), "SELECT 1 FROM dual")
        assert list(pools) == ["db01:1521:ORCL:perfstat"]

    def test_different_user_gets_own_pool(self, executor, pools):
        executor.execute(make_config(), "SELECT 1 FROM dual")
        executor.execute(make_config(username="system"), "SELECT 1 FROM dual")
        assert len(pools) == 2

    def test_privileged_config_gets_own_pool(self, executor, pools):
        executor.execute(make_config(), "SELECT 1 FROM dual")
        executor.execute(make_config(privilege="SYSDBA"), "SELECT 1 FROM dual")
        assert sorted(pools) == ["db01:1521:ORCL:perfstat", "db01:1521:ORCL:perfstat:SYSDBA"]

    def test_check_unsaved_uses_throwaway_pool(self, executor, pools):
        config = make_config()
        executor.execute(config, "SELECT 1 FROM dual")
        registered = executor.manager.get_connector(config)

        throwaway = FakePool(columns=("BANNER",), rows=[("Oracle Database 19c Enterprise Edition",)])
        executor.manager.pool_factory = lambda cfg: throwaway
        result = executor.manager.check_unsaved(make_config(password="lion"))

        assert result.is_healthy is True
        assert throwaway.closed is True
        assert pools[config.pool_key].closed is False
        assert executor.manager.get_connector(config) is registered

    def test_check_unsaved_reports_logon_failure(self, executor, pools):
        def factory(cfg):
            raise driver_error("ORA-01017")

        executor.manager.pool_factory = factory
        result = executor.manager.check_unsaved(make_config(password="WRONG"))

        assert result.is_healthy is False
        assert result.error_message == "Invalid username or password."
        assert executor.manager.pool_statistics() == []

    def test_discard_closes_pool(self, executor, pools):
        config = make_config()
        executor.execute(config, "SELECT 1 FROM dual")
        executor.discard(config.pool_key)

        assert pools[config.pool_key].closed is True
        assert executor.manager.pool_statistics() == []


class TestHealthCheck:

    def test_banner_parsing(self, pools):
        banner_pool = FakePool(columns=("BANNER",), rows=[
            ("Oracle Database 19c Enterprise Edition Release 19.0.0.0.0 - Production",)
        ])
        executor = QueryExecutor(ConnectionManager(pool_factory=lambda config: banner_pool))

        result = executor.health_check(make_config())
        assert result.is_healthy is True
        assert result.version_label == "19c"
        assert result.edition == "Enterprise Edition"
        assert banner_pool.busy == 0

    @pytest.mark.parametrize("banner,version,expected", [
        ("Oracle Database 11g Express Edition Release 11.2.0.2.0", "11.2.0.2.0", "11g"),
        ("", "21.3.0.0.0", "21c"),
        ("", "12.2.0.1.0", "12c"),
        ("", "", ""),
    ])
    def test_version_label(self, banner, version, expected):
        assert parse_version_label(banner, version) == expected

    def test_edition(self):
        assert parse_edition("Oracle Database 19c Standard Edition 2 Release 19.0.0.0.0") == "Standard Edition"
        assert parse_edition("") == ""
