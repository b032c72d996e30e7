"""
Unit tests for configuration loading and validation.
"""

import pytest

from sql_output.config import build_config, load_config
from sql_output.errors import ConfigError


def _base(**overrides):
    cfg = {
        "host": "db.internal",
        "adapter": "postgresql",
        "database": "logs",
        "tables": [{"table": "logs", "column_mapping": "message,host"}],
    }
    cfg.update(overrides)
    return cfg


def test_defaults():
    cfg = build_config(_base())
    assert cfg.port is None
    assert cfg.remove_tag_prefix is None
    assert cfg.tables[0].pattern == ""
    assert cfg.tables[0].is_default
    assert cfg.tables[0].num_retries == 5
    assert not cfg.include_time_key
    assert cfg.time_key == "time"
    assert cfg.tag_key == "tag"


def test_missing_default_table_is_fatal():
    with pytest.raises(ConfigError, match="There is no default table"):
        build_config(
            _base(tables=[{"pattern": "access.*", "table": "a", "column_mapping": "x"}])
        )


def test_no_tables_is_fatal():
    with pytest.raises(ConfigError):
        build_config(_base(tables=[]))


def test_malformed_column_mapping_is_fatal():
    with pytest.raises(ConfigError, match="Empty key"):
        build_config(_base(tables=[{"table": "logs", "column_mapping": "a,,b"}]))


def test_invalid_pattern_is_fatal():
    with pytest.raises(ConfigError):
        build_config(
            _base(
                tables=[
                    {"table": "logs", "column_mapping": "a"},
                    {"pattern": "{access", "table": "a", "column_mapping": "a"},
                ]
            )
        )


def test_negative_retries_rejected():
    with pytest.raises(ConfigError):
        build_config(_base(tables=[{"table": "logs", "column_mapping": "a", "num_retries": -1}]))


def test_missing_required_connection_params():
    with pytest.raises(ConfigError):
        build_config({"tables": [{"table": "logs", "column_mapping": "a"}]})


def test_password_from_environment(monkeypatch):
    monkeypatch.setenv("SQL_OUTPUT_PASSWORD", "s3cret")
    cfg = build_config(_base(username="writer"))
    assert cfg.password == "s3cret"


def test_explicit_value_wins_over_environment(monkeypatch):
    monkeypatch.setenv("SQL_OUTPUT_HOST", "from-env")
    cfg = build_config(_base())
    assert cfg.host == "db.internal"


def test_postgres_url_with_socket():
    cfg = build_config(
        _base(username="writer", password="pw", port=5433, socket="/var/run/postgresql")
    )
    url = cfg.url()
    assert url.drivername == "postgresql+psycopg"
    assert url.host == "db.internal"
    assert url.port == 5433
    assert url.username == "writer"
    assert url.database == "logs"
    assert url.query["host"] == "/var/run/postgresql"


def test_mysql_socket_and_passthrough_adapter():
    url = build_config(_base(adapter="mysql2", socket="/tmp/mysql.sock")).url()
    assert url.drivername == "mysql+pymysql"
    assert url.query["unix_socket"] == "/tmp/mysql.sock"

    url = build_config(_base(adapter="postgresql+psycopg2")).url()
    assert url.drivername == "postgresql+psycopg2"


def test_sqlite_url_ignores_host(tmp_path):
    url = build_config(_base(adapter="sqlite3", database=str(tmp_path / "x.db"))).url()
    assert url.drivername == "sqlite"
    assert url.host is None
    assert url.database == str(tmp_path / "x.db")


def test_load_yaml(tmp_path):
    p = tmp_path / "sql.yml"
    p.write_text(
        """
host: localhost
adapter: sqlite
database: /tmp/logs.db
remove_tag_prefix: "td."
tables:
  - table: logs
    column_mapping: "message,host"
  - pattern: "access.*"
    table: access_logs
    column_mapping: "path,code:status"
    num_retries: 2
"""
    )
    cfg = load_config(p)
    assert cfg.remove_tag_prefix == "td."
    assert [t.table for t in cfg.tables] == ["logs", "access_logs"]
    assert cfg.tables[1].num_retries == 2


def test_load_yaml_errors(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yml")

    p = tmp_path / "list.yml"
    p.write_text("- a\n- b\n")
    with pytest.raises(ConfigError, match="must be a mapping"):
        load_config(p)
