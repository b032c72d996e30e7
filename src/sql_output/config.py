"""
Configuration for the SQL output stage.

Connection parameters can come from the YAML file or from the environment
(``SQL_OUTPUT_HOST``, ``SQL_OUTPUT_PASSWORD``, ...). Explicit values win.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

from .errors import ConfigError
from .mapping import ColumnMapping
from .matching import MatchPattern

DEFAULT_NUM_RETRIES = 5

ADAPTER_ALIASES: dict[str, str] = {
    "postgresql": "postgresql+psycopg",
    "postgres": "postgresql+psycopg",
    "mysql": "mysql+pymysql",
    "mysql2": "mysql+pymysql",
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
}


class TableConfig(BaseModel):
    """One ``table`` block. An empty pattern marks the default table."""

    pattern: str = ""
    table: str
    column_mapping: str
    num_retries: int = Field(default=DEFAULT_NUM_RETRIES, ge=0)

    @field_validator("pattern")
    def _check_pattern(cls, v):
        v = (v or "").strip()
        try:
            MatchPattern.create(v)
        except ConfigError as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("column_mapping")
    def _check_mapping(cls, v):
        try:
            ColumnMapping.parse(v)
        except ConfigError as e:
            raise ValueError(str(e)) from e
        return v

    @property
    def is_default(self) -> bool:
        return self.pattern == ""


class OutputConfig(BaseSettings):
    """Top-level connection parameters plus the ``table`` blocks."""

    host: str
    port: Optional[int] = None
    adapter: str
    username: Optional[str] = None
    password: Optional[str] = None
    database: str
    socket: Optional[str] = None
    remove_tag_prefix: Optional[str] = None

    # time/tag injection applied when records are formatted
    include_time_key: bool = False
    time_key: str = "time"
    time_format: Optional[str] = None  # strftime; ISO-8601 when unset
    localtime: bool = True
    include_tag_key: bool = False
    tag_key: str = "tag"

    tables: list[TableConfig] = Field(default_factory=list)

    model_config = SettingsConfigDict(env_prefix="SQL_OUTPUT_", case_sensitive=False)

    @model_validator(mode="after")
    def _require_default_table(self):
        if not any(t.is_default for t in self.tables):
            raise ValueError("There is no default table. <table> is required in sql output")
        return self

    @property
    def drivername(self) -> str:
        return ADAPTER_ALIASES.get(self.adapter.lower(), self.adapter)

    def url(self) -> URL:
        """SQLAlchemy URL for the configured adapter."""
        driver = self.drivername
        if driver.startswith("sqlite"):
            return URL.create(driver, database=self.database)

        query: dict[str, str] = {}
        if self.socket:
            query["host" if driver.startswith("postgresql") else "unix_socket"] = self.socket
        return URL.create(
            driver,
            username=self.username,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
            query=query,
        )


def build_config(data: dict[str, Any]) -> OutputConfig:
    """Validate a raw configuration mapping."""
    try:
        return OutputConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid sql output configuration: {e}") from e


def load_config(path: str | Path) -> OutputConfig:
    """Load a YAML configuration file."""
    p = Path(path)
    try:
        with open(p) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read configuration {p}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration {p} must be a mapping")
    return build_config(data)
