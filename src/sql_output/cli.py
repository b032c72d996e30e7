from __future__ import annotations

import json
import sys
import time
from pathlib import Path

import typer
from loguru import logger

from .config import OutputConfig, load_config
from .errors import BindError, ConfigError, TransientImportError
from .output import SQLOutput
from .registry import TableRegistry

app = typer.Typer(help="sql-output operational CLI")


def config_arg() -> Path:
    return typer.Argument(..., exists=True, dir_okay=False, help="YAML configuration file")


def _load(path: Path) -> OutputConfig:
    try:
        return load_config(path)
    except ConfigError as e:
        logger.error(f"{e}")
        raise typer.Exit(1)


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", envvar="SQL_OUTPUT_LOG_LEVEL"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines"),
):
    logger.remove()
    logger.add(sys.stderr, level=log_level.upper(), serialize=json_logs)


@app.command("check-config")
def check_config(config_path: Path = config_arg()):
    """Validate a configuration file and print its routes."""
    cfg = _load(config_path)
    try:
        registry = TableRegistry.from_config(cfg)
    except ConfigError as e:
        logger.error(f"{e}")
        raise typer.Exit(1)

    def _route(r):
        return {"pattern": r.pattern.text, "table": r.table, "num_retries": r.max_retries}

    typer.echo(
        json.dumps(
            {
                "adapter": cfg.drivername,
                "database": cfg.database,
                "remove_tag_prefix": cfg.remove_tag_prefix,
                "routes": [_route(r) for r in registry.routes],
                "default": _route(registry.default),
            },
            indent=2,
        )
    )


@app.command("resolve")
def resolve(config_path: Path = config_arg(), tag: str = typer.Argument(...)):
    """Print the table a tag routes to. Does not connect."""
    out = SQLOutput(_load(config_path))
    formatted = out.format_tag(tag)
    route = out.registry.resolve(formatted)
    typer.echo(
        json.dumps(
            {
                "tag": tag,
                "formatted_tag": formatted,
                "table": route.table,
                "default": route.is_default,
            }
        )
    )


@app.command("import-ndjson")
def import_ndjson(
    config_path: Path = config_arg(),
    tag: str = typer.Argument(..., help="Tag of the chunk"),
    src_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="NDJSON file"),
):
    """Import one JSON object per line as a single chunk."""
    now = int(time.time())
    events = []
    with open(src_path) as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                events.append((now, json.loads(line)))
            except json.JSONDecodeError:
                # kept as-is; the import reports it as malformed
                events.append((now, line))

    try:
        with SQLOutput(_load(config_path)) as out:
            result = out.handle(out.emit(tag, events))
    except BindError as e:
        logger.error(f"{e}")
        raise typer.Exit(1)
    except TransientImportError as e:
        logger.error(f"Import failed, retry later: {e}")
        raise typer.Exit(2)

    typer.echo(json.dumps(result.to_dict()))


if __name__ == "__main__":
    app()
