"""
TableRegistry: ordered routes plus one mandatory default route.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from loguru import logger

from .config import OutputConfig
from .errors import BindError, ConfigError
from .route import TableRoute
from .store import SQLStore


class TableRegistry:
    """Resolves a tag to exactly one route; the default route is the fallback."""

    def __init__(self, routes: Iterable[TableRoute]):
        self._routes: list[TableRoute] = []
        self._default: TableRoute | None = None
        for route in routes:
            if route.is_default:
                if self._default is not None:
                    logger.warning(
                        f"Detect duplicate default table definition, "
                        f"keeping '{self._default.table}' and ignoring '{route.table}'"
                    )
                    continue
                self._default = route
            else:
                self._routes.append(route)

        if self._default is None:
            raise ConfigError("There is no default table. <table> is required in sql output")

    @classmethod
    def from_config(cls, config: OutputConfig) -> "TableRegistry":
        return cls(TableRoute.from_config(t) for t in config.tables)

    @property
    def routes(self) -> Sequence[TableRoute]:
        """Non-default routes in declaration order."""
        return tuple(self._routes)

    @property
    def default(self) -> TableRoute:
        return self._default

    @property
    def only_default(self) -> bool:
        return not self._routes

    def bind(self, store: SQLStore) -> None:
        """Bind every route. Unbindable routes are dropped; the default must bind.

        Raises:
            BindError: the default table failed to bind
        """
        kept: list[TableRoute] = []
        for route in self._routes:
            try:
                route.bind(store)
            except BindError as e:
                logger.opt(exception=e.cause).bind(
                    table=route.table, error=str(e.cause), error_class=type(e.cause).__name__
                ).warning(f"Can't handle '{route.table}' table. Ignoring.")
                continue
            kept.append(route)
        self._routes = kept

        try:
            self._default.bind(store)
        except BindError as e:
            logger.bind(
                table=self._default.table, error=str(e.cause), error_class=type(e.cause).__name__
            ).error(f"Can't handle default table '{self._default.table}'")
            raise

    def resolve(self, tag: str) -> TableRoute:
        for route in self._routes:
            if route.matches(tag):
                return route
        return self._default

    def __iter__(self):
        yield from self._routes
        yield self._default

    def __len__(self) -> int:
        return len(self._routes) + 1
