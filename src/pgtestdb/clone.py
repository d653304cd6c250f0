import logging
import os
import random
import time

from dataclasses import dataclass, field
from types import TracebackType
from typing import Callable, Type

from psycopg2 import errors as pg_errors
from sqlalchemy.engine import Engine

from pgtestdb.admin import AdminOps
from pgtestdb.errors import ConfigError, DatabaseConnectionError, DDLError, LeakError, PgTestDbError


logger = logging.getLogger(__name__)

EngineFactory = Callable[[str], Engine]

CLONE_NAME_ATTEMPTS = 5


def outstanding_connections(engine: Engine) -> int:
    """Number of connections currently checked out of `engine`'s pool."""
    checkedout = getattr(engine.pool, "checkedout", None)
    if checkedout is None:
        raise ConfigError(f"{type(engine.pool).__name__} does not report checked-out connections; use a QueuePool")
    return checkedout()


def seeded_random() -> random.Random:
    return random.Random(time.time_ns() + os.getpid())


@dataclass
class CloneDatabase:
    """A private copy of the template plus the engine bound to it.

    Exclusively owned by one test until `teardown()` drops it. Usable as a context manager
    that yields the engine and tears down on exit.
    """

    engine   : Engine
    name     : str
    _drop    : Callable[[str], None] = field(repr=False)
    _dropped : bool = field(default=False, init=False, repr=False)

    @property
    def dropped(self) -> bool: return self._dropped

    def outstanding(self) -> int: return outstanding_connections(self.engine)

    def teardown(self) -> None:
        """Drop the clone, refusing with LeakError while connections are still checked out.

        A refused clone is left untouched for inspection. Calling again after a successful
        drop does nothing.
        """
        if self._dropped:
            return

        count = self.outstanding()
        if count > 0:
            logger.error("refusing to drop %s: %d unreleased connection(s)", self.name, count)
            raise LeakError(count, self.name)

        self.engine.dispose()
        self._drop(self.name)
        self._dropped = True
        logger.debug("dropped clone %s", self.name)

    def __enter__(self) -> Engine:
        return self.engine

    def __exit__(self, exc_type: Type[BaseException] | None, exc: BaseException | None, tb: TracebackType | None) -> None:
        self.teardown()


class DatabaseCloner:
    """Creates uniquely named database-level copies of a template and opens an engine on each.

    Names are `<template>_<31-bit random int>`. A name PostgreSQL already knows is retried with a
    fresh suffix, which also covers clones created by other processes sharing the server.
    """

    def __init__(self, admin: AdminOps, engine_factory: EngineFactory, rng: random.Random | None = None):
        self._admin = admin
        self._engine_factory = engine_factory
        self._rng = rng or seeded_random()

    def _next_name(self, template: str) -> str:
        return f"{template}_{self._rng.getrandbits(31)}"

    def create_clone(self, template: str) -> CloneDatabase:
        name = self._create_database(template)
        try:
            engine = self._engine_factory(name)
            try:
                with engine.connect():
                    pass
            except Exception:
                engine.dispose()
                raise
        except Exception as exc:
            self._discard(name)
            if isinstance(exc, PgTestDbError):
                raise
            raise DatabaseConnectionError.wrap(exc, operation="connect to", database=name) from exc

        logger.debug("created clone %s from %s", name, template)
        return CloneDatabase(engine=engine, name=name, _drop=self._admin.drop_database)

    def _create_database(self, template: str) -> str:
        for attempt in range(1, CLONE_NAME_ATTEMPTS + 1):
            name = self._next_name(template)
            try:
                self._admin.create_database(name, template=template)
                return name
            except DDLError as exc:
                if not isinstance(exc.__cause__, pg_errors.DuplicateDatabase) or attempt == CLONE_NAME_ATTEMPTS:
                    raise
                logger.warning("clone name %s already taken, retrying", name)
        raise AssertionError("unreachable")

    def _discard(self, name: str) -> None:
        try:
            self._admin.drop_database(name, if_exists=True)
        except PgTestDbError as exc:
            logger.error("could not drop orphaned clone %s: %s", name, exc)
