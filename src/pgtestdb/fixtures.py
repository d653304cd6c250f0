import logging

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from sqlalchemy.engine import Connection
from sqlalchemy.sql import text

from pgtestdb.clone import CloneDatabase
from pgtestdb.errors import FixtureError, PgTestDbError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Fixture:
    """One seeding statement and its parameters.

    A mapping binds named (`:name`) parameters through SQLAlchemy `text()`. A sequence is passed
    positionally in the driver's own paramstyle (`%s` for psycopg2).
    """
    query  : str
    params : Mapping[str, Any] | Sequence[Any] = field(default_factory=dict)

    def execute(self, conn: Connection) -> None:
        if isinstance(self.params, Mapping):
            conn.execute(text(self.query), dict(self.params))
        else:
            conn.exec_driver_sql(self.query, tuple(self.params))


def _run(clone: CloneDatabase, steps: Sequence[Callable[[Connection], Any]]) -> CloneDatabase:
    for index, step in enumerate(steps):
        try:
            with clone.engine.begin() as conn:
                step(conn)
        except Exception as exc:
            _teardown_after_failure(clone)
            raise FixtureError(str(exc).strip() or type(exc).__name__, index=index, database=clone.name) from exc
    return clone


def _teardown_after_failure(clone: CloneDatabase) -> None:
    try:
        clone.teardown()
    except PgTestDbError as exc:
        logger.error("could not tear down %s after fixture failure: %s", clone.name, exc)


def _raw_sql(statement: str) -> Callable[[Connection], Any]:
    return lambda conn: conn.exec_driver_sql(statement, execution_options={"no_parameters": True})


def load_fixtures(clone: CloneDatabase, fixtures: Sequence[Fixture]) -> CloneDatabase:
    """Execute `fixtures` in order; on the first failure drop the clone and raise FixtureError."""
    return _run(clone, [fixture.execute for fixture in fixtures])


def load_sqls(clone: CloneDatabase, sqls: Sequence[str]) -> CloneDatabase:
    """Like `load_fixtures` for plain SQL strings. `%` and `:name` are sent to the server as written."""
    return _run(clone, [_raw_sql(statement) for statement in sqls])
