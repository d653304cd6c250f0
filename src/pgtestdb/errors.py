from __future__ import annotations

from psycopg2 import errors as pg_errors


def _is_timeout(exc: BaseException | None) -> bool:
    # SQLAlchemy DBAPIError keeps the driver exception on .orig
    return isinstance(getattr(exc, "orig", exc), pg_errors.QueryCanceled)


class PgTestDbError(Exception):
    """Base class for every error raised while provisioning test databases.

    Carries the operation that failed and the database it targeted so the message reads
    like ``create database app_5f3c...: permission denied``.
    """

    def __init__(self, detail: str, *, operation: str | None = None, database: str | None = None):
        self.detail    = detail
        self.operation = operation
        self.database  = database
        super().__init__(self._format())

    def _format(self) -> str:
        prefix = " ".join(part for part in (self.operation, self.database) if part)
        return f"{prefix}: {self.detail}" if prefix else self.detail

    @property
    def timed_out(self) -> bool:
        """True when the driver error underneath was a statement timeout or cancellation."""
        return _is_timeout(self.__cause__)

    @classmethod
    def wrap(cls, exc: BaseException, *, operation: str, database: str | None = None) -> PgTestDbError:
        detail = str(exc).strip() or type(exc).__name__
        if _is_timeout(exc):
            detail = f"timed out: {detail}"
        error = cls(detail, operation=operation, database=database)
        error.__cause__ = exc
        return error


class ConfigError(PgTestDbError):
    """Schema source missing or unreadable, or a naming parameter is absent or invalid."""


class DatabaseConnectionError(PgTestDbError):
    """The server could not be reached or refused the credentials."""


class DDLError(PgTestDbError):
    """CREATE DATABASE, DROP DATABASE or the existence check failed."""


class SchemaApplyError(PgTestDbError):
    """The schema script failed against a freshly created template."""


class FixtureError(PgTestDbError):

    def __init__(self, detail: str, *, index: int, database: str | None = None):
        self.index = index
        super().__init__(f"can't load fixture at idx {index}: {detail}", operation="load fixtures into", database=database)


class LeakError(PgTestDbError):
    """Connections were still checked out of a clone's pool at teardown.

    The clone is left in place for inspection; the test, not the database, is at fault.
    """

    def __init__(self, count: int, database: str):
        self.count = count
        super().__init__(
            f"unreleased connections exist: {count}, can't drop database {database}",
            database=None,
        )
        self.database = database


class DatabaseSkipped(PgTestDbError):
    """No target is configured (or skipping was requested); callers should skip the test."""
