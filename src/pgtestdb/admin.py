import logging

from contextlib import contextmanager
from typing import Generator, List

import psycopg2

from psycopg2 import sql
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor

from pgtestdb.connection_settings import ConnectionSettings
from pgtestdb.errors import DatabaseConnectionError, DDLError, SchemaApplyError


logger = logging.getLogger(__name__)


class AdminOps:
    """Short-lived administrative connections for DDL against the server.

    Every call opens its own connection and closes it before returning, so nothing here
    competes with the pooled connections handed to tests. Connections run in autocommit
    mode because CREATE/DROP DATABASE cannot run inside a transaction block.
    """

    def __init__(self, settings: ConnectionSettings):
        self._settings = settings

    @property
    def settings(self) -> ConnectionSettings: return self._settings

    # ===========================================
    # Psycopg2 Context Managers
    # ===========================================

    @contextmanager
    def connection(self, *, database: str | None = None) -> Generator[PgConnection, None, None]:
        target = database or self._settings.maintenance_database
        try:
            conn = psycopg2.connect(**self._settings.psycopg2_kwargs(target))
        except psycopg2.Error as exc:
            raise DatabaseConnectionError.wrap(exc, operation="connect to", database=target) from exc

        failed = False
        try:
            conn.autocommit = True
            yield conn
        except BaseException:
            failed = True
            raise
        finally:
            try:
                conn.close()
            except psycopg2.Error as exc:
                if failed:
                    logger.warning("error closing admin connection to %s: %s", target, exc)
                else:
                    raise DatabaseConnectionError.wrap(exc, operation="close connection to", database=target) from exc

    @contextmanager
    def cursor(self, *, database: str | None = None) -> Generator[PgCursor, None, None]:
        with self.connection(database=database) as conn:
            cur = conn.cursor()
            try:
                yield cur
            finally:
                cur.close()

    # ===========================================
    # Database Management
    # ===========================================

    def database_exists(self, name: str) -> bool:
        try:
            with self.cursor() as cur:
                cur.execute("SELECT EXISTS(SELECT 1 FROM pg_database WHERE datname = %s)", (name,))
                row = cur.fetchone()
                return bool(row[0]) if row else False
        except psycopg2.Error as exc:
            raise DDLError.wrap(exc, operation="check existence of", database=name) from exc

    def create_database(self, name: str, template: str | None = None) -> None:
        """CREATE DATABASE `name`, optionally as a copy of `template`."""
        stmt = sql.SQL("CREATE DATABASE {}").format(sql.Identifier(name))
        if template:
            stmt = sql.SQL("{} WITH TEMPLATE {}").format(stmt, sql.Identifier(template))
        try:
            with self.cursor() as cur:
                cur.execute(stmt)
        except psycopg2.Error as exc:
            raise DDLError.wrap(exc, operation="create database", database=name) from exc
        logger.debug("created database %s%s", name, f" from template {template}" if template else "")

    def drop_database(self, name: str, *, if_exists: bool = False) -> None:
        stmt = sql.SQL("DROP DATABASE {}{}").format(sql.SQL("IF EXISTS " if if_exists else ""), sql.Identifier(name))
        try:
            with self.cursor() as cur:
                cur.execute(stmt)
        except psycopg2.Error as exc:
            raise DDLError.wrap(exc, operation="drop database", database=name) from exc
        logger.debug("dropped database %s", name)

    def execute_script(self, database: str, script: str) -> None:
        """Run a multi-statement SQL script inside `database`."""
        try:
            with self.cursor(database=database) as cur:
                cur.execute(script)
        except psycopg2.Error as exc:
            raise SchemaApplyError.wrap(exc, operation="apply schema to", database=database) from exc

    def list_databases(self, prefix: str) -> List[str]:
        """Names of non-template databases starting with `prefix`, sorted."""
        pattern = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        try:
            with self.cursor() as cur:
                cur.execute(
                    "SELECT datname FROM pg_database WHERE datname LIKE %s AND NOT datistemplate ORDER BY datname",
                    (pattern,),
                )
                return [row[0] for row in cur.fetchall()]
        except psycopg2.Error as exc:
            raise DDLError.wrap(exc, operation="list databases like", database=prefix) from exc
