import logging

from pathlib import Path
from typing import List

from pgtestdb.admin import AdminOps
from pgtestdb.errors import ConfigError, PgTestDbError
from pgtestdb.fingerprint import read_schema, template_name
from pgtestdb.once import CellState, OnceCell


logger = logging.getLogger(__name__)


class TemplateManager:
    """Creates the schema-initialized template database at most once per instance.

    The template is named after the schema's content, so an existing database of that name
    (from an earlier run) is reused as is. Whatever the first attempt produces, a name or an
    error, is what every later caller gets: a failure is not retried while this instance lives.
    """

    def __init__(self, admin: AdminOps, base_name: str, schema_file: Path | str | None):
        self._admin = admin
        self._base_name = base_name
        self._schema_file = schema_file
        self._cell: OnceCell[str] = OnceCell()

    @property
    def state(self) -> CellState: return self._cell.state

    @property
    def base_name(self) -> str: return self._base_name

    def get_or_create(self) -> str:
        return self._cell.get_or_compute(self._create)

    def _create(self) -> str:
        schema = read_schema(self._schema_file)
        name = template_name(self._base_name, schema)
        try:
            script = schema.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ConfigError(f"schema file is not valid UTF-8: {exc}", operation="read schema") from exc

        if self._admin.database_exists(name):
            logger.info("reusing template database %s", name)
            return name

        self._admin.create_database(name)
        try:
            self._admin.execute_script(name, script)
        except PgTestDbError:
            self._drop_partial(name)
            raise

        logger.info("created template database %s from %s", name, self._schema_file)
        return name

    def _drop_partial(self, name: str) -> None:
        try:
            self._admin.drop_database(name, if_exists=True)
        except PgTestDbError as exc:
            logger.error("could not drop half-initialized template %s: %s", name, exc)

    def release(self) -> str | None:
        """Drop the template for the current schema, whether or not this instance resolved it yet.

        Acquisitions that start meanwhile wait and then build the template again. Returns the
        dropped name, or None when template creation already failed.
        """
        released: List[str] = []

        def drop(name: str | None) -> None:
            name = name or template_name(self._base_name, read_schema(self._schema_file))
            self._admin.drop_database(name, if_exists=True)
            released.append(name)

        if not self._cell.reset(drop):
            return None
        logger.info("released template database %s", released[0])
        return released[0]
