import logging

from enum import Enum
from pathlib import Path
from typing import Sequence, Tuple

from pgtestdb.admin import AdminOps
from pgtestdb.clone import CloneDatabase, DatabaseCloner, EngineFactory, seeded_random
from pgtestdb.connection_settings import ConnectionSettings
from pgtestdb.errors import ConfigError, DatabaseSkipped
from pgtestdb.fingerprint import validate_base_name
from pgtestdb.fixtures import Fixture, load_fixtures, load_sqls
from pgtestdb.once import CellState
from pgtestdb.settings import PgTestDbSettings
from pgtestdb.template import TemplateManager


logger = logging.getLogger(__name__)


class TemplateState(Enum):
    UNINITIALIZED = "uninitialized"
    READY         = "ready"
    FAILED        = "failed"


_STATE_BY_CELL = {
    CellState.UNINITIALIZED: TemplateState.UNINITIALIZED,
    CellState.READY:         TemplateState.READY,
    CellState.FAILED:        TemplateState.FAILED,
}


class TemplatePool:
    """Hands out private, schema-initialized databases cloned from a shared template.

    Create one per test suite and share it across tests and threads. Nothing touches the
    server until the first acquisition; that call creates (or finds) the template, and later
    calls only clone it. Each `with_*` call returns a `CloneDatabase` whose `teardown()`
    must run once the test is done with it.

    Example:
        >>> pool = TemplatePool("postgresql://postgres@localhost/postgres", "app", "schema.sql")
        >>> with pool.with_empty() as engine:
        ...     engine.connect().close()

    Without a DSN, or with `skip=True`, every acquisition raises `DatabaseSkipped`.
    A failed template creation is cached: every later acquisition on this pool re-raises
    the same error instead of trying again.
    """

    def __init__(
        self,
        connection: ConnectionSettings | str | None,
        base_name: str | None = None,
        schema_file: Path | str | None = None,
        *,
        skip: bool = False,
        admin: AdminOps | None = None,
        engine_factory: EngineFactory | None = None,
    ):
        if isinstance(connection, str):
            connection = ConnectionSettings.from_dsn(connection)
        self._connection = connection
        self._skip = skip or connection is None
        self._admin: AdminOps | None = None
        self._template: TemplateManager | None = None
        self._cloner: DatabaseCloner | None = None

        if connection is None:
            return

        base_name = validate_base_name(base_name)
        if not schema_file:
            raise ConfigError("schema file name is required when a database target is set")

        self._admin = admin = admin or AdminOps(connection)
        self._template = TemplateManager(admin, base_name, schema_file)
        self._cloner = DatabaseCloner(admin, engine_factory or connection.create_engine, seeded_random())

    @classmethod
    def from_settings(cls, settings: PgTestDbSettings, **kwargs) -> "TemplatePool":
        return cls(
            settings.connection_settings(),
            settings.base_name,
            settings.schema_file,
            skip=settings.skip,
            **kwargs,
        )

    # ===========================================
    # Properties
    # ===========================================

    @property
    def skipped(self) -> bool: return self._skip

    @property
    def state(self) -> TemplateState:
        if self._template is None:
            return TemplateState.UNINITIALIZED
        return _STATE_BY_CELL[self._template.state]

    @property
    def connection(self) -> ConnectionSettings | None: return self._connection

    @property
    def admin(self) -> AdminOps | None: return self._admin

    # ===========================================
    # Template
    # ===========================================

    def _components(self) -> Tuple[TemplateManager, DatabaseCloner]:
        if self._skip or self._template is None or self._cloner is None:
            raise DatabaseSkipped("database target is not configured" if self._connection is None else "database tests are disabled")
        return self._template, self._cloner

    def template_name(self) -> str:
        """Name of the ready template, creating it on first use."""
        template, _ = self._components()
        return template.get_or_create()

    def release_template(self) -> str | None:
        """Drop the template database. Templates otherwise persist for reuse by later runs."""
        if self._template is None:
            return None
        return self._template.release()

    # ===========================================
    # Acquisition
    # ===========================================

    def with_empty(self) -> CloneDatabase:
        """A fresh clone of the template with no data beyond what the schema script inserts."""
        template, cloner = self._components()
        return cloner.create_clone(template.get_or_create())

    def with_fixtures(self, fixtures: Sequence[Fixture]) -> CloneDatabase:
        """A fresh clone seeded by `fixtures`, in order. Dropped again if any fixture fails."""
        return load_fixtures(self.with_empty(), fixtures)

    def with_sqls(self, sqls: Sequence[str]) -> CloneDatabase:
        """A fresh clone seeded by plain SQL statements, in order. Dropped again if any fails."""
        return load_sqls(self.with_empty(), sqls)
