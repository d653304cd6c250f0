"""pytest integration: a session-wide TemplatePool and a fresh clone per test.

Options given on the command line override PGTESTDB_* settings:

    pytest --pgtestdb-dsn postgresql://postgres@localhost/postgres \\
           --pgtestdb-base-name app --pgtestdb-schema db/schema.sql
"""

from typing import Any, Dict, Generator

import pytest

from sqlalchemy.engine import Engine

from pgtestdb.clone import CloneDatabase
from pgtestdb.errors import DatabaseSkipped, LeakError, PgTestDbError
from pgtestdb.pool import TemplatePool
from pgtestdb.settings import PgTestDbSettings


OPTION_FIELDS = {
    "pgtestdb_dsn": "dsn",
    "pgtestdb_base_name": "base_name",
    "pgtestdb_schema": "schema_file",
}


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("pgtestdb", "PostgreSQL template databases")
    group.addoption("--pgtestdb-dsn", default=None, help="postgresql:// URL of the server test databases are created on")
    group.addoption("--pgtestdb-base-name", default=None, help="prefix for template and clone database names")
    group.addoption("--pgtestdb-schema", default=None, help="SQL script applied once to the template database")
    group.addoption("--pgtestdb-skip", action="store_true", default=False, help="skip every test that needs a database")


def settings_from_config(config: pytest.Config) -> PgTestDbSettings:
    overrides: Dict[str, Any] = {
        field: value
        for option, field in OPTION_FIELDS.items()
        if (value := config.getoption(option)) is not None
    }
    if config.getoption("pgtestdb_skip"):
        overrides["skip"] = True
    return PgTestDbSettings(**overrides)


def acquire_or_skip(pool: TemplatePool) -> CloneDatabase:
    try:
        return pool.with_empty()
    except DatabaseSkipped as exc:
        pytest.skip(str(exc))


def teardown_or_fail(clone: CloneDatabase) -> None:
    try:
        clone.teardown()
    except LeakError as exc:
        pytest.fail(str(exc), pytrace=False)


@pytest.fixture(scope="session")
def pgtestdb_settings(pytestconfig: pytest.Config) -> PgTestDbSettings:
    return settings_from_config(pytestconfig)


@pytest.fixture(scope="session")
def pgtestdb_pool(pgtestdb_settings: PgTestDbSettings) -> TemplatePool:
    try:
        return TemplatePool.from_settings(pgtestdb_settings)
    except PgTestDbError as exc:
        raise pytest.UsageError(f"pgtestdb: {exc}") from exc


@pytest.fixture
def pgtestdb_clone(pgtestdb_pool: TemplatePool) -> Generator[CloneDatabase, None, None]:
    """A private, schema-initialized database dropped after the test.

    Fails the test if it leaves connections checked out.
    """
    clone = acquire_or_skip(pgtestdb_pool)
    yield clone
    teardown_or_fail(clone)


@pytest.fixture
def pgtestdb_engine(pgtestdb_clone: CloneDatabase) -> Engine:
    return pgtestdb_clone.engine
