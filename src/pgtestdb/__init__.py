from pgtestdb.clone import CloneDatabase
from pgtestdb.connection_settings import ConnectionSettings
from pgtestdb.data_source_name import DataSourceName
from pgtestdb.errors import (
    ConfigError,
    DatabaseConnectionError,
    DatabaseSkipped,
    DDLError,
    FixtureError,
    LeakError,
    PgTestDbError,
    SchemaApplyError,
)
from pgtestdb.fixtures import Fixture
from pgtestdb.pool import TemplatePool, TemplateState
from pgtestdb.settings import PgTestDbSettings, get_settings


__all__ = [
    "CloneDatabase",
    "ConfigError",
    "ConnectionSettings",
    "DataSourceName",
    "DatabaseConnectionError",
    "DatabaseSkipped",
    "DDLError",
    "Fixture",
    "FixtureError",
    "LeakError",
    "PgTestDbError",
    "PgTestDbSettings",
    "SchemaApplyError",
    "TemplatePool",
    "TemplateState",
    "get_settings",
]
