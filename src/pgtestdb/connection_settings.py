from typing import Any, Dict, Self

from pydantic import BaseModel, Field, field_validator
from sqlalchemy.engine import URL, Engine, create_engine
from sqlalchemy.pool import QueuePool

from pgtestdb.data_source_name import DataSourceName


DEFAULT_TIMEOUT_SECONDS = 30.0


class ConnectionSettings(BaseModel):
    """Where the server lives and how long any single network step may take."""

    # Required
    dsn                      : DataSourceName       = Field(...,  description="Server to provision test databases on")

    # Optional
    admin_database           : str | None           = Field(default=None,  description="Database administrative connections attach to; DSN database or 'postgres'")
    timeout_seconds          : float                = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0, description="Upper bound for connecting and for each statement")
    echo                     : bool                 = Field(default=False, description="Enable SQL statement logging on clone engines")

    # Clone engine pool settings
    pool_size                : int                  = Field(default=5,     ge=1, description="Connections kept per clone engine")
    max_overflow             : int                  = Field(default=10,    ge=0, description="Connections a clone engine may open beyond pool_size")

    @field_validator('dsn', mode='before')
    @classmethod
    def validate_dsn(cls, v: DataSourceName | str) -> DataSourceName:
        """Ensure DSN is a valid DataSourceName instance."""
        if isinstance(v, str):
            v = DataSourceName.parse(v)

        if not isinstance(v, DataSourceName):
            raise ValueError("dsn must be a DataSourceName instance or a string that can be parsed into one.")

        return v

    @property
    def maintenance_database(self) -> str:
        return self.admin_database or self.dsn.database or "postgres"

    @property
    def connect_timeout(self) -> int:
        # libpq only accepts whole seconds, and values below 2 are raised to 2
        return max(2, int(round(self.timeout_seconds)))

    @property
    def statement_timeout_ms(self) -> int: return int(self.timeout_seconds * 1000)

    @classmethod
    def from_dsn(cls, dsn: str | DataSourceName, **options: Any) -> Self:
        return cls.model_validate({"dsn": dsn, **options})

    # ==================================================================================================
    # psycopg2 (administrative connections)
    # ==================================================================================================

    def psycopg2_kwargs(self, database: str | None = None) -> Dict[str, Any]:
        """Keyword arguments for `psycopg2.connect` bound to `database` (default: the maintenance db)."""
        kwargs: Dict[str, Any] = {
            **self.dsn.query,
            "dbname": database or self.maintenance_database,
            "user": self.dsn.username,
            "host": self.dsn.hostname,
            "port": self.dsn.port,
            "connect_timeout": self.connect_timeout,
            "options": f"-c statement_timeout={self.statement_timeout_ms}",
        }
        if (password := self.dsn.plain_password) is not None:
            kwargs["password"] = password
        return kwargs

    # ==================================================================================================
    # SQLAlchemy (per-clone pools)
    # ==================================================================================================

    def sqlalchemy_url(self, database: str) -> URL:
        socket = self.dsn.is_unix_socket
        return URL.create(
            "postgresql+psycopg2",
            username=self.dsn.username,
            password=self.dsn.plain_password,
            host=None if socket else self.dsn.hostname,
            port=self.dsn.port,
            database=database,
            query={**self.dsn.query, "host": self.dsn.hostname} if socket else self.dsn.query,
        )

    def create_engine(self, database: str) -> Engine:
        """A QueuePool-backed engine scoped to `database`, with the same timeouts as admin connections."""
        return create_engine(
            self.sqlalchemy_url(database),
            poolclass=QueuePool,
            echo=self.echo,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
            pool_timeout=self.timeout_seconds,
            pool_pre_ping=False,
            connect_args={
                "connect_timeout": self.connect_timeout,
                "options": f"-c statement_timeout={self.statement_timeout_ms}",
            },
        )
