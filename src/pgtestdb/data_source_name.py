import os

from typing import Dict, Mapping, Self
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlparse

from pydantic import BaseModel, Field, SecretStr


class DataSourceName(BaseModel):
    """PostgreSQL connection string parser and validator."""

    # Required fields
    driver:      str = Field(default="postgresql", description="URL scheme, e.g. 'postgresql' or 'postgresql+psycopg2'")
    username:    str = Field(...)
    hostname:    str = Field(default="localhost")
    port:        int = Field(default=5432)

    # Optional fields
    password:    SecretStr | None = Field(default=None)
    database:    str | None = Field(default=None, description="Database name, if applicable")
    query:       Dict[str, str] = Field(default_factory=dict, description="Additional libpq options from the DSN's query string")

    def model_dump_string(self, mask_secrets: bool = False) -> str:
        """Returns the FULL unmasked DSN string unless `mask_secrets=True`."""
        password : str = ""
        if self.password:
            password = "********" if mask_secrets else quote(self.password.get_secret_value(), safe="")

        # A socket directory cannot sit in the URL authority; libpq takes it as ?host=
        host = "" if self.is_unix_socket else self.hostname
        query = {"host": self.hostname, **self.query} if self.is_unix_socket else self.query

        dsn_parts = filter(lambda x: x, [
            f"{self.driver}://",
            quote(self.username, safe=""),
            f":{password}" if password else "",
            f"@{host}",
            f":{self.port}" if self.port else "",
            f"/{self.database}" if self.database else "",
            f"?{urlencode(query)}" if query else "",
        ])
        return ''.join(dsn_parts)

    def __str__(self) -> str:
        """Return safe masked string representation of this DataSourceName."""
        return self.model_dump_string(mask_secrets=True)

    def with_database(self, database: str) -> Self:
        """Copy of this DSN pointing at `database`."""
        return self.model_copy(update={"database": database}, deep=True)

    @property
    def is_unix_socket(self) -> bool:
        """True when `hostname` is a socket directory rather than a network host."""
        return self.hostname.startswith("/")

    @property
    def plain_password(self) -> str | None:
        return self.password.get_secret_value() if self.password else None

    @classmethod
    def parse(cls, dsn_str: str) -> Self:
        """Create a DataSourceName from a DSN string, expanding any $VARS it contains."""
        dsn_str = os.path.expandvars(dsn_str)
        parsed = urlparse(dsn_str)
        if not parsed.scheme.startswith("postgres"):
            raise ValueError(f"Not a PostgreSQL DSN: {cls._mask(dsn_str)!r}")

        fields = {
            "driver": parsed.scheme,
            "username": unquote(parsed.username) if parsed.username else None,
            "password": SecretStr(unquote(parsed.password)) if parsed.password else None,
            "database": unquote(parsed.path.lstrip('/')) or None,
            "query": dict(parse_qsl(parsed.query, keep_blank_values=True)),
        }
        # ?host= wins over the URL authority, as in libpq
        host = fields["query"].pop("host", None) or parsed.hostname
        if host:
            fields["hostname"] = host
        if parsed.port:
            fields["port"] = parsed.port
        if fields["username"] is None:
            fields["username"] = os.environ.get("PGUSER", "postgres")
        return cls.model_validate(fields)

    @classmethod
    def from_libpq_env(cls, environ: Mapping[str, str] | None = None) -> Self | None:
        """Build a DSN from the libpq PG* variables; None when PGHOST is not set."""
        env = os.environ if environ is None else environ
        if not env.get("PGHOST"):
            return None
        password = env.get("PGPASSWORD")
        return cls.model_validate({
            "username": env.get("PGUSER", "postgres"),
            "password": SecretStr(password) if password else None,
            "hostname": env["PGHOST"],
            "port": int(env.get("PGPORT", "5432")),
            "database": env.get("PGDATABASE") or None,
        })

    @staticmethod
    def _mask(dsn_str: str) -> str:
        parsed = urlparse(dsn_str)
        if parsed.password:
            return dsn_str.replace(f":{parsed.password}@", ":********@")
        return dsn_str
