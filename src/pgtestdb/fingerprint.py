import hashlib
import re

from pathlib import Path

from pgtestdb.errors import ConfigError


# PostgreSQL truncates identifiers longer than this many bytes
MAX_IDENTIFIER_BYTES = 63

FINGERPRINT_HEX_LENGTH = 32

# "_" + up to ten digits of a 31-bit random suffix
CLONE_SUFFIX_MAX_LENGTH = 11

BASE_NAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*$")

MAX_BASE_NAME_LENGTH = MAX_IDENTIFIER_BYTES - 1 - FINGERPRINT_HEX_LENGTH - CLONE_SUFFIX_MAX_LENGTH


def schema_fingerprint(schema: bytes) -> str:
    """Hex md5 of the raw schema bytes."""
    return hashlib.md5(schema).hexdigest()


def template_name(base_name: str, schema: bytes) -> str:
    """`<base_name>_<fingerprint>`: equal inputs always name the same template."""
    return f"{base_name}_{schema_fingerprint(schema)}"


def validate_base_name(base_name: str | None) -> str:
    if not base_name:
        raise ConfigError("base name is required when a database target is set")
    if not BASE_NAME_PATTERN.match(base_name):
        raise ConfigError(f"base name {base_name!r} must be lowercase letters, digits and underscores")
    if len(base_name) > MAX_BASE_NAME_LENGTH:
        raise ConfigError(
            f"base name {base_name!r} is longer than {MAX_BASE_NAME_LENGTH} characters; "
            f"clone names would exceed PostgreSQL's {MAX_IDENTIFIER_BYTES}-byte identifier limit"
        )
    return base_name


def read_schema(schema_file: Path | str | None) -> bytes:
    if not schema_file:
        raise ConfigError("schema file is not set")
    try:
        return Path(schema_file).read_bytes()
    except OSError as exc:
        raise ConfigError(f"can't read schema file: {exc}", operation="read schema", database=None) from exc
