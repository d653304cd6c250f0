import logging
import re

from functools import cached_property
from pathlib import Path
from typing import List, Tuple

import click

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.traceback import install as install_traceback

from pgtestdb.admin import AdminOps
from pgtestdb.errors import PgTestDbError
from pgtestdb.fingerprint import FINGERPRINT_HEX_LENGTH, read_schema, template_name, validate_base_name
from pgtestdb.settings import PgTestDbSettings, get_settings


console = Console()
install_traceback(word_wrap=True, console=console)


def classify(base_name: str, names: List[str]) -> Tuple[List[str], List[str]]:
    """Split database names into (templates, clones) belonging to `base_name`."""
    template_re = re.compile(rf"^{re.escape(base_name)}_[0-9a-f]{{{FINGERPRINT_HEX_LENGTH}}}$")
    clone_re = re.compile(rf"^{re.escape(base_name)}_[0-9a-f]{{{FINGERPRINT_HEX_LENGTH}}}_\d+$")
    templates = [name for name in names if template_re.match(name)]
    clones = [name for name in names if clone_re.match(name)]
    return templates, clones


class Context:
    def __init__(self, dsn: str | None):
        self.dsn = dsn

    @cached_property
    def settings(self) -> PgTestDbSettings:
        return PgTestDbSettings(dsn=self.dsn) if self.dsn else get_settings()

    @cached_property
    def admin(self) -> AdminOps:
        connection = self.settings.connection_settings()
        if connection is None:
            raise click.UsageError("No database target: pass --dsn or set PGTESTDB_DSN / PGHOST.")
        return AdminOps(connection)

    def base_name(self, value: str | None) -> str:
        try:
            return validate_base_name(value or self.settings.base_name)
        except PgTestDbError as exc:
            raise click.BadParameter(str(exc), param_hint="--base-name") from exc

    def matching(self, base_name: str) -> Tuple[List[str], List[str]]:
        return classify(base_name, self.admin.list_databases(f"{base_name}_"))


@click.group()
@click.option('--dsn', default=None, help='postgresql:// URL of the server (default: PGTESTDB_DSN or PG* variables).')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']), default=None, help='Logging level.')
@click.pass_context
def cli(ctx: click.Context, dsn: str | None, log_level: str | None) -> None:
    """pgtestdb: manage PostgreSQL template and clone databases used by tests."""
    ctx.obj = Context(dsn)
    logging.basicConfig(
        level=log_level or ctx.obj.settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


@cli.command()
@click.argument('schema', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--base-name', default=None, help='Template base name.')
@click.pass_obj
def fingerprint(ctx: Context, schema: Path, base_name: str | None) -> None:
    """Print the template database name SCHEMA maps to."""
    click.echo(template_name(ctx.base_name(base_name), read_schema(schema)))


@cli.group()
def templates() -> None:
    """Inspect or drop template databases."""


@templates.command('list')
@click.option('--base-name', default=None, help='Template base name.')
@click.pass_obj
def list_templates(ctx: Context, base_name: str | None) -> None:
    """List templates and their live clones."""
    base = ctx.base_name(base_name)
    found, clones = ctx.matching(base)

    table = Table(title=f"Databases for {base}")
    table.add_column("Template", style="cyan")
    table.add_column("Clones", justify="right")
    for name in found:
        table.add_row(name, str(sum(1 for clone in clones if clone.startswith(f"{name}_"))))
    console.print(table)


@templates.command('release')
@click.option('--base-name', default=None, help='Template base name.')
@click.option('--schema', 'schema', type=click.Path(dir_okay=False, path_type=Path), default=None, help='Schema file the template was built from.')
@click.pass_obj
def release_template(ctx: Context, base_name: str | None, schema: Path | None) -> None:
    """Drop the template built from SCHEMA so the next run rebuilds it."""
    base = ctx.base_name(base_name)
    try:
        name = template_name(base, read_schema(schema or ctx.settings.schema_file))
        ctx.admin.drop_database(name, if_exists=True)
    except PgTestDbError as exc:
        raise click.ClickException(str(exc)) from exc
    console.log(f"Dropped template {name}")


@cli.group()
def clones() -> None:
    """Manage clone databases."""


@clones.command('prune')
@click.option('--base-name', default=None, help='Template base name.')
@click.option('--yes', is_flag=True, help='Drop without asking.')
@click.pass_obj
def prune(ctx: Context, base_name: str | None, yes: bool) -> None:
    """Drop clones left behind, e.g. by tests that leaked connections."""
    _, leftovers = ctx.matching(ctx.base_name(base_name))
    if not leftovers:
        console.log("No clone databases found.")
        return

    for name in leftovers:
        console.print(f"  {name}")
    if not yes and not click.confirm(f"Drop {len(leftovers)} clone database(s)?"):
        return

    failures = 0
    for name in leftovers:
        try:
            ctx.admin.drop_database(name, if_exists=True)
            console.log(f"Dropped {name}")
        except PgTestDbError as exc:
            failures += 1
            console.log(f"[red]{exc}[/red]")
    if failures:
        raise click.ClickException(f"{failures} clone database(s) could not be dropped")


if __name__ == '__main__':
    cli()
