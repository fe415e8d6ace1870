#!/usr/bin/env python3
"""
dbadapter CLI - connectivity checks for the SQL Server adapter

Usage:
    dbadapter-check --help
    dbadapter-check connect
    dbadapter-check query "SELECT ? AS V" -p 42
    dbadapter-check tables
    dbadapter-check describe Orders

Install:
    pip install -e .  # From repo root
"""

import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable, List, Sequence

import click
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from dbadapter import __version__
from dbadapter.adapters.base import AdapterError
from dbadapter.adapters.sqlserver_adapter import SqlServerAdapter
from dbadapter.core.config import settings

# =============================================================================
# CONFIGURATION
# =============================================================================

console = Console()


def parse_param(value: str) -> Any:
    """Read a -p value as JSON when possible (42, true, null), else as text."""
    try:
        return json.loads(value)
    except ValueError:
        return value


def build_adapter(options: dict) -> SqlServerAdapter:
    info = settings.connection_info(**options)
    return SqlServerAdapter(info)


def run_with_adapter(ctx, action: Callable[[SqlServerAdapter], Awaitable[Any]]) -> Any:
    """Init an adapter, run one action against it, always close it."""

    async def _session():
        adapter = build_adapter(ctx.obj["connection"])
        await adapter.init()
        try:
            return await action(adapter)
        finally:
            await adapter.close()

    try:
        return asyncio.run(_session())
    except AdapterError as e:
        console.print(f"\n[bold red]{type(e).__name__}[/bold red]")
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


def print_rows(rows: List[dict], title: str, output_json: bool):
    if output_json:
        console.print(Syntax(json.dumps(rows, indent=2, default=str), "json"))
        return

    if not rows:
        console.print("[yellow]No rows returned[/yellow]")
        return

    table = Table(title=title, show_header=True)
    for column in rows[0].keys():
        table.add_column(str(column), style="cyan")
    for row in rows:
        table.add_row(*["" if value is None else str(value) for value in row.values()])

    console.print(table)
    console.print(f"[dim]{len(rows)} row(s)[/dim]")


# =============================================================================
# MAIN CLI GROUP
# =============================================================================

@click.group()
@click.option("--server", envvar="SQLSERVER_SERVER", help="Server, optionally HOST\\INSTANCE")
@click.option("--database", envvar="SQLSERVER_DATABASE", help="Database name")
@click.option("--user", envvar="SQLSERVER_USER", help="SQL login (omit for Windows authentication)")
@click.option("--password", envvar="SQLSERVER_PASSWORD", help="SQL login password")
@click.option("--port", type=int, envvar="SQLSERVER_PORT", help="Server port")
@click.option("--driver", envvar="SQLSERVER_DRIVER",
              type=click.Choice(["auto", "direct", "pooled", "fallback"]),
              help="Connection backend")
@click.option("--driver-version", envvar="SQLSERVER_DRIVER_VERSION", help="ODBC Driver version (direct backend)")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.option("-v", "--verbose", is_flag=True, help="Show connection logs")
@click.version_option(version=__version__, prog_name="dbadapter-check")
@click.pass_context
def cli(ctx, server, database, user, password, port, driver, driver_version, output_json, verbose):
    """
    dbadapter CLI - check SQL Server connectivity through the adapter.

    \b
    Environment Variables:
        SQLSERVER_SERVER    - Server name (HOST or HOST\\INSTANCE)
        SQLSERVER_DATABASE  - Database name (default: master)
        SQLSERVER_USER      - Username
        SQLSERVER_PASSWORD  - Password
        SQLSERVER_DRIVER    - auto, direct, pooled or fallback
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO),
        format="[%(levelname)s] %(name)s: %(message)s",
    )

    ctx.ensure_object(dict)
    ctx.obj["connection"] = {
        "server": server,
        "database": database,
        "user": user,
        "password": password,
        "port": port,
        "driver": driver,
        "driver_version": driver_version,
    }
    ctx.obj["output_json"] = output_json


# =============================================================================
# COMMANDS
# =============================================================================

@cli.command()
@click.pass_context
def connect(ctx):
    """Connect, read the server version and disconnect."""

    async def _version(adapter: SqlServerAdapter):
        rows = await adapter.all("SELECT @@VERSION AS Version")
        return adapter.get_metadata(), rows

    metadata, rows = run_with_adapter(ctx, _version)
    version = rows[0].get("Version", "") if rows else ""

    if ctx.obj.get("output_json"):
        console.print(Syntax(json.dumps({**metadata, "version": version}, indent=2), "json"))
        return

    console.print(Panel(
        f"[green bold]CONNECTED[/green bold]\n"
        f"[dim]{metadata['server']} / {metadata['database']} via {metadata['connection_method']}[/dim]",
        title="SQL Server",
        expand=False
    ))
    console.print(version)


@cli.command()
@click.argument("sql")
@click.option("-p", "--param", "params", multiple=True, help="Positional parameter value (repeatable)")
@click.pass_context
def query(ctx, sql: str, params: Sequence[str]):
    """Run SQL with ? placeholders and print the rows."""
    values = [parse_param(p) for p in params]

    async def _all(adapter: SqlServerAdapter):
        return await adapter.all(sql, values)

    rows = run_with_adapter(ctx, _all)
    print_rows(rows, "Results", ctx.obj.get("output_json"))


@cli.command()
@click.pass_context
def tables(ctx):
    """List base tables in the database."""

    async def _tables(adapter: SqlServerAdapter):
        return await adapter.all(adapter.get_list_tables_query())

    rows = run_with_adapter(ctx, _tables)
    print_rows(rows, "Tables", ctx.obj.get("output_json"))


@cli.command()
@click.argument("table_name")
@click.pass_context
def describe(ctx, table_name: str):
    """Show the columns of a table."""

    async def _describe(adapter: SqlServerAdapter):
        return await adapter.all(adapter.get_describe_table_query(table_name))

    rows = run_with_adapter(ctx, _describe)
    print_rows(rows, f"Table: {table_name}", ctx.obj.get("output_json"))


# =============================================================================
# ENTRY POINT
# =============================================================================

def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
