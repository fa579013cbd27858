"""datlib CLI — inspect and manage the local archive library."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from datlib import __version__
from datlib.config import LibraryConfig, load_config, load_engine_factory
from datlib.errors import ConfigError, LibraryError

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default=None, type=click.Path(dir_okay=False), help="YAML config file")
@click.option("--library-dir", "-d", default=None, help="Library directory (overrides config)")
@click.option("--verbose", "-v", is_flag=True, help="Show library log output")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, library_dir: str | None, verbose: bool):
    """datlib — a local library of distributed archives.

    Keeps an index of the archives you care about and opens them through
    the configured archive engine.
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )
    try:
        config = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    if library_dir:
        config.library_dir = Path(library_dir).expanduser()
    ctx.obj = config


def _run(config: LibraryConfig, operation):
    """Start a library, run ``operation`` against it, and shut it down."""
    from datlib.registry.library import Library

    if not config.engine:
        raise click.ClickException(
            "No archive engine configured. Set DATLIB_ENGINE or 'engine' in the config file."
        )
    try:
        factory = load_engine_factory(config.engine)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    async def session():
        library = Library(config, factory)
        await library.init()
        try:
            return await operation(library)
        finally:
            await library.shutdown()

    try:
        return asyncio.run(session())
    except LibraryError as e:
        console.print(f"[red]Error:[/] {e}")
        raise SystemExit(1) from e


# ── Library ──────────────────────────────────────────────────────────


@main.command(name="list")
@click.pass_obj
def list_library(config: LibraryConfig):
    """List all archives in the library."""

    async def op(library):
        return await library.list_library()

    records = _run(config, op)
    if not records:
        console.print("[yellow]Library is empty.[/]")
        return

    table = Table(title=f"Library ({len(records)} archives)")
    table.add_column("URL", style="cyan")
    table.add_column("Title")
    table.add_column("Owner", justify="center")
    table.add_column("Description")

    for record in sorted(records, key=lambda r: r.url):
        owner = "[green]Y[/]" if record.owner else "[red]N[/]"
        table.add_row(record.url, record.title or "", owner, (record.description or "")[:50])

    console.print(table)


@main.command(name="open")
@click.pass_obj
def open_archives(config: LibraryConfig):
    """Show the archives opened at startup."""

    async def op(library):
        return library.get_open_archives()

    entries = _run(config, op)
    if not entries:
        console.print("[yellow]No open archives.[/]")
        return

    table = Table(title=f"Open archives ({len(entries)})")
    table.add_column("Address", style="cyan")
    table.add_column("URL")
    table.add_column("Last used", justify="right")
    for entry in entries:
        last_used = f"{entry.last_used:.0f}" if entry.last_used is not None else "-"
        table.add_row(entry.address, entry.url, last_used)
    console.print(table)


@main.command()
@click.pass_obj
def report(config: LibraryConfig):
    """Run startup reconciliation and print what it did."""

    async def op(library):
        return library.report

    result = _run(config, op)
    console.print(Panel(result.summary(), title="Reconcile Result", border_style="green" if result.ok else "yellow"))
    for failure in result.failures:
        console.print(f"  [red]x[/] {failure.item}: {failure.reason}")
    for url in result.pruned:
        console.print(f"  [yellow]pruned[/] {url}")


# ── Archives ─────────────────────────────────────────────────────────


@main.command()
@click.option("--title", "-t", default=None, help="Archive title")
@click.option("--description", default=None, help="Archive description")
@click.pass_obj
def create(config: LibraryConfig, title: str | None, description: str | None):
    """Create a new archive and add it to the library."""
    options = {k: v for k, v in (("title", title), ("description", description)) if v is not None}

    async def op(library):
        return await library.create_archive(**options)

    url = _run(config, op)
    console.print(f"[green]Created:[/] {url}")


@main.command()
@click.argument("source_url")
@click.option("--title", "-t", default=None, help="Title for the fork")
@click.option("--description", default=None, help="Description for the fork")
@click.pass_obj
def fork(config: LibraryConfig, source_url: str, title: str | None, description: str | None):
    """Fork SOURCE_URL into a new archive owned by this library."""
    options = {k: v for k, v in (("title", title), ("description", description)) if v is not None}

    async def op(library):
        return await library.fork_archive(source_url, **options)

    url = _run(config, op)
    console.print(f"[green]Forked:[/] {source_url} -> {url}")


@main.command()
@click.argument("url")
@click.pass_obj
def remove(config: LibraryConfig, url: str):
    """Remove URL from the library.

    Only the library entry is deleted. An owned archive's files stay on disk,
    so once the library is empty the next start finds it again and
    re-registers it.
    """

    async def op(library):
        return await library.remove(url)

    record = _run(config, op)
    console.print(f"[green]Removed:[/] {record.url} ({record.title or 'untitled'})")


if __name__ == "__main__":
    main()
