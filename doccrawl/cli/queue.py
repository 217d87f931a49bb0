"""doccrawl queue command - Inspect and feed the crawl queue."""

from typing import List

import typer
from rich.console import Console
from rich.table import Table

from doccrawl.cli.error_handler import handle_errors
from doccrawl.exceptions import NotFoundError

app = typer.Typer(help="Inspect and feed the crawl queue.")
console = Console()


def _open_catalog():
    """Catalog on the configured database, creating tables on first use."""
    from doccrawl.catalog import Catalog
    from doccrawl.config import get_config
    from doccrawl.database.connection import create_tables, get_session_maker, init_engine

    config = get_config()
    create_tables(init_engine(config))
    return Catalog(get_session_maker(config))


@app.command("add")
@handle_errors
def add_paths(
    import_paths: List[str] = typer.Argument(
        ...,
        help="Import paths to queue as new crawl targets.",
    ),
) -> None:
    """Queue import paths that have never been crawled.

    Paths already cataloged, already queued or known to be bad are skipped.

    Example:
        doccrawl queue add github.com/user/repo example.com/pkg
    """
    catalog = _open_catalog()

    for import_path in import_paths:
        if catalog.add_new_crawl(import_path):
            console.print(f"[green]✓[/green] Queued {import_path}")
        else:
            console.print(f"[dim]- Skipped {import_path} (known, queued or bad)[/dim]")


@app.command("bump")
@handle_errors
def bump_paths(
    import_paths: List[str] = typer.Argument(
        ...,
        help="Import paths to re-crawl as soon as possible.",
    ),
) -> None:
    """Request a priority re-crawl.

    Known packages become due immediately; unknown paths are queued.

    Example:
        doccrawl queue bump github.com/user/repo
    """
    catalog = _open_catalog()

    for import_path in import_paths:
        catalog.bump_crawl(import_path)
        console.print(f"[green]✓[/green] Bumped {import_path}")


@app.command("pending")
@handle_errors
def pending(
    limit: int = typer.Option(
        50,
        "--limit",
        "-l",
        help="Maximum number of targets to show.",
        min=1,
    ),
) -> None:
    """Show queued new crawl targets, oldest first.

    Example:
        doccrawl queue pending --limit 10
    """
    catalog = _open_catalog()

    total = catalog.pending_count()
    paths = catalog.pending(limit)

    if not paths:
        console.print("[yellow]Crawl queue is empty[/yellow]")
        return

    table = Table(title=f"Crawl Queue ({total} pending)")
    table.add_column("#", style="dim")
    table.add_column("Import Path", style="cyan")

    for i, import_path in enumerate(paths, 1):
        table.add_row(str(i), import_path)

    console.print(table)
    if total > len(paths):
        console.print(f"[dim]... and {total - len(paths)} more[/dim]")


@app.command("show")
@handle_errors
def show_package(
    import_path: str = typer.Argument(
        ...,
        help="Import path of a cataloged package.",
    ),
) -> None:
    """Show the stored state of a package.

    Example:
        doccrawl queue show github.com/user/repo
    """
    catalog = _open_catalog()

    package, subdirs, next_crawl = catalog.get(import_path)
    if package is None:
        raise NotFoundError(f"Package not found: {import_path}")

    table = Table(title=import_path, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Name", package.name or "[dim](directory)[/dim]")
    table.add_row("Synopsis", package.synopsis)
    table.add_row("Project root", package.project_root)
    table.add_row("Etag", package.etag)
    table.add_row("Next crawl", next_crawl.strftime("%Y-%m-%d %H:%M:%S") if next_crawl else "N/A")
    table.add_row("Suppressed", "yes" if package.suppressed else "no")
    table.add_row("Imports", str(len(package.imports)))
    table.add_row("Imported by", str(catalog.importer_count(import_path)))
    table.add_row("Subdirectories", str(len(subdirs)))

    console.print(table)
