"""doccrawl command line.

Global flags set the log level and JSON output for the run, tasks, queue
and config command groups registered here.
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from doccrawl import __app_name__, __version__
from doccrawl.cli import config, queue, run, tasks
from doccrawl.cli.exit_codes import ExitCode
from doccrawl.logs import DEBUG_FORMAT, DEFAULT_FORMAT, configure_logging

app = typer.Typer(
    name=__app_name__,
    help="doccrawl - Background crawl scheduler for a package documentation index.",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

app.add_typer(run.app, name="run")
app.add_typer(tasks.app, name="tasks")
app.add_typer(queue.app, name="queue")
app.add_typer(config.app, name="config")

# Global flags, read back by the command groups
_global_state: dict[str, bool] = {
    "verbose": False,
    "debug": False,
    "json": False,
    "quiet": False,
}


def version_callback(value: bool) -> None:
    if value:
        console.print(f"{__app_name__} v{__version__}")
        raise typer.Exit(code=ExitCode.SUCCESS)


def _console_level(verbose: bool, debug: bool, quiet: bool) -> int:
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    if quiet:
        return logging.ERROR
    return logging.WARNING


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Log at INFO level.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Log at DEBUG level with source locations.",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print the task listing as JSON.",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log errors.",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Also log to this file, always at DEBUG level.",
    ),
) -> None:
    """doccrawl - Background crawl scheduler for a package documentation index.

    [bold]Core Commands:[/bold]

    • [cyan]run[/cyan] - Start the background task daemon
    • [cyan]tasks[/cyan] - Inspect and run the background tasks by hand
    • [cyan]queue[/cyan] - Inspect and feed the crawl queue
    • [cyan]config[/cyan] - Manage configuration

    [bold]Examples:[/bold]

        doccrawl run --daemon
        doccrawl tasks run crawl
        doccrawl queue add github.com/user/repo

    For more help on a specific command, use: [cyan]doccrawl <command> --help[/cyan]
    """
    _global_state["verbose"] = verbose
    _global_state["debug"] = debug
    _global_state["json"] = json_output
    _global_state["quiet"] = quiet

    if quiet and verbose:
        console.print("[red]Error:[/red] --quiet and --verbose are mutually exclusive")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    if quiet and debug:
        console.print("[red]Error:[/red] --quiet and --debug are mutually exclusive")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    # The log file always gets DEBUG records
    configure_logging(
        _console_level(verbose, debug, quiet),
        DEBUG_FORMAT if debug else DEFAULT_FORMAT,
        log_file=log_file,
        file_level=logging.DEBUG,
        console=not quiet,
    )

    logger = logging.getLogger(__name__)
    logger.debug(f"doccrawl v{__version__} starting")


def get_global_option(name: str) -> bool:
    """Value of a global flag; unknown names read as False."""
    return _global_state.get(name, False)


def is_json() -> bool:
    return get_global_option("json")


__all__ = [
    "app",
    "console",
    "get_global_option",
    "is_json",
]


if __name__ == "__main__":
    app()
