"""Error reporting for doccrawl commands.

Commands raise DocCrawlError subclasses (a locked catalog, a malformed
credentials string, an unknown task id) and let handle_errors turn them
into a red message on stderr and the exit code the exception carries.
"""

from functools import wraps
from typing import Callable, TypeVar, Any
import logging

import typer
from rich.console import Console

from doccrawl.cli.exit_codes import ExitCode
from doccrawl.exceptions import DocCrawlError

console = Console(stderr=True)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _report(e: DocCrawlError) -> None:
    logger.error(
        f"{e.__class__.__name__}: {e.message} [{ExitCode.get_name(e.exit_code)}]",
        extra={"exit_code": e.exit_code, "details": e.details},
    )
    console.print(f"[red]Error:[/red] {e.message}")
    for key, value in e.details.items():
        console.print(f"  [dim]{key}:[/dim] {value}")
    console.print(f"[dim]{ExitCode.get_description(e.exit_code)} (exit code {e.exit_code})[/dim]")


def handle_errors(func: F) -> F:
    """Report failures of a Typer command and exit with a matching code.

    DocCrawlError exits with the code the exception carries, Ctrl+C with
    130 and anything else with 1 after logging the traceback. typer.Exit
    raised by the command passes through untouched.

    Example:
        @app.command("pending")
        @handle_errors
        def pending():
            raise CatalogError("database is locked")  # exits 3
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except DocCrawlError as e:
            _report(e)
            raise typer.Exit(code=e.exit_code)

        except KeyboardInterrupt:
            console.print("\n[yellow]Cancelled.[/yellow]")
            logger.info("Command cancelled by KeyboardInterrupt")
            raise typer.Exit(code=ExitCode.CANCELLED)

        except typer.Exit:
            raise

        except Exception as e:
            logger.exception(f"Unexpected error in {func.__name__}")
            console.print(f"[red]Unexpected error:[/red] {e}")
            console.print("[dim]Run with --debug for the traceback[/dim]")
            raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    return wrapper  # type: ignore[return-value]
