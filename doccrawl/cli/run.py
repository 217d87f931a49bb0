"""doccrawl run command - Start the background task daemon."""

import asyncio
import atexit
import logging
import os
import signal
import sys
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from doccrawl.cli.error_handler import handle_errors
from doccrawl.cli.exit_codes import ExitCode
from doccrawl.logs import configure_logging, parse_level

app = typer.Typer(help="Start the doccrawl daemon that runs the background tasks.")
console = Console()

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to configuration file.",
    exists=True,
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
)


def _start(config_file: Optional[Path], daemon: bool, verbose: bool) -> None:
    from doccrawl.config import load_config, ensure_directories
    from doccrawl.daemon.pid import PIDFile, default_pid_path
    from doccrawl.daemon.service import run_daemon, daemonize

    config = load_config(config_file)
    ensure_directories(config)

    pid_file = PIDFile(default_pid_path(config.data_dir))

    if pid_file.is_running():
        console.print("[red]Error: Daemon is already running[/red]")
        console.print(f"[yellow]PID: {pid_file.read()}[/yellow]")
        raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    pid_file.clear_if_stale()

    console.print("[bold green]Starting doccrawl daemon...[/bold green]")

    if verbose:
        console.print(f"Config: {config_file or 'default'}")
        console.print(f"Daemon mode: {daemon}")
        console.print(f"Data directory: {config.data_dir}")
        console.print(f"Database: {config.database_url}")

    # Set up logging before daemonization
    log_file = config.logging.file
    if daemon and log_file is None:
        log_file = config.data_dir / "daemon.log"
    level = logging.DEBUG if verbose else parse_level(config.logging.level)
    configure_logging(level, config.logging.format, log_file=log_file)

    if daemon:
        if sys.platform == "win32":
            console.print("[yellow]Warning: Daemon mode not supported on Windows, running in foreground[/yellow]")
        else:
            console.print("[dim]Forking to background...[/dim]")
            daemonize(log_file)

    # In the child process when daemonized
    try:
        pid_file.create()
    except OSError as e:
        console.print(f"[red]Error: Failed to create PID file: {e}[/red]")
        raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    atexit.register(pid_file.remove)

    try:
        asyncio.run(run_daemon(config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")


@app.callback(invoke_without_command=True)
@handle_errors
def run(
    ctx: typer.Context,
    config_file: Optional[Path] = ConfigOption,
    daemon: bool = typer.Option(
        False,
        "--daemon",
        "-d",
        help="Run in background as daemon.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging.",
    ),
) -> None:
    """Start the doccrawl daemon.

    The daemon runs three background tasks on their configured intervals:
    - Crawl: crawl a new import path, or refresh the most overdue package
    - GitHub updates: bump recently pushed GitHub repositories
    - Suppress packages: hide packages nobody uses

    Example:
        doccrawl run
        doccrawl run --daemon
        doccrawl run --config ./doccrawl.toml --verbose
    """
    if ctx.invoked_subcommand is not None:
        return
    _start(config_file, daemon, verbose)


@app.command()
def status(config_file: Optional[Path] = ConfigOption) -> None:
    """Check daemon status.

    Example:
        doccrawl run status
    """
    from doccrawl.config import load_config
    from doccrawl.daemon.pid import PIDFile, default_pid_path

    config = load_config(config_file)
    pid_file = PIDFile(default_pid_path(config.data_dir))

    if pid_file.is_running():
        console.print(f"[green]● Daemon is running[/green] (PID: {pid_file.read()})")
        console.print(f"  Data directory: {config.data_dir}")
        console.print(f"  Config directory: {config.config_dir}")
        console.print(f"  Database: {config.database_url}")
    else:
        console.print("[yellow]○ Daemon is not running[/yellow]")
        if pid_file.clear_if_stale():
            console.print("[dim]  (removed stale PID file)[/dim]")


@app.command()
def stop(
    config_file: Optional[Path] = ConfigOption,
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Force kill the daemon (SIGKILL).",
    ),
) -> None:
    """Stop the daemon.

    Sends SIGTERM for a graceful shutdown, or SIGKILL with --force.

    Example:
        doccrawl run stop
        doccrawl run stop --force
    """
    from doccrawl.config import load_config
    from doccrawl.daemon.pid import PIDFile, default_pid_path

    config = load_config(config_file)
    pid_file = PIDFile(default_pid_path(config.data_dir))

    pid = pid_file.read()

    if pid is None:
        console.print("[yellow]Daemon is not running (no PID file found)[/yellow]")
        raise typer.Exit()

    if not pid_file.is_running():
        console.print("[yellow]Daemon is not running (stale PID file)[/yellow]")
        pid_file.remove()
        raise typer.Exit()

    sig = signal.SIGKILL if force else signal.SIGTERM

    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        console.print("[yellow]Daemon process not found (already stopped)[/yellow]")
        pid_file.remove()
        return
    except PermissionError:
        console.print(f"[red]Permission denied: cannot signal process {pid}[/red]")
        raise typer.Exit(code=ExitCode.GENERAL_ERROR)
    except OSError as e:
        console.print(f"[red]Error signaling daemon: {e}[/red]")
        raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    if force:
        console.print(f"[red]Force killed daemon (PID: {pid})[/red]")
        pid_file.remove()
    else:
        console.print(f"[green]Shutdown signal sent to daemon (PID: {pid})[/green]")
        console.print("[dim]Daemon will shut down gracefully...[/dim]")


@app.command()
@handle_errors
def restart(
    config_file: Optional[Path] = ConfigOption,
    daemon: bool = typer.Option(
        False,
        "--daemon",
        "-d",
        help="Run in background as daemon.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging.",
    ),
) -> None:
    """Restart the daemon.

    Stops the running daemon (if any) and starts a new one.

    Example:
        doccrawl run restart --daemon
    """
    from doccrawl.config import load_config
    from doccrawl.daemon.pid import PIDFile, default_pid_path

    config = load_config(config_file)
    pid_file = PIDFile(default_pid_path(config.data_dir))

    pid = pid_file.get_pid()
    if pid is not None:
        console.print("[yellow]Stopping existing daemon...[/yellow]")
        try:
            os.kill(pid, signal.SIGTERM)
            for _ in range(10):
                time.sleep(0.5)
                if not pid_file.is_running():
                    break

            if pid_file.is_running():
                console.print("[red]Daemon did not stop gracefully, forcing...[/red]")
                os.kill(pid, signal.SIGKILL)
            else:
                console.print("[green]Daemon stopped[/green]")
        except OSError:
            pass
        pid_file.remove()

    _start(config_file, daemon, verbose)
