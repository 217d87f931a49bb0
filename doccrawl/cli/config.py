"""doccrawl config command - Configuration management."""

from typing import Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from doccrawl.cli.error_handler import handle_errors
from doccrawl.cli.exit_codes import ExitCode

app = typer.Typer(help="Manage doccrawl configuration.")
console = Console()

SECTIONS = ("tasks", "crawl", "github", "logging", "paths")


@app.command("show")
@handle_errors
def show_config(
    section: Optional[str] = typer.Argument(
        None,
        help="Configuration section to show (tasks, crawl, github, logging, paths).",
    ),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format (table, yaml, json).",
    ),
    unmask: bool = typer.Option(
        False,
        "--unmask",
        help="Show unmasked secrets (use with caution).",
    ),
) -> None:
    """Show current configuration.

    Example:
        doccrawl config show
        doccrawl config show tasks
        doccrawl config show --format yaml
    """
    from doccrawl.config import get_config, config_to_dict, export_config_yaml, export_config_json

    config = get_config()

    if format == "yaml":
        console.print(Syntax(export_config_yaml(config, mask_secrets=not unmask), "yaml", theme="monokai"))
        return
    if format == "json":
        console.print(Syntax(export_config_json(config, mask_secrets=not unmask), "json", theme="monokai"))
        return
    if format != "table":
        console.print(f"[red]Unknown format: {format}[/red]")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    data = config_to_dict(config, mask_secrets=not unmask)
    sections = {
        "tasks": data["tasks"],
        "crawl": data["crawl"],
        "github": data["github"],
        "logging": data["logging"],
        "paths": {
            "config_dir": data["config_dir"],
            "data_dir": data["data_dir"],
            "database_url": data["database_url"],
        },
    }

    if section and section not in sections:
        console.print(f"[red]Unknown section: {section}[/red]")
        raise typer.Exit(code=ExitCode.INVALID_ARGUMENT)

    for name in [section] if section else SECTIONS:
        table = Table(title=name.capitalize())
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")

        for key, value in sections[name].items():
            table.add_row(key, "" if value is None else str(value))

        console.print(table)
        console.print()


@app.command("init")
@handle_errors
def init_config(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing configuration.",
    ),
    interactive: bool = typer.Option(
        True,
        "--interactive/--no-interactive",
        "-i/-I",
        help="Ask for task intervals and credentials.",
    ),
) -> None:
    """Write a configuration file with default values.

    Example:
        doccrawl config init
        doccrawl config init --no-interactive --force
    """
    import os
    from pathlib import Path

    from doccrawl.config import (
        DocCrawlConfig,
        ensure_directories,
        get_config_path,
        parse_github_auth,
        save_config,
    )
    from doccrawl.exceptions import ConfigurationError
    from doccrawl.timeutil import format_duration, parse_duration

    config_path = get_config_path()

    if config_path.exists() and not force:
        console.print(f"[yellow]Configuration already exists at {config_path}[/yellow]")
        console.print("Use --force to overwrite")
        raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    console.print("[bold]Initializing doccrawl configuration...[/bold]")
    console.print()

    config = DocCrawlConfig(config_dir=config_path.parent)
    if data_dir := os.environ.get("DOCCRAWL_DATA_DIR"):
        config.data_dir = Path(data_dir)
        config.database_url = f"sqlite:///{config.data_dir}/doccrawl.db"

    if interactive:
        console.print("[bold cyan]Task intervals[/bold cyan]")
        console.print("  [dim]Durations like 10s, 5m or 1h; 0 disables the task[/dim]")

        for attr, label in (
            ("crawl_interval", "Crawl"),
            ("github_interval", "GitHub updates"),
            ("suppress_interval", "Suppress packages"),
        ):
            default = format_duration(getattr(config.tasks, attr))
            value = typer.prompt(f"  {label} interval", default=default)
            try:
                setattr(config.tasks, attr, parse_duration(value))
            except ValueError as e:
                raise ConfigurationError(f"Invalid {label} interval: {e}") from e

        console.print()
        console.print("[bold cyan]Document service[/bold cyan]")
        config.crawl.document_service_url = typer.prompt(
            "  Document service URL",
            default=config.crawl.document_service_url,
        )

        console.print()
        console.print("[bold cyan]GitHub[/bold cyan]")
        credentials = typer.prompt(
            "  Credentials (client_id=...&client_secret=..., optional)",
            default="",
            hide_input=True,
        )
        parse_github_auth(credentials)
        config.github.credentials = credentials or None

    ensure_directories(config)
    save_config(config, config_path)

    # Owner read/write only
    config_path.chmod(0o600)

    console.print()
    console.print(f"[green]✓[/green] Configuration initialized at {config_path}")


@app.command("path")
def config_path() -> None:
    """Show configuration file path.

    Example:
        doccrawl config path
    """
    from doccrawl.config import get_config_path

    config_file_path = get_config_path()
    console.print(f"[bold]Config directory:[/bold] {config_file_path.parent}")
    console.print(f"[bold]Config file:[/bold] {config_file_path}")
    console.print(f"[bold]Exists:[/bold] {config_file_path.exists()}")


@app.command("validate")
@handle_errors
def validate_config() -> None:
    """Validate current configuration.

    Example:
        doccrawl config validate
    """
    from doccrawl.config import get_config, get_config_path, validate_config as do_validate

    config = get_config()
    config_path = get_config_path()

    console.print("[bold]Validating configuration...[/bold]")
    console.print()

    if config_path.exists():
        console.print(f"  [green]✓[/green] Config file exists [dim]({config_path})[/dim]")
    else:
        console.print(f"  [yellow]![/yellow] No config file, using defaults [dim]({config_path})[/dim]")

    all_passed = True
    errors = do_validate(config)

    if errors:
        console.print()
        console.print("[bold yellow]Validation Results:[/bold yellow]")
        for error in errors:
            if error.severity == "error":
                status = "[red]✗[/red]"
                all_passed = False
            else:
                status = "[yellow]![/yellow]"
            console.print(f"  {status} [{error.severity.upper()}] {error.field}: {error.message}")

    console.print()
    if all_passed:
        console.print("[green]Configuration is valid[/green]")
    else:
        console.print("[red]Configuration has errors[/red]")
        raise typer.Exit(code=ExitCode.CONFIGURATION_ERROR)


@app.command("env")
def show_env_vars() -> None:
    """Show supported environment variables.

    Example:
        doccrawl config env
    """
    console.print("[bold]Supported Environment Variables[/bold]")
    console.print()

    env_vars = [
        ("DOCCRAWL_CRAWL_INTERVAL", "Crawl task interval", "10s"),
        ("DOCCRAWL_GITHUB_INTERVAL", "GitHub updates task interval", "5m"),
        ("DOCCRAWL_SUPPRESS_INTERVAL", "Suppress packages task interval", "24h"),
        ("DOCCRAWL_MAX_AGE", "Time between refreshes of a package", "24h"),
        ("DOCCRAWL_DOCUMENT_SERVICE_URL", "Document service base URL", "http://localhost:8081"),
        ("DOCCRAWL_GITHUB_CREDENTIALS", "GitHub OAuth app credentials", "client_id=..&client_secret=.."),
        ("DOCCRAWL_GITHUB_API_URL", "GitHub API base URL", "https://api.github.com"),
        ("DOCCRAWL_LOG_LEVEL", "Logging level", "DEBUG/INFO/WARNING/ERROR"),
        ("DOCCRAWL_CONFIG_DIR", "Configuration directory path", "~/.config/doccrawl"),
        ("DOCCRAWL_DATA_DIR", "Data directory path", "~/.local/share/doccrawl"),
        ("DOCCRAWL_DATABASE_URL", "Database connection URL", "sqlite:///..."),
    ]

    table = Table()
    table.add_column("Variable", style="cyan")
    table.add_column("Description", style="white")
    table.add_column("Example Value", style="green")

    for var, desc, example in env_vars:
        table.add_row(var, desc, example)

    console.print(table)
