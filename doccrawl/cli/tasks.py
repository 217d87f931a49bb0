"""doccrawl tasks command - Inspect and run background tasks."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from doccrawl.cli.error_handler import handle_errors
from doccrawl.cli.exit_codes import ExitCode
from doccrawl.exceptions import NotFoundError

app = typer.Typer(help="Inspect and run the background tasks.")
console = Console()


@app.command("list")
@handle_errors
def list_tasks() -> None:
    """List the background tasks and their configured intervals.

    Example:
        doccrawl tasks list
    """
    from doccrawl.config import get_config
    from doccrawl.daemon.service import TASK_NAMES
    from doccrawl.scheduler.task_scheduler import DEFAULT_TICK
    from doccrawl.main import is_json
    from doccrawl.timeutil import format_duration

    config = get_config()
    intervals = {
        "github": config.tasks.github_interval,
        "crawl": config.tasks.crawl_interval,
        "suppress": config.tasks.suppress_interval,
    }

    if is_json():
        console.print_json(data=[
            {
                "id": task_id,
                "name": name,
                "interval": format_duration(intervals[task_id]),
                "enabled": intervals[task_id].total_seconds() > 0,
            }
            for task_id, name in TASK_NAMES.items()
        ])
        return

    table = Table(title="Background Tasks")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Interval", style="green")
    table.add_column("Status", style="bold")

    for task_id, name in TASK_NAMES.items():
        interval = intervals[task_id]
        status = "[green]enabled[/green]" if interval.total_seconds() > 0 else "[yellow]disabled[/yellow]"
        table.add_row(task_id, name, format_duration(interval), status)

    console.print(table)

    enabled = [i for i in intervals.values() if i.total_seconds() > 0]
    tick = min(enabled + [DEFAULT_TICK])
    console.print(f"[dim]Tick period: {format_duration(tick)}[/dim]")


@app.command("run")
@handle_errors
def run_task(
    task_id: str = typer.Argument(
        ...,
        help="Task to run now (crawl, github, suppress).",
    ),
    times: int = typer.Option(
        1,
        "--times",
        "-n",
        help="Number of consecutive runs.",
        min=1,
    ),
) -> None:
    """Run a background task immediately, outside of its schedule.

    Runs even when the task's interval is zero.

    Example:
        doccrawl tasks run crawl
        doccrawl tasks run crawl --times 20
        doccrawl tasks run github
    """
    from doccrawl.config import get_config
    from doccrawl.daemon.service import CrawlDaemon, TASK_NAMES

    if task_id not in TASK_NAMES:
        raise NotFoundError(
            f"Unknown task: {task_id}",
            details={"available": ", ".join(TASK_NAMES)},
        )
    name = TASK_NAMES[task_id]

    async def execute() -> Optional[str]:
        daemon = CrawlDaemon(get_config())
        try:
            scheduler = await daemon.setup()
            for _ in range(times):
                if not await scheduler.run_task(name):
                    task = scheduler.get_task(name)
                    return task.last_error if task else "unknown error"
            return None
        finally:
            await daemon.close()

    console.print(f"[bold]Running task:[/bold] {name}")
    error = asyncio.run(execute())

    if error is None:
        console.print("[green]✓[/green] Task completed")
    else:
        console.print(f"[red]✗[/red] Task failed: {error}")
        raise typer.Exit(code=ExitCode.GENERAL_ERROR)
