"""Command line interface for the spec workflow.

This module provides the main CLI entry point using the Click framework. The
commands only wire collaborators together; all behavior lives in the library
modules.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from spec_workflow import __version__
from spec_workflow.approval_storage import ApprovalStorage
from spec_workflow.config import WorkflowSettings
from spec_workflow.dashboard.cli import run_dashboard
from spec_workflow.logging_setup import setup_logging
from spec_workflow.task_parser import TaskStatus
from spec_workflow.tools import manage_tasks_handler

console = Console()

STATUS_STYLES = {
    TaskStatus.PENDING.value: 'dim',
    TaskStatus.IN_PROGRESS.value: 'magenta',
    TaskStatus.COMPLETED.value: 'green',
}


def _project_path(project: Optional[str]) -> Path:
    return Path(project) if project else Path.cwd()


@click.group()
@click.version_option(version=__version__, prog_name="spec-workflow")
@click.option('-v', '--verbose', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Spec Workflow - Requirements → Design → Tasks → Implementation.

    Track spec tasks, answer approval requests and watch a project live.
    """
    setup_logging(logging.DEBUG if verbose else logging.INFO)
    ctx.obj = WorkflowSettings.from_env()


@main.command()
@click.option('-p', '--project', default=None, help='Project directory (default: current directory)')
@click.option('--polling', is_flag=True, help='Use a polling observer instead of native file events')
@click.pass_obj
def dashboard(settings: WorkflowSettings, project: Optional[str], polling: bool) -> None:
    """Watch the project and print every dashboard update."""
    if polling:
        settings.use_polling = True
    run_dashboard(_project_path(project), settings)


@main.group()
def tasks() -> None:
    """Inspect and update tasks.md of a spec."""
    pass


@tasks.command('list')
@click.argument('spec_name')
@click.option('-p', '--project', default=None, help='Project directory (default: current directory)')
def list_tasks(spec_name: str, project: Optional[str]) -> None:
    """List the tasks of SPEC_NAME."""
    response = asyncio.run(manage_tasks_handler(_project_path(project), spec_name, action='list'))
    if not response.success:
        console.print(f"[red]{response.message}[/red]")
        raise SystemExit(1)

    task_list = response.data.get('tasks', [])
    if not task_list:
        console.print(f"[yellow]{response.message}[/yellow]")
        return

    table = Table(title=f"Tasks for {spec_name}")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Description")

    for task in task_list:
        style = STATUS_STYLES.get(task['status'], 'white')
        indent = '  ' * task['indent_level']
        description = f"[bold]{task['description']}[/bold]" if task['is_header'] else task['description']
        table.add_row(task['id'], f"[{style}]{task['status']}[/{style}]", indent + description)

    console.print(table)
    console.print(f"[dim]{response.message}[/dim]")


@tasks.command('set-status')
@click.argument('spec_name')
@click.argument('task_id')
@click.argument('status', type=click.Choice([s.value for s in TaskStatus]))
@click.option('-p', '--project', default=None, help='Project directory (default: current directory)')
def set_task_status(spec_name: str, task_id: str, status: str, project: Optional[str]) -> None:
    """Set the status of TASK_ID in SPEC_NAME."""
    response = asyncio.run(manage_tasks_handler(
        _project_path(project), spec_name, action='set-status', task_id=task_id, status=status
    ))
    if not response.success:
        console.print(f"[red]{response.message}[/red]")
        raise SystemExit(1)
    console.print(f"✓ [green]{response.message}[/green]")


@main.group()
def approvals() -> None:
    """List and clean up approval requests."""
    pass


@approvals.command('list')
@click.option('-p', '--project', default=None, help='Project directory (default: current directory)')
@click.option('--pending', is_flag=True, help='Only show pending requests')
def list_approvals(project: Optional[str], pending: bool) -> None:
    """List approval requests, newest first."""
    storage = ApprovalStorage(_project_path(project))
    requests = asyncio.run(storage.list_pending() if pending else storage.list_all())

    if not requests:
        console.print("[dim]No approval requests found.[/dim]")
        return

    table = Table(title="Approval requests")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Category")
    table.add_column("Title")
    table.add_column("Created", style="dim")

    for request in requests:
        table.add_row(
            request.id,
            request.status.value,
            request.category_name,
            request.title,
            request.created_at.strftime('%Y-%m-%d %H:%M'),
        )
    console.print(table)


@approvals.command('cleanup')
@click.option('-p', '--project', default=None, help='Project directory (default: current directory)')
@click.option('--max-age-days', type=int, default=None, help='Age after which answered requests are removed')
@click.pass_obj
def cleanup_approvals(settings: WorkflowSettings, project: Optional[str], max_age_days: Optional[int]) -> None:
    """Remove answered approval requests older than the age limit."""
    max_age = max_age_days if max_age_days is not None else settings.approval_max_age_days
    removed = asyncio.run(ApprovalStorage(_project_path(project)).cleanup(max_age))
    console.print(f"✓ [green]Removed {removed} approval request(s) older than {max_age} days[/green]")


if __name__ == "__main__":
    main()
