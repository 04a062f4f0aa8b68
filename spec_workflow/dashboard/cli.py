"""Terminal front end for the live dashboard pipeline.

``DashboardManager`` wires the watchers, the broadcaster and a console
subscriber together and keeps them running until stopped.
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Callable, Optional

from rich.console import Console

from ..approval_storage import ApprovalStorage
from ..config import WorkflowSettings
from ..paths import ensure_workflow_directory, validate_project_path
from .broadcaster import EventBroadcaster
from .parser import SpecParser
from .watcher import ApprovalWatcher, SpecWatcher

console = Console()


class DashboardManager:
    """Manager for the dashboard functionality."""

    def __init__(self, project_path: Path, settings: Optional[WorkflowSettings] = None):
        self.project_path = Path(project_path)
        self.settings = settings or WorkflowSettings()
        self.parser: Optional[SpecParser] = None
        self.broadcaster: Optional[EventBroadcaster] = None
        self.spec_watcher: Optional[SpecWatcher] = None
        self.approval_watcher: Optional[ApprovalWatcher] = None
        self._disconnect: Optional[Callable[[], None]] = None
        self._stopped = asyncio.Event()

    async def start(self) -> None:
        """Start watching and print every broadcast until ``stop`` is called."""
        console.print("🚀 [bold cyan]Spec Workflow Dashboard[/bold cyan]")
        console.print("[dim]Real-time spec, task and approval monitoring[/dim]")
        console.print()

        self.project_path = await validate_project_path(self.project_path)
        await ensure_workflow_directory(self.project_path)

        self.parser = SpecParser(self.project_path)
        self.broadcaster = EventBroadcaster(self.project_path, self.parser, ApprovalStorage(self.project_path))
        self.spec_watcher = SpecWatcher(self.project_path, self.parser, self.settings)
        self.approval_watcher = ApprovalWatcher(self.project_path, self.settings)

        self.broadcaster.attach(self.spec_watcher, self.approval_watcher)
        await self.spec_watcher.start()
        await self.approval_watcher.start()

        console.print(f"✅ [green]Dashboard running for project: {self.project_path}[/green]")
        console.print("[dim]Press Ctrl+C to stop the dashboard[/dim]")
        console.print()

        self._disconnect = await self.broadcaster.connect(self._print_message)
        await self._stopped.wait()

    async def stop(self) -> None:
        """Tear down the subscriber, the broadcaster and both watchers."""
        self._stopped.set()
        if self._disconnect is not None:
            self._disconnect()
            self._disconnect = None
        if self.broadcaster is not None:
            self.broadcaster.close()
        for watcher in (self.spec_watcher, self.approval_watcher):
            if watcher is not None:
                await watcher.stop()

    async def _print_message(self, message: dict) -> None:
        message_type = message.get('type')
        data = message.get('data')

        if message_type == 'initial':
            self._print_specs(data['specs'])
            console.print(f"[bold]Pending approvals:[/bold] {len(data['approvals'])}")
            console.print()
        elif message_type == 'update':
            console.print(
                f"📝 [cyan]Spec change detected:[/cyan] {data['spec_name']}/{data['document'] or ''} ({data['action']})"
            )
        elif message_type == 'task-status-update':
            summary = data['summary']
            console.print(
                f"✔️  [green]Tasks updated:[/green] {data['spec_name']} "
                f"{summary['completed']}/{summary['total']} completed"
            )
            if data['in_progress']:
                console.print(f"   In progress: [magenta]{data['in_progress']}[/magenta]")
        elif message_type == 'steering-update':
            documents = [name for name, present in data['documents'].items() if present]
            console.print(f"📋 [magenta]Steering change detected:[/magenta] {', '.join(documents) or 'no documents'}")
        elif message_type == 'approval-update':
            console.print(f"🔔 [yellow]Approvals changed:[/yellow] {len(data)} pending")
        elif message_type == 'spec-update':
            console.print(
                f"🗂️  [blue]Specs changed:[/blue] {len(data['specs'])} active, {len(data['archived_specs'])} archived"
            )

    def _print_specs(self, specs: list) -> None:
        if not specs:
            console.print("[dim]No specs found in this project.[/dim]")
            return

        console.print(f"[bold]Found {len(specs)} spec(s):[/bold]")
        console.print()
        for spec in specs:
            console.print(f"📊 [bold]{spec['display_name']}[/bold]")
            progress = spec.get('task_progress')
            if progress and progress['total'] > 0:
                progress_pct = progress['completed'] / progress['total'] * 100
                console.print(f"   Progress: {progress['completed']}/{progress['total']} tasks ({progress_pct:.1f}%)")
            console.print()


def run_dashboard(project_path: Path, settings: WorkflowSettings) -> None:
    """Run the dashboard until interrupted."""

    async def run() -> None:
        dashboard = DashboardManager(project_path, settings)

        def signal_handler():
            console.print("\n[yellow]Shutting down dashboard...[/yellow]")
            asyncio.create_task(dashboard.stop())

        if sys.platform != 'win32':
            loop = asyncio.get_running_loop()
            for sig in [signal.SIGINT, signal.SIGTERM]:
                loop.add_signal_handler(sig, signal_handler)

        try:
            await dashboard.start()
        except Exception as e:
            console.print(f"[red]Dashboard error: {e}[/red]")
        finally:
            await dashboard.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Dashboard stopped[/yellow]")
