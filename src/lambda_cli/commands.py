"""Command implementations using command pattern."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, ClassVar, Literal

from pydantic import Field, TypeAdapter
from rich.panel import Panel
from rich.table import Table

from lambda_cli.command_base import BaseCommand, BaseCommandConfig, CommandError
from lambda_cli.launch import (
    LaunchOrchestrator,
    LaunchOutcome,
    LaunchRequest,
    ReadinessPolicy,
)
from lambda_cli.notify import InstanceReadyEvent, NotificationDispatcher
from lambda_cli.service import format_bytes
from lambdalabs import Instance, InstanceStatus, ProviderRejectedError
from lambdalabs.models import InstanceTypeAvailability


STATUS_STYLES = {
    InstanceStatus.active.value: "bold green",
    InstanceStatus.booting.value: "bold yellow",
    InstanceStatus.unhealthy.value: "bold red",
    InstanceStatus.terminated.value: "dim",
}


def ssh_command(ip: str, username: str) -> str:
    """Generate SSH command string.

    Args:
        ip: Instance IP address
        username: SSH username

    Returns:
        SSH command string
    """
    return f"ssh {username}@{ip}"


# ============================================================================
# Validate Command
# ============================================================================


class ValidateCommand(BaseCommand):
    """Check that the configured API key is accepted."""

    config: ValidateCommandConfig

    async def run(self) -> None:
        """Execute validate command."""
        async with self.client() as client:
            with self.console.status("[bold cyan]Validating API key..."):
                await client.validate_credential()
        self.console.print("[green]API key is valid[/green]")


class ValidateCommandConfig(BaseCommandConfig):
    """Configuration for validate command (bare invocation)."""

    command: Literal["validate"] = "validate"

    _command_class: ClassVar[type[BaseCommand]] = ValidateCommand


# ============================================================================
# List Command
# ============================================================================


class ListCommand(BaseCommand):
    """List instance types with pricing and current capacity."""

    config: ListCommandConfig

    async def run(self) -> None:
        """Execute list command."""
        async with self.client() as client:
            entries = await client.list_instance_types()

        if self.config.available_only:
            entries = [e for e in entries if e.regions_available]

        if not entries:
            self.console.print("[dim]No instance types found[/dim]")
            return

        table = Table(title="Lambda Cloud Instance Types")
        table.add_column("Instance Type", no_wrap=True)
        table.add_column("Description")
        table.add_column("Price ($/hr)", style="yellow", justify="right")
        table.add_column("vCPUs", justify="right")
        table.add_column("Memory (GiB)", justify="right")
        table.add_column("Storage (GiB)", justify="right")
        table.add_column("Available Regions")

        for entry in entries:
            if entry.regions_available:
                name = f"[green]{entry.name}[/green]"
                regions = f"[blue]{', '.join(entry.regions_available)}[/blue]"
            else:
                name = f"[dim]{entry.name}[/dim]"
                regions = "[red]None[/red]"

            table.add_row(
                name,
                entry.description,
                f"${entry.price_dollars:.2f}",
                str(entry.vcpus),
                str(entry.memory_gib),
                str(entry.storage_gib),
                regions,
            )

        self.console.print(table)

        available_count = sum(1 for e in entries if e.regions_available)
        self.console.print(
            f"\n[bold]{available_count}[/bold] of {len(entries)} instance types have capacity available"
        )


class ListCommandConfig(BaseCommandConfig):
    """Configuration for list command."""

    command: Literal["list"] = "list"
    available_only: bool = Field(
        description="Show only instance types with available capacity"
    )

    _command_class: ClassVar[type[BaseCommand]] = ListCommand


# ============================================================================
# Running Command
# ============================================================================


class RunningCommand(BaseCommand):
    """List running instances."""

    config: RunningCommandConfig

    async def run(self) -> None:
        """Execute running command."""
        async with self.client() as client:
            instances = await client.list_instances()

        if not instances:
            self.console.print("[yellow]No running instances[/yellow]")
            return

        table = Table(title="Lambda Cloud Instances")
        table.add_column("Instance ID", style="cyan", no_wrap=True)
        table.add_column("Name", style="white")
        table.add_column("Type", style="yellow")
        table.add_column("Region", style="blue")
        table.add_column("Status")
        table.add_column("IP Address", style="green")
        table.add_column("SSH Keys")

        for inst in instances:
            status = inst.status or "N/A"
            style = STATUS_STYLES.get(status)
            table.add_row(
                inst.id or "N/A",
                inst.name or "-",
                inst.type_name or "N/A",
                inst.region_name or "N/A",
                f"[{style}]{status}[/{style}]" if style else status,
                inst.ip or "N/A",
                ", ".join(inst.ssh_key_names) if inst.ssh_key_names else "N/A",
            )

        self.console.print(table)


class RunningCommandConfig(BaseCommandConfig):
    """Configuration for running command."""

    command: Literal["running"] = "running"

    _command_class: ClassVar[type[BaseCommand]] = RunningCommand


# ============================================================================
# Start Command
# ============================================================================


class StartCommand(BaseCommand):
    """Launch an instance and wait until it is active."""

    config: StartCommandConfig

    def _request(self) -> LaunchRequest:
        return LaunchRequest(
            instance_type=self.config.instance_type,
            ssh_key=self.config.ssh_key_name,
            name=self.config.instance_name,
            region=self.config.region,
            filesystem=self.config.filesystem_name,
        )

    async def run(self) -> None:
        """Execute start command."""
        async with self.client() as client:
            orchestrator = LaunchOrchestrator(client, self.config.wait)

            with self.console.status(
                f"[bold green]Launching {self.config.instance_type}..."
            ):
                launch = await orchestrator.submit(self._request())

            self.console.print(
                f"[green]✓[/green] Instance [cyan]{launch.instance_id}[/cyan] "
                f"launched in region [blue]{launch.region}[/blue]"
            )

            if not self.config.wait_after_launch:
                return

            with self.console.status(
                "[bold cyan]Waiting for instance to become active..."
            ) as status:

                def show(instance: Instance) -> None:
                    status.update(
                        f"[bold cyan]Polling...[/bold cyan] Status: "
                        f"[yellow]{instance.status or 'unknown'}[/yellow]"
                    )

                outcome = await orchestrator.await_ready(
                    launch, ReadinessPolicy.active, on_status=show
                )

        await self._report(outcome)

    async def _report(self, outcome: LaunchOutcome) -> None:
        if not outcome.ready:
            self.console.print(
                "[yellow]Timeout:[/yellow] Instance may still be starting. "
                "Check status with: lambda command=running"
            )
            return

        if outcome.ip is None:
            self.console.print(
                "[bold green]Ready![/bold green] Instance is active but IP not yet assigned"
            )
            return

        self.console.print(
            Panel(
                ssh_command(outcome.ip, username=self.config.ssh.username),
                title=f"Instance {outcome.instance_id} is active",
                border_style="green",
            )
        )
        if self.config.filesystem_name:
            self.console.print(
                f"\n[bold]Persistent Storage:[/bold] /lambda/nfs/{self.config.filesystem_name}"
            )

        if self.config.notify_when_ready and self.config.notify.is_configured:
            await self._notify(outcome, outcome.ip)

    async def _notify(self, outcome: LaunchOutcome, ip: str) -> None:
        event = InstanceReadyEvent(
            instance_id=outcome.instance_id,
            instance_name=outcome.launch.name,
            ip=ip,
            instance_type=outcome.launch.instance_type,
            region=outcome.region,
        )
        async with NotificationDispatcher(self.config.notify) as notifier:
            results = await notifier.send_all(event)

        for result in results:
            if result.ok:
                self.console.print(f"[green]✓[/green] {result.channel} notified")
            else:
                self.console.print(f"[yellow]⚠[/yellow] {result.error}")


class StartCommandConfig(BaseCommandConfig):
    """Configuration for start (launch) command."""

    command: Literal["start"] = "start"
    instance_type: str = Field(description="Instance type name")
    ssh_key_name: str = Field(description="SSH key name")
    instance_name: str | None = Field(description="Instance name")
    region: str | None = Field(description="Region, auto-selected if unset")
    filesystem_name: str | None = Field(description="Filesystem name to attach")
    wait_after_launch: bool = Field(description="Wait for instance to be ready")
    notify_when_ready: bool = Field(
        description="Notify configured channels once the instance is active"
    )

    _command_class: ClassVar[type[BaseCommand]] = StartCommand


# ============================================================================
# Find Command
# ============================================================================


class FindCommand(BaseCommand):
    """Poll for capacity and launch as soon as the instance type is available."""

    config: FindCommandConfig

    async def run(self) -> None:
        """Execute find command."""
        request = LaunchRequest(
            instance_type=self.config.instance_type,
            ssh_key=self.config.ssh_key_name,
            name=self.config.instance_name,
        )
        self.console.print(
            f"Looking for available [green]{self.config.instance_type}[/green] "
            f"instances (polling every {self.config.interval}s)..."
        )
        self.console.print("Press Ctrl+C to stop\n")

        async with self.client() as client:
            orchestrator = LaunchOrchestrator(client, self.config.wait)
            with self.console.status("[bold cyan]Checking availability...") as status:

                def show(item: InstanceTypeAvailability | None) -> None:
                    checked = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
                    if item is not None and item.regions_with_capacity_available:
                        status.update(
                            f"[bold green]Found[/bold green] in "
                            f"[blue]{', '.join(item.region_names)}[/blue], launching..."
                        )
                    else:
                        status.update(
                            f"[bold cyan]{self.config.instance_type}[/bold cyan] "
                            f"[red]No availability[/red] (last checked {checked}, "
                            f"next check in {self.config.interval}s)"
                        )

                outcome = await orchestrator.find_and_launch(
                    request,
                    interval=self.config.interval,
                    timeout=self.config.give_up_after,
                    on_check=show,
                )

        if outcome is None:
            raise CommandError(
                f"No capacity for {self.config.instance_type} "
                f"within {self.config.give_up_after}s"
            )

        self.console.print(
            f"[green]✓[/green] Instance [cyan]{outcome.instance_id}[/cyan] "
            f"launched in region [blue]{outcome.region}[/blue]"
        )
        if outcome.ready and outcome.ip:
            self.console.print(
                Panel(
                    ssh_command(outcome.ip, username=self.config.ssh.username),
                    title="SSH Command",
                    border_style="green",
                )
            )
        else:
            self.console.print(
                "[yellow]Timeout:[/yellow] Instance may still be starting. "
                "Check status with: lambda command=running"
            )


class FindCommandConfig(BaseCommandConfig):
    """Configuration for find command."""

    command: Literal["find"] = "find"
    instance_type: str = Field(description="Instance type to find")
    ssh_key_name: str = Field(description="SSH key name to use when launching")
    instance_name: str | None = Field(description="Instance name")
    interval: float = Field(description="Polling interval in seconds", gt=0)
    give_up_after: float | None = Field(
        description="Stop looking after this many seconds (unset: never)"
    )

    _command_class: ClassVar[type[BaseCommand]] = FindCommand


# ============================================================================
# Stop Command
# ============================================================================


class StopCommand(BaseCommand):
    """Terminate an instance."""

    config: StopCommandConfig

    async def run(self) -> None:
        """Execute stop command."""
        async with self.client() as client:
            with self.console.status(
                f"[bold red]Terminating instance {self.config.instance_id}..."
            ):
                await client.terminate_instances([self.config.instance_id])

        self.console.print(
            f"[green]✓[/green] Instance [cyan]{self.config.instance_id}[/cyan] terminated"
        )


class StopCommandConfig(BaseCommandConfig):
    """Configuration for stop (terminate) command."""

    command: Literal["stop"] = "stop"
    instance_id: str = Field(description="Instance ID to terminate")

    _command_class: ClassVar[type[BaseCommand]] = StopCommand


# ============================================================================
# Rename Command
# ============================================================================

RENAME_UNSUPPORTED = (
    "Instance renaming is not supported by the Lambda Labs API. "
    "You can set a name when launching with: lambda command=start "
    "instance_type=<type> ssh_key_name=<key> instance_name=<name>"
)


class RenameCommand(BaseCommand):
    """Rename an existing instance."""

    config: RenameCommandConfig

    async def run(self) -> None:
        """Execute rename command."""
        async with self.client() as client:
            with self.console.status(
                f"[bold cyan]Renaming instance {self.config.instance_id} "
                f"to '{self.config.name}'..."
            ):
                try:
                    await client.rename_instance(
                        self.config.instance_id, self.config.name
                    )
                except ProviderRejectedError as e:
                    if e.status in (404, 405):
                        raise CommandError(RENAME_UNSUPPORTED) from e
                    raise

        self.console.print(
            f"[green]✓[/green] Instance [cyan]{self.config.instance_id}[/cyan] "
            f"renamed to '[green]{self.config.name}[/green]'"
        )


class RenameCommandConfig(BaseCommandConfig):
    """Configuration for rename command."""

    command: Literal["rename"] = "rename"
    instance_id: str = Field(description="Instance ID to rename")
    name: str = Field(description="New instance name")

    _command_class: ClassVar[type[BaseCommand]] = RenameCommand


# ============================================================================
# Filesystem Commands
# ============================================================================


class FilesystemsCommand(BaseCommand):
    """List filesystems."""

    config: FilesystemsCommandConfig

    async def run(self) -> None:
        """Execute filesystems command."""
        async with self.client() as client:
            filesystems = await client.list_filesystems()

        if not filesystems:
            self.console.print("[dim]No filesystems found[/dim]")
            return

        for fs in filesystems:
            in_use_display = (
                "[green]In use[/green]" if fs.is_in_use else "[dim]Not in use[/dim]"
            )

            table = Table(
                show_header=False,
                box=None,
                padding=(0, 1),
                expand=False,
            )
            table.add_column(style="dim", justify="right", no_wrap=True)
            table.add_column(style="white")

            self.console.print(f"\n[bold cyan]{fs.name}[/bold cyan]")
            table.add_row("ID:", fs.id)
            table.add_row("Region:", fs.region.name)
            table.add_row("Mount Point:", fs.mount_point)
            table.add_row("Status:", in_use_display)
            table.add_row("Size:", format_bytes(fs.bytes_used))
            table.add_row("Created:", fs.created.strftime("%Y-%m-%d %H:%M:%S"))

            self.console.print(table)

        self.console.print(f"\n[bold]{len(filesystems)}[/bold] total filesystems")


class FilesystemsCommandConfig(BaseCommandConfig):
    """Configuration for filesystems command."""

    command: Literal["filesystems"] = "filesystems"

    _command_class: ClassVar[type[BaseCommand]] = FilesystemsCommand


class CreateFilesystemCommand(BaseCommand):
    """Create a filesystem."""

    config: CreateFilesystemCommandConfig

    async def run(self) -> None:
        """Execute fs-create command."""
        async with self.client() as client:
            with self.console.status(
                f"[bold green]Creating filesystem {self.config.name}..."
            ):
                fs = await client.create_filesystem(self.config.name, self.config.region)

        self.console.print(
            f"[green]✓[/green] Filesystem [cyan]{fs.name}[/cyan] ({fs.id}) created in "
            f"[blue]{fs.region.name}[/blue], mounted at {fs.mount_point}"
        )


class CreateFilesystemCommandConfig(BaseCommandConfig):
    """Configuration for fs-create command."""

    command: Literal["fs-create"] = "fs-create"
    name: str = Field(description="Filesystem name")
    region: str = Field(description="Region to create the filesystem in")

    _command_class: ClassVar[type[BaseCommand]] = CreateFilesystemCommand


class DeleteFilesystemCommand(BaseCommand):
    """Delete a filesystem."""

    config: DeleteFilesystemCommandConfig

    async def run(self) -> None:
        """Execute fs-delete command."""
        async with self.client() as client:
            with self.console.status(
                f"[bold red]Deleting filesystem {self.config.filesystem_id}..."
            ):
                await client.delete_filesystem(self.config.filesystem_id)

        self.console.print(
            f"[green]✓[/green] Filesystem [cyan]{self.config.filesystem_id}[/cyan] deleted"
        )


class DeleteFilesystemCommandConfig(BaseCommandConfig):
    """Configuration for fs-delete command."""

    command: Literal["fs-delete"] = "fs-delete"
    filesystem_id: str = Field(description="Filesystem ID to delete")

    _command_class: ClassVar[type[BaseCommand]] = DeleteFilesystemCommand


# ============================================================================
# Discriminated Union
# ============================================================================

CommandConfig = Annotated[
    ValidateCommandConfig
    | ListCommandConfig
    | RunningCommandConfig
    | StartCommandConfig
    | FindCommandConfig
    | StopCommandConfig
    | RenameCommandConfig
    | FilesystemsCommandConfig
    | CreateFilesystemCommandConfig
    | DeleteFilesystemCommandConfig,
    Field(discriminator="command"),
]

# Type adapter for validation
command_adapter: TypeAdapter[CommandConfig] = TypeAdapter(CommandConfig)
