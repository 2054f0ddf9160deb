"""Operations exposed to the agent tool server.

Every operation returns plain text for the agent to read. Errors propagate as
``LambdaError`` for the dispatch layer to report.
"""

from __future__ import annotations

import logging

from lambda_cli.config import WaitConfig
from lambda_cli.launch import LaunchOrchestrator, LaunchRequest, ReadinessPolicy
from lambda_cli.notify import NotificationDispatcher
from lambdalabs import Filesystem, Instance, InstanceTypeCatalogEntry, LambdaCloudClient


log = logging.getLogger(__name__)

# Polling budget for readiness tracking after start_instance.
BACKGROUND_WAIT = WaitConfig(timeout=600, poll_interval=10)


def format_instance_types(types: list[InstanceTypeCatalogEntry]) -> str:
    output = "Available GPU Instance Types:\n\n"
    for t in types:
        availability = (
            ", ".join(t.regions_available) if t.regions_available else "No availability"
        )
        output += (
            f"• {t.name} - {t.description}\n"
            f"  Price: ${t.price_dollars:.2f}/hr | vCPUs: {t.vcpus} | "
            f"RAM: {t.memory_gib} GiB | Storage: {t.storage_gib} GiB\n"
            f"  Regions: {availability}\n\n"
        )
    return output


def format_instances(instances: list[Instance]) -> str:
    if not instances:
        return "No running instances."
    output = "Running Instances:\n\n"
    for inst in instances:
        ssh_keys = ", ".join(inst.ssh_key_names) if inst.ssh_key_names else "N/A"
        output += (
            f"• ID: {inst.id or 'N/A'}\n"
            f"  Name: {inst.name or '-'} | Type: {inst.type_name or 'N/A'} | "
            f"Region: {inst.region_name or 'N/A'}\n"
            f"  Status: {inst.status or 'unknown'} | IP: {inst.ip or 'N/A'}\n"
            f"  SSH Keys: {ssh_keys}\n\n"
        )
    return output


def format_bytes(size: int) -> str:
    """Decimal units, two decimals above one kilobyte."""
    for unit, scale in (("GB", 1_000_000_000), ("MB", 1_000_000), ("KB", 1_000)):
        if size > scale:
            return f"{size / scale:.2f} {unit}"
    return f"{size} B"


def format_filesystems(filesystems: list[Filesystem]) -> str:
    if not filesystems:
        return "No filesystems."
    output = "Filesystems:\n\n"
    for fs in filesystems:
        output += (
            f"• {fs.name} ({fs.created.isoformat()})\n"
            f"  ID: {fs.id}\n"
            f"  Mount: {fs.mount_point}\n"
            f"  Region: {fs.region.name}\n"
            f"  In Use: {'Yes' if fs.is_in_use else 'No'} | "
            f"Size: {format_bytes(fs.bytes_used)}\n\n"
        )
    return output


class LambdaToolService:
    """Long-lived service handling concurrent tool calls.

    The client and notifier are owned by the caller and must stay open for
    as long as the service runs, including background notification tasks.
    Those tasks poll under ``background_wait``, not the orchestrator's
    interactive budget.
    """

    def __init__(
        self,
        client: LambdaCloudClient,
        orchestrator: LaunchOrchestrator,
        notifier: NotificationDispatcher | None = None,
        *,
        background_wait: WaitConfig | None = None,
    ) -> None:
        self.client = client
        self.orchestrator = orchestrator
        self.background_wait = background_wait or BACKGROUND_WAIT
        self.notifier = notifier if notifier and notifier.config.is_configured else None
        if self.notifier is not None:
            log.info(
                "Notifications configured for: %s", ", ".join(self.notifier.channels)
            )
        else:
            log.info("No notification channels configured")

    async def list_gpu_types(self) -> str:
        return format_instance_types(await self.client.list_instance_types())

    async def start_instance(
        self,
        gpu: str,
        ssh_key: str,
        name: str | None = None,
        region: str | None = None,
        filesystem: str | None = None,
    ) -> str:
        """Launch and return immediately; readiness notifications follow."""
        background = await self.orchestrator.launch_in_background(
            LaunchRequest(
                instance_type=gpu,
                ssh_key=ssh_key,
                name=name,
                region=region,
                filesystem=filesystem,
            ),
            self.notifier,
            ReadinessPolicy.ip_assigned,
            wait=self.background_wait,
        )
        launch = background.launch

        fs_info = f"\nFilesystem: {filesystem}" if filesystem else ""
        if self.notifier is not None:
            notify_status = (
                f"\n\nNotifications enabled for: {', '.join(self.notifier.channels)}. "
                "You will be notified when the instance is SSH-able."
            )
        else:
            notify_status = ""
        return (
            f"Instance launched successfully!\n\n"
            f"Instance ID: {launch.instance_id}\n"
            f"Region: {launch.region}{fs_info}\n\n"
            f"The instance is booting. Use list_running_instances to check its "
            f"status and get the IP address.{notify_status}"
        )

    async def stop_instance(self, instance_id: str) -> str:
        await self.client.terminate_instances([instance_id])
        return f"Instance {instance_id} has been terminated."

    async def list_running_instances(self) -> str:
        return format_instances(await self.client.list_instances())

    async def check_availability(self, gpu: str) -> str:
        regions = await self.orchestrator.availability.available_regions(gpu)
        if not regions:
            return f"{gpu} is not currently available in any region."
        names = ", ".join(region.name for region in regions)
        return f"{gpu} is available in: {names}"

    async def list_filesystems(self) -> str:
        return format_filesystems(await self.client.list_filesystems())

    async def create_filesystem(self, name: str, region: str) -> str:
        fs = await self.client.create_filesystem(name, region)
        return (
            f"Filesystem created successfully!\n\n"
            f"Name: {fs.name}\nID: {fs.id}\nRegion: {fs.region.name}\n"
            f"Mount Point: {fs.mount_point}"
        )

    async def delete_filesystem(self, filesystem_id: str) -> str:
        await self.client.delete_filesystem(filesystem_id)
        return f"Filesystem {filesystem_id} has been deleted."
