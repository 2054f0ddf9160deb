"""Launch orchestration: region selection, submission and readiness polling."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field

from lambda_cli.availability import AvailabilityResolver
from lambda_cli.config import WaitConfig
from lambda_cli.notify import InstanceReadyEvent, NotificationDispatcher
from lambda_cli.polling import PollingLoop, PollStatus
from lambdalabs import Instance, InstanceLaunchRequest, LambdaCloudClient
from lambdalabs.errors import (
    InstanceFailedError,
    InstanceTypeNotFoundError,
    LaunchReturnedNoInstanceIdError,
    SshKeyRequiredError,
)
from lambdalabs.models import InstanceStatus, InstanceTypeAvailability


log = logging.getLogger(__name__)


class ReadinessPolicy(str, Enum):
    """When a freshly launched instance counts as ready.

    ``active`` waits for the provider to report the instance active, for
    callers that hand out an SSH command right away. ``ip_assigned`` stops as
    soon as an address exists, whatever the status, for callers that only
    need to tell someone where the instance will be.
    """

    active = "active"
    ip_assigned = "ip-assigned"

    def is_ready(self, instance: Instance) -> bool:
        if self is ReadinessPolicy.active:
            return instance.status == InstanceStatus.active.value
        return bool(instance.ip)


class LaunchRequest(BaseModel):
    """What to launch. Exactly one instance is launched per request."""

    instance_type: str = Field(description="Instance type name, e.g. gpu_1x_a100")
    ssh_key: str = Field(description="SSH key name")
    name: str | None = Field(default=None, description="Instance name")
    region: str | None = Field(
        default=None, description="Region; auto-selected when omitted"
    )
    filesystem: str | None = Field(
        default=None, description="Filesystem to attach (same region)"
    )


@dataclass(frozen=True)
class LaunchResult:
    """A submitted launch. The region is final for this attempt."""

    instance_id: str
    region: str
    instance_type: str
    name: str | None = None


@dataclass(frozen=True)
class LaunchOutcome:
    """Where a launch ended up.

    ``ready`` is False when the wait budget ran out; the instance may still
    be starting and should be checked again later.
    """

    launch: LaunchResult
    ready: bool
    instance: Instance | None = None

    @property
    def instance_id(self) -> str:
        return self.launch.instance_id

    @property
    def region(self) -> str:
        return self.launch.region

    @property
    def ip(self) -> str | None:
        return self.instance.ip if self.instance else None


@dataclass
class BackgroundLaunch:
    """A submitted launch whose wait/notify phase runs as a detached task."""

    launch: LaunchResult
    task: asyncio.Task[LaunchOutcome | None] = field(repr=False)


class LaunchOrchestrator:
    """Runs a launch from region selection to a usable instance.

    Example:
        async with LambdaCloudClient(credentials) as client:
            orchestrator = LaunchOrchestrator(client, WaitConfig())
            outcome = await orchestrator.launch(
                LaunchRequest(instance_type="gpu_1x_a100", ssh_key="laptop")
            )
    """

    def __init__(
        self,
        client: LambdaCloudClient,
        wait: WaitConfig | None = None,
        *,
        availability: AvailabilityResolver | None = None,
    ) -> None:
        self.client = client
        self.wait = wait or WaitConfig()
        self.availability = availability or AvailabilityResolver(client)
        self._background: set[asyncio.Task[LaunchOutcome | None]] = set()

    @property
    def background_tasks(self) -> frozenset[asyncio.Task[LaunchOutcome | None]]:
        return frozenset(self._background)

    async def submit(self, request: LaunchRequest) -> LaunchResult:
        """Resolve the region and submit the launch.

        Validation happens before anything is created on the provider side.

        Raises:
            SshKeyRequiredError: If no SSH key name is given
            InstanceTypeNotFoundError: If the instance type doesn't exist
            RegionNotAvailableError: If the requested region has no capacity
            NoRegionsAvailableError: If no region has capacity
            LaunchReturnedNoInstanceIdError: If the launch response has no IDs
            ProviderRejectedError: If the API rejects the launch
        """
        if not request.ssh_key.strip():
            raise SshKeyRequiredError()

        region = await self.availability.resolve_region(
            request.instance_type, request.region
        )

        log.info(
            "Launching %s in %s%s",
            request.instance_type,
            region,
            f" as '{request.name}'" if request.name else "",
        )
        response = await self.client.launch_instance(
            InstanceLaunchRequest(
                region_name=region,
                instance_type_name=request.instance_type,
                ssh_key_names=[request.ssh_key],
                name=request.name,
                file_system_names=[request.filesystem] if request.filesystem else None,
            )
        )

        if not response.instance_ids:
            raise LaunchReturnedNoInstanceIdError().with_context(
                "launch instance", request.instance_type
            )

        instance_id = response.instance_ids[0]
        log.info("Instance %s launched in region %s", instance_id, region)
        return LaunchResult(
            instance_id=instance_id,
            region=region,
            instance_type=request.instance_type,
            name=request.name,
        )

    async def await_ready(
        self,
        launch: LaunchResult,
        policy: ReadinessPolicy = ReadinessPolicy.active,
        *,
        on_status: Callable[[Instance], None] | None = None,
        wait: WaitConfig | None = None,
    ) -> LaunchOutcome:
        """Poll the instance until ``policy`` is met.

        ``wait`` overrides the orchestrator's budget and interval for this call.

        Raises:
            InstanceFailedError: If the instance turns terminated or unhealthy
                before it is ready
        """
        wait = wait or self.wait
        loop = PollingLoop(interval=wait.poll_interval, timeout=wait.timeout)
        outcome = await loop.run(
            lambda: self.client.get_instance(launch.instance_id),
            ready=policy.is_ready,
            failed=lambda instance: instance.is_terminal,
            on_probe=on_status,
        )

        if outcome.status is PollStatus.failed:
            assert outcome.state is not None
            raise InstanceFailedError(
                launch.instance_id, outcome.state.status or "unknown"
            ).with_context("wait for instance")

        if outcome.status is PollStatus.timed_out:
            log.warning(
                "Instance %s not ready after %ss; it may still be starting",
                launch.instance_id,
                wait.timeout,
            )
            return LaunchOutcome(launch, ready=False, instance=outcome.state)

        return LaunchOutcome(launch, ready=True, instance=outcome.state)

    async def launch(
        self,
        request: LaunchRequest,
        policy: ReadinessPolicy = ReadinessPolicy.active,
        *,
        on_status: Callable[[Instance], None] | None = None,
    ) -> LaunchOutcome:
        """Submit a launch and wait for it; the caller is busy until done."""
        launch = await self.submit(request)
        return await self.await_ready(launch, policy, on_status=on_status)

    async def launch_in_background(
        self,
        request: LaunchRequest,
        notifier: NotificationDispatcher | None = None,
        policy: ReadinessPolicy = ReadinessPolicy.ip_assigned,
        *,
        wait: WaitConfig | None = None,
    ) -> BackgroundLaunch:
        """Submit a launch, then wait and notify in a detached task.

        Submission errors reach the caller. The detached task is
        fire-and-forget: nothing cancels it when the caller loses interest,
        it ends on readiness, terminal state or timeout, and its failures are
        logged rather than raised. ``wait`` sets its own budget and interval,
        defaulting to the orchestrator's.
        """
        launch = await self.submit(request)
        task = asyncio.create_task(
            self._await_and_notify(launch, notifier, policy, wait),
            name=f"await-ready-{launch.instance_id}",
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return BackgroundLaunch(launch, task)

    async def _await_and_notify(
        self,
        launch: LaunchResult,
        notifier: NotificationDispatcher | None,
        policy: ReadinessPolicy,
        wait: WaitConfig | None,
    ) -> LaunchOutcome | None:
        try:
            outcome = await self.await_ready(launch, policy, wait=wait)
        except InstanceFailedError as e:
            log.warning("%s, stopping notifications", e)
            return None

        if not outcome.ready:
            return outcome
        if notifier is None or outcome.ip is None:
            return outcome

        event = InstanceReadyEvent(
            instance_id=launch.instance_id,
            instance_name=launch.name,
            ip=outcome.ip,
            instance_type=launch.instance_type,
            region=launch.region,
        )
        for result in await notifier.send_all(event):
            if result.ok:
                log.info(
                    "%s notification sent for %s", result.channel, launch.instance_id
                )
            else:
                log.warning("%s", result.error)
        return outcome

    async def find_and_launch(
        self,
        request: LaunchRequest,
        *,
        interval: float,
        timeout: float | None = None,
        policy: ReadinessPolicy = ReadinessPolicy.active,
        on_check: Callable[[InstanceTypeAvailability | None], None] | None = None,
    ) -> LaunchOutcome | None:
        """Wait for capacity anywhere, then launch in the first available region.

        The first check runs immediately. Failed checks are retried on the
        next interval.

        Returns:
            Launch outcome, or None if no capacity appeared before ``timeout``

        Raises:
            SshKeyRequiredError: If no SSH key name is given
            InstanceTypeNotFoundError: If the instance type doesn't exist
        """
        if not request.ssh_key.strip():
            raise SshKeyRequiredError()

        loop = PollingLoop(interval=interval, timeout=timeout, probe_immediately=True)
        outcome = await loop.run(
            lambda: self.client.get_instance_type(request.instance_type),
            ready=lambda item: item is not None
            and bool(item.regions_with_capacity_available),
            failed=lambda item: item is None,
            on_probe=on_check,
        )

        if outcome.status is PollStatus.failed:
            raise InstanceTypeNotFoundError(request.instance_type)
        if outcome.status is PollStatus.timed_out:
            return None

        assert outcome.state is not None
        log.info(
            "Found %s available in: %s",
            request.instance_type,
            ", ".join(outcome.state.region_names),
        )
        return await self.launch(request.model_copy(update={"region": None}), policy)
