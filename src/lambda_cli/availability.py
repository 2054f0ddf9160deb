"""Region selection from published capacity."""

from __future__ import annotations

import logging

from lambdalabs import LambdaCloudClient, Region
from lambdalabs.errors import (
    InstanceTypeNotFoundError,
    NoRegionsAvailableError,
    RegionNotAvailableError,
)


log = logging.getLogger(__name__)


class AvailabilityResolver:
    """Validates or picks a launch region for an instance type.

    Capacity is fetched fresh on every call.
    """

    def __init__(self, client: LambdaCloudClient) -> None:
        self.client = client

    async def available_regions(self, instance_type: str) -> list[Region]:
        """Regions currently reporting capacity for ``instance_type``.

        Raises:
            InstanceTypeNotFoundError: If the type doesn't exist
        """
        item = await self.client.get_instance_type(instance_type)
        if item is None:
            raise InstanceTypeNotFoundError(instance_type)
        return item.regions_with_capacity_available

    async def resolve_region(
        self, instance_type: str, requested_region: str | None = None
    ) -> str:
        """Pick the launch region.

        An explicitly requested region must have capacity. Otherwise the
        first region in the provider's listing wins.

        Raises:
            InstanceTypeNotFoundError: If the type doesn't exist
            RegionNotAvailableError: If the requested region has no capacity
            NoRegionsAvailableError: If no region has capacity
        """
        names = [region.name for region in await self.available_regions(instance_type)]

        if requested_region is not None:
            if requested_region not in names:
                raise RegionNotAvailableError(requested_region, instance_type, names)
            return requested_region

        if not names:
            raise NoRegionsAvailableError(instance_type)
        log.debug("Auto-selected region %s for %s", names[0], instance_type)
        return names[0]
