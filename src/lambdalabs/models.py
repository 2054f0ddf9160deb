"""Pydantic models for Lambda Cloud API payloads.

Fields that the API omits while a resource is still being provisioned are
optional; parsing never depends on them.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class InstanceStatus(str, Enum):
    """Instance status values the API is known to report."""

    active = "active"
    booting = "booting"
    unhealthy = "unhealthy"
    terminated = "terminated"
    terminating = "terminating"


TERMINAL_STATUSES = frozenset(
    {InstanceStatus.terminated.value, InstanceStatus.unhealthy.value}
)


# Regions and instance types


class Region(_ApiModel):
    """Provider zone."""

    name: str
    description: str = ""


class InstanceSpecs(_ApiModel):
    vcpus: int
    memory_gib: int
    storage_gib: int
    gpus: int = 0


class InstanceType(_ApiModel):
    name: str | None = None
    description: str = ""
    gpu_description: str | None = None
    price_cents_per_hour: int
    specs: InstanceSpecs


class InstanceTypeAvailability(_ApiModel):
    """One entry of the instance-types listing."""

    instance_type: InstanceType
    regions_with_capacity_available: list[Region] = Field(default_factory=list)

    @property
    def region_names(self) -> list[str]:
        return [region.name for region in self.regions_with_capacity_available]


class InstanceTypes(RootModel[dict[str, InstanceTypeAvailability]]):
    """Instance types keyed by name."""


class InstanceTypeCatalogEntry(BaseModel):
    """Flattened, display-ready view of an instance type and its capacity."""

    name: str
    description: str
    price_cents_per_hour: int
    vcpus: int
    memory_gib: int
    storage_gib: int
    regions_available: list[str]

    @classmethod
    def from_availability(
        cls, name: str, item: InstanceTypeAvailability
    ) -> InstanceTypeCatalogEntry:
        it = item.instance_type
        return cls(
            name=name,
            description=it.description,
            price_cents_per_hour=it.price_cents_per_hour,
            vcpus=it.specs.vcpus,
            memory_gib=it.specs.memory_gib,
            storage_gib=it.specs.storage_gib,
            regions_available=item.region_names,
        )

    @property
    def price_dollars(self) -> float:
        return self.price_cents_per_hour / 100


# Instances


class InstanceTypeRef(_ApiModel):
    name: str | None = None


class RegionRef(_ApiModel):
    name: str | None = None


class Instance(_ApiModel):
    """Instance as reported by the API."""

    id: str | None = None
    name: str | None = None
    status: str | None = None
    ip: str | None = None
    ssh_key_names: list[str] | None = None
    instance_type: InstanceTypeRef | None = None
    region: RegionRef | None = None

    @property
    def type_name(self) -> str | None:
        return self.instance_type.name if self.instance_type else None

    @property
    def region_name(self) -> str | None:
        return self.region.name if self.region else None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class InstanceLaunchRequest(_ApiModel):
    region_name: str
    instance_type_name: str
    ssh_key_names: list[str]
    quantity: Literal[1] = 1
    name: str | None = None
    file_system_names: list[str] | None = None


class InstanceLaunchResponse(_ApiModel):
    instance_ids: list[str] = Field(default_factory=list)


class InstanceModificationRequest(_ApiModel):
    name: str


class InstanceTerminateRequest(_ApiModel):
    instance_ids: list[str]


class InstanceTerminateResponse(_ApiModel):
    terminated_instances: list[Instance] = Field(default_factory=list)


# Filesystems


class Filesystem(_ApiModel):
    """Persistent filesystem. Attachable only to instances in its region."""

    id: str
    name: str
    mount_point: str
    created: datetime
    region: Region
    is_in_use: bool
    bytes_used: int = 0

    @field_validator("bytes_used", mode="before")
    @classmethod
    def _null_bytes_used(cls, value: object) -> object:
        return 0 if value is None else value


class FilesystemCreateRequest(_ApiModel):
    name: str
    region_name: str


class FilesystemDeleteResponse(_ApiModel):
    deleted_ids: list[str] = Field(default_factory=list)


# Errors


class ApiErrorDetail(_ApiModel):
    code: str | None = None
    message: str
    suggestion: str | None = None


class ApiErrorResponse(_ApiModel):
    error: ApiErrorDetail
