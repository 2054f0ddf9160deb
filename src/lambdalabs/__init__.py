"""Lambda Labs Cloud API client library."""

from lambdalabs.client import API_BASE_URL, LambdaCloudClient
from lambdalabs.credentials import CredentialResolver
from lambdalabs.errors import (
    CredentialCommandFailedError,
    CredentialMissingError,
    ErrorKind,
    InstanceFailedError,
    InstanceTypeNotFoundError,
    InvalidResponseError,
    LambdaError,
    LaunchReturnedNoInstanceIdError,
    NoRegionsAvailableError,
    ProviderRejectedError,
    RegionNotAvailableError,
    RequestFailedError,
    SshKeyRequiredError,
)
from lambdalabs.models import (
    Filesystem,
    Instance,
    InstanceLaunchRequest,
    InstanceLaunchResponse,
    InstanceStatus,
    InstanceTerminateResponse,
    InstanceTypeAvailability,
    InstanceTypeCatalogEntry,
    Region,
)


__version__ = "0.3.0"

__all__ = [
    "API_BASE_URL",
    "CredentialCommandFailedError",
    "CredentialMissingError",
    "CredentialResolver",
    "ErrorKind",
    "Filesystem",
    "Instance",
    "InstanceFailedError",
    "InstanceLaunchRequest",
    "InstanceLaunchResponse",
    "InstanceStatus",
    "InstanceTerminateResponse",
    "InstanceTypeAvailability",
    "InstanceTypeCatalogEntry",
    "InstanceTypeNotFoundError",
    "InvalidResponseError",
    "LambdaCloudClient",
    "LambdaError",
    "LaunchReturnedNoInstanceIdError",
    "NoRegionsAvailableError",
    "ProviderRejectedError",
    "Region",
    "RegionNotAvailableError",
    "RequestFailedError",
    "SshKeyRequiredError",
]
