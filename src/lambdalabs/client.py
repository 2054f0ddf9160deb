"""Lambda Labs Cloud API async client."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, TypeVar

import aiohttp
from pydantic import BaseModel, TypeAdapter, ValidationError

from lambdalabs.credentials import CredentialResolver
from lambdalabs.errors import (
    InvalidResponseError,
    ProviderRejectedError,
    RequestFailedError,
)
from lambdalabs.models import (
    ApiErrorResponse,
    Filesystem,
    FilesystemCreateRequest,
    FilesystemDeleteResponse,
    Instance,
    InstanceLaunchRequest,
    InstanceLaunchResponse,
    InstanceModificationRequest,
    InstanceTerminateRequest,
    InstanceTerminateResponse,
    InstanceTypeAvailability,
    InstanceTypeCatalogEntry,
    InstanceTypes,
)


log = logging.getLogger(__name__)

T = TypeVar("T")

API_BASE_URL = "https://cloud.lambdalabs.com/api/v1"
DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=30, connect=10)
UNKNOWN_ERROR = "Unknown error"

# Type adapters for response data
instance_list_adapter = TypeAdapter(list[Instance])
instance_adapter = TypeAdapter(Instance)
instance_launch_response_adapter = TypeAdapter(InstanceLaunchResponse)
instance_terminate_response_adapter = TypeAdapter(InstanceTerminateResponse)
instance_types_adapter = TypeAdapter(InstanceTypes)
filesystem_list_adapter = TypeAdapter(list[Filesystem])
filesystem_adapter = TypeAdapter(Filesystem)
filesystem_delete_response_adapter = TypeAdapter(FilesystemDeleteResponse)
ignore_adapter = TypeAdapter(Any)


def parse_error_message(text: str) -> tuple[str, str | None]:
    """Extract ``(message, code)`` from an error body.

    Falls back to ``"Unknown error"`` when the body is empty or not the
    documented ``{"error": {"message": ...}}`` shape.
    """
    if not text:
        return UNKNOWN_ERROR, None
    try:
        parsed = ApiErrorResponse.model_validate_json(text)
    except ValidationError:
        return UNKNOWN_ERROR, None
    return parsed.error.message, parsed.error.code


class LambdaCloudClient:
    """Async Lambda Cloud API client.

    Example:
        credentials = CredentialResolver(api_key="sk_xxx")
        async with LambdaCloudClient(credentials) as client:
            instances = await client.list_instances()
            for instance in instances:
                print(instance.id, instance.status)
    """

    def __init__(
        self,
        credentials: CredentialResolver,
        base_url: str = API_BASE_URL,
        *,
        timeout: aiohttp.ClientTimeout | None = None,
    ) -> None:
        """Initialize client.

        Args:
            credentials: Resolver for the API key, consulted on every request
            base_url: API base URL
            timeout: Optional custom timeout configuration
        """
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout or DEFAULT_TIMEOUT
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> LambdaCloudClient:
        """Enter async context."""
        self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        """Exit async context."""
        if self._session:
            await self._session.close()
            self._session = None

    async def _request(
        self,
        method: str,
        path: str,
        response_adapter: TypeAdapter[T],
        *,
        operation: str,
        target: str | None = None,
        body: BaseModel | None = None,
    ) -> T:
        """Make an API request with full Pydantic parsing.

        Args:
            method: HTTP method
            path: API endpoint path
            response_adapter: TypeAdapter for parsing successful response data
            operation: Human name of the operation, attached to errors
            target: Resource identifier the operation acts on, if any
            body: Optional Pydantic model for request body

        Returns:
            Parsed response data

        Raises:
            CredentialMissingError: If no API key is configured
            CredentialCommandFailedError: If the API key command fails
            ProviderRejectedError: If the API answers with an error status
            RequestFailedError: If the request never completes
            InvalidResponseError: If a successful response can't be parsed
        """
        assert self._session is not None, "Client must be used as async context manager"

        api_key = await self.credentials.resolve()

        url = f"{self.base_url}{path}"
        headers = {
            "accept": "application/json",
            "authorization": f"Bearer {api_key.get_secret_value()}",
        }

        request_json = None
        if body is not None:
            headers["content-type"] = "application/json"
            request_json = body.model_dump(exclude_none=True, by_alias=True, mode="json")

        log.debug("%s %s", method, path)
        try:
            async with self._session.request(
                method, url, headers=headers, json=request_json
            ) as resp:
                status = resp.status
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            reason = str(e) or type(e).__name__
            raise RequestFailedError(
                f"Request failed: {reason}", operation=operation, target=target
            ) from e

        if status >= 400:
            message, code = parse_error_message(text)
            log.debug("%s %s -> %d: %s", method, path, status, message)
            raise ProviderRejectedError(
                message,
                status=status,
                method=method,
                path=path,
                code=code,
                operation=operation,
                target=target,
            )

        # Most endpoints wrap data in {"data": ...}
        try:
            response_data = json.loads(text) if text else {}
            if isinstance(response_data, dict) and "data" in response_data:
                response_data = response_data["data"]
            return response_adapter.validate_python(response_data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise InvalidResponseError(
                f"Failed to parse response: {e}",
                operation=operation,
                target=target,
            ) from None

    async def validate_credential(self) -> None:
        """Check the API key with a cheap authenticated request.

        Raises:
            ProviderRejectedError: If the key is rejected
        """
        await self._request(
            "GET", "/instances", ignore_adapter, operation="validate API key"
        )

    # Instance types

    async def _instance_types(self) -> InstanceTypes:
        return await self._request(
            "GET",
            "/instance-types",
            instance_types_adapter,
            operation="list instance types",
        )

    async def list_instance_types(self) -> list[InstanceTypeCatalogEntry]:
        """List instance types with current capacity, sorted by name.

        Returns:
            Catalog entries, fetched fresh on every call
        """
        data = await self._instance_types()
        entries = [
            InstanceTypeCatalogEntry.from_availability(name, item)
            for name, item in data.root.items()
        ]
        return sorted(entries, key=lambda entry: entry.name)

    async def get_instance_type(self, name: str) -> InstanceTypeAvailability | None:
        """Get one instance type and the regions that currently have capacity.

        Returns:
            Availability entry, or None if the type doesn't exist
        """
        data = await self._instance_types()
        return data.root.get(name)

    # Instance operations

    async def list_instances(self) -> list[Instance]:
        """List running instances."""
        return await self._request(
            "GET",
            "/instances",
            instance_list_adapter,
            operation="list running instances",
        )

    async def get_instance(self, instance_id: str) -> Instance:
        """Get instance by ID."""
        return await self._request(
            "GET",
            f"/instances/{instance_id}",
            instance_adapter,
            operation="get instance",
            target=instance_id,
        )

    async def launch_instance(
        self,
        request: InstanceLaunchRequest,
    ) -> InstanceLaunchResponse:
        """Launch an instance.

        Args:
            request: Launch instance request

        Returns:
            Launch response with instance IDs
        """
        return await self._request(
            "POST",
            "/instance-operations/launch",
            instance_launch_response_adapter,
            operation="launch instance",
            target=request.instance_type_name,
            body=request,
        )

    async def rename_instance(self, instance_id: str, name: str) -> Instance:
        """Rename an instance.

        Not every deployment of the API accepts this; a 404 or 405 answer
        means renaming is unsupported rather than that the instance is gone.

        Returns:
            Updated instance
        """
        return await self._request(
            "PATCH",
            f"/instances/{instance_id}",
            instance_adapter,
            operation="rename instance",
            target=instance_id,
            body=InstanceModificationRequest(name=name),
        )

    async def terminate_instances(
        self,
        instance_ids: list[str],
    ) -> InstanceTerminateResponse:
        """Terminate instances.

        Args:
            instance_ids: IDs of the instances to terminate

        Returns:
            Terminate response
        """
        return await self._request(
            "POST",
            "/instance-operations/terminate",
            instance_terminate_response_adapter,
            operation="terminate instance",
            target=", ".join(instance_ids),
            body=InstanceTerminateRequest(instance_ids=instance_ids),
        )

    # Filesystems

    async def list_filesystems(self) -> list[Filesystem]:
        """List filesystems."""
        return await self._request(
            "GET",
            "/file-systems",
            filesystem_list_adapter,
            operation="list filesystems",
        )

    async def create_filesystem(self, name: str, region: str) -> Filesystem:
        """Create a filesystem in ``region``."""
        return await self._request(
            "POST",
            "/file-systems",
            filesystem_adapter,
            operation="create filesystem",
            target=name,
            body=FilesystemCreateRequest(name=name, region_name=region),
        )

    async def delete_filesystem(self, filesystem_id: str) -> FilesystemDeleteResponse:
        """Delete a filesystem by ID."""
        return await self._request(
            "DELETE",
            f"/file-systems/{filesystem_id}",
            filesystem_delete_response_adapter,
            operation="delete filesystem",
            target=filesystem_id,
        )
