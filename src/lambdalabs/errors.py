"""Error taxonomy shared by every Lambda Cloud component."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""

    credential_missing = "credential_missing"
    credential_command_failed = "credential_command_failed"
    instance_type_not_found = "instance_type_not_found"
    no_regions_available = "no_regions_available"
    region_not_available = "region_not_available"
    launch_returned_no_instance_id = "launch_returned_no_instance_id"
    provider_rejected = "provider_rejected"
    ssh_key_required = "ssh_key_required"
    request_failed = "request_failed"
    invalid_response = "invalid_response"
    instance_failed = "instance_failed"


class LambdaError(Exception):
    """Base error for Lambda Cloud operations.

    Attributes:
        kind: Failure kind from the closed taxonomy
        operation: Operation that failed (e.g. "launch instance"), if known
        target: Identifier the operation acted on, if any
    """

    kind: ErrorKind

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        target: str | None = None,
    ) -> None:
        self.message = message
        self.operation = operation
        self.target = target
        super().__init__(message)

    def with_context(
        self, operation: str | None = None, target: str | None = None
    ) -> LambdaError:
        """Attach operation/target context without overwriting existing values."""
        if self.operation is None:
            self.operation = operation
        if self.target is None:
            self.target = target
        return self

    def __str__(self) -> str:
        if self.operation is None:
            return self.message
        where = self.operation
        if self.target is not None:
            where = f"{where} {self.target}"
        return f"{where}: {self.message}"


class CredentialMissingError(LambdaError):
    kind = ErrorKind.credential_missing

    def __init__(self) -> None:
        super().__init__(
            "API key not set. Set LAMBDA_API_KEY or LAMBDA_API_KEY_COMMAND "
            "environment variable"
        )


class CredentialCommandFailedError(LambdaError):
    kind = ErrorKind.credential_command_failed

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Failed to execute API key command: {detail}")


class InstanceTypeNotFoundError(LambdaError):
    kind = ErrorKind.instance_type_not_found

    def __init__(self, instance_type: str) -> None:
        self.instance_type = instance_type
        super().__init__(
            f"Instance type '{instance_type}' not found", target=instance_type
        )


class NoRegionsAvailableError(LambdaError):
    kind = ErrorKind.no_regions_available

    def __init__(self, instance_type: str) -> None:
        self.instance_type = instance_type
        super().__init__(
            f"No regions available for instance type '{instance_type}'",
            target=instance_type,
        )


class RegionNotAvailableError(LambdaError):
    """Requested region has no capacity for the instance type."""

    kind = ErrorKind.region_not_available

    def __init__(
        self, region: str, instance_type: str, available: list[str]
    ) -> None:
        self.region = region
        self.instance_type = instance_type
        self.available = list(available)
        super().__init__(
            f"Region '{region}' is not available for instance type "
            f"'{instance_type}'. Available regions: {', '.join(self.available)}",
            target=instance_type,
        )


class LaunchReturnedNoInstanceIdError(LambdaError):
    kind = ErrorKind.launch_returned_no_instance_id

    def __init__(self) -> None:
        super().__init__("No instance IDs returned from launch request")


class SshKeyRequiredError(LambdaError):
    kind = ErrorKind.ssh_key_required

    def __init__(self) -> None:
        super().__init__("SSH key is required for this operation")


class ProviderRejectedError(LambdaError):
    """The API answered with a non-success status.

    Attributes:
        status: HTTP status code
        method: HTTP method
        path: API endpoint path
        code: Provider error code, when the body carried one
    """

    kind = ErrorKind.provider_rejected

    def __init__(
        self,
        message: str,
        *,
        status: int,
        method: str,
        path: str,
        code: str | None = None,
        operation: str | None = None,
        target: str | None = None,
    ) -> None:
        self.status = status
        self.method = method
        self.path = path
        self.code = code
        super().__init__(
            f"{message} ({method} {path} -> {status})",
            operation=operation,
            target=target,
        )
        self.provider_message = message


class RequestFailedError(LambdaError):
    """Network-level failure (connect error, timeout, dropped connection)."""

    kind = ErrorKind.request_failed


class InvalidResponseError(LambdaError):
    """Successful status but the body could not be decoded."""

    kind = ErrorKind.invalid_response


class InstanceFailedError(LambdaError):
    """Instance reached a terminal state before it became ready."""

    kind = ErrorKind.instance_failed

    def __init__(self, instance_id: str, status: str) -> None:
        self.instance_id = instance_id
        self.status = status
        super().__init__(f"Instance entered {status} state", target=instance_id)
