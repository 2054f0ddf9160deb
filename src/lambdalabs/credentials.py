"""API key resolution with lazy, run-once command evaluation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Generic, Protocol, TypeVar

from pydantic import SecretStr

from lambdalabs.errors import CredentialCommandFailedError, CredentialMissingError


log = logging.getLogger(__name__)

T = TypeVar("T")


class KeySettings(Protocol):
    api_key: SecretStr | None
    api_key_command: str | None


class OnceCell(Generic[T]):
    """Single-assignment async cell.

    The first caller of :meth:`get_or_init` runs the initializer; callers
    arriving while it runs await the same future instead of starting their
    own. A failed initialization is delivered to everyone waiting on it and
    leaves the cell empty. If the initializing caller is cancelled, the
    waiters are not: the first of them to wake takes over initialization.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[T] | None = None

    @property
    def is_set(self) -> bool:
        future = self._future
        if future is None or not future.done() or future.cancelled():
            return False
        return future.exception() is None

    async def get_or_init(self, init: Callable[[], Awaitable[T]]) -> T:
        while self._future is not None:
            future = self._future
            try:
                return await asyncio.shield(future)
            except asyncio.CancelledError:
                # Only the initializer was cancelled; retry as a new one.
                if future.cancelled():
                    continue
                raise

        # No await between the check above and this assignment.
        future = asyncio.get_running_loop().create_future()
        self._future = future
        try:
            value = await init()
        except asyncio.CancelledError:
            self._future = None
            future.cancel()
            raise
        except Exception as exc:
            self._future = None
            future.set_exception(exc)
            # Mark retrieved so an unobserved failure isn't reported at GC.
            future.exception()
            raise
        future.set_result(value)
        return value


async def run_key_command(command: str) -> str:
    """Run ``command`` through the system shell and return its trimmed stdout.

    Raises:
        CredentialCommandFailedError: If the command cannot be started, exits
            non-zero, or prints nothing
    """
    try:
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CredentialCommandFailedError(f"Failed to execute command: {e}") from e

    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
        raise

    if proc.returncode != 0:
        detail = stderr.decode(errors="replace").strip()
        raise CredentialCommandFailedError(f"Command failed: {detail}")

    key = stdout.decode(errors="replace").strip()
    if not key:
        raise CredentialCommandFailedError("Command returned empty output")
    return key


class CredentialResolver:
    """Resolves the Lambda Cloud API key.

    The key is either given directly or produced by a shell command (e.g.
    ``op read op://vault/lambda/api-key``). The command runs on first use
    only, so commands that never touch the API work without a credential.

    Example:
        resolver = CredentialResolver(api_key_command="pass show lambda")
        key = await resolver.resolve()
    """

    def __init__(
        self,
        api_key: str | SecretStr | None = None,
        api_key_command: str | None = None,
    ) -> None:
        if isinstance(api_key, SecretStr):
            api_key = api_key.get_secret_value()
        self._api_key = SecretStr(api_key) if api_key else None
        self._api_key_command = api_key_command or None
        self._cached: OnceCell[SecretStr] = OnceCell()

    @classmethod
    def from_config(cls, config: KeySettings) -> CredentialResolver:
        return cls(api_key=config.api_key, api_key_command=config.api_key_command)

    @property
    def is_configured(self) -> bool:
        return self._api_key is not None or self._api_key_command is not None

    async def resolve(self) -> SecretStr:
        """Return the API key.

        Raises:
            CredentialMissingError: If neither a key nor a command is configured
            CredentialCommandFailedError: If the key command fails
        """
        if self._api_key is not None:
            return self._api_key
        if self._api_key_command is None:
            raise CredentialMissingError()
        return await self._cached.get_or_init(self._run_command)

    async def _run_command(self) -> SecretStr:
        assert self._api_key_command is not None
        log.debug("Resolving API key from command")
        key = await run_key_command(self._api_key_command)
        log.debug("API key resolved from command")
        return SecretStr(key)
