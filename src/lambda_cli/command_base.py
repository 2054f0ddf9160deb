"""Base classes for command pattern implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

import aiohttp
from pydantic import BaseModel, Field
from rich.console import Console

from lambda_cli.config import ApiConfig, NotifyConfig, SshConfig, WaitConfig
from lambdalabs import CredentialResolver, LambdaCloudClient


class CommandError(Exception):
    """Command execution error."""

    pass


class BaseCommand(ABC):
    """Base class for commands."""

    def __init__(
        self, config: BaseCommandConfig, console: Console | None = None
    ) -> None:
        """Initialize command.

        Args:
            config: Full configuration (includes command-specific fields)
            console: Rich console for output (creates default if None)
        """
        self.config = config
        self.console = console or Console()
        # Nothing runs until the first request needs the key.
        self.credentials = CredentialResolver.from_config(config.api)

    def client(self) -> LambdaCloudClient:
        """Create an API client from the global API configuration."""
        return LambdaCloudClient(
            self.credentials,
            base_url=self.config.api.base_url,
            timeout=aiohttp.ClientTimeout(
                total=self.config.api.timeout,
                connect=self.config.api.connect_timeout,
            ),
        )

    @abstractmethod
    async def run(self) -> None:
        """Execute the command.

        Raises:
            CommandError: If command execution fails
        """
        ...


class BaseCommandConfig(BaseModel, ABC):
    """Base configuration for all commands.

    This serves as the root config. All global configs are here,
    and command-specific fields are added in subclasses.
    """

    # Global configurations (available to all commands)
    api: ApiConfig = Field(description="API configuration")
    ssh: SshConfig = Field(description="SSH configuration")
    wait: WaitConfig = Field(description="Wait operation configuration")
    notify: NotifyConfig = Field(
        default_factory=NotifyConfig, description="Notification channels"
    )

    # Command class binding
    _command_class: ClassVar[type[BaseCommand]]

    def create_command(self, console: Console | None = None) -> BaseCommand:
        """Create command instance from this config.

        Returns:
            Command instance with full config
        """
        return self._command_class(config=self, console=console)
