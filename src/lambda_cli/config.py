"""Global configuration models."""

from __future__ import annotations

from pydantic import BaseModel, Field, SecretStr, field_validator

from lambdalabs.client import API_BASE_URL


def _blank_to_none(value: object) -> object:
    # Unset ${oc.env:...} interpolations arrive as empty strings.
    if isinstance(value, str) and not value.strip():
        return None
    return value


class ApiConfig(BaseModel):
    """Lambda Cloud API configuration."""

    base_url: str = Field(
        default=API_BASE_URL,
        description="Base URL for Lambda Cloud API",
    )
    api_key: SecretStr | None = Field(
        default=None,
        description="API key for Lambda Cloud",
    )
    api_key_command: str | None = Field(
        default=None,
        description="Shell command printing the API key, run on first use",
    )
    timeout: float = Field(
        default=30,
        description="Overall API request timeout in seconds",
        gt=0,
    )
    connect_timeout: float = Field(
        default=10,
        description="Connection timeout in seconds",
        gt=0,
    )

    @field_validator("api_key", "api_key_command", mode="before")
    @classmethod
    def unset_to_none(cls, value: object) -> object:
        return _blank_to_none(value)


class WaitConfig(BaseModel):
    """Wait operation configuration."""

    timeout: float = Field(
        default=300,
        description="Wait timeout in seconds",
        gt=0,
    )
    poll_interval: float = Field(
        default=10,
        description="Polling interval in seconds",
        ge=0,
    )


class SshConfig(BaseModel):
    """SSH configuration."""

    username: str = Field(
        default="ubuntu",
        description="Default SSH username",
    )


class NotifyConfig(BaseModel):
    """Notification channels. Each one is enabled independently."""

    slack_webhook: str | None = Field(
        default=None,
        description="Slack incoming webhook URL",
    )
    discord_webhook: str | None = Field(
        default=None,
        description="Discord webhook URL",
    )
    telegram_bot_token: SecretStr | None = Field(
        default=None,
        description="Telegram bot token",
    )
    telegram_chat_id: str | None = Field(
        default=None,
        description="Telegram chat ID",
    )

    @field_validator(
        "slack_webhook",
        "discord_webhook",
        "telegram_bot_token",
        "telegram_chat_id",
        mode="before",
    )
    @classmethod
    def unset_to_none(cls, value: object) -> object:
        return _blank_to_none(value)

    @property
    def telegram_enabled(self) -> bool:
        return self.telegram_bot_token is not None and self.telegram_chat_id is not None

    @property
    def configured_channels(self) -> list[str]:
        """Names of the enabled channels, for display."""
        channels = []
        if self.slack_webhook:
            channels.append("Slack")
        if self.discord_webhook:
            channels.append("Discord")
        if self.telegram_enabled:
            channels.append("Telegram")
        return channels

    @property
    def is_configured(self) -> bool:
        return bool(self.configured_channels)
