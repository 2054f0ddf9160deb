"""Instance-ready notifications for Slack, Discord and Telegram."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp

from lambda_cli.config import NotifyConfig


log = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=10)
DISCORD_GREEN = 5763719

# Characters with markup meaning in Telegram MarkdownV2
TELEGRAM_RESERVED = frozenset("_*[]()~`>#+-=|{}.!")


def escape_markdown_v2(text: str) -> str:
    """Backslash-escape Telegram MarkdownV2 control characters.

    Text without reserved characters comes back unchanged. Existing
    backslashes are not treated specially, so escaping already-escaped text
    escapes the reserved characters again.
    """
    return "".join(f"\\{c}" if c in TELEGRAM_RESERVED else c for c in text)


@dataclass(frozen=True)
class InstanceReadyEvent:
    """Payload broadcast when an instance becomes reachable."""

    instance_id: str
    instance_name: str | None
    ip: str
    instance_type: str
    region: str

    @property
    def display_name(self) -> str:
        return self.instance_name or self.instance_id

    @property
    def ssh_command(self) -> str:
        return f"ssh ubuntu@{self.ip}"


class NotificationError(Exception):
    """A channel rejected or failed to receive a notification."""

    def __init__(self, channel: str, detail: str, status: int | None = None) -> None:
        self.channel = channel
        self.detail = detail
        self.status = status
        if status is None:
            message = f"{channel} notification failed: {detail}"
        else:
            message = f"{channel} notification failed ({status}): {detail}"
        super().__init__(message)


@dataclass(frozen=True)
class ChannelResult:
    """Delivery result for one channel."""

    channel: str
    error: NotificationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# Payload builders


def slack_payload(event: InstanceReadyEvent) -> dict[str, Any]:
    return {
        "blocks": [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": "GPU Instance Ready!",
                    "emoji": True,
                },
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Name:*\n{event.display_name}"},
                    {"type": "mrkdwn", "text": f"*GPU:*\n{event.instance_type}"},
                    {"type": "mrkdwn", "text": f"*Region:*\n{event.region}"},
                    {"type": "mrkdwn", "text": f"*IP:*\n{event.ip}"},
                ],
            },
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*SSH Command:*\n```{event.ssh_command}```",
                },
            },
        ]
    }


def discord_payload(event: InstanceReadyEvent) -> dict[str, Any]:
    return {
        "embeds": [
            {
                "title": "GPU Instance Ready!",
                "color": DISCORD_GREEN,
                "fields": [
                    {"name": "Name", "value": event.display_name, "inline": True},
                    {"name": "GPU", "value": event.instance_type, "inline": True},
                    {"name": "Region", "value": event.region, "inline": True},
                    {"name": "IP Address", "value": event.ip, "inline": True},
                    {
                        "name": "SSH Command",
                        "value": f"```{event.ssh_command}```",
                        "inline": False,
                    },
                ],
            }
        ]
    }


def telegram_text(event: InstanceReadyEvent) -> str:
    """MarkdownV2 message body. IP and SSH command sit in code spans, unescaped."""
    return (
        "*GPU Instance Ready\\!*\n\n"
        f"*Name:* `{escape_markdown_v2(event.display_name)}`\n"
        f"*GPU:* {escape_markdown_v2(event.instance_type)}\n"
        f"*Region:* {escape_markdown_v2(event.region)}\n"
        f"*IP:* `{event.ip}`\n\n"
        f"*SSH Command:*\n```\n{event.ssh_command}\n```"
    )


class NotificationDispatcher:
    """Fans an instance-ready event out to every configured channel.

    Channels are attempted concurrently. A failing channel is reported in its
    own result and never stops delivery to the others.

    Example:
        async with NotificationDispatcher(config.notify) as notifier:
            for result in await notifier.send_all(event):
                print(result.channel, result.ok)
    """

    def __init__(
        self,
        config: NotifyConfig,
        *,
        timeout: aiohttp.ClientTimeout | None = None,
        telegram_api_url: str = TELEGRAM_API_URL,
    ) -> None:
        self.config = config
        self.timeout = timeout or DEFAULT_TIMEOUT
        self.telegram_api_url = telegram_api_url.rstrip("/")
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> NotificationDispatcher:
        self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def channels(self) -> list[str]:
        return self.config.configured_channels

    async def send_all(self, event: InstanceReadyEvent) -> list[ChannelResult]:
        """Send ``event`` to all configured channels.

        Returns:
            One result per configured channel, in Slack, Discord, Telegram order
        """
        attempts: list[tuple[str, str, dict[str, Any]]] = []
        if self.config.slack_webhook:
            attempts.append(("Slack", self.config.slack_webhook, slack_payload(event)))
        if self.config.discord_webhook:
            attempts.append(
                ("Discord", self.config.discord_webhook, discord_payload(event))
            )
        if self.config.telegram_enabled:
            attempts.append(("Telegram", *self._telegram_request(event)))

        return list(
            await asyncio.gather(
                *(self._send(channel, url, payload) for channel, url, payload in attempts)
            )
        )

    def _telegram_request(self, event: InstanceReadyEvent) -> tuple[str, dict[str, Any]]:
        assert self.config.telegram_bot_token is not None
        token = self.config.telegram_bot_token.get_secret_value()
        url = f"{self.telegram_api_url}/bot{token}/sendMessage"
        payload = {
            "chat_id": self.config.telegram_chat_id,
            "parse_mode": "MarkdownV2",
            "text": telegram_text(event),
        }
        return url, payload

    async def _send(
        self, channel: str, url: str, payload: dict[str, Any]
    ) -> ChannelResult:
        try:
            await self._post(channel, url, payload)
        except NotificationError as e:
            log.warning("%s", e)
            return ChannelResult(channel, e)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            error = NotificationError(channel, str(e) or type(e).__name__)
            log.warning("%s", error)
            return ChannelResult(channel, error)
        except Exception as e:
            error = NotificationError(channel, f"{type(e).__name__}: {e}")
            log.exception("%s", error)
            return ChannelResult(channel, error)
        log.info("%s notification sent", channel)
        return ChannelResult(channel)

    async def _post(self, channel: str, url: str, payload: dict[str, Any]) -> None:
        if self._session is None or self._session.closed:
            raise NotificationError(
                channel, "dispatcher must be used as async context manager"
            )
        async with self._session.post(url, json=payload) as resp:
            if not 200 <= resp.status < 300:
                body = await resp.text()
                raise NotificationError(channel, body, status=resp.status)
