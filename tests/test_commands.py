from __future__ import annotations

from typing import Any

import pytest
from pydantic import ValidationError
from rich.console import Console

from lambda_cli.command_base import CommandError
from lambda_cli.commands import (
    FindCommand,
    RENAME_UNSUPPORTED,
    StartCommand,
    StartCommandConfig,
    command_adapter,
    ssh_command,
)
from lambdalabs import CredentialMissingError, ProviderRejectedError

from .conftest import API_KEY, FakeLambdaApi, WebhookSink, filesystem_entry, instance_type_entry


pytestmark = pytest.mark.unit

OFFLINE_URL = "http://localhost/api/v1"


def config(base_url: str, **command: Any) -> dict[str, Any]:
    """Resolved config tree as it comes out of hydra."""
    return {
        "api": {"base_url": base_url, "api_key": API_KEY, "api_key_command": None},
        "ssh": {"username": "ubuntu"},
        "wait": {"timeout": 2, "poll_interval": 0},
        "notify": {
            "slack_webhook": None,
            "discord_webhook": None,
            "telegram_bot_token": None,
            "telegram_chat_id": None,
        },
        **command,
    }


def start_fields(**overrides: Any) -> dict[str, Any]:
    fields = {
        "command": "start",
        "instance_type": "gpu_1x_a100",
        "ssh_key_name": "laptop",
        "instance_name": None,
        "region": None,
        "filesystem_name": None,
        "wait_after_launch": True,
        "notify_when_ready": False,
    }
    fields.update(overrides)
    return fields


async def run(cfg: dict[str, Any]) -> str:
    console = Console(record=True, width=200)
    await command_adapter.validate_python(cfg).create_command(console).run()
    return console.export_text()


def test_ssh_command():
    assert ssh_command("10.0.0.1", username="ubuntu") == "ssh ubuntu@10.0.0.1"


# ─── Config validation ───────────────────────────────────────────────


def test_discriminator_selects_command_class():
    parsed = command_adapter.validate_python(config(OFFLINE_URL, **start_fields()))
    assert isinstance(parsed, StartCommandConfig)
    assert isinstance(parsed.create_command(Console()), StartCommand)


def test_unknown_command_is_rejected():
    with pytest.raises(ValidationError):
        command_adapter.validate_python(config(OFFLINE_URL, command="reboot"))


def test_find_interval_must_be_positive():
    with pytest.raises(ValidationError):
        command_adapter.validate_python(
            config(
                OFFLINE_URL,
                command="find",
                instance_type="gpu_1x_a100",
                ssh_key_name="laptop",
                instance_name=None,
                interval=0,
                give_up_after=None,
            )
        )


def test_unset_env_values_become_none():
    cfg = config(OFFLINE_URL, command="validate")
    cfg["api"]["api_key"] = ""
    cfg["notify"]["slack_webhook"] = ""
    parsed = command_adapter.validate_python(cfg)
    assert parsed.api.api_key is None
    assert not parsed.notify.is_configured


# ─── Running commands ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_validate(api: FakeLambdaApi, base_url: str):
    output = await run(config(base_url, command="validate"))
    assert "API key is valid" in output
    assert api.requests[0][:2] == ("GET", "/api/v1/instances")


@pytest.mark.asyncio
async def test_validate_without_credentials(api: FakeLambdaApi, base_url: str):
    cfg = config(base_url, command="validate")
    cfg["api"]["api_key"] = None
    with pytest.raises(CredentialMissingError):
        await run(cfg)
    assert api.requests == []


@pytest.mark.asyncio
async def test_list_available_only(api: FakeLambdaApi, base_url: str):
    api.instance_types = {
        "gpu_1x_a100": instance_type_entry("gpu_1x_a100", ["us-west-1"]),
        "gpu_8x_h100": instance_type_entry("gpu_8x_h100", []),
    }
    output = await run(config(base_url, command="list", available_only=True))
    assert "gpu_1x_a100" in output
    assert "gpu_8x_h100" not in output
    assert "1 of 1 instance types have capacity available" in output


@pytest.mark.asyncio
async def test_running(api: FakeLambdaApi, base_url: str):
    api.instances = [
        {"id": "inst-1", "name": "trainer", "status": "active", "ip": "10.0.0.1"}
    ]
    output = await run(config(base_url, command="running"))
    assert "inst-1" in output
    assert "trainer" in output
    assert "10.0.0.1" in output


@pytest.mark.asyncio
async def test_start_waits_and_prints_ssh_command(api: FakeLambdaApi, base_url: str):
    api.instance_types = {"gpu_1x_a100": instance_type_entry("gpu_1x_a100", ["us-east-1"])}
    api.instance_states = [{"status": "booting"}, {"status": "active", "ip": "10.0.0.2"}]

    output = await run(config(base_url, **start_fields(filesystem_name="datasets")))

    assert "launched in region us-east-1" in output
    assert "ssh ubuntu@10.0.0.2" in output
    assert "/lambda/nfs/datasets" in output


@pytest.mark.asyncio
async def test_start_notifies_when_asked(
    api: FakeLambdaApi, base_url: str, sink: WebhookSink, sink_url: str
):
    api.instance_types = {"gpu_1x_a100": instance_type_entry("gpu_1x_a100", ["us-east-1"])}
    api.instance_states = [{"status": "active", "ip": "10.0.0.2"}]
    cfg = config(base_url, **start_fields(notify_when_ready=True))
    cfg["notify"]["slack_webhook"] = f"{sink_url}/slack"

    output = await run(cfg)

    assert "Slack notified" in output
    assert len(sink.received["slack"]) == 1


@pytest.mark.asyncio
async def test_start_without_waiting(api: FakeLambdaApi, base_url: str):
    api.instance_types = {"gpu_1x_a100": instance_type_entry("gpu_1x_a100", ["us-east-1"])}
    output = await run(config(base_url, **start_fields(wait_after_launch=False)))
    assert "inst-1" in output
    assert not [r for r in api.requests if r[1] == "/api/v1/instances/inst-1"]


@pytest.mark.asyncio
async def test_find_gives_up(api: FakeLambdaApi, base_url: str):
    api.instance_types = {"gpu_8x_h100": instance_type_entry("gpu_8x_h100", [])}
    cfg = config(
        base_url,
        command="find",
        instance_type="gpu_8x_h100",
        ssh_key_name="laptop",
        instance_name=None,
        interval=0.01,
        give_up_after=0.05,
    )
    command = command_adapter.validate_python(cfg).create_command(Console(record=True))
    assert isinstance(command, FindCommand)
    with pytest.raises(CommandError):
        await command.run()


@pytest.mark.asyncio
async def test_stop(api: FakeLambdaApi, base_url: str):
    output = await run(config(base_url, command="stop", instance_id="inst-3"))
    assert "Instance inst-3 terminated" in output
    assert api.requests[-1][2] == {"instance_ids": ["inst-3"]}


@pytest.mark.asyncio
async def test_filesystem_commands(api: FakeLambdaApi, base_url: str):
    api.filesystems = [filesystem_entry("fs-1", "datasets")]

    output = await run(config(base_url, command="filesystems"))
    assert "datasets" in output
    assert "2.50 MB" in output
    assert "1 total filesystems" in output

    output = await run(
        config(base_url, command="fs-create", name="scratch", region="us-west-1")
    )
    assert "Filesystem scratch (fs-new) created in us-west-1" in output

    output = await run(config(base_url, command="fs-delete", filesystem_id="fs-1"))
    assert "Filesystem fs-1 deleted" in output


@pytest.mark.asyncio
async def test_rename(api: FakeLambdaApi, base_url: str):
    output = await run(
        config(base_url, command="rename", instance_id="inst-1", name="trainer-2")
    )
    assert "Instance inst-1 renamed to 'trainer-2'" in output
    assert api.requests[-1] == ("PATCH", "/api/v1/instances/inst-1", {"name": "trainer-2"})


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [404, 405])
async def test_rename_unsupported_is_explained(
    api: FakeLambdaApi, base_url: str, status: int
):
    api.rename_status = status
    with pytest.raises(CommandError) as exc_info:
        await run(config(base_url, command="rename", instance_id="inst-1", name="x"))
    assert str(exc_info.value) == RENAME_UNSUPPORTED
    assert "instance_name=<name>" in str(exc_info.value)


@pytest.mark.asyncio
async def test_rename_other_rejections_propagate(api: FakeLambdaApi, base_url: str):
    api.rename_status = 400
    with pytest.raises(ProviderRejectedError) as exc_info:
        await run(config(base_url, command="rename", instance_id="inst-1", name="x"))
    assert exc_info.value.status == 400
