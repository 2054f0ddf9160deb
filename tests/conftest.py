from __future__ import annotations

from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from lambda_cli.config import WaitConfig
from lambdalabs import CredentialResolver, LambdaCloudClient


API_KEY = "secret_test-key"


def instance_type_entry(
    name: str,
    regions: list[str],
    *,
    price_cents: int = 129,
    description: str | None = None,
) -> dict[str, Any]:
    return {
        "instance_type": {
            "name": name,
            "description": description or f"1x {name}",
            "gpu_description": name,
            "price_cents_per_hour": price_cents,
            "specs": {"vcpus": 30, "memory_gib": 200, "storage_gib": 512, "gpus": 1},
        },
        "regions_with_capacity_available": [
            {"name": r, "description": r.replace("-", " ").title()} for r in regions
        ],
    }


def filesystem_entry(fs_id: str, name: str, region: str = "us-east-1") -> dict[str, Any]:
    return {
        "id": fs_id,
        "name": name,
        "mount_point": f"/lambda/nfs/{name}",
        "created": "2024-05-01T12:00:00Z",
        "region": {"name": region, "description": "Virginia, USA"},
        "is_in_use": False,
        "bytes_used": 2_500_000,
    }


class FakeLambdaApi:
    """In-process stand-in for the Lambda Cloud API.

    ``instance_states`` is replayed one entry per GET /instances/{id}; the last
    entry repeats. An int entry is answered with that HTTP status instead.
    """

    def __init__(self) -> None:
        self.instance_types: dict[str, Any] = {}
        self.instances: list[dict[str, Any]] = []
        self.instance_states: list[dict[str, Any] | int] = []
        self.launch_ids: list[str] = ["inst-1"]
        self.filesystems: list[dict[str, Any]] = []
        self.requests: list[tuple[str, str, Any]] = []
        self.auth_headers: list[str] = []
        self.fail_with: tuple[int, str] | None = None
        self.rename_status: int | None = None

    def _record(self, request: web.Request, body: Any = None) -> None:
        self.requests.append((request.method, request.path, body))
        self.auth_headers.append(request.headers.get("Authorization", ""))

    def _failure(self) -> web.Response | None:
        if self.fail_with is None:
            return None
        status, text = self.fail_with
        return web.Response(status=status, text=text, content_type="application/json")

    def launches(self) -> list[Any]:
        return [
            body
            for method, path, body in self.requests
            if path.endswith("/instance-operations/launch")
        ]

    def app(self) -> web.Application:
        app = web.Application()

        async def instance_types(request: web.Request) -> web.Response:
            self._record(request)
            return self._failure() or web.json_response({"data": self.instance_types})

        async def list_instances(request: web.Request) -> web.Response:
            self._record(request)
            return self._failure() or web.json_response({"data": self.instances})

        async def get_instance(request: web.Request) -> web.Response:
            self._record(request)
            state = self.instance_states[0]
            if len(self.instance_states) > 1:
                self.instance_states.pop(0)
            if isinstance(state, int):
                return web.json_response(
                    {"error": {"code": "global/object-does-not-exist", "message": "Not found"}},
                    status=state,
                )
            return web.json_response({"data": {"id": request.match_info["id"], **state}})

        async def launch(request: web.Request) -> web.Response:
            body = await request.json()
            self._record(request, body)
            return self._failure() or web.json_response(
                {"data": {"instance_ids": self.launch_ids}}
            )

        async def rename(request: web.Request) -> web.Response:
            body = await request.json()
            self._record(request, body)
            if self.rename_status is not None:
                return web.json_response(
                    {"error": {"code": "global/invalid-route", "message": "Not allowed"}},
                    status=self.rename_status,
                )
            return web.json_response(
                {"data": {"id": request.match_info["id"], "status": "active", **body}}
            )

        async def terminate(request: web.Request) -> web.Response:
            body = await request.json()
            self._record(request, body)
            terminated = [
                {"id": iid, "status": "terminating"} for iid in body["instance_ids"]
            ]
            return web.json_response({"data": {"terminated_instances": terminated}})

        async def list_filesystems(request: web.Request) -> web.Response:
            self._record(request)
            return web.json_response({"data": self.filesystems})

        async def create_filesystem(request: web.Request) -> web.Response:
            body = await request.json()
            self._record(request, body)
            return self._failure() or web.json_response(
                {"data": filesystem_entry("fs-new", body["name"], body["region_name"])}
            )

        async def delete_filesystem(request: web.Request) -> web.Response:
            self._record(request)
            return web.json_response({"data": {"deleted_ids": [request.match_info["id"]]}})

        app.router.add_get("/api/v1/instance-types", instance_types)
        app.router.add_get("/api/v1/instances", list_instances)
        app.router.add_get("/api/v1/instances/{id}", get_instance)
        app.router.add_patch("/api/v1/instances/{id}", rename)
        app.router.add_post("/api/v1/instance-operations/launch", launch)
        app.router.add_post("/api/v1/instance-operations/terminate", terminate)
        app.router.add_get("/api/v1/file-systems", list_filesystems)
        app.router.add_post("/api/v1/file-systems", create_filesystem)
        app.router.add_delete("/api/v1/file-systems/{id}", delete_filesystem)
        return app


@pytest.fixture
def api() -> FakeLambdaApi:
    return FakeLambdaApi()


@pytest.fixture
async def server(api: FakeLambdaApi):
    srv = TestServer(api.app())
    await srv.start_server()
    yield srv
    await srv.close()


@pytest.fixture
def base_url(server: TestServer) -> str:
    return f"http://{server.host}:{server.port}/api/v1"


@pytest.fixture
async def client(base_url: str):
    async with LambdaCloudClient(CredentialResolver(api_key=API_KEY), base_url) as c:
        yield c


@pytest.fixture
def fast_wait() -> WaitConfig:
    return WaitConfig(timeout=2, poll_interval=0)


class WebhookSink:
    """Receives Slack, Discord and Telegram webhook posts.

    Slack and Discord post to ``/slack`` and ``/discord``; Telegram posts to
    ``/bot<token>/sendMessage``. ``statuses`` overrides the reply per channel.
    """

    def __init__(self) -> None:
        self.received: dict[str, list[Any]] = {}
        self.statuses: dict[str, int] = {}
        self.telegram_paths: list[str] = []

    def app(self) -> web.Application:
        app = web.Application()

        async def receive(channel: str, request: web.Request) -> web.Response:
            self.received.setdefault(channel, []).append(await request.json())
            status = self.statuses.get(channel, 200)
            if status == 204:
                return web.Response(status=204)
            return web.Response(status=status, text="ok" if status < 300 else "nope")

        async def slack(request: web.Request) -> web.Response:
            return await receive("slack", request)

        async def discord(request: web.Request) -> web.Response:
            return await receive("discord", request)

        async def telegram(request: web.Request) -> web.Response:
            self.telegram_paths.append(request.path)
            return await receive("telegram", request)

        app.router.add_post("/slack", slack)
        app.router.add_post("/discord", discord)
        app.router.add_post("/{bot}/sendMessage", telegram)
        return app


@pytest.fixture
def sink() -> WebhookSink:
    return WebhookSink()


@pytest.fixture
async def sink_url(sink: WebhookSink):
    srv = TestServer(sink.app())
    await srv.start_server()
    yield f"http://{srv.host}:{srv.port}"
    await srv.close()
