from __future__ import annotations

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from e2etests.errors import ErrorKind, VersionNotFoundError, classify
from e2etests.infra.http import HttpError, JsonClient, TokenAuth
from e2etests.versions import VersionPair, VersionRegistry, select_version

pytestmark = [pytest.mark.unit, pytest.mark.xdist_group("unit")]


BUNDLES = {
    ("kvm-operator", "kvm"): [
        {"version": "2.9.0", "wip": False, "deprecated": True},
        {"version": "2.10.0", "wip": False, "deprecated": False},
        {"version": "2.2.1", "wip": False, "deprecated": False},
        {"version": "2.11.0", "wip": True, "deprecated": False},
    ],
    ("aws-operator", "aws"): [
        {"version": "4.2.0", "wip": False, "deprecated": False},
    ],
}


def make_app(token: str = "valid-token") -> web.Application:
    app = web.Application()

    async def bundles(request: web.Request) -> web.Response:
        if request.headers.get("Authorization") != f"Bearer {token}":
            return web.Response(status=401, text="unauthorized")
        key = (request.match_info["component"], request.query.get("provider", ""))
        return web.json_response(BUNDLES.get(key, []))

    flaky_calls = {"n": 0}

    async def flaky(_: web.Request) -> web.Response:
        flaky_calls["n"] += 1
        if flaky_calls["n"] < 3:
            return web.Response(status=503, text="unavailable")
        return web.json_response({"attempts": flaky_calls["n"]})

    async def down(_: web.Request) -> web.Response:
        return web.Response(status=500, text="internal error")

    app.router.add_get("/versionbundles/{component}", bundles)
    app.router.add_get("/flaky", flaky)
    app.router.add_get("/down", down)
    return app


@pytest.fixture
async def server():
    srv = TestServer(make_app())
    await srv.start_server()
    yield srv
    await srv.close()


@pytest.fixture
def base_url(server: TestServer) -> str:
    return f"http://{server.host}:{server.port}"


class TestSelectVersion:
    def test_current_is_newest_released(self):
        assert select_version(BUNDLES[("kvm-operator", "kvm")], "current") == "2.10.0"

    def test_wip(self):
        assert select_version(BUNDLES[("kvm-operator", "kvm")], "wip") == "2.11.0"

    def test_none(self):
        assert select_version(BUNDLES[("aws-operator", "aws")], "wip") == ""
        assert select_version([], "current") == ""


class TestVersionRegistry:
    @pytest.mark.asyncio
    async def test_lookup(self, base_url: str):
        async with JsonClient(base_url, TokenAuth("valid-token")) as http:
            registry = VersionRegistry(http)
            assert await registry.lookup("kvm-operator", "kvm", "current") == "2.10.0"
            assert await registry.lookup("kvm-operator", "kvm", "wip") == "2.11.0"

    @pytest.mark.asyncio
    async def test_missing_bundle(self, base_url: str):
        async with JsonClient(base_url, TokenAuth("valid-token")) as http:
            with pytest.raises(VersionNotFoundError) as exc_info:
                await VersionRegistry(http).lookup("aws-operator", "aws", "wip")
        assert classify(exc_info.value) is ErrorKind.VERSION_NOT_FOUND

    @pytest.mark.asyncio
    async def test_pair(self, base_url: str):
        async with JsonClient(base_url, TokenAuth("valid-token")) as http:
            registry = VersionRegistry(http)
            assert await registry.pair("kvm-operator", "kvm") == VersionPair("2.10.0", "2.11.0")
            assert await registry.pair("aws-operator", "aws") == VersionPair("4.2.0", None)

    @pytest.mark.asyncio
    async def test_unauthorized(self, base_url: str):
        async with JsonClient(base_url, TokenAuth("wrong")) as http:
            with pytest.raises(HttpError) as exc_info:
                await VersionRegistry(http).lookup("kvm-operator", "kvm", "current")
        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_close(self, base_url: str):
        registry = VersionRegistry(JsonClient(base_url, TokenAuth("valid-token")))
        await registry.lookup("kvm-operator", "kvm", "current")
        await registry.close()



class TestJsonClient:
    def test_token_auth_headers(self):
        assert TokenAuth("my-token").headers() == {"Authorization": "Bearer my-token"}
        assert TokenAuth("my-token", scheme="token").headers() == {"Authorization": "token my-token"}

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self, base_url: str):
        async with JsonClient(base_url) as http:
            assert await http.get_json("/flaky") == {"attempts": 3}

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self, base_url: str):
        async with JsonClient(base_url, attempts=2) as http:
            with pytest.raises(HttpError) as exc_info:
                await http.get_json("/down")
        assert exc_info.value.status == 500
        assert exc_info.value.transient

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self):
        async with JsonClient("http://127.0.0.1:1", attempts=1, timeout=2) as http:
            with pytest.raises(HttpError) as exc_info:
                await http.get_json("/versionbundles/kvm-operator")
        assert exc_info.value.status == 0
        assert exc_info.value.transient
