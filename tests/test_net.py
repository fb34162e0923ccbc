"""HTTPX MockTransport-based tests for the gated API client."""

import asyncio
import json

import httpx
import pytest

from ftb_dl.config import NetConfig
from ftb_dl.errors import RequestError, RequestTimeoutError
from ftb_dl.net import NetClient, Service


FTB = "https://api.modpacks.ch/public"
FLAME = "https://api.curseforge.com/v1"


def _json(data, status: int = 200) -> httpx.Response:
    return httpx.Response(status, content=json.dumps(data).encode())


def _client(handler, **config) -> NetClient:
    return NetClient(NetConfig(**config), transport=httpx.MockTransport(handler))


class TestJSON:
    @pytest.mark.asyncio
    async def test_get_modpack(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            assert str(request.url) == f"{FTB}/modpack/5"
            return _json({"id": 5, "name": "FTB Skies", "versions": [{"id": 11, "name": "1.0"}]})

        async with _client(handler, user_agent="tester/1") as net:
            pack = await net.get_modpack(5)

        assert pack.id == 5
        assert pack.name == "FTB Skies"
        assert pack.versions[0].id == 11
        assert seen[0].headers["User-Agent"] == "tester/1"

    @pytest.mark.asyncio
    async def test_search_sends_term(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/public/modpack/search/7"
            assert request.url.params["term"] == "sky block"
            return _json({"packs": [1, 2], "curseforge": [9], "total": 3, "limit": 7})

        async with _client(handler) as net:
            result = await net.search_modpacks("sky block", limit=7)

        assert result.packs == [1, 2]
        assert result.curseforge == [9]

    @pytest.mark.asyncio
    async def test_non_2xx_is_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return _json({"status": "error"}, status=404)

        async with _client(handler) as net:
            with pytest.raises(RequestError) as exc_info:
                await net.get_modpack(999)

        assert exc_info.value.status_code == 404
        assert net.gate.in_flight_count == 0

    @pytest.mark.asyncio
    async def test_error_status_body_is_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return _json({"status": "error", "message": "Modpack not found"})

        async with _client(handler) as net:
            with pytest.raises(RequestError, match="Modpack not found"):
                await net.get_modpack(999)

    @pytest.mark.asyncio
    async def test_malformed_json_is_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"not json")

        async with _client(handler) as net:
            with pytest.raises(RequestError, match="Malformed JSON"):
                await net.get_json(Service.FTB, "/modpack/5")

    @pytest.mark.asyncio
    async def test_transport_error_is_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as net:
            with pytest.raises(RequestError) as exc_info:
                await net.get_modpack(5)

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_requests_share_the_gate(self):
        active = 0
        peak = 0

        async def handler(request: httpx.Request) -> httpx.Response:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return _json({"id": int(request.url.path.rsplit("/", 1)[-1])})

        async with _client(handler, request_limit=2) as net:
            packs = await asyncio.gather(*[net.get_modpack(i) for i in range(8)])

        assert [p.id for p in packs] == list(range(8))
        assert peak == 2


class TestFiles:
    @pytest.mark.asyncio
    async def test_get_ftb_file_streams_to_disk(self, tmp_path):
        payload = b"x" * 200_000

        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == "https://dist.creeper.host/FTB2/mods/a.jar"
            return httpx.Response(200, content=payload)

        target = tmp_path / "mods" / "a.jar"
        async with _client(handler) as net:
            written = await net.get_ftb_file("https://dist.creeper.host/FTB2/mods/a.jar", target)

        assert written == len(payload)
        assert target.read_bytes() == payload

    @pytest.mark.asyncio
    async def test_stream_failure_writes_nothing(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, content=b"down")

        target = tmp_path / "a.jar"
        async with _client(handler) as net:
            with pytest.raises(RequestError) as exc_info:
                await net.get_ftb_file("https://cdn.example.com/a.jar", target)

        assert exc_info.value.status_code == 503
        assert not target.exists()

    @pytest.mark.asyncio
    async def test_stream_request_requires_sink(self):
        async with _client(lambda r: httpx.Response(200)) as net:
            with pytest.raises(ValueError):
                await net.make_request(Service.FTB, net._file_request(Service.FTB, "/x"))

    @pytest.mark.asyncio
    async def test_flame_file_is_proxied(self, tmp_path):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.host == "api.curseforge.com":
                assert request.url.path == "/v1/mods/238222/files/4371807"
                return _json({
                    "data": {
                        "id": 4371807,
                        "fileName": "jei.jar",
                        "downloadUrl": "https://edge.forgecdn.net/files/4371/807/jei.jar",
                    }
                })
            return httpx.Response(200, content=b"jar-bytes")

        target = tmp_path / "mods" / "jei.jar"
        async with _client(handler, flame_api_key="secret") as net:
            await net.get_flame_file(238222, 4371807, target)

        assert len(seen) == 2
        assert seen[0].headers["x-api-key"] == "secret"
        assert str(seen[1].url) == "https://edge.forgecdn.net/files/4371/807/jei.jar"
        assert target.read_bytes() == b"jar-bytes"

    @pytest.mark.asyncio
    async def test_flame_file_falls_back_to_cdn(self, tmp_path):
        urls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            if request.url.host == "api.curseforge.com":
                return _json({"data": {"id": 5433036, "fileName": "somefile.jar", "downloadUrl": None}})
            return httpx.Response(200, content=b"ok")

        async with _client(handler) as net:
            await net.get_flame_file(1, 5433036, tmp_path / "somefile.jar")

        assert urls[1] == "https://edge.forgecdn.net/files/5433/36/somefile.jar"

    @pytest.mark.asyncio
    async def test_slow_steady_download_outlives_request_timeout(self, tmp_path):
        chunk = b"z" * 1024

        async def body():
            for _ in range(6):
                await asyncio.sleep(0.05)
                yield chunk

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body())

        target = tmp_path / "big.jar"
        async with _client(handler, request_timeout=0.2) as net:
            written = await net.get_ftb_file("https://cdn.test/big.jar", target)

        assert written == 6 * 1024
        assert target.read_bytes() == chunk * 6
        assert net.gate.in_flight_count == 0

    @pytest.mark.asyncio
    async def test_stalled_response_times_out(self, tmp_path):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, content=b"late")

        async with _client(handler, request_timeout=0.05) as net:
            with pytest.raises(RequestTimeoutError):
                await net.get_ftb_file("https://cdn.test/late.jar", tmp_path / "late.jar")
            assert net.gate.in_flight_count == 0

    @pytest.mark.asyncio
    async def test_invalid_url_is_request_error(self, tmp_path):
        async with _client(lambda r: httpx.Response(200)) as net:
            with pytest.raises(RequestError) as exc_info:
                await net.get_ftb_file("http://[::1", tmp_path / "a.jar")

        assert isinstance(exc_info.value.__cause__, httpx.InvalidURL)
        assert net.gate.in_flight_count == 0

    @pytest.mark.asyncio
    async def test_flame_reply_without_data_is_request_error(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return _json({"error": "not found"})

        async with _client(handler) as net:
            with pytest.raises(RequestError, match="no file data"):
                await net.get_flame_file(1, 2, tmp_path / "a.jar")

    @pytest.mark.asyncio
    async def test_unexpected_payload_shape_is_request_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return _json({"id": "not-a-number", "versions": "nope"})

        async with _client(handler) as net:
            with pytest.raises(RequestError, match="ModpackManifest"):
                await net.get_modpack(5)


class TestConfig:
    @pytest.mark.asyncio
    async def test_mutators_update_shared_config(self):
        async with _client(lambda r: httpx.Response(200)) as net:
            net.set_request_limit(7)
            net.set_request_timeout(2.5)
            net.set_user_agent("custom")
            net.set_flame_api_key("key")
            assert net.gate.config.request_limit == 7
            assert net.gate.config.request_timeout == 2.5
            assert net.config.user_agent == "custom"
            assert net.config.flame_api_key == "key"

            net.reset_request_limit()
            net.reset_request_timeout()
            net.reset_flame_api_key()
            assert net.config.request_limit == 3
            assert net.config.request_timeout == 10.0
            assert net.config.flame_api_key is None
