"""
Async client for the Feed the Beast and CurseForge APIs.

Wraps one :class:`httpx.AsyncClient` per upstream service and routes every
request through a shared :class:`~ftb_dl.gate.AdmissionGate`, so metadata
calls and file downloads together never exceed ``config.request_limit``.

File downloads stream the response body to disk *inside* the admitted slot:
a download holds its slot until the last byte is written. The request
timeout only bounds the wait for the response headers; the body is guarded
by httpx's per-read timeout, so a large file arriving steadily is never cut
off.
"""

from __future__ import annotations

import asyncio
import logging
import math
from enum import Enum
from pathlib import Path
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ftb_dl.config import (
    DEFAULT_REQUEST_LIMIT,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_USER_AGENT,
    NetConfig,
)
from ftb_dl.errors import RequestError, RequestTimeoutError
from ftb_dl.gate import AdmissionGate
from ftb_dl.models import (
    Changelog,
    FlameFile,
    ModpackManifest,
    ModpackVersionManifest,
    SearchResult,
)
from ftb_dl.request_builder import (
    RequestDescriptor,
    build_flame_file_request,
    build_flame_request,
    build_ftb_file_request,
    build_ftb_request,
    check_response,
    decode_json,
    merge_request,
)
from ftb_dl.url import get_download_url

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

ModelT = TypeVar("ModelT", bound=BaseModel)


class Service(str, Enum):
    FTB = "ftb"
    FLAME = "flame"


def _parse(model: type[ModelT], data: Any, path: str) -> ModelT:
    """Validate a response body, reporting a bad shape as a :class:`RequestError`."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise RequestError(
            f"GET {path} returned an unexpected {model.__name__}: {e}", url=path
        ) from e


class NetClient:
    """
    Gated async client for both upstream services.

    Usage::

        async with NetClient(NetConfig(request_limit=4)) as net:
            pack = await net.get_modpack(5)
            await net.get_flame_file(238222, 4371807, "staging/mods/jei.jar")
    """

    def __init__(
        self,
        config: Optional[NetConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config if config is not None else NetConfig()
        self.gate = AdmissionGate(self.config)
        self._clients = {
            Service.FTB: httpx.AsyncClient(
                base_url=self.config.ftb_api_base,
                transport=transport,
                follow_redirects=True,
            ),
            Service.FLAME: httpx.AsyncClient(
                base_url=self.config.flame_api_base,
                transport=transport,
                follow_redirects=True,
            ),
        }

    async def __aenter__(self) -> NetClient:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        for client in self._clients.values():
            await client.aclose()

    # ── Configuration ──────────────────────────────────────────────

    def set_request_limit(self, value: int) -> None:
        self.config.request_limit = value

    def reset_request_limit(self) -> None:
        self.config.request_limit = DEFAULT_REQUEST_LIMIT

    def set_request_timeout(self, value: float) -> None:
        self.config.request_timeout = value

    def reset_request_timeout(self) -> None:
        self.config.request_timeout = DEFAULT_REQUEST_TIMEOUT

    def set_user_agent(self, value: str) -> None:
        self.config.user_agent = value

    def reset_user_agent(self) -> None:
        self.config.user_agent = DEFAULT_USER_AGENT

    def set_flame_api_key(self, value: Optional[str]) -> None:
        self.config.flame_api_key = value or None

    def reset_flame_api_key(self) -> None:
        self.config.flame_api_key = None

    # ── Low-level helpers ──────────────────────────────────────────

    async def wait_until_queue_has_space(self, timeout: Optional[float] = None) -> None:
        await self.gate.wait_until_queue_has_space(timeout)

    async def make_request(
        self,
        service: Service,
        descriptor: RequestDescriptor,
        sink: Optional[str | Path] = None,
    ) -> Any:
        """
        Queue ``descriptor`` on the admission gate and return its result.

        JSON requests return the decoded body; stream requests write the body
        to ``sink`` and return the number of bytes written.
        """
        client = self._clients[Service(service)]
        if descriptor.is_stream and sink is None:
            raise ValueError("Stream requests require a sink path")
        logger.debug(
            "Making %s request to %s for %s",
            descriptor.method,
            client.base_url,
            descriptor.url,
        )
        # Streams time out in _perform, once the headers are in
        gate_timeout = math.inf if descriptor.is_stream else descriptor.timeout
        return await self.gate.enqueue(
            lambda: self._perform(client, descriptor, sink),
            descriptor.describe(),
            timeout=gate_timeout,
        )

    async def _perform(
        self,
        client: httpx.AsyncClient,
        descriptor: RequestDescriptor,
        sink: Optional[str | Path],
    ) -> Any:
        kwargs: dict[str, Any] = {"headers": descriptor.headers}
        if descriptor.params:
            kwargs["params"] = descriptor.params
        if descriptor.timeout is not None:
            kwargs["timeout"] = descriptor.timeout
        url = descriptor.url
        try:
            request = client.build_request(descriptor.method, descriptor.url, **kwargs)
            url = str(request.url)
            if not descriptor.is_stream:
                response = await client.send(request)
                check_response(response)
                return decode_json(response)
            response = await self._send_stream(client, request, descriptor)
            try:
                check_response(response)
                return await self._stream_to(response, Path(sink))  # type: ignore[arg-type]
            finally:
                await response.aclose()
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                f"{descriptor.describe()} timed out: {e}", url=url
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as e:
            raise RequestError(f"{descriptor.describe()} failed: {e}", url=url) from e

    async def _send_stream(
        self,
        client: httpx.AsyncClient,
        request: httpx.Request,
        descriptor: RequestDescriptor,
    ) -> httpx.Response:
        timeout = (
            descriptor.timeout
            if descriptor.timeout is not None
            else self.config.request_timeout
        )
        try:
            return await asyncio.wait_for(client.send(request, stream=True), timeout)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(
                f"{descriptor.describe()} got no response within {timeout:g}s",
                url=str(request.url),
            ) from e

    @staticmethod
    async def _stream_to(response: httpx.Response, target: Path) -> int:
        target.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        with open(target, "wb") as fp:
            async for chunk in response.aiter_bytes(CHUNK_SIZE):
                fp.write(chunk)
                written += len(chunk)
        return written

    def _json_request(self, service: Service, path: str) -> RequestDescriptor:
        if Service(service) is Service.FLAME:
            return build_flame_request(self.config, path)
        return build_ftb_request(self.config, path)

    def _file_request(self, service: Service, path: str) -> RequestDescriptor:
        if Service(service) is Service.FLAME:
            return build_flame_file_request(self.config, path)
        return build_ftb_file_request(self.config, path)

    async def get_json(
        self, service: Service, path: str, params: Optional[dict[str, Any]] = None
    ) -> Any:
        descriptor = merge_request(self._json_request(service, path), params=params)
        return await self.make_request(service, descriptor)

    async def get_file(self, service: Service, path: str, sink: str | Path) -> int:
        return await self.make_request(service, self._file_request(service, path), sink)

    # ── Feed the Beast ─────────────────────────────────────────────

    async def get_ftb(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """
        ``GET`` a JSON document from the FTB API.

        The FTB API sometimes answers ``200`` with ``{"status": "error"}``;
        that is reported as a :class:`RequestError` too.
        """
        data = await self.get_json(Service.FTB, path, params)
        if isinstance(data, dict) and data.get("status") == "error":
            raise RequestError(
                f"GET {path} failed: {data.get('message', 'unknown error')}",
                url=path,
            )
        return data

    async def get_ftb_file(self, url: str, sink: str | Path) -> int:
        return await self.get_file(Service.FTB, url, sink)

    async def get_modpack(self, modpack_id: int) -> ModpackManifest:
        data = await self.get_ftb(f"/modpack/{modpack_id}")
        return _parse(ModpackManifest, data, f"/modpack/{modpack_id}")

    async def get_modpack_version(
        self, modpack_id: int, version_id: int
    ) -> ModpackVersionManifest:
        data = await self.get_ftb(f"/modpack/{modpack_id}/{version_id}")
        return _parse(
            ModpackVersionManifest, data, f"/modpack/{modpack_id}/{version_id}"
        )

    async def search_modpacks(self, term: str, limit: int = 10) -> SearchResult:
        data = await self.get_ftb(f"/modpack/search/{limit}", params={"term": term})
        return _parse(SearchResult, data, f"/modpack/search/{limit}")

    async def get_changelog(self, url: str) -> Changelog:
        data = await self.get_ftb(url)
        return _parse(Changelog, data, url)

    # ── CurseForge ─────────────────────────────────────────────────

    async def get_flame(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        return await self.get_json(Service.FLAME, path, params)

    async def get_flame_file_info(self, project_id: int, file_id: int) -> FlameFile:
        path = f"/mods/{project_id}/files/{file_id}"
        data = await self.get_flame(path)
        if not isinstance(data, dict) or "data" not in data:
            raise RequestError(f"GET {path} returned no file data", url=path)
        return _parse(FlameFile, data["data"], path)

    async def get_flame_file(self, project_id: int, file_id: int, sink: str | Path) -> int:
        """
        Download a CurseForge-hosted file to ``sink``.

        Takes two gated requests: a metadata call for the real download URL,
        then the streamed download itself.
        """
        flame_file = await self.get_flame_file_info(project_id, file_id)
        return await self.get_file(Service.FLAME, get_download_url(flame_file), sink)
