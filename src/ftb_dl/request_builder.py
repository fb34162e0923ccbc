"""
Request descriptors for the Feed the Beast and CurseForge services.

The functions here are pure: they read a :class:`~ftb_dl.config.NetConfig`
and return an immutable :class:`RequestDescriptor` without touching the
network. :class:`~ftb_dl.net.NetClient` turns descriptors into httpx calls.

Each service has two shapes of request:

  - a JSON request, whose body is buffered and decoded;
  - a file request, whose body is streamed straight to disk.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Mapping, Optional

import httpx
from pydantic import BaseModel, Field

from ftb_dl.config import NetConfig
from ftb_dl.errors import RequestError

FLAME_API_KEY_HEADER = "x-api-key"


class ResponseType(str, Enum):
    JSON = "json"
    STREAM = "stream"


class RequestDescriptor(BaseModel):
    """Everything needed to issue one HTTP request."""

    method: str = "GET"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    timeout: Optional[float] = None
    response_type: ResponseType = ResponseType.JSON

    model_config = {"frozen": True}

    @property
    def is_stream(self) -> bool:
        return self.response_type is ResponseType.STREAM

    def describe(self) -> str:
        return f"{self.method} {self.url}"


def merge_request(
    base: RequestDescriptor,
    headers: Optional[Mapping[str, str]] = None,
    params: Optional[Mapping[str, Any]] = None,
    **changes: Any,
) -> RequestDescriptor:
    """
    Return a copy of ``base`` with ``changes`` applied.

    ``headers`` and ``params`` are merged into the existing mappings rather
    than replacing them.
    """
    update: dict[str, Any] = dict(changes)
    if headers:
        update["headers"] = {**base.headers, **headers}
    if params:
        update["params"] = {**base.params, **params}
    return base.model_copy(update=update)


def validate_status(status_code: int) -> bool:
    """Only 2xx responses count as success."""
    return 200 <= status_code < 300


def check_response(response: httpx.Response) -> httpx.Response:
    """Raise :class:`RequestError` unless ``response`` has a 2xx status."""
    if not validate_status(response.status_code):
        raise RequestError(
            f"{response.request.method} {response.request.url} "
            f"returned HTTP {response.status_code}",
            url=str(response.request.url),
            status_code=response.status_code,
        )
    return response


def decode_json(response: httpx.Response) -> Any:
    """Decode a buffered response body as JSON."""
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise RequestError(
            f"Malformed JSON from {response.request.url}: {e}",
            url=str(response.request.url),
            status_code=response.status_code,
        ) from e


# ── Shared base ────────────────────────────────────────────────────


def build_base_request(config: NetConfig, path: str) -> RequestDescriptor:
    return RequestDescriptor(
        url=path,
        timeout=config.request_timeout,
        headers={"User-Agent": config.user_agent},
    )


# ── Feed the Beast ─────────────────────────────────────────────────


def build_ftb_base_request(config: NetConfig, path: str) -> RequestDescriptor:
    return build_base_request(config, path)


def build_ftb_request(config: NetConfig, path: str) -> RequestDescriptor:
    return merge_request(
        build_ftb_base_request(config, path),
        headers={"Accept": "application/json"},
        response_type=ResponseType.JSON,
    )


def build_ftb_file_request(config: NetConfig, path: str) -> RequestDescriptor:
    return merge_request(
        build_ftb_base_request(config, path), response_type=ResponseType.STREAM
    )


# ── CurseForge ─────────────────────────────────────────────────────


def build_flame_base_request(config: NetConfig, path: str) -> RequestDescriptor:
    base = build_base_request(config, path)
    if not config.flame_api_key:
        return base
    return merge_request(base, headers={FLAME_API_KEY_HEADER: config.flame_api_key})


def build_flame_request(config: NetConfig, path: str) -> RequestDescriptor:
    return merge_request(
        build_flame_base_request(config, path),
        headers={"Accept": "application/json"},
        response_type=ResponseType.JSON,
    )


def build_flame_file_request(config: NetConfig, path: str) -> RequestDescriptor:
    return merge_request(
        build_flame_base_request(config, path), response_type=ResponseType.STREAM
    )
