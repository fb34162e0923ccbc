"""
Network configuration shared by the admission gate and the request builder.

A single :class:`NetConfig` is created per process (usually by the CLI) and
passed by reference to :class:`~ftb_dl.net.NetClient`. Mutating it between
calls changes the concurrency limit, timeout, user agent or CurseForge API key
for every request that has not been dispatched yet.
"""

from __future__ import annotations

import os
import platform
from typing import Optional

import httpx
from dotenv import load_dotenv
from pydantic import BaseModel, Field

APP_NAME = "ftb-dl"
APP_VERSION = "0.4.0"

DEFAULT_FTB_API_BASE = "https://api.modpacks.ch/public"
DEFAULT_FLAME_API_BASE = "https://api.curseforge.com/v1"
DEFAULT_REQUEST_LIMIT = 3
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_USER_AGENT = (
    f"{APP_NAME}/{APP_VERSION} "
    f"python/{platform.python_version()} httpx/{httpx.__version__}"
)


class NetConfig(BaseModel):
    """
    Mutable network settings.

    ``request_timeout`` is in seconds and is applied per request, from the
    moment the request is admitted until it settles.
    """

    request_limit: int = Field(default=DEFAULT_REQUEST_LIMIT, ge=1)
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    user_agent: str = DEFAULT_USER_AGENT
    flame_api_key: Optional[str] = None
    ftb_api_base: str = DEFAULT_FTB_API_BASE
    flame_api_base: str = DEFAULT_FLAME_API_BASE

    model_config = {"validate_assignment": True}

    @classmethod
    def from_env(cls, **overrides) -> NetConfig:
        """
        Build a config from the environment (and a ``.env`` file, if any).

        Recognised variables: ``CURSEFORGE_API_KEY``, ``FTB_DL_USER_AGENT``,
        ``FTB_DL_MAX_CONNECTIONS`` and ``FTB_DL_TIMEOUT``. Keyword overrides
        win over the environment; ``None`` overrides are ignored.
        """
        load_dotenv()
        values: dict[str, object] = {}
        if os.environ.get("CURSEFORGE_API_KEY"):
            values["flame_api_key"] = os.environ["CURSEFORGE_API_KEY"]
        if os.environ.get("FTB_DL_USER_AGENT"):
            values["user_agent"] = os.environ["FTB_DL_USER_AGENT"]
        if os.environ.get("FTB_DL_MAX_CONNECTIONS"):
            values["request_limit"] = int(os.environ["FTB_DL_MAX_CONNECTIONS"])
        if os.environ.get("FTB_DL_TIMEOUT"):
            values["request_timeout"] = float(os.environ["FTB_DL_TIMEOUT"])
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)
