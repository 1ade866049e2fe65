"""HTTP middleware -- API key auth and maintenance mode."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from aiohttp import web
from aiohttp.abc import AbstractAccessLogger

if TYPE_CHECKING:
    from ..config.settings import Settings

logger = logging.getLogger(__name__)

PRINCIPAL_KEY = "switchboard.principal"

_QUIET_PATHS = frozenset({"/health"})


class QuietAccessLogger(AbstractAccessLogger):
    """Demotes polling-endpoint and noisy log entries to DEBUG."""

    def log(self, request: web.BaseRequest, response: web.StreamResponse, time: float) -> None:
        status = response.status
        if request.path in _QUIET_PATHS or status == 401 or status in (502, 503):
            level = logging.DEBUG
        else:
            level = logging.INFO
        self.logger.log(
            level,
            "%s %s %s %s %.3fs",
            request.remote,
            request.method,
            request.path,
            status,
            time,
        )


@dataclass(frozen=True)
class ApiPrincipal:
    """The actor behind an API key."""

    user_id: str
    permissions: frozenset[str] = frozenset()
    guild_id: str | None = None
    revoked: bool = False


class ApiKeyResolver(Protocol):
    async def resolve(self, api_key: str) -> ApiPrincipal | None: ...


class StaticKeyResolver:
    """In-memory key table, for development and tests."""

    def __init__(self, keys: Mapping[str, ApiPrincipal]) -> None:
        self._keys = dict(keys)

    async def resolve(self, api_key: str) -> ApiPrincipal | None:
        return self._keys.get(api_key)


def public_paths(api_prefix: str) -> frozenset[str]:
    return frozenset({"/", "/health", api_prefix or "/", f"{api_prefix}/endpoints"})


def is_api_path(path: str, api_prefix: str) -> bool:
    if not api_prefix:
        return path != "/health"
    return path == api_prefix or path.startswith(api_prefix + "/")


def api_key_middleware(resolver: ApiKeyResolver | None, api_prefix: str):  # type: ignore[no-untyped-def]
    """Resolve the ``Authorization`` key of API requests to a principal.

    Without a resolver every request passes through anonymously and the
    route guards decide on their own.
    """
    public = public_paths(api_prefix)

    @web.middleware
    async def middleware(request: web.Request, handler):  # type: ignore[type-arg]
        if resolver is None or request.path in public or not is_api_path(request.path, api_prefix):
            return await handler(request)

        raw = request.headers.get("Authorization", "").strip()
        api_key = raw[7:].strip() if raw.lower().startswith("bearer ") else raw
        principal = await resolver.resolve(api_key) if api_key else None
        if principal is None:
            return web.json_response({"success": False, "message": "Key not found."}, status=401)
        if principal.revoked:
            return web.json_response(
                {"success": False, "message": "Key revoked. Contact a staff member."},
                status=401,
            )
        request[PRINCIPAL_KEY] = principal
        return await handler(request)

    return middleware


def maintenance_middleware(settings: Settings):  # type: ignore[no-untyped-def]
    """Answer 503 on API routes while maintenance mode is on."""

    @web.middleware
    async def middleware(request: web.Request, handler):  # type: ignore[type-arg]
        prefix = settings.api_prefix
        if (
            settings.maintenance_mode
            and is_api_path(request.path, prefix)
            and request.path not in public_paths(prefix)
        ):
            return web.json_response(
                {"success": False, "message": "The bot is under maintenance."},
                status=503,
            )
        return await handler(request)

    return middleware
