"""HTTP route dispatch -- maps ``(method, path)`` under the API prefix to route actions."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

from aiohttp import web

from ..actions.dispatcher import SILENT, ActionDispatcher, DispatchStatus
from ..actions.guards import denial_text, evaluate
from ..actions.models import ActionKind, Route
from .middleware import PRINCIPAL_KEY, ApiPrincipal

logger = logging.getLogger(__name__)

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "boolean": (bool,),
    "object": (dict,),
}


def _matches_type(value: Any, expected: str) -> bool:
    if expected.endswith("[]"):
        return isinstance(value, list) and all(_matches_type(v, expected[:-2]) for v in value)
    # bool is an int subclass; JSON true is not a number.
    if expected == "number" and isinstance(value, bool):
        return False
    return isinstance(value, _JSON_TYPES[expected])


def check_request_data(schema: Mapping[str, str], data: Any) -> bool:
    """True if every schema field is present in *data* with the declared JSON type."""
    if not isinstance(data, dict):
        return False
    return all(key in data and _matches_type(data[key], kind) for key, kind in schema.items())


def _as_response(value: Any) -> web.StreamResponse:
    if isinstance(value, web.StreamResponse):
        return value
    if value is None:
        return web.Response(status=204)
    return web.json_response(value)


def _error(status: int, message: str, **extra: Any) -> web.Response:
    return web.json_response({"success": False, "message": message, **extra}, status=status)


class RouteDispatcher:
    def __init__(self, dispatcher: ActionDispatcher) -> None:
        self._dispatcher = dispatcher

    def register(self, router: web.UrlDispatcher, api_prefix: str) -> None:
        router.add_get(f"{api_prefix}/endpoints", self.endpoints)
        router.add_route("*", f"{api_prefix}/{{tail:.*}}", self.handle)

    async def endpoints(self, request: web.Request) -> web.Response:
        routes = sorted(
            (r for r in self._dispatcher.registry.all(ActionKind.ROUTE) if isinstance(r, Route)),
            key=lambda r: (r.category, r.full_path, r.method),
        )
        listing = [
            {
                "method": r.method,
                "path": r.full_path,
                "description": r.description,
                "category": r.category,
                "require_request_data": r.require_request_data,
                "request_schema": dict(r.request_schema),
            }
            for r in routes
            if not r.is_disabled and not r.is_dev_only
        ]
        return web.json_response({"success": True, "endpoints": listing})

    async def handle(self, request: web.Request) -> web.StreamResponse:
        route = self._dispatcher.registry.resolve_route(request.method, request.path)
        if route is None or route.handler is None:
            logger.debug("[routes] no route for %s %s", request.method, request.path)
            return _error(404, "Not found.")

        principal: ApiPrincipal | None = request.get(PRINCIPAL_KEY)
        ctx = self._dispatcher.context(
            ActionKind.ROUTE,
            request,
            actor_id=principal.user_id if principal else None,
            permissions=principal.permissions if principal else frozenset(),
            guild_id=principal.guild_id if principal else None,
        )

        # Body checks only apply to callers the guards would let through.
        if route.require_request_data and evaluate(
            route, ctx, self._dispatcher.settings.developer_ids,
        ).allowed:
            problem = await self._request_data_problem(route, request)
            if problem:
                return _error(400, problem)

        result = await self._dispatcher.invoke(route, ctx, SILENT)
        if result.status is DispatchStatus.DENIED and result.reason is not None:
            return _error(403, denial_text(ActionKind.ROUTE, result.reason))
        if result.status is DispatchStatus.FAILED:
            return _error(500, "Internal server error.", correlation_id=result.correlation_id)
        return _as_response(result.value)

    @staticmethod
    async def _request_data_problem(route: Route, request: web.Request) -> str | None:
        if not request.body_exists:
            return "Missing data."
        if not route.request_schema:
            return None
        try:
            data = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return "Invalid data format."
        if not check_request_data(route.request_schema, data):
            return "Invalid data format."
        return None
