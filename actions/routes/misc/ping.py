"""GET /api/misc/ping -- API liveness check."""

from aiohttp import web

from switchboard.runtime.actions import Route


async def ping(ctx, debug):
    return web.json_response({"success": True, "message": "pong", "correlation_id": ctx.correlation_id})


action = Route(
    path="/ping",
    method="GET",
    description="Returns pong.",
    handler=ping,
)
