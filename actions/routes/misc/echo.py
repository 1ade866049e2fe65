"""POST /api/misc/echo -- echoes the posted text back."""

from aiohttp import web

from switchboard.runtime.actions import Route


async def echo(ctx, debug):
    request: web.Request = ctx.event
    data = await request.json()
    return {"success": True, "text": data["text"]}


action = Route(
    path="/echo",
    method="POST",
    description="Echoes the posted text.",
    require_request_data=True,
    request_schema={"text": "string"},
    handler=echo,
)
