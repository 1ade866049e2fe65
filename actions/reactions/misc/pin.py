"""Pin a message by reacting with a pushpin."""

from switchboard.runtime.actions import Reaction


async def pin(ctx, debug):
    await ctx.event.message.pin(reason=f"pinned by {ctx.actor_id}")


action = Reaction(
    emoji="\N{PUSHPIN}",
    permissions={"manage_messages"},
    is_guild_only=True,
    handler=pin,
)
