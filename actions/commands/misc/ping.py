"""/ping -- latency check."""

import discord

from switchboard.runtime.actions import ChatCommand


async def ping(ctx, debug):
    interaction: discord.Interaction = ctx.event
    latency_ms = interaction.client.latency * 1000
    if debug:
        debug.write(f"gateway latency {latency_ms:.0f}ms")
    await interaction.response.send_message(f"Pong! `{latency_ms:.0f}ms`", ephemeral=True)


action = ChatCommand(
    name="ping",
    description="Check that the bot is alive.",
    handler=ping,
)
