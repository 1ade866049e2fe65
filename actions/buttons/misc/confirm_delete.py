"""Confirmation button shown under destructive commands."""

import discord

from switchboard.runtime.actions import Button


async def confirm(ctx, debug):
    interaction: discord.Interaction = ctx.event
    await interaction.response.edit_message(content="Confirmed.", view=None)


action = Button(
    custom_id="confirm-delete",
    is_guild_only=True,
    handler=confirm,
)
