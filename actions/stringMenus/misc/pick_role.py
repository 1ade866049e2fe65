"""Self-assign role menu."""

import discord

from switchboard.runtime.actions import StringMenu


async def pick(ctx, debug):
    interaction: discord.Interaction = ctx.event
    selected = (interaction.data or {}).get("values", [])
    member = interaction.user
    if not isinstance(member, discord.Member) or interaction.guild is None:
        await interaction.response.send_message("Roles can only be picked in a server.", ephemeral=True)
        return
    roles = [r for r in (interaction.guild.get_role(int(v)) for v in selected) if r is not None]
    await member.add_roles(*roles, reason="self-assigned")
    await interaction.response.send_message(
        f"Added {', '.join(r.name for r in roles) or 'nothing'}.", ephemeral=True,
    )


action = StringMenu(
    custom_id="pick-role",
    is_guild_only=True,
    handler=pick,
)
