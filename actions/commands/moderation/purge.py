"""/purge -- bulk delete recent messages in the current channel."""

import discord

from switchboard.runtime.actions import ChatCommand


async def purge(ctx, debug):
    interaction: discord.Interaction = ctx.event
    options = {o["name"]: o["value"] for o in (interaction.data or {}).get("options", [])}
    amount = int(options.get("amount", 10))

    await interaction.response.defer(ephemeral=True)
    channel = interaction.channel
    if not isinstance(channel, discord.TextChannel):
        await interaction.edit_original_response(content="This channel cannot be purged.")
        return
    deleted = await channel.purge(limit=amount)
    if debug:
        debug.write(f"deleted {len(deleted)} of {amount} requested in {channel.id}")
    await interaction.edit_original_response(content=f"Deleted {len(deleted)} message(s).")


async def suggest_amount(ctx, focused_name, focused_value):
    return [(str(n), n) for n in (10, 25, 50, 100) if str(n).startswith(focused_value)]


action = ChatCommand(
    name="purge",
    description="Delete recent messages in this channel.",
    options=[
        {
            "name": "amount",
            "description": "How many messages to delete.",
            "type": discord.AppCommandOptionType.integer.value,
            "required": True,
            "min_value": 1,
            "max_value": 100,
            "autocomplete": True,
        },
    ],
    permissions={"manage_messages"},
    is_guild_only=True,
    enable_debug=True,
    handler=purge,
    autocomplete=suggest_amount,
)
