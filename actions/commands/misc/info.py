"""/info -- short facts about the bot or the current server."""

import discord

from switchboard.runtime.actions import ChatCommand

_TOPICS = {"bot": "Bot", "server": "Server"}


async def info(ctx, debug):
    interaction: discord.Interaction = ctx.event
    topic = next(
        (o.get("value") for o in (interaction.data or {}).get("options", []) if o.get("name") == "on"),
        "bot",
    )
    if topic == "server" and not ctx.in_guild:
        await interaction.response.send_message(
            "This choice can only be used in a server.", ephemeral=True,
        )
        return

    embed = discord.Embed(title=f"{_TOPICS.get(topic, 'Bot')} info")
    if topic == "server" and interaction.guild is not None:
        embed.add_field(name="Members", value=str(interaction.guild.member_count))
    else:
        embed.add_field(name="Servers", value=str(len(interaction.client.guilds)))
    embed.set_footer(text=f"ref {ctx.correlation_id}")
    await interaction.response.send_message(embed=embed, ephemeral=True)


action = ChatCommand(
    name="info",
    description="Get information about the bot or this server.",
    options=[
        {
            "name": "on",
            "description": "What do you want to know more about?",
            "type": discord.AppCommandOptionType.string.value,
            "required": True,
            "choices": [{"name": n, "value": v} for v, n in _TOPICS.items()],
        },
    ],
    handler=info,
)
