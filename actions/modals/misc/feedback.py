"""Feedback modal submit."""

import logging

import discord

from switchboard.runtime.actions import Modal

logger = logging.getLogger(__name__)


def _field_values(interaction: discord.Interaction) -> dict[str, str]:
    values: dict[str, str] = {}
    for row in (interaction.data or {}).get("components", []):
        for component in row.get("components", []):
            values[component.get("custom_id", "")] = component.get("value", "")
    return values


async def submit(ctx, debug):
    interaction: discord.Interaction = ctx.event
    text = _field_values(interaction).get("feedback-text", "").strip()
    logger.info("feedback from %s: %s", ctx.actor_id, text[:200])
    await interaction.response.send_message("Thanks for the feedback!", ephemeral=True)


action = Modal(
    custom_id="feedback",
    handler=submit,
)
