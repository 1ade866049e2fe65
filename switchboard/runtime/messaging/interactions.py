"""Discord interaction routing -- slash commands, components, modals, autocomplete."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

import discord
from discord import app_commands

from ..actions.dispatcher import ActionDispatcher, DispatchResult, DispatchStatus
from ..actions.guards import denial_text
from ..actions.models import ActionKind, GuardReason, InvocationContext

logger = logging.getLogger(__name__)

# Components whose custom id ends with this are owned by an in-message
# collector, not by an action file.
COLLECTOR_SUFFIX = "collector"

# Discord caps autocomplete answers at 25 choices.
MAX_CHOICES = 25

_CHAT_INPUT = 1

MAINTENANCE_TEXT = "The bot is under maintenance. Please try again later."
FAILURE_TEXT = "Something went wrong while running this {label}. Reference: `{cid}`"


def permission_names(permissions: discord.Permissions | None) -> frozenset[str]:
    if permissions is None:
        return frozenset()
    return frozenset(name for name, value in permissions if value)


def classify(interaction: discord.Interaction) -> tuple[ActionKind, str] | None:
    """Map an interaction to the action kind and identifier that handles it."""
    data: Mapping[str, Any] = interaction.data or {}
    itype = interaction.type

    if itype is discord.InteractionType.application_command:
        # User and message context-menu commands are not chat commands.
        if data.get("type", _CHAT_INPUT) != _CHAT_INPUT:
            return None
        return ActionKind.COMMAND, str(data.get("name", ""))

    if itype is discord.InteractionType.component:
        component_type = data.get("component_type")
        if component_type == discord.ComponentType.button.value:
            kind = ActionKind.BUTTON
        elif component_type == discord.ComponentType.string_select.value:
            kind = ActionKind.STRING_MENU
        else:
            return None
        return kind, str(data.get("custom_id", ""))

    if itype is discord.InteractionType.modal_submit:
        return ActionKind.MODAL, str(data.get("custom_id", ""))

    return None


def find_focused(options: Iterable[Mapping[str, Any]]) -> Mapping[str, Any] | None:
    """Return the focused option, descending into subcommand groups."""
    for option in options:
        if option.get("focused"):
            return option
        nested = option.get("options")
        if nested:
            found = find_focused(nested)
            if found is not None:
                return found
    return None


def _as_choice(item: Any) -> app_commands.Choice[Any]:
    if isinstance(item, app_commands.Choice):
        return item
    if isinstance(item, tuple):
        name, value = item
        return app_commands.Choice(name=str(name), value=value)
    return app_commands.Choice(name=str(item), value=item)


class InteractionResponder:
    """Sends guard denials and failures back as ephemeral replies."""

    def __init__(self, interaction: discord.Interaction) -> None:
        self._interaction = interaction

    async def maintenance(self, ctx: InvocationContext) -> None:
        await self._send(MAINTENANCE_TEXT)

    async def deny(self, ctx: InvocationContext, reason: GuardReason) -> None:
        await self._send(denial_text(ctx.kind, reason))

    async def fail(self, ctx: InvocationContext) -> None:
        await self._send(FAILURE_TEXT.format(label=ctx.kind.label, cid=ctx.correlation_id))

    async def _send(self, content: str) -> None:
        interaction = self._interaction
        if interaction.response.is_done():
            await interaction.followup.send(content, ephemeral=True)
        else:
            await interaction.response.send_message(content, ephemeral=True)


class InteractionRouter:
    def __init__(self, dispatcher: ActionDispatcher) -> None:
        self._dispatcher = dispatcher

    def context_for(self, interaction: discord.Interaction, kind: ActionKind) -> InvocationContext:
        return self._dispatcher.context(
            kind,
            interaction,
            actor_id=str(interaction.user.id),
            permissions=permission_names(interaction.permissions),
            guild_id=str(interaction.guild_id) if interaction.guild_id else None,
        )

    async def handle(self, interaction: discord.Interaction) -> DispatchResult | None:
        """Route one interaction; returns ``None`` when it is not ours to answer."""
        if interaction.type is discord.InteractionType.autocomplete:
            return await self._autocomplete(interaction)

        target = classify(interaction)
        if target is None:
            return None
        kind, identifier = target
        if kind is not ActionKind.COMMAND and identifier.endswith(COLLECTOR_SUFFIX):
            return None

        ctx = self.context_for(interaction, kind)
        return await self._dispatcher.dispatch(
            kind, identifier, ctx, InteractionResponder(interaction),
        )

    async def _autocomplete(self, interaction: discord.Interaction) -> DispatchResult | None:
        data: Mapping[str, Any] = interaction.data or {}
        focused = find_focused(data.get("options", ()))
        if focused is None:
            return None

        ctx = self.context_for(interaction, ActionKind.COMMAND)
        result = await self._dispatcher.autocomplete(
            str(data.get("name", "")),
            ctx,
            str(focused.get("name", "")),
            str(focused.get("value", "")),
        )
        if result.status is not DispatchStatus.SUCCEEDED or result.value is None:
            return result
        if interaction.response.is_done():
            return result

        try:
            choices = [_as_choice(item) for item in result.value][:MAX_CHOICES]
        except (TypeError, ValueError) as exc:
            self._dispatcher.audit.failure(
                f"{data.get('name')}-autocomplete", exc,
                correlation_id=ctx.correlation_id, elapsed_ms=result.elapsed_ms,
            )
            return DispatchResult(
                DispatchStatus.FAILED, ctx.correlation_id, error=exc, elapsed_ms=result.elapsed_ms,
            )
        try:
            await interaction.response.autocomplete(choices)
        except discord.HTTPException:
            logger.warning(
                "[interactions] autocomplete answer for %s rejected cid=%s",
                data.get("name"), ctx.correlation_id, exc_info=True,
            )
        return result
