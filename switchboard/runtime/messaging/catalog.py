"""Slash-command catalog sync.

Brings the application's global command list in line with the loaded
command actions: new commands are created, changed ones are overwritten,
disabled ones and ones without a local file are deleted.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import discord

from ..actions.models import ChatCommand

logger = logging.getLogger(__name__)

_CHAT_INPUT = 1


class CommandCatalogHTTP(Protocol):
    """The subset of ``discord.http.HTTPClient`` used for syncing."""

    async def get_global_commands(self, application_id: int) -> list[dict[str, Any]]: ...

    async def upsert_global_command(
        self, application_id: int, payload: dict[str, Any],
    ) -> dict[str, Any]: ...

    async def edit_global_command(
        self, application_id: int, command_id: int, payload: dict[str, Any],
    ) -> dict[str, Any]: ...

    async def delete_global_command(self, application_id: int, command_id: int) -> None: ...


@dataclass
class SyncReport:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.deleted)


def build_payload(command: ChatCommand) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "type": _CHAT_INPUT,
        "name": command.name,
        "description": command.description,
        "options": [dict(option) for option in command.options],
    }
    if command.permissions:
        flags = discord.Permissions(**{name: True for name in command.permissions})
        payload["default_member_permissions"] = str(flags.value)
    return payload


def _min(option: Mapping[str, Any]) -> Any:
    return option.get("min_value", option.get("minValue"))


def _max(option: Mapping[str, Any]) -> Any:
    return option.get("max_value", option.get("maxValue"))


def _choices(option: Mapping[str, Any]) -> list[tuple[Any, Any]]:
    return [(c.get("name"), c.get("value")) for c in option.get("choices") or ()]


def option_differs(local: Mapping[str, Any], registered: Mapping[str, Any]) -> bool:
    if local.get("description") != registered.get("description"):
        return True
    if bool(local.get("required", False)) != bool(registered.get("required", False)):
        return True
    if local.get("type") != registered.get("type"):
        return True
    if (
        "autocomplete" in local
        and "autocomplete" in registered
        and bool(local["autocomplete"]) != bool(registered["autocomplete"])
    ):
        return True
    if _min(local) != _min(registered) or _max(local) != _max(registered):
        return True

    local_choices = _choices(local)
    registered_choices = _choices(registered)
    if len(local_choices) != len(registered_choices):
        return True
    # Choice order is not significant.
    return any(choice not in registered_choices for choice in local_choices)


def commands_differ(local: Mapping[str, Any], registered: Mapping[str, Any]) -> bool:
    """True if the registered command must be overwritten with *local*."""
    if local.get("description") != registered.get("description"):
        return True
    if local.get("default_member_permissions") != registered.get("default_member_permissions"):
        return True

    local_options: Sequence[Mapping[str, Any]] = local.get("options") or ()
    registered_options: Sequence[Mapping[str, Any]] = registered.get("options") or ()
    if len(local_options) != len(registered_options):
        return True

    by_name = {opt.get("name"): opt for opt in registered_options}
    for option in local_options:
        other = by_name.get(option.get("name"))
        if other is None or option_differs(option, other):
            return True
    return False


async def sync_commands(
    http: CommandCatalogHTTP,
    application_id: int,
    commands: Iterable[ChatCommand],
) -> SyncReport:
    report = SyncReport()
    registered = {c["name"]: c for c in await http.get_global_commands(application_id)}
    local_names: set[str] = set()

    for command in commands:
        local_names.add(command.name)
        existing = registered.get(command.name)

        if existing is None:
            if command.is_disabled:
                continue
            await http.upsert_global_command(application_id, build_payload(command))
            report.created.append(command.name)
            continue

        if command.is_disabled:
            await http.delete_global_command(application_id, int(existing["id"]))
            report.deleted.append(command.name)
            continue

        payload = build_payload(command)
        if commands_differ(payload, existing):
            logger.info("[catalog] updating command %s (%s)", command.name, command.description)
            await http.edit_global_command(application_id, int(existing["id"]), payload)
            report.updated.append(command.name)
        else:
            report.unchanged.append(command.name)

    for name, existing in registered.items():
        if name not in local_names:
            await http.delete_global_command(application_id, int(existing["id"]))
            report.deleted.append(name)

    logger.info(
        "[catalog] sync done: created=%d updated=%d deleted=%d unchanged=%d",
        len(report.created), len(report.updated), len(report.deleted), len(report.unchanged),
    )
    return report
