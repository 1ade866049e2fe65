"""Action descriptors, the invocation context, and load-time errors.

Every action file exposes one module-level ``action`` built from one of
the descriptor classes below.  The shared base carries the guard flags and
the handler; each subclass adds the field that identifies it within its
kind plus whatever payload the kind needs (command options, route path and
method, lifecycle ordinal).
"""

from __future__ import annotations

import enum
import re
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

import discord

if TYPE_CHECKING:
    from ..config.settings import Settings
    from .debug import DebugStream

Handler = Callable[["InvocationContext", "DebugStream | None"], Awaitable[Any]]
AutocompleteHandler = Callable[["InvocationContext", str, str], Awaitable[Any]]

HTTP_METHODS: frozenset[str] = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})

_COMMAND_NAME_RE = re.compile(r"^[-_\w]{1,32}$")
_SCHEMA_TYPE_RE = re.compile(r"^(string|number|boolean|object)(\[\])?$")


class ActionKind(enum.Enum):
    COMMAND = "commands"
    BUTTON = "buttons"
    MODAL = "modals"
    STRING_MENU = "stringMenus"
    REACTION = "reactions"
    ROUTE = "routes"
    EVENT = "events"

    @property
    def folder(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]


_KIND_LABELS = {
    ActionKind.COMMAND: "command",
    ActionKind.BUTTON: "button",
    ActionKind.MODAL: "modal",
    ActionKind.STRING_MENU: "menu",
    ActionKind.REACTION: "reaction",
    ActionKind.ROUTE: "route",
    ActionKind.EVENT: "event",
}

# A partial command catalog is worse than none, so these kinds fail fast.
MANDATORY_KINDS: frozenset[ActionKind] = frozenset({ActionKind.COMMAND})


class GuardReason(enum.Enum):
    DISABLED = "Disabled"
    DEV_ONLY = "DevOnly"
    GUILD_ONLY = "GuildOnly"
    INSUFFICIENT_PERMISSIONS = "InsufficientPermissions"


class DescriptorError(ValueError):
    """A descriptor is structurally invalid."""


class LoadError(Exception):
    """An action file could not be turned into a valid descriptor."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


class DuplicateActionError(LoadError):
    """Two files in the same kind share an identifier."""


@dataclass(frozen=True, kw_only=True)
class ActionDescriptor:
    kind: ClassVar[ActionKind]
    identity_field: ClassVar[str]
    handler_required: ClassVar[bool] = True

    description: str = ""
    permissions: frozenset[str] = frozenset()
    is_dev_only: bool = False
    is_guild_only: bool = False
    is_disabled: bool = False
    enable_debug: bool = False
    handler: Handler | None = field(default=None, compare=False)
    source: Path | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.permissions, frozenset):
            object.__setattr__(self, "permissions", frozenset(self.permissions))

    @property
    def identifier(self) -> str:
        return str(getattr(self, self.identity_field))

    @property
    def label(self) -> str:
        return f"{self.identifier}-{self.kind.label}"

    def validate(self) -> None:
        """Raise :class:`DescriptorError` if the descriptor cannot be registered."""
        if not getattr(self, self.identity_field):
            raise DescriptorError(f"missing identifying field {self.identity_field!r}")
        if self.handler is None:
            if self.handler_required:
                raise DescriptorError("missing handler")
        elif not callable(self.handler):
            raise DescriptorError("handler is not callable")
        unknown = sorted(self.permissions - set(discord.Permissions.VALID_FLAGS))
        if unknown:
            raise DescriptorError(f"unknown permission flags: {', '.join(unknown)}")


@dataclass(frozen=True, kw_only=True)
class ChatCommand(ActionDescriptor):
    kind: ClassVar[ActionKind] = ActionKind.COMMAND
    identity_field: ClassVar[str] = "name"
    # Catalog-only entries may omit the handler.
    handler_required: ClassVar[bool] = False

    name: str = ""
    options: tuple[Mapping[str, Any], ...] = ()
    autocomplete: AutocompleteHandler | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        super().__post_init__()
        if not isinstance(self.options, tuple):
            object.__setattr__(self, "options", tuple(self.options))

    def validate(self) -> None:
        super().validate()
        if not _COMMAND_NAME_RE.match(self.name) or self.name != self.name.lower():
            raise DescriptorError(f"invalid command name {self.name!r}")
        if not self.description:
            raise DescriptorError("commands need a description")
        if self.autocomplete is not None and not callable(self.autocomplete):
            raise DescriptorError("autocomplete is not callable")


@dataclass(frozen=True, kw_only=True)
class _ComponentAction(ActionDescriptor):
    identity_field: ClassVar[str] = "custom_id"

    custom_id: str = ""


@dataclass(frozen=True, kw_only=True)
class Button(_ComponentAction):
    kind: ClassVar[ActionKind] = ActionKind.BUTTON


@dataclass(frozen=True, kw_only=True)
class Modal(_ComponentAction):
    kind: ClassVar[ActionKind] = ActionKind.MODAL


@dataclass(frozen=True, kw_only=True)
class StringMenu(_ComponentAction):
    kind: ClassVar[ActionKind] = ActionKind.STRING_MENU


@dataclass(frozen=True, kw_only=True)
class Reaction(ActionDescriptor):
    kind: ClassVar[ActionKind] = ActionKind.REACTION
    identity_field: ClassVar[str] = "emoji"

    emoji: str = ""


@dataclass(frozen=True, kw_only=True)
class Route(ActionDescriptor):
    kind: ClassVar[ActionKind] = ActionKind.ROUTE
    identity_field: ClassVar[str] = "path"

    path: str = ""
    method: str = "GET"
    follow_folders: bool = True
    require_request_data: bool = False
    # Expected JSON body fields, e.g. {"text": "string", "ids": "number[]"}.
    request_schema: Mapping[str, str] = field(default_factory=dict, compare=False)
    # Filled in at load time: API prefix plus folder names.
    prefix: str = ""
    category: str = ""

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "method", self.method.upper())
        if self.path:
            object.__setattr__(self, "path", normalize_path(self.path))
        if self.prefix:
            object.__setattr__(self, "prefix", normalize_path(self.prefix))

    @property
    def full_path(self) -> str:
        return normalize_path(f"{self.prefix}{self.path}")

    @property
    def identifier(self) -> str:
        return route_key(self.method, self.full_path)

    @property
    def label(self) -> str:
        return f"{self.full_path.strip('/').replace('/', '_')}-route"

    def validate(self) -> None:
        super().validate()
        if self.method not in HTTP_METHODS:
            raise DescriptorError(f"unsupported HTTP method {self.method!r}")
        bad = sorted(k for k, v in self.request_schema.items() if not _SCHEMA_TYPE_RE.match(v))
        if bad:
            raise DescriptorError(f"unknown request field types for: {', '.join(bad)}")


@dataclass(frozen=True, kw_only=True)
class LifecycleEvent(ActionDescriptor):
    kind: ClassVar[ActionKind] = ActionKind.EVENT
    identity_field: ClassVar[str] = "name"

    event: str = ""
    name: str = ""
    ordinal: int | None = None

    @property
    def identifier(self) -> str:
        order = "-" if self.ordinal is None else str(self.ordinal)
        return f"{self.event}/{order}/{self.name}"

    @property
    def sort_key(self) -> tuple[int, int, str]:
        if self.ordinal is None:
            return (1, 0, self.name)
        return (0, self.ordinal, self.name)

    def validate(self) -> None:
        super().validate()
        if not self.event:
            raise DescriptorError("missing event name")


DESCRIPTOR_TYPES: dict[ActionKind, type[ActionDescriptor]] = {
    ActionKind.COMMAND: ChatCommand,
    ActionKind.BUTTON: Button,
    ActionKind.MODAL: Modal,
    ActionKind.STRING_MENU: StringMenu,
    ActionKind.REACTION: Reaction,
    ActionKind.ROUTE: Route,
    ActionKind.EVENT: LifecycleEvent,
}


def normalize_path(path: str) -> str:
    """Collapse duplicate slashes, force a leading one and drop the trailing one."""
    parts = [p for p in path.split("/") if p]
    return "/" + "/".join(parts)


def route_key(method: str, path: str) -> str:
    return f"{method.upper()} {normalize_path(path)}"


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class InvocationContext:
    """Per-dispatch bundle handed to a handler.

    ``event`` is whatever the transport delivered: a ``discord.Interaction``,
    a raw reaction payload, an ``aiohttp`` request, or the positional
    arguments of a gateway event.  ``services`` carries the collaborators
    (database pool, cache client, ...) wired in at startup.
    """

    kind: ActionKind
    event: Any
    settings: Settings
    actor_id: str | None = None
    permissions: frozenset[str] = frozenset()
    guild_id: str | None = None
    services: Mapping[str, Any] = field(default_factory=dict)
    correlation_id: str = field(default_factory=new_correlation_id)
    descriptor: ActionDescriptor | None = None

    @property
    def in_guild(self) -> bool:
        return self.guild_id is not None
