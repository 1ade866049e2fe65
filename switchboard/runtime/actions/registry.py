"""Action registry -- read-only, per-kind index of loaded descriptors."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

from .models import (
    ActionDescriptor,
    ActionKind,
    ChatCommand,
    DescriptorError,
    DuplicateActionError,
    LifecycleEvent,
    LoadError,
    Route,
)

if TYPE_CHECKING:
    from ..config.settings import Settings
    from .audit import AuditSink

logger = logging.getLogger(__name__)


class ActionRegistry:
    """Immutable mapping ``kind -> identifier -> descriptor``.

    Built once (or rebuilt wholesale on reload) and then only read, so
    dispatchers share it without locking.
    """

    def __init__(
        self,
        index: Mapping[ActionKind, Mapping[str, ActionDescriptor]],
        events: Mapping[str, tuple[LifecycleEvent, ...]],
    ) -> None:
        self._index = MappingProxyType(
            {kind: MappingProxyType(dict(index.get(kind, {}))) for kind in ActionKind}
        )
        self._events = MappingProxyType(dict(events))

    @classmethod
    def build(cls, loaded: Mapping[ActionKind, Iterable[ActionDescriptor]]) -> ActionRegistry:
        index: dict[ActionKind, dict[str, ActionDescriptor]] = {kind: {} for kind in ActionKind}
        for kind, descriptors in loaded.items():
            bucket = index[kind]
            for descriptor in descriptors:
                if descriptor.kind is not kind:
                    raise LoadError(
                        descriptor.source or descriptor.identifier,
                        f"{type(descriptor).__name__} registered under {kind.name}",
                    )
                existing = bucket.get(descriptor.identifier)
                if existing is not None:
                    raise DuplicateActionError(
                        descriptor.source or descriptor.identifier,
                        f"identifier {descriptor.identifier!r} already registered"
                        + (f" by {existing.source}" if existing.source else ""),
                    )
                bucket[descriptor.identifier] = descriptor

        by_event: dict[str, list[LifecycleEvent]] = {}
        for descriptor in index[ActionKind.EVENT].values():
            if isinstance(descriptor, LifecycleEvent):
                by_event.setdefault(descriptor.event, []).append(descriptor)
        events = {
            name: tuple(sorted(handlers, key=lambda d: d.sort_key))
            for name, handlers in by_event.items()
        }

        registry = cls(index, events)
        logger.info(
            "[registry] built: %s",
            ", ".join(f"{k.folder}={len(v)}" for k, v in index.items()),
        )
        return registry

    @classmethod
    def from_descriptors(cls, *descriptors: ActionDescriptor) -> ActionRegistry:
        """Register descriptors defined in code, validating each one."""
        loaded: dict[ActionKind, list[ActionDescriptor]] = {}
        for descriptor in descriptors:
            try:
                descriptor.validate()
            except DescriptorError as exc:
                raise LoadError(descriptor.source or type(descriptor).__name__, str(exc)) from exc
            loaded.setdefault(descriptor.kind, []).append(descriptor)
        return cls.build(loaded)

    @classmethod
    def empty(cls) -> ActionRegistry:
        return cls({}, {})

    def get(self, kind: ActionKind, identifier: str) -> ActionDescriptor | None:
        return self._index[kind].get(identifier)

    def all(self, kind: ActionKind) -> list[ActionDescriptor]:
        return list(self._index[kind].values())

    def commands(self) -> list[ChatCommand]:
        return [d for d in self._index[ActionKind.COMMAND].values() if isinstance(d, ChatCommand)]

    def resolve_route(self, method: str, path: str) -> Route | None:
        """Match a request path exactly; only a single trailing slash is forgiven."""
        if len(path) > 1 and path.endswith("/"):
            path = path[:-1]
        route = self._index[ActionKind.ROUTE].get(f"{method.upper()} {path}")
        return route if isinstance(route, Route) else None

    def events_for(self, event: str) -> tuple[LifecycleEvent, ...]:
        return self._events.get(event, ())

    @property
    def event_names(self) -> frozenset[str]:
        return frozenset(self._events)

    def __len__(self) -> int:
        return sum(len(v) for v in self._index.values())


def locate_action_file(
    actions_dir: Path,
    kind: ActionKind,
    identifier: str,
    *,
    settings: Settings,
    audit: AuditSink,
) -> Path | None:
    """Find the file defining *identifier* without loading the whole kind.

    Files are imported one at a time until the first match; broken files
    are skipped.
    """
    from .loader import ActionLoader, matches

    loader = ActionLoader(actions_dir, settings, audit)
    for folders, path in loader.iter_files(kind):
        try:
            action = loader.load_file(kind, path, folders)
        except LoadError as exc:
            logger.debug("[registry] locate skipped %s: %s", path, exc.reason)
            continue
        if matches(action, (identifier,)):
            return path
    return None
