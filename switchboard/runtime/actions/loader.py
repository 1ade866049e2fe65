"""Action loader -- discover action files and turn them into descriptors.

Layout::

    <actions_dir>/<kind>/<category>/[<sub-category>/]<file>.py

Each file defines a module-level ``action``.  Commands are mandatory: one
bad file aborts the load.  Every other kind skips the bad file, records a
warning and carries on.
"""

from __future__ import annotations

import dataclasses
import hashlib
import importlib.util
import logging
import re
import sys
from collections.abc import Iterable, Iterator
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING

from .audit import AuditSink
from .models import (
    DESCRIPTOR_TYPES,
    MANDATORY_KINDS,
    ActionDescriptor,
    ActionKind,
    DescriptorError,
    DuplicateActionError,
    LifecycleEvent,
    LoadError,
    Route,
)
from .scanner import list_entries

if TYPE_CHECKING:
    from ..config.settings import Settings
    from .registry import ActionRegistry

logger = logging.getLogger(__name__)

_ORDINAL_RE = re.compile(r"^(\d+)_?(.*)$")
_MODULE_NAMESPACE = "switchboard_actions"


class ActionLoader:
    def __init__(self, actions_dir: Path, settings: Settings, audit: AuditSink) -> None:
        self._actions_dir = actions_dir
        self._settings = settings
        self._audit = audit

    @property
    def actions_dir(self) -> Path:
        return self._actions_dir

    def load(self, kind: ActionKind, exceptions: Iterable[str] = ()) -> list[ActionDescriptor]:
        """Load every valid descriptor of *kind*, minus the *exceptions*."""
        excluded = set(exceptions)
        loaded: list[ActionDescriptor] = []
        seen: dict[str, ActionDescriptor] = {}

        for folders, path in self.iter_files(kind):
            try:
                action = self.load_file(kind, path, folders)
                first = seen.get(action.identifier)
                if first is not None:
                    raise DuplicateActionError(
                        path, f"identifier {action.identifier!r} already defined in {first.source}",
                    )
            except LoadError as exc:
                if kind in MANDATORY_KINDS:
                    logger.error("[loader] %s", exc)
                    raise
                self._audit.warning(
                    f"Skipped {kind.label} file {path}: {exc.reason}",
                    result=f"The {kind.label} defined in {path.name} is unavailable",
                    fix="Make the file define a valid module-level `action`",
                    source=f"loader-{kind.folder}",
                )
                continue

            seen[action.identifier] = action
            if matches(action, excluded):
                logger.debug("[loader] excluded %s", action.label)
                continue
            loaded.append(action)

        logger.info("[loader] loaded %d %s action(s)", len(loaded), kind.label)
        return loaded

    def load_all(self, exceptions: Iterable[str] = ()) -> ActionRegistry:
        """Load every kind and build a registry from the result."""
        from .registry import ActionRegistry

        excluded = tuple(exceptions)
        loaded: dict[ActionKind, list[ActionDescriptor]] = {}
        for kind in ActionKind:
            if kind is ActionKind.ROUTE and not self._settings.api_enabled:
                logger.info("[loader] web server disabled, skipping routes")
                loaded[kind] = []
                continue
            loaded[kind] = self.load(kind, excluded)
        return ActionRegistry.build(loaded)

    def iter_files(self, kind: ActionKind) -> Iterator[tuple[tuple[str, ...], Path]]:
        """Yield ``(folders, path)`` for each action file of *kind*."""
        disabled = self._settings.disabled_categories
        root = self._actions_dir / kind.folder
        for category in list_entries(root, folders_only=True, audit=self._audit):
            if category.name in disabled:
                logger.info("[loader] category %s/%s is disabled", kind.folder, category.name)
                continue
            for path in list_entries(category):
                yield (category.name,), path
            for sub in list_entries(category, folders_only=True):
                if sub.name in disabled:
                    continue
                for path in list_entries(sub):
                    yield (category.name, sub.name), path

    def load_file(
        self,
        kind: ActionKind,
        path: Path,
        folders: tuple[str, ...] = (),
    ) -> ActionDescriptor:
        module = _import_file(path)
        action = getattr(module, "action", None)
        expected = DESCRIPTOR_TYPES[kind]
        if action is None:
            raise LoadError(path, "module does not define `action`")
        if not isinstance(action, expected):
            raise LoadError(
                path, f"`action` is a {type(action).__name__}, expected {expected.__name__}",
            )
        try:
            action = self._complete(action, path, folders)
            action.validate()
        except (DescriptorError, TypeError) as exc:
            raise LoadError(path, str(exc)) from exc
        return action

    def _complete(
        self,
        action: ActionDescriptor,
        path: Path,
        folders: tuple[str, ...],
    ) -> ActionDescriptor:
        changes: dict[str, object] = {"source": path}
        if isinstance(action, Route):
            segments = folders if action.follow_folders else ()
            changes["prefix"] = "/".join((self._settings.api_prefix, *segments))
            changes["category"] = folders[0] if folders else ""
        elif isinstance(action, LifecycleEvent):
            m = _ORDINAL_RE.match(path.stem)
            if not action.event and folders:
                changes["event"] = folders[0]
            if action.ordinal is None and m:
                changes["ordinal"] = int(m.group(1))
            if not action.name:
                changes["name"] = (m.group(2) if m else "") or path.stem
        return dataclasses.replace(action, **changes)


def matches(action: ActionDescriptor, identifiers: Iterable[str]) -> bool:
    """Whether *action* is named by any of *identifiers*.

    Both the full identifier (``GET /api/ping``) and the bare identifying
    field (``/ping``) are accepted.
    """
    names = set(identifiers)
    if not names:
        return False
    return action.identifier in names or str(getattr(action, action.identity_field)) in names


def _import_file(path: Path) -> ModuleType:
    digest = hashlib.sha1(str(path.resolve()).encode()).hexdigest()[:10]
    module_name = f"{_MODULE_NAMESPACE}.{path.stem}_{digest}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise LoadError(path, "not an importable Python module")
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        raise LoadError(path, f"import failed: {type(exc).__name__}: {exc}") from exc
    return module
