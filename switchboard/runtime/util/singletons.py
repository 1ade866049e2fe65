"""Registry of reset hooks for module-level singletons.

Modules that keep process-wide state (``cfg``, the OTel flag) register a
reset function here so tests can start from a clean slate.
"""

from __future__ import annotations

from collections.abc import Callable

_RESETTERS: list[Callable[[], None]] = []


def register_singleton(reset: Callable[[], None]) -> None:
    if reset not in _RESETTERS:
        _RESETTERS.append(reset)


def reset_all_singletons() -> None:
    for reset in list(_RESETTERS):
        reset()
