"""Access guards shared by every action kind."""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass

from .models import ActionDescriptor, ActionKind, GuardReason, InvocationContext


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    reason: GuardReason | None = None
    missing: frozenset[str] = frozenset()


ALLOW = GuardDecision(allowed=True)


def evaluate(
    descriptor: ActionDescriptor,
    ctx: InvocationContext,
    developer_ids: Collection[str],
) -> GuardDecision:
    """Check *descriptor* against *ctx*.

    The order is fixed and the first failing check wins: disabled,
    developer-only, guild-only, permissions.  Nothing is sent to the user
    here; the caller decides how to surface a denial.
    """
    if descriptor.is_disabled:
        return GuardDecision(False, GuardReason.DISABLED)
    if descriptor.is_dev_only and (ctx.actor_id is None or ctx.actor_id not in developer_ids):
        return GuardDecision(False, GuardReason.DEV_ONLY)
    if descriptor.is_guild_only and not ctx.in_guild:
        return GuardDecision(False, GuardReason.GUILD_ONLY)
    missing = descriptor.permissions - ctx.permissions
    if missing:
        return GuardDecision(False, GuardReason.INSUFFICIENT_PERMISSIONS, frozenset(missing))
    return ALLOW


_DENIAL_TEXT = {
    GuardReason.DISABLED: "This {label} is currently disabled.",
    GuardReason.DEV_ONLY: "This {label} is currently under development. Please try again later.",
    GuardReason.GUILD_ONLY: "This {label} can only be used in a server.",
    GuardReason.INSUFFICIENT_PERMISSIONS: "You do not have the right permissions to use this {label}.",
}


def denial_text(kind: ActionKind, reason: GuardReason) -> str:
    """User-facing notice for a denial; the reason itself stays server side."""
    return _DENIAL_TEXT[reason].format(label=kind.label)
