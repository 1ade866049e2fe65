"""Action inspection CLI.

Loads the action tree the same way the server does and reports on it
without connecting to Discord.

Usage::

    switchboard-actions list
    switchboard-actions list --kind routes
    switchboard-actions locate commands ping
    switchboard-actions check
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from switchboard.runtime.actions.audit import AuditSink
from switchboard.runtime.actions.loader import ActionLoader
from switchboard.runtime.actions.models import (
    ActionDescriptor,
    ActionKind,
    LifecycleEvent,
    LoadError,
    Route,
)
from switchboard.runtime.actions.registry import ActionRegistry, locate_action_file
from switchboard.runtime.config.settings import cfg

console = Console()

_KIND_CHOICES = [k.folder for k in ActionKind]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="switchboard-actions",
        description="Inspect the action tree without starting the bot.",
    )
    parser.add_argument(
        "--actions-dir",
        type=str,
        default=None,
        help="Action root to scan (default: ACTIONS_DIR / <project>/actions).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    ls = sub.add_parser("list", help="List loaded actions.")
    ls.add_argument(
        "--kind",
        choices=_KIND_CHOICES,
        default=None,
        help="Only list one kind.",
    )

    locate = sub.add_parser("locate", help="Print the file that defines an action.")
    locate.add_argument("kind", choices=_KIND_CHOICES)
    locate.add_argument("identifier")

    sub.add_parser("check", help="Load every kind; exit 1 on a fatal load error.")
    return parser


def _actions_dir(args: argparse.Namespace) -> Path:
    return Path(args.actions_dir) if args.actions_dir else cfg.actions_dir


def _flags(d: ActionDescriptor) -> str:
    flags = []
    if d.is_disabled:
        flags.append("[red]disabled[/red]")
    if d.is_dev_only:
        flags.append("dev")
    if d.is_guild_only:
        flags.append("guild")
    if d.enable_debug:
        flags.append("debug")
    return " ".join(flags)


def _sort_key(d: ActionDescriptor) -> tuple[object, ...]:
    if isinstance(d, LifecycleEvent):
        return (d.event, *d.sort_key)
    return (d.identifier,)


def _render(registry: ActionRegistry, kinds: list[ActionKind]) -> Table:
    table = Table(title="Actions", show_lines=False)
    table.add_column("Kind", style="cyan")
    table.add_column("Identifier", style="bold")
    table.add_column("Flags")
    table.add_column("Permissions")
    table.add_column("Source", style="dim")

    for kind in kinds:
        for d in sorted(registry.all(kind), key=_sort_key):
            identifier = d.identifier
            if isinstance(d, Route) and d.require_request_data:
                identifier += " (body)"
            table.add_row(
                kind.label,
                identifier,
                _flags(d),
                ", ".join(sorted(d.permissions)),
                str(d.source or ""),
            )
    return table


def _cmd_list(args: argparse.Namespace) -> int:
    audit = AuditSink()
    loader = ActionLoader(_actions_dir(args), cfg, audit)
    kinds = [ActionKind(args.kind)] if args.kind else list(ActionKind)
    try:
        registry = ActionRegistry.build({kind: loader.load(kind) for kind in kinds})
    except LoadError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        return 1
    console.print(_render(registry, kinds))
    return 0


def _cmd_locate(args: argparse.Namespace) -> int:
    path = locate_action_file(
        _actions_dir(args),
        ActionKind(args.kind),
        args.identifier,
        settings=cfg,
        audit=AuditSink(),
    )
    if path is None:
        console.print(f"[yellow]No {args.kind} action named {args.identifier!r}.[/yellow]")
        return 1
    console.print(str(path), soft_wrap=True)
    return 0


def _cmd_check(args: argparse.Namespace) -> int:
    audit = AuditSink()
    loader = ActionLoader(_actions_dir(args), cfg, audit)
    try:
        registry = loader.load_all()
    except LoadError as exc:
        console.print(f"[red]Fatal:[/red] {exc}")
        return 1

    warnings = audit.of("warning")
    for record in warnings:
        console.print(f"[yellow]Warning:[/yellow] {record.message}")
    console.print(
        f"[green]OK[/green] {len(registry)} actions loaded"
        + (f", {len(warnings)} warning(s)" if warnings else "")
    )
    return 0


_COMMANDS = {
    "list": _cmd_list,
    "locate": _cmd_locate,
    "check": _cmd_check,
}


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for ``switchboard-actions``."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s  %(message)s")
    sys.exit(_COMMANDS[args.command](args))


if __name__ == "__main__":
    main()
