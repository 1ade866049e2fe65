"""Action framework -- discovery, registry, guards, and dispatch.

Sub-modules:

- ``models``     -- descriptors, invocation context, load errors
- ``scanner``    -- one-level directory listing
- ``loader``     -- filesystem discovery and validation
- ``registry``   -- immutable per-kind index
- ``guards``     -- disabled / dev-only / guild-only / permission checks
- ``debug``      -- opt-in per-invocation debug stream
- ``audit``      -- developer audit sink
- ``dispatcher`` -- resolve, guard, invoke
"""

from .audit import AuditRecord, AuditSink
from .debug import DebugStream, Outcome
from .dispatcher import (
    SILENT,
    ActionDispatcher,
    DispatchResult,
    DispatchStatus,
    Responder,
    SilentResponder,
)
from .guards import GuardDecision, denial_text, evaluate
from .loader import ActionLoader
from .models import (
    ActionDescriptor,
    ActionKind,
    Button,
    ChatCommand,
    DescriptorError,
    DuplicateActionError,
    GuardReason,
    InvocationContext,
    LifecycleEvent,
    LoadError,
    Modal,
    Reaction,
    Route,
    StringMenu,
)
from .registry import ActionRegistry, locate_action_file
from .scanner import list_entries

__all__ = [
    "SILENT",
    "ActionDescriptor",
    "ActionDispatcher",
    "ActionKind",
    "ActionLoader",
    "ActionRegistry",
    "AuditRecord",
    "AuditSink",
    "Button",
    "ChatCommand",
    "DebugStream",
    "DescriptorError",
    "DispatchResult",
    "DispatchStatus",
    "DuplicateActionError",
    "GuardDecision",
    "GuardReason",
    "InvocationContext",
    "LifecycleEvent",
    "LoadError",
    "Modal",
    "Outcome",
    "Reaction",
    "Responder",
    "Route",
    "SilentResponder",
    "StringMenu",
    "denial_text",
    "evaluate",
    "list_entries",
    "locate_action_file",
]
