"""Core type definitions for litestar-changeflow.

This module defines the enums, reserved condition names and type aliases used
throughout the change pipeline engine.
"""

from __future__ import annotations

import sys
from enum import Enum
from typing import Any, TypeAlias

# StrEnum backport for Python < 3.11
if sys.version_info >= (3, 11):
    from enum import StrEnum
else:

    class StrEnum(str, Enum):
        """String enumeration compatibility for Python < 3.11."""

        def __str__(self) -> str:
            return str(self.value)


__all__ = [
    "APPROVED_CONDITION",
    "ApprovalStatus",
    "MessageRole",
    "MessageStatus",
    "OTHERWISE_CONDITION",
    "RunStatus",
    "RunVariables",
    "ScopeLevel",
    "StepKind",
    "StepStatus",
]


class StepKind(StrEnum):
    """Classification of steps within a manifest.

    Attributes:
        INPUT: Accepts the initiating user message.
        AGENT: Dispatches a request to the completion provider.
        TOOL: Invokes a single named tool.
        GATE: Summarises the latest quality check results.
        HUMAN_APPROVAL: Suspends the run until a human decides.
        OUTPUT: Terminal step.
    """

    INPUT = "input"
    AGENT = "agent"
    TOOL = "tool"
    GATE = "gate"
    HUMAN_APPROVAL = "human_approval"
    OUTPUT = "output"


class StepStatus(StrEnum):
    """Execution status of the current step.

    Attributes:
        PENDING: Step has not started.
        RUNNING: Step is executing.
        SUCCESS: Step finished successfully.
        ERROR: Step failed, or the run was rejected.
        WAITING: Step is waiting for a human decision.
    """

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    WAITING = "waiting"


class RunStatus(StrEnum):
    """Overall status of a run.

    Attributes:
        PENDING: Run state created, ``run()`` not called yet.
        RUNNING: The control loop is driving steps.
        AWAITING_APPROVAL: Suspended on an outstanding approval request.
        SUSPENDED: No satisfiable edge and nothing to wait for; a normal pause.
        COMPLETED: The terminal step was reached.
        FAILED: A step raised and the run was aborted.
        REJECTED: A human rejected the pending approval request.
    """

    PENDING = "pending"
    RUNNING = "running"
    AWAITING_APPROVAL = "awaiting_approval"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"

    @property
    def is_finished(self) -> bool:
        """Whether the run can no longer make progress."""
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.REJECTED)


class ApprovalStatus(StrEnum):
    """Status of an approval request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class MessageRole(StrEnum):
    """Author of an observer-facing message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class MessageStatus(StrEnum):
    """Optional status attached to an observer-facing message."""

    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class ScopeLevel(StrEnum):
    """Constrains which kinds of changes a run may propose.

    Attributes:
        DATA_ONLY: Only data/content edits.
        UI_SAFE: Presentational changes that cannot alter behaviour.
        LOGIC_STRICT: Unrestricted code changes.
    """

    DATA_ONLY = "DATA_ONLY"
    UI_SAFE = "UI_SAFE"
    LOGIC_STRICT = "LOGIC_STRICT"


APPROVED_CONDITION = "approved"
"""Reserved edge condition satisfied only by an approved approval request."""

OTHERWISE_CONDITION = "otherwise"
"""Reserved edge condition taken only when no other edge matches."""

RunVariables: TypeAlias = dict[str, Any]
"""Type alias for the mutable variable bag carried through one run."""
