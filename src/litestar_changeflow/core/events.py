"""Observer-facing value objects.

This module defines the :class:`Message` and :class:`RunSnapshot` objects that
the run controller hands to observers. Neither is stored by the engine; they
exist to be rendered, logged or forwarded by whoever consumes them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from litestar_changeflow.core.types import MessageRole, MessageStatus, RunStatus, StepStatus

if TYPE_CHECKING:
    from litestar_changeflow.core.state import ApprovalRequest, ToolCallRecord

__all__ = ["Message", "RunSnapshot"]


@dataclass(frozen=True)
class Message:
    """A human-readable event emitted during a run.

    Attributes:
        role: Who the message is attributed to.
        text: Message body.
        tool_calls: Tool call records the message reports on, if any.
        status: Optional status, e.g. ``pending`` while a tool is running.
        id: Unique message identifier.
        timestamp: When the message was emitted.

    Example:
        >>> Message(role=MessageRole.SYSTEM, text="Running run_tests...", status=MessageStatus.PENDING)
    """

    role: MessageRole
    text: str
    tool_calls: tuple[ToolCallRecord, ...] = ()
    status: MessageStatus | None = None
    id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "role": str(self.role),
            "text": self.text,
            "tool_calls": [record.to_dict() for record in self.tool_calls],
            "status": str(self.status) if self.status is not None else None,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class RunSnapshot:
    """Point-in-time copy of a run state.

    Snapshots share no mutable containers with the run they were taken from,
    so observers may keep them around without seeing later changes.

    Attributes:
        run_id: Run identifier.
        manifest_id: Id of the manifest driving the run.
        status: Overall run status.
        current_step: Current step id, if the run has started.
        step_status: Status of the current step.
        variables: Copy of the run variables.
        history: Tool call records in execution order.
        approval: Copy of the approval request, if one exists.
        error: Failure text for failed runs.
        started_at: When the run state was created.
        updated_at: When the run state last changed.
    """

    run_id: UUID
    manifest_id: str
    status: RunStatus
    current_step: str | None
    step_status: StepStatus
    variables: dict[str, Any]
    history: tuple[ToolCallRecord, ...]
    approval: ApprovalRequest | None
    error: str | None
    started_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation."""
        return {
            "run_id": str(self.run_id),
            "manifest_id": self.manifest_id,
            "status": str(self.status),
            "current_step": self.current_step,
            "step_status": str(self.step_status),
            "variables": dict(self.variables),
            "history": [record.to_dict() for record in self.history],
            "approval": self.approval.to_dict() if self.approval is not None else None,
            "error": self.error,
            "started_at": self.started_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
