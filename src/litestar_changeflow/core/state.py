"""Run state, tool call records and approval requests.

This module provides the mutable execution record of a single run. A
:class:`RunState` is created per run and owned by whoever drives it; the engine
keeps no global registry of runs.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from litestar_changeflow.core.events import RunSnapshot
from litestar_changeflow.core.types import ApprovalStatus, RunStatus, RunVariables, StepStatus
from litestar_changeflow.exceptions import ApprovalAlreadyResolvedError

if TYPE_CHECKING:
    from litestar_changeflow.core.definition import WorkflowManifest

__all__ = [
    "CHECK_TOOLS",
    "DIFF_TOOL",
    "METRICS_TOOL",
    "ApprovalRequest",
    "RunState",
    "ToolCallRecord",
]

CHECK_TOOLS: dict[str, str] = {
    "linter": "run_linter",
    "typecheck": "run_typecheck",
    "tests": "run_tests",
    "smoke": "run_smoke",
}
"""Quality check name to the tool producing its result."""

METRICS_TOOL = "collect_metrics"
DIFF_TOOL = "write_diff"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ToolCallRecord:
    """Outcome of one tool invocation.

    Records are appended to the run history once and never modified.

    Attributes:
        tool: Tool name.
        args: Arguments the tool was called with.
        result: Payload returned by the tool, ``None`` when it raised.
        ok: Whether the call completed without raising.
        timestamp: When the call started.
        duration: Wall-clock duration in milliseconds.
        error: Error text when ``ok`` is false.
    """

    tool: str
    args: dict[str, Any]
    result: Any
    ok: bool
    timestamp: datetime
    duration: float
    error: str | None = None

    @property
    def payload_ok(self) -> bool:
        """The ``ok`` flag reported inside the result payload, false when absent."""
        if isinstance(self.result, dict):
            return bool(self.result.get("ok", False))
        return False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "tool": self.tool,
            "args": copy.deepcopy(self.args),
            "result": copy.deepcopy(self.result),
            "ok": self.ok,
            "timestamp": self.timestamp.isoformat(),
            "duration": self.duration,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ApprovalRequest:
    """A pending human decision captured by a human approval step.

    The request snapshots the latest diff and check results when it is created.
    Its status moves from ``pending`` to ``approved`` or ``rejected`` exactly once
    and the resolved request stays on the run for audit.

    Attributes:
        step_id: Id of the step that created the request.
        title: Short human-readable title.
        diff: Latest proposed diff, if any.
        check_results: Quality check outcomes at creation time.
        metrics: Latest collected metrics, if any.
        id: Request identifier.
        created_at: When the request was created.
        status: Decision status.
        approver: Who resolved the request.
        reason: Optional rejection reason.
        resolved_at: When the request was resolved.
    """

    step_id: str
    title: str
    diff: str | None = None
    check_results: dict[str, bool] = field(default_factory=dict)
    metrics: dict[str, Any] | None = None
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=_now)
    status: ApprovalStatus = ApprovalStatus.PENDING
    approver: str | None = None
    reason: str | None = None
    resolved_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING

    def resolve(self, status: ApprovalStatus, approver: str, reason: str | None = None) -> None:
        """Record the human decision.

        Args:
            status: ``approved`` or ``rejected``.
            approver: Identifier of the deciding human.
            reason: Optional reason, typically given on rejection.

        Raises:
            ApprovalAlreadyResolvedError: If the request was already resolved.
            ValueError: If ``status`` is ``pending``.
        """
        if not self.is_pending:
            raise ApprovalAlreadyResolvedError(self.id, str(self.status))
        if status == ApprovalStatus.PENDING:
            raise ValueError("An approval request cannot be resolved to pending")
        self.status = status
        self.approver = approver
        self.reason = reason
        self.resolved_at = _now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "step_id": self.step_id,
            "title": self.title,
            "diff": self.diff,
            "check_results": dict(self.check_results),
            "metrics": copy.deepcopy(self.metrics),
            "created_at": self.created_at.isoformat(),
            "status": str(self.status),
            "approver": self.approver,
            "reason": self.reason,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass
class RunState:
    """The whole mutable execution record of one run.

    Attributes:
        manifest_id: Id of the manifest driving the run.
        variables: Run variables, mutated only through edge effects.
        id: Run identifier.
        current_step: Id of the current step, ``None`` before the run starts.
        step_status: Status of the current step.
        status: Overall run status.
        approval: The most recent approval request, pending or resolved.
        user_message: The initiating user message.
        error: Failure text once the run failed.
        started_at: Creation timestamp.
        updated_at: Last change timestamp.

    Example:
        >>> state = RunState.for_manifest(manifest)
        >>> state.variables["retries"]
        0
        >>> state.history
        ()
    """

    manifest_id: str
    variables: RunVariables = field(default_factory=dict)
    id: UUID = field(default_factory=uuid4)
    current_step: str | None = None
    step_status: StepStatus = StepStatus.PENDING
    status: RunStatus = RunStatus.PENDING
    approval: ApprovalRequest | None = None
    user_message: str | None = None
    error: str | None = None
    started_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    _history: list[ToolCallRecord] = field(default_factory=list, repr=False)

    @classmethod
    def for_manifest(cls, manifest: WorkflowManifest) -> RunState:
        """Create a fresh run state seeded with the manifest's initial variables."""
        return cls(manifest_id=manifest.id, variables=copy.deepcopy(manifest.variables))

    @property
    def history(self) -> tuple[ToolCallRecord, ...]:
        """Tool call records in execution order."""
        return tuple(self._history)

    @property
    def pending_approval(self) -> ApprovalRequest | None:
        """The approval request awaiting a decision, if any."""
        if self.approval is not None and self.approval.is_pending:
            return self.approval
        return None

    def touch(self) -> None:
        self.updated_at = _now()

    def record(self, record: ToolCallRecord) -> None:
        """Append a tool call record to the history."""
        self._history.append(record)
        self.touch()

    def latest_call(self, tool: str) -> ToolCallRecord | None:
        """Return the most recent record for ``tool``, if it ran."""
        for record in reversed(self._history):
            if record.tool == tool:
                return record
        return None

    def check_results(self) -> dict[str, bool]:
        """Latest outcome of each quality check, false for checks that never ran."""
        results: dict[str, bool] = {}
        for check, tool in CHECK_TOOLS.items():
            record = self.latest_call(tool)
            results[check] = record.payload_ok if record is not None else False
        return results

    def latest_metrics(self) -> dict[str, Any] | None:
        record = self.latest_call(METRICS_TOOL)
        if record is None or not isinstance(record.result, dict):
            return None
        return record.result

    def latest_diff(self) -> str | None:
        record = self.latest_call(DIFF_TOOL)
        if record is None:
            return None
        diff = record.args.get("unified_diff")
        return diff if isinstance(diff, str) else None

    def snapshot(self) -> RunSnapshot:
        """Return an immutable copy suitable for observers."""
        return RunSnapshot(
            run_id=self.id,
            manifest_id=self.manifest_id,
            status=self.status,
            current_step=self.current_step,
            step_status=self.step_status,
            variables=copy.deepcopy(self.variables),
            history=copy.deepcopy(self.history),
            approval=copy.deepcopy(self.approval),
            error=self.error,
            started_at=self.started_at,
            updated_at=self.updated_at,
        )
