"""Tests for run state, tool call records and approval requests."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest


def _record(tool: str, result: Any = None, args: dict[str, Any] | None = None) -> Any:
    from litestar_changeflow.core.state import ToolCallRecord

    return ToolCallRecord(
        tool=tool,
        args=args or {},
        result=result,
        ok=True,
        timestamp=datetime.now(timezone.utc),
        duration=2.0,
    )


@pytest.mark.unit
class TestApprovalRequest:
    """Tests for ApprovalRequest."""

    def test_resolve_once(self) -> None:
        """Test that a request is resolved exactly once."""
        from litestar_changeflow.core.state import ApprovalRequest
        from litestar_changeflow.core.types import ApprovalStatus
        from litestar_changeflow.exceptions import ApprovalAlreadyResolvedError

        request = ApprovalRequest(step_id="approval_gate", title="Ship?")
        request.resolve(ApprovalStatus.APPROVED, "alice")

        assert request.status == ApprovalStatus.APPROVED
        assert request.approver == "alice"
        assert request.resolved_at is not None
        assert not request.is_pending

        with pytest.raises(ApprovalAlreadyResolvedError):
            request.resolve(ApprovalStatus.REJECTED, "bob")

    def test_cannot_resolve_to_pending(self) -> None:
        """Test that pending is not a valid decision."""
        from litestar_changeflow.core.state import ApprovalRequest
        from litestar_changeflow.core.types import ApprovalStatus

        with pytest.raises(ValueError):
            ApprovalRequest(step_id="a", title="t").resolve(ApprovalStatus.PENDING, "alice")

    def test_to_dict(self) -> None:
        """Test the serialised form of a rejected request."""
        from litestar_changeflow.core.state import ApprovalRequest
        from litestar_changeflow.core.types import ApprovalStatus

        request = ApprovalRequest(step_id="a", title="t", diff="+x", check_results={"linter": True})
        request.resolve(ApprovalStatus.REJECTED, "bob", "scope creep")
        data = request.to_dict()

        assert data["status"] == "rejected"
        assert data["reason"] == "scope creep"
        assert data["check_results"] == {"linter": True}
        assert data["resolved_at"] is not None


@pytest.mark.unit
class TestRunState:
    """Tests for RunState."""

    def test_for_manifest_copies_variables(self, change_manifest: Any) -> None:
        """Test that a new run gets its own deep copy of the manifest variables."""
        from litestar_changeflow.core.state import RunState
        from litestar_changeflow.core.types import RunStatus, StepStatus

        state = RunState.for_manifest(change_manifest)
        state.variables["retries"] = 2

        assert change_manifest.variables["retries"] == 0
        assert state.status == RunStatus.PENDING
        assert state.step_status == StepStatus.PENDING
        assert state.current_step is None

    def test_history_is_read_only_view(self) -> None:
        """Test that the exposed history is an immutable tuple in call order."""
        from litestar_changeflow.core.state import RunState

        state = RunState(manifest_id="m")
        state.record(_record("code_search"))
        state.record(_record("write_diff"))

        assert isinstance(state.history, tuple)
        assert [record.tool for record in state.history] == ["code_search", "write_diff"]

    def test_latest_helpers(self) -> None:
        """Test latest call, diff and metrics lookups."""
        from litestar_changeflow.core.state import RunState

        state = RunState(manifest_id="m")
        assert state.latest_diff() is None
        assert state.latest_metrics() is None

        state.record(_record("write_diff", {"applied": True}, {"unified_diff": "+one"}))
        state.record(_record("write_diff", {"applied": True}, {"unified_diff": "+two"}))
        state.record(_record("collect_metrics", {"error_rate_5xx": 0.1}))

        assert state.latest_diff() == "+two"
        assert state.latest_metrics() == {"error_rate_5xx": 0.1}
        assert state.latest_call("code_search") is None

    def test_snapshot_is_detached(self) -> None:
        """Test that snapshots copy the mutable parts of the state."""
        from litestar_changeflow.core.state import ApprovalRequest, RunState

        state = RunState(manifest_id="m", variables={"nested": {"n": 1}})
        state.approval = ApprovalRequest(step_id="a", title="t")
        snapshot = state.snapshot()

        state.variables["nested"]["n"] = 2
        state.record(_record("run_tests", {"ok": True}))
        state.approval.approver = "mallory"

        assert snapshot.variables == {"nested": {"n": 1}}
        assert snapshot.history == ()
        assert snapshot.approval is not None
        assert snapshot.approval.approver is None

    def test_snapshot_to_dict_is_json_ready(self) -> None:
        """Test that the snapshot serialises to plain JSON types."""
        import json

        from litestar_changeflow.core.state import RunState

        state = RunState(manifest_id="m", variables={"retries": 1})
        state.record(_record("run_linter", {"ok": True}))
        data = state.snapshot().to_dict()

        assert json.loads(json.dumps(data)) == data
        assert data["status"] == "pending"
        assert data["history"][0]["tool"] == "run_linter"
