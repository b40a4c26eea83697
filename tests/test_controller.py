"""Tests for RunController driving the change pipeline end to end."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pytest

from tests.conftest import make_manifest_dict

if TYPE_CHECKING:
    from litestar_changeflow.engine.controller import RunController
    from litestar_changeflow.tools.simulated import SimulatedTools
    from tests.conftest import RecordingObserver

REQUEST = "Make the person card border thicker"


def _tools_called(controller: RunController) -> list[str]:
    return [record.tool for record in controller.state.history]


@pytest.mark.integration
@pytest.mark.asyncio
class TestChangePipelineRuns:
    """End-to-end runs of the built-in change pipeline against simulated tools."""

    async def test_happy_path_waits_for_approval(
        self, make_controller: Callable[..., RunController], observer: RecordingObserver
    ) -> None:
        """Test that a clean run classifies, checks, previews and then waits for a human."""
        from litestar_changeflow.core.types import MessageRole, RunStatus, StepStatus

        controller = make_controller()
        state = await controller.run(REQUEST)

        assert state.status == RunStatus.AWAITING_APPROVAL
        assert state.current_step == "approval_gate"
        assert state.step_status == StepStatus.WAITING
        assert state.variables["scope"] == "UI_SAFE"
        assert _tools_called(controller) == [
            "code_search",
            "write_diff",
            "sandbox_start",
            "run_linter",
            "run_typecheck",
            "run_tests",
            "run_smoke",
            "run_app_preview",
        ]
        assert state.pending_approval is not None
        assert state.pending_approval.check_results == {"linter": True, "typecheck": True, "tests": True, "smoke": True}
        assert observer.messages[0].role == MessageRole.USER
        assert observer.messages[0].text == REQUEST
        assert observer.texts[-1] == "Waiting for approval: Ship this change?"

    async def test_approve_rolls_out(
        self, make_controller: Callable[..., RunController], observer: RecordingObserver
    ) -> None:
        """Test that approval creates the flag, widens the rollout and completes."""
        from litestar_changeflow.core.types import ApprovalStatus, RunStatus, StepStatus

        controller = make_controller()
        await controller.run(REQUEST)
        state = await controller.approve("alice")

        assert state.status == RunStatus.COMPLETED
        assert state.current_step == "done"
        assert state.step_status == StepStatus.SUCCESS
        assert state.approval is not None
        assert state.approval.status == ApprovalStatus.APPROVED
        assert state.approval.approver == "alice"
        toggles = [record.args["audience"] for record in state.history if record.tool == "toggle_flag"]
        assert toggles == ["self", "canary1", "p10", "all"]
        assert _tools_called(controller)[-1] == "commit_or_pr"
        assert "Approved by alice" in observer.texts
        assert observer.texts[-1] == "Workflow complete"

    async def test_failing_check_goes_through_repair(
        self, make_controller: Callable[..., RunController], simulated_tools: SimulatedTools, observer: RecordingObserver
    ) -> None:
        """Test that a failing linter routes through reflect and retries until the cap."""
        from litestar_changeflow.core.types import RunStatus

        simulated_tools.checks["run_linter"] = False
        controller = make_controller()
        state = await controller.run(REQUEST)

        assert state.status == RunStatus.COMPLETED
        assert state.current_step == "done"
        assert state.variables["retries"] == 3
        assert _tools_called(controller).count("write_diff") == 4
        assert "run_app_preview" not in _tools_called(controller)
        assert state.approval is None
        assert sum(1 for text in observer.texts if text.startswith("[Reflect & Repair]")) == 4

    async def test_repair_recovers_when_checks_pass(
        self, make_controller: Callable[..., RunController], simulated_tools: SimulatedTools
    ) -> None:
        """Test that a retry that fixes the checks continues to the approval gate."""
        from litestar_changeflow.core.types import RunStatus
        from litestar_changeflow.providers.base import MockProvider

        class FixingProvider(MockProvider):
            async def complete(self, system: str, user: str, tool_schemas: Any = (), *, model: Any = None) -> Any:
                if "Failing checks" in user:
                    simulated_tools.checks["run_tests"] = True
                return await super().complete(system, user, tool_schemas, model=model)

        simulated_tools.checks["run_tests"] = False
        controller = make_controller(provider=FixingProvider())
        state = await controller.run(REQUEST)

        assert state.status == RunStatus.AWAITING_APPROVAL
        assert state.variables["retries"] == 1
        assert _tools_called(controller).count("write_diff") == 2

    async def test_bad_metrics_roll_back(
        self, make_controller: Callable[..., RunController], simulated_tools: SimulatedTools
    ) -> None:
        """Test that an error-rate spike after approval turns the flag off."""
        from litestar_changeflow.core.types import RunStatus

        simulated_tools.metrics["error_rate_5xx"] = 2.5
        controller = make_controller()
        await controller.run(REQUEST)
        state = await controller.approve("alice")

        assert state.status == RunStatus.COMPLETED
        assert state.current_step == "done"
        toggles = [record.args for record in state.history if record.tool == "toggle_flag"]
        assert [args["onoff"] for args in toggles] == ["on", "off"]
        assert toggles[-1]["audience"] == "all"
        assert "commit_or_pr" not in _tools_called(controller)

    async def test_reject_ends_run(
        self, make_controller: Callable[..., RunController], observer: RecordingObserver
    ) -> None:
        """Test that rejection moves the run to the terminal step with an error status."""
        from litestar_changeflow.core.types import ApprovalStatus, RunStatus, StepStatus

        controller = make_controller()
        await controller.run(REQUEST)
        calls_before = len(controller.state.history)
        state = await controller.reject("bob", "Too risky")

        assert state.status == RunStatus.REJECTED
        assert state.current_step == "done"
        assert state.step_status == StepStatus.ERROR
        assert state.approval is not None
        assert state.approval.status == ApprovalStatus.REJECTED
        assert state.approval.reason == "Too risky"
        assert len(state.history) == calls_before
        assert observer.texts[-1] == "Rejected by bob: Too risky"

    async def test_decisions_without_pending_request_are_ignored(
        self, make_controller: Callable[..., RunController], observer: RecordingObserver
    ) -> None:
        """Test that approve and reject do nothing when no request is pending."""
        from litestar_changeflow.core.types import RunStatus

        controller = make_controller()
        await controller.run(REQUEST)
        await controller.approve("alice")
        message_count = len(observer.messages)

        state = await controller.reject("bob")
        state = await controller.approve("carol")

        assert state.status == RunStatus.COMPLETED
        assert state.approval is not None
        assert state.approval.approver == "alice"
        assert len(observer.messages) == message_count

    async def test_run_twice_raises(self, make_controller: Callable[..., RunController]) -> None:
        """Test that a run can only be started once."""
        from litestar_changeflow.exceptions import InvalidRunStateError

        controller = make_controller()
        await controller.run(REQUEST)

        with pytest.raises(InvalidRunStateError):
            await controller.run(REQUEST)

    async def test_tool_failure_fails_run(
        self,
        make_controller: Callable[..., RunController],
        simulated_tools: SimulatedTools,
        observer: RecordingObserver,
    ) -> None:
        """Test that a tool that raises fails the run and propagates the error."""
        from litestar_changeflow.core.types import MessageStatus, RunStatus, StepStatus
        from litestar_changeflow.exceptions import ToolExecutionError

        simulated_tools.failing.add("sandbox_start")
        controller = make_controller()

        with pytest.raises(ToolExecutionError):
            await controller.run(REQUEST)

        state = controller.state
        assert state.status == RunStatus.FAILED
        assert state.current_step == "sandbox_start"
        assert state.step_status == StepStatus.ERROR
        assert state.error == "Tool sandbox_start failed: sandbox_start is unavailable"
        assert observer.messages[-1].text == "Error: Tool sandbox_start failed: sandbox_start is unavailable"
        assert observer.messages[-1].status == MessageStatus.ERROR
        assert observer.snapshots[-1].status == RunStatus.FAILED

    async def test_unexpected_error_is_wrapped(self, make_controller: Callable[..., RunController]) -> None:
        """Test that non-engine exceptions from a step surface as StepExecutionError."""
        from litestar_changeflow.core.types import RunStatus
        from litestar_changeflow.exceptions import StepExecutionError
        from litestar_changeflow.providers.base import MockProvider

        class BrokenProvider(MockProvider):
            async def complete(self, *args: Any, **kwargs: Any) -> Any:
                raise RuntimeError("backend exploded")

        controller = make_controller(provider=BrokenProvider())

        with pytest.raises(StepExecutionError) as exc_info:
            await controller.run(REQUEST)

        assert exc_info.value.step_id == "classify"
        assert controller.state.status == RunStatus.FAILED
        assert controller.state.error == "backend exploded"

    async def test_history_is_append_only(self, make_controller: Callable[..., RunController]) -> None:
        """Test that records seen before approval are still in place afterwards."""
        controller = make_controller()
        await controller.run(REQUEST)
        before = controller.state.history

        await controller.approve("alice")
        after = controller.state.history

        assert after[: len(before)] == before
        assert len(after) > len(before)

    async def test_snapshots_are_detached(
        self, make_controller: Callable[..., RunController], observer: RecordingObserver
    ) -> None:
        """Test that snapshots handed to observers do not change with the run."""
        from litestar_changeflow.core.types import RunStatus

        controller = make_controller()
        await controller.run(REQUEST)
        waiting = observer.snapshots[-1]

        await controller.approve("alice")

        assert waiting.status == RunStatus.AWAITING_APPROVAL
        assert waiting.approval is not None
        assert waiting.approval.approver is None
        assert observer.snapshots[-1].status == RunStatus.COMPLETED

    async def test_snapshot_history_cannot_alter_the_run(
        self, make_controller: Callable[..., RunController], observer: RecordingObserver
    ) -> None:
        """Test that mutating records seen by observers leaves the run history intact."""
        controller = make_controller()
        await controller.run(REQUEST)

        seen = observer.snapshots[-1]
        linter = next(record for record in seen.history if record.tool == "run_linter")
        linter.result["ok"] = False
        for message in observer.messages:
            for record in message.tool_calls:
                if isinstance(record.result, dict):
                    record.result.clear()

        live = controller.state.latest_call("run_linter")
        assert live is not None
        assert live.result["ok"] is True
        assert controller.state.check_results()["linter"] is True

    async def test_observer_errors_are_contained(self, make_controller: Callable[..., RunController]) -> None:
        """Test that a raising observer does not disturb the run."""
        from litestar_changeflow.core.types import RunStatus

        class ExplodingObserver:
            def on_state_change(self, snapshot: Any) -> None:
                raise RuntimeError("observer down")

            def on_message(self, message: Any) -> None:
                raise RuntimeError("observer down")

        controller = make_controller(observers=[ExplodingObserver()])
        state = await controller.run(REQUEST)

        assert state.status == RunStatus.AWAITING_APPROVAL

    async def test_independent_runs_share_nothing(self, make_controller: Callable[..., RunController]) -> None:
        """Test that two runs over the same manifest keep separate variables."""
        first = make_controller()
        second = make_controller()

        await first.run(REQUEST)
        first.state.variables["retries"] = 7

        assert second.state.variables["retries"] == 0
        assert first.manifest.variables["retries"] == 0


@pytest.mark.unit
@pytest.mark.asyncio
class TestRunControllerSuspension:
    """Tests for suspension and configuration on small manifests."""

    async def test_unsatisfiable_edge_suspends(self, invoker: Any) -> None:
        """Test that a run with no satisfiable edge suspends instead of failing."""
        from litestar_changeflow.core.definition import WorkflowManifest
        from litestar_changeflow.core.types import RunStatus
        from litestar_changeflow.engine.controller import RunController

        manifest = WorkflowManifest.from_dict(
            make_manifest_dict(
                nodes=[
                    {"id": "start", "kind": "input"},
                    {"id": "lint", "kind": "tool", "label": "run_linter"},
                    {"id": "done", "kind": "output"},
                ],
                edges=[
                    {"from": "start", "to": "lint"},
                    {"from": "lint", "to": "done", "condition": "mode == 'strict'"},
                ],
                variables={"mode": "loose"},
            )
        )
        controller = RunController(manifest, invoker)
        state = await controller.run("lint it")

        assert state.status == RunStatus.SUSPENDED
        assert state.current_step == "lint"

    async def test_invalid_manifest_rejected(self, tiny_manifest: Any) -> None:
        """Test that the controller validates the manifest against the tool catalogue."""
        from litestar_changeflow.engine.controller import RunController
        from litestar_changeflow.exceptions import ManifestValidationError
        from litestar_changeflow.tools.invoker import ToolInvoker

        with pytest.raises(ManifestValidationError):
            RunController(tiny_manifest, ToolInvoker())

    async def test_terminal_step_override(self, tiny_manifest: Any, invoker: Any) -> None:
        """Test that a configured terminal step ends the run early."""
        from litestar_changeflow.config import ChangeflowConfig
        from litestar_changeflow.core.types import RunStatus
        from litestar_changeflow.engine.controller import RunController

        controller = RunController(tiny_manifest, invoker, config=ChangeflowConfig(terminal_step="work"))
        state = await controller.run("lint only")

        assert state.status == RunStatus.COMPLETED
        assert state.current_step == "work"

    async def test_unknown_override_rejected(self, tiny_manifest: Any, invoker: Any) -> None:
        """Test that an entry step override naming no step is rejected."""
        from litestar_changeflow.config import ChangeflowConfig
        from litestar_changeflow.engine.controller import RunController
        from litestar_changeflow.exceptions import ManifestValidationError

        with pytest.raises(ManifestValidationError):
            RunController(tiny_manifest, invoker, config=ChangeflowConfig(entry_step="nowhere"))
