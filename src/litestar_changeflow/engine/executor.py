"""Per-kind step execution.

This module provides the :class:`NodeExecutor`, which runs one step of a
manifest against a run state. Each step kind has its own handler; the executor
drives the step status from ``running`` to ``success``, ``error`` or
``waiting`` and reports progress through the callbacks it was given.
"""

from __future__ import annotations

import copy
import json
import logging
import re
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from litestar_changeflow.core.events import Message
from litestar_changeflow.core.state import CHECK_TOOLS, ApprovalRequest
from litestar_changeflow.core.types import MessageRole, MessageStatus, ScopeLevel, StepKind, StepStatus
from litestar_changeflow.exceptions import ToolExecutionError

if TYPE_CHECKING:
    from litestar_changeflow.core.definition import Step
    from litestar_changeflow.core.protocols import CompletionProvider
    from litestar_changeflow.core.state import RunState
    from litestar_changeflow.core.types import RunVariables
    from litestar_changeflow.tools.invoker import ToolInvoker

__all__ = ["NodeExecutor", "resolve_placeholders"]

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
_SCOPE_RE = re.compile(r"\b(" + "|".join(level.value for level in ScopeLevel) + r")\b")


def resolve_placeholders(value: Any, variables: RunVariables) -> Any:
    """Substitute ``{{name}}`` placeholders with run variables.

    A string that is exactly one placeholder is replaced by the raw variable
    value (``None`` when unset), keeping its type. Placeholders embedded in a
    longer string are rendered as text. Lists and dicts are resolved
    recursively; other values pass through unchanged.

    Example:
        >>> resolve_placeholders({"key": "{{feature_key}}", "n": 3}, {"feature_key": "feature.x"})
        {'key': 'feature.x', 'n': 3}
    """
    if isinstance(value, str):
        full = _PLACEHOLDER_RE.fullmatch(value.strip())
        if full is not None:
            return variables.get(full.group(1))
        return _PLACEHOLDER_RE.sub(lambda match: str(variables.get(match.group(1), "")), value)
    if isinstance(value, dict):
        return {key: resolve_placeholders(item, variables) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_placeholders(item, variables) for item in value]
    return value


class NodeExecutor:
    """Executes single steps.

    Attributes:
        provider: Completion provider used by agent steps.
        tools: Tool invoker used by tool steps and provider-requested tool calls.
        classification_step: Id of the agent step whose answer seeds ``scope``.
        default_model: Model used when an agent step has no model hint.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        tools: ToolInvoker,
        *,
        emit: Callable[[Message], None],
        notify: Callable[[], None],
        classification_step: str | None = "classify",
        default_model: str | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            provider: Completion provider for agent steps.
            tools: Tool invoker.
            emit: Callback receiving every message.
            notify: Callback signalling a run state change.
            classification_step: Id of the classification step.
            default_model: Fallback model name for agent steps.
        """
        self.provider = provider
        self.tools = tools
        self.classification_step = classification_step
        self.default_model = default_model
        self._emit = emit
        self._notify = notify
        self._handlers: dict[StepKind, Callable[[Step, RunState], Any]] = {
            StepKind.INPUT: self._execute_input,
            StepKind.AGENT: self._execute_agent,
            StepKind.TOOL: self._execute_tool,
            StepKind.GATE: self._execute_gate,
            StepKind.HUMAN_APPROVAL: self._execute_human_approval,
            StepKind.OUTPUT: self._execute_output,
        }

    async def execute(self, step: Step, state: RunState) -> None:
        """Execute ``step`` and update the step status on ``state``.

        Args:
            step: The step to execute.
            state: The run state.

        Raises:
            ToolExecutionError: If a tool step's call did not succeed.
            ProviderError: If an agent step's completion request failed.
        """
        state.current_step = step.id
        state.step_status = StepStatus.RUNNING
        state.touch()
        logger.debug("Run %s executing step %s (%s)", state.id, step.id, step.kind)
        self._notify()

        try:
            await self._handlers[step.kind](step, state)
        except Exception:
            state.step_status = StepStatus.ERROR
            state.touch()
            raise

        if step.kind != StepKind.HUMAN_APPROVAL:
            state.step_status = StepStatus.SUCCESS
            state.touch()
        self._notify()

    async def _execute_input(self, step: Step, state: RunState) -> None:
        """The initiating message was accepted when the run started."""

    def build_agent_context(self, state: RunState) -> str:
        """Build the user context sent to the provider for an agent step.

        Carries the initiating request, the run variables, the latest check
        outcomes (once any check has run) and the latest proposed diff.
        """
        lines: list[str] = []
        if state.user_message:
            lines.append(f"User request: {state.user_message}")
        lines.append(f"Variables: {json.dumps(state.variables, sort_keys=True, default=str)}")
        if any(state.latest_call(tool) is not None for tool in CHECK_TOOLS.values()):
            results = state.check_results()
            outcomes = ", ".join(f"{name}={'pass' if ok else 'fail'}" for name, ok in results.items())
            lines.append(f"Check results: {outcomes}")
            failing = [name for name, ok in results.items() if not ok]
            if failing:
                lines.append(f"Failing checks: {', '.join(failing)}")
        diff = state.latest_diff()
        if diff:
            lines.append(f"Latest diff:\n{diff}")
        return "\n".join(lines)

    async def _execute_agent(self, step: Step, state: RunState) -> None:
        response = await self.provider.complete(
            step.instructions or "",
            self.build_agent_context(state),
            self.tools.schemas(),
            model=step.model or self.default_model,
        )

        if response.content:
            self._emit(Message(role=MessageRole.ASSISTANT, text=f"[{step.label}] {response.content}"))
            if step.id == self.classification_step:
                match = _SCOPE_RE.search(response.content)
                if match is not None:
                    state.variables["scope"] = match.group(1)
                    logger.info("Run %s classified as %s", state.id, match.group(1))

        if response.tool_calls:
            records = []
            for call in response.tool_calls:
                record = await self.tools.invoke(call.name, call.arguments)
                state.record(record)
                records.append(record)
            self._emit(
                Message(
                    role=MessageRole.ASSISTANT,
                    text=f"Executed {len(records)} tool(s)",
                    tool_calls=copy.deepcopy(tuple(records)),
                )
            )

    async def _execute_tool(self, step: Step, state: RunState) -> None:
        tool = step.tool_name
        args = resolve_placeholders(dict(step.defaults or {}), state.variables)
        self._emit(Message(role=MessageRole.SYSTEM, text=f"Running {tool}...", status=MessageStatus.PENDING))

        record = await self.tools.invoke(tool, args)
        state.record(record)

        if record.ok:
            text = f"{tool} completed in {record.duration:.0f}ms"
        else:
            text = f"{tool} failed: {record.error}"
        self._emit(
            Message(
                role=MessageRole.ASSISTANT,
                text=text,
                tool_calls=(copy.deepcopy(record),),
                status=MessageStatus.SUCCESS if record.ok else MessageStatus.ERROR,
            )
        )
        if not record.ok:
            raise ToolExecutionError(tool, record.error)

    async def _execute_gate(self, step: Step, state: RunState) -> None:
        results = state.check_results()
        passed = all(results.values())
        summary = ", ".join(f"{name}={'✓' if ok else '✗'}" for name, ok in results.items())
        logger.info("Run %s gate %s: %s", state.id, step.id, summary)
        self._emit(
            Message(
                role=MessageRole.SYSTEM,
                text=f"{step.label}: {summary}",
                status=MessageStatus.SUCCESS if passed else MessageStatus.ERROR,
            )
        )

    async def _execute_human_approval(self, step: Step, state: RunState) -> None:
        state.approval = ApprovalRequest(
            step_id=step.id,
            title=step.label,
            diff=state.latest_diff(),
            check_results=state.check_results(),
            metrics=copy.deepcopy(state.latest_metrics()),
        )
        state.step_status = StepStatus.WAITING
        state.touch()
        logger.info("Run %s waiting for approval %s at %s", state.id, state.approval.id, step.id)
        self._emit(
            Message(role=MessageRole.SYSTEM, text=f"Waiting for approval: {step.label}", status=MessageStatus.PENDING)
        )

    async def _execute_output(self, step: Step, state: RunState) -> None:
        self._emit(Message(role=MessageRole.SYSTEM, text="Workflow complete", status=MessageStatus.SUCCESS))
