"""Run controller: the top-level control loop of a change pipeline run.

The :class:`RunController` owns one :class:`~litestar_changeflow.core.state.RunState`
and drives it through the manifest: resolve the next edge, apply its effects,
execute the destination step, repeat, until the terminal step is reached or no
edge is satisfiable. A human approval step suspends the loop in the
``awaiting_approval`` state; :meth:`RunController.approve` and
:meth:`RunController.reject` are the events that end the wait.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from litestar_changeflow.config import ChangeflowConfig
from litestar_changeflow.core.events import Message
from litestar_changeflow.core.state import RunState
from litestar_changeflow.core.types import ApprovalStatus, MessageRole, MessageStatus, RunStatus, StepStatus
from litestar_changeflow.engine.executor import NodeExecutor
from litestar_changeflow.engine.resolver import DagResolver
from litestar_changeflow.exceptions import (
    ChangeflowError,
    InvalidRunStateError,
    ManifestValidationError,
    StepExecutionError,
)
from litestar_changeflow.providers.base import MockProvider

if TYPE_CHECKING:
    from litestar_changeflow.core.definition import WorkflowManifest
    from litestar_changeflow.core.protocols import CompletionProvider, Observer
    from litestar_changeflow.tools.invoker import ToolInvoker

__all__ = ["RunController"]

logger = logging.getLogger(__name__)


class RunController:
    """Drives a single run of a workflow manifest.

    One controller owns one run state. Calls on a controller are serialised by
    an internal lock; independent runs use independent controllers and share
    nothing but the manifest, tools and provider they were given.

    Attributes:
        manifest: The manifest being run.
        tools: Tool invoker shared by tool steps and agent tool calls.
        provider: Completion provider for agent steps.
        state: The run state owned by this controller.
        config: Engine configuration.
        entry_step: Id of the step executed first.
        terminal_step: Id of the step that completes the run.

    Example:
        >>> controller = RunController(default_manifest(), SimulatedTools().as_invoker())
        >>> state = await controller.run("Make the person card border thicker")
        >>> state.status
        <RunStatus.AWAITING_APPROVAL: 'awaiting_approval'>
        >>> state = await controller.approve("alice")
        >>> state.status
        <RunStatus.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        manifest: WorkflowManifest,
        tools: ToolInvoker,
        provider: CompletionProvider | None = None,
        *,
        observers: Iterable[Observer] | None = None,
        state: RunState | None = None,
        config: ChangeflowConfig | None = None,
        validate: bool = True,
    ) -> None:
        """Initialize the controller.

        Args:
            manifest: The manifest to run.
            tools: Tool invoker; its registered names form the tool catalogue.
            provider: Completion provider. Defaults to :class:`MockProvider`.
            observers: Observers notified of state changes and messages.
            state: Existing run state to drive. A fresh one is created if omitted.
            config: Engine configuration.
            validate: Validate the manifest against the tool catalogue.

        Raises:
            ManifestValidationError: If the manifest is structurally invalid.
        """
        self.manifest = manifest
        self.tools = tools
        self.provider = provider or MockProvider()
        self.config = config or ChangeflowConfig()
        self._observers: list[Observer] = list(observers or [])
        self._lock = asyncio.Lock()

        if validate:
            manifest.validate_or_raise(tools.names())
        entry_step = self.config.entry_step or manifest.entry_step
        terminal_step = self.config.terminal_step or manifest.terminal_step
        missing = [step for step in (entry_step, terminal_step) if step is None or not manifest.has_step(step)]
        if missing:
            raise ManifestValidationError([f"Entry or terminal step '{step}' not found" for step in missing])
        self.entry_step: str = entry_step  # type: ignore[assignment]
        self.terminal_step: str = terminal_step  # type: ignore[assignment]

        self.state = state or RunState.for_manifest(manifest)
        self.resolver = DagResolver(manifest, terminal_step=self.terminal_step)
        self.executor = NodeExecutor(
            self.provider,
            tools,
            emit=self._emit,
            notify=self._notify,
            classification_step=self.config.classification_step,
            default_model=self.config.model,
        )

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: Observer) -> None:
        self._observers.remove(observer)

    async def run(self, user_message: str) -> RunState:
        """Start the run with the initiating user message.

        Executes the entry step, then loops until the terminal step is reached
        or the run suspends.

        Args:
            user_message: The instruction describing the requested change.

        Returns:
            The run state.

        Raises:
            InvalidRunStateError: If the run was already started.
            ChangeflowError: If a step failed; the run is marked failed first.
        """
        async with self._lock:
            state = self.state
            if state.status != RunStatus.PENDING:
                raise InvalidRunStateError(state.id, str(state.status), "run() may only be called once")
            state.user_message = user_message
            state.status = RunStatus.RUNNING
            state.touch()
            logger.info("Run %s started on manifest %s", state.id, self.manifest.id)
            self._emit(Message(role=MessageRole.USER, text=user_message))

            await self._execute(self.entry_step)
            await self._drive()
            return state

    async def approve(self, approver: str) -> RunState:
        """Approve the outstanding approval request and resume the run.

        Does nothing when no approval request is pending.

        Args:
            approver: Identifier of the approving human.

        Returns:
            The run state.
        """
        async with self._lock:
            request = self.state.pending_approval
            if request is None:
                logger.debug("Run %s has no pending approval, ignoring approve", self.state.id)
                return self.state

            request.resolve(ApprovalStatus.APPROVED, approver)
            self.state.step_status = StepStatus.SUCCESS
            self.state.touch()
            logger.info("Run %s approved by %s", self.state.id, approver)
            self._emit(Message(role=MessageRole.SYSTEM, text=f"Approved by {approver}", status=MessageStatus.SUCCESS))
            self._notify()

            await self._drive()
            return self.state

    async def reject(self, approver: str, reason: str | None = None) -> RunState:
        """Reject the outstanding approval request and end the run.

        The run moves straight to the terminal step with an error status. No
        further edges are evaluated and effects already applied stay applied.
        Does nothing when no approval request is pending.

        Args:
            approver: Identifier of the rejecting human.
            reason: Optional rejection reason.

        Returns:
            The run state.
        """
        async with self._lock:
            state = self.state
            request = state.pending_approval
            if request is None:
                logger.debug("Run %s has no pending approval, ignoring reject", state.id)
                return state

            request.resolve(ApprovalStatus.REJECTED, approver, reason)
            logger.info("Run %s rejected by %s", state.id, approver)
            text = f"Rejected by {approver}" + (f": {reason}" if reason else "")
            self._emit(Message(role=MessageRole.SYSTEM, text=text, status=MessageStatus.ERROR))

            state.current_step = self.terminal_step
            state.step_status = StepStatus.ERROR
            state.status = RunStatus.REJECTED
            state.touch()
            self._notify()
            return state

    async def _drive(self) -> None:
        """Resolve and execute steps until the terminal step or a suspension."""
        state = self.state
        state.status = RunStatus.RUNNING
        while state.current_step is not None and not self.resolver.is_terminal(state.current_step):
            edge = self.resolver.select_edge(state.current_step, state)
            if edge is None:
                if state.pending_approval is not None:
                    state.status = RunStatus.AWAITING_APPROVAL
                    logger.info("Run %s suspended awaiting approval at %s", state.id, state.current_step)
                else:
                    state.status = RunStatus.SUSPENDED
                    logger.info("Run %s suspended at %s: no satisfiable edge", state.id, state.current_step)
                state.touch()
                self._notify()
                return

            logger.debug("Run %s taking edge %s -> %s", state.id, edge.source, edge.target)
            target = self.resolver.take(edge, state)
            await self._execute(target)

        state.status = RunStatus.COMPLETED
        state.touch()
        logger.info("Run %s completed", state.id)
        self._notify()

    async def _execute(self, step_id: str) -> None:
        step = self.manifest.get_step(step_id)
        try:
            await self.executor.execute(step, self.state)
        except ChangeflowError as exc:
            self._fail(step_id, exc)
            raise
        except Exception as exc:
            self._fail(step_id, exc)
            raise StepExecutionError(step_id, exc) from exc

    def _fail(self, step_id: str, exc: Exception) -> None:
        state = self.state
        state.status = RunStatus.FAILED
        state.step_status = StepStatus.ERROR
        state.error = str(exc)
        state.touch()
        logger.error("Run %s failed at step %s: %s", state.id, step_id, exc)
        self._emit(Message(role=MessageRole.SYSTEM, text=f"Error: {exc}", status=MessageStatus.ERROR))
        self._notify()

    def _emit(self, message: Message) -> None:
        for observer in self._observers:
            try:
                observer.on_message(message)
            except Exception:
                logger.exception("Observer %r failed handling a message", observer)

    def _notify(self) -> None:
        if not self._observers:
            return
        snapshot = self.state.snapshot()
        for observer in self._observers:
            try:
                observer.on_state_change(snapshot)
            except Exception:
                logger.exception("Observer %r failed handling a state change", observer)
