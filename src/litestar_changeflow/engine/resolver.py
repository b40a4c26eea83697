"""Guarded edge selection over a workflow manifest.

This module provides the :class:`DagResolver`, which decides where a run goes
after a step finishes. Selection is a pure function of the manifest, the run
variables, the tool call history and the approval request.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Literal, Union

from litestar_changeflow.core.expressions import apply_effects, build_condition_context, evaluate_condition
from litestar_changeflow.core.types import ApprovalStatus

if TYPE_CHECKING:
    from litestar_changeflow.core.definition import Edge, WorkflowManifest
    from litestar_changeflow.core.state import RunState

__all__ = ["SUSPEND", "DagResolver", "NextStep", "Suspend"]

logger = logging.getLogger(__name__)


class Suspend(Enum):
    """Marker returned when no outgoing edge is satisfiable."""

    SUSPEND = "suspend"

    def __repr__(self) -> str:
        return "SUSPEND"


SUSPEND = Suspend.SUSPEND

NextStep = Union[str, Literal[Suspend.SUSPEND]]


class DagResolver:
    """Selects the next step by scanning guarded edges in declaration order.

    Edge rules:

    * An edge without a condition is always satisfied.
    * ``approved`` is satisfied only when the run's approval request exists and
      its status is ``approved``.
    * ``otherwise`` is skipped during the scan and taken only when no other
      edge matched.
    * Any other condition is evaluated as a guard expression; the first edge
      evaluating true wins.

    Attributes:
        manifest: The manifest whose edges are resolved.
        _adjacency: Outgoing edges per step id, in declaration order.

    Example:
        >>> resolver = DagResolver(manifest)
        >>> target = resolver.next_step("gate_checks", state)
        >>> target is SUSPEND
        False
    """

    def __init__(self, manifest: WorkflowManifest, terminal_step: str | None = None) -> None:
        """Initialize the resolver.

        Args:
            manifest: The manifest to resolve edges of.
            terminal_step: Terminal step override. Defaults to the manifest's first output step.
        """
        self.manifest = manifest
        self.terminal_step = terminal_step or manifest.terminal_step
        self._adjacency: dict[str, list[Edge]] = {step.id: [] for step in manifest.steps}
        for edge in manifest.edges:
            self._adjacency.setdefault(edge.source, []).append(edge)

    def outgoing(self, step_id: str) -> list[Edge]:
        return list(self._adjacency.get(step_id, []))

    def is_terminal(self, step_id: str) -> bool:
        """Check whether ``step_id`` is the manifest's terminal step."""
        return step_id == self.terminal_step

    def edge_satisfied(self, edge: Edge, state: RunState, context: dict | None = None) -> bool:
        """Check a single non-fallback edge against the run.

        Args:
            edge: The edge to check.
            state: The run state.
            context: Pre-built condition context, built on demand if omitted.

        Returns:
            True if the edge may be taken. ``otherwise`` edges always report False.
        """
        if edge.condition is None or not edge.condition.strip():
            return True
        if edge.is_otherwise:
            return False
        if edge.is_approval:
            return state.approval is not None and state.approval.status == ApprovalStatus.APPROVED
        if context is None:
            context = build_condition_context(state)
        return evaluate_condition(edge.condition, context)

    def select_edge(self, step_id: str, state: RunState) -> Edge | None:
        """Select the edge to take out of ``step_id`` without mutating anything.

        Args:
            step_id: The step that just finished.
            state: The run state.

        Returns:
            The winning edge, or None when nothing is satisfiable.
        """
        edges = self._adjacency.get(step_id, [])
        context = build_condition_context(state)
        fallback: Edge | None = None
        for edge in edges:
            if edge.is_otherwise:
                fallback = fallback or edge
                continue
            if self.edge_satisfied(edge, state, context):
                return edge
        return fallback

    def next_step(self, step_id: str, state: RunState) -> NextStep:
        """Return the id of the next step, or :data:`SUSPEND`.

        Args:
            step_id: The step that just finished.
            state: The run state.

        Returns:
            The target step id of the selected edge, or SUSPEND.
        """
        edge = self.select_edge(step_id, state)
        return SUSPEND if edge is None else edge.target

    def take(self, edge: Edge, state: RunState) -> str:
        """Take ``edge``: apply its effects to the run variables.

        Args:
            edge: The edge returned by :meth:`select_edge`.
            state: The run state to mutate.

        Returns:
            The id of the destination step.
        """
        changes = apply_effects(edge.effects, state.variables)
        if changes:
            logger.info("Edge %s -> %s applied effects %s", edge.source, edge.target, changes)
            state.touch()
        return edge.target
