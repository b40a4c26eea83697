"""Workflow manifest, step and edge structures.

This module provides the immutable data structures describing a change
pipeline: the typed steps, the guarded edges between them, and the manifest
tying both together with the initial variable bindings. Manifests in canonical
form (string version, explicit variables and labels) round-trip exactly through
:meth:`WorkflowManifest.from_dict` and :meth:`WorkflowManifest.to_dict`.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from litestar_changeflow.core.types import APPROVED_CONDITION, OTHERWISE_CONDITION, StepKind
from litestar_changeflow.exceptions import ManifestValidationError, StepNotFoundError

__all__ = ["Edge", "Step", "WorkflowManifest"]


@dataclass(frozen=True)
class Step:
    """A single typed node in the manifest.

    Attributes:
        id: Unique step identifier within the manifest.
        kind: The step kind, which selects the executor behaviour.
        label: Display label. For tool steps this is the name of the invoked tool.
        model: Optional model hint for agent steps.
        instructions: Optional system instructions for agent steps.
        defaults: Default tool arguments. String values of the form ``{{var}}``
            are substituted from the run variables at execution time.

    Example:
        >>> step = Step(id="run_tests", kind=StepKind.TOOL, label="run_tests", defaults={"budget_seconds": 180})
        >>> step.tool_name
        'run_tests'
    """

    id: str
    kind: StepKind
    label: str
    model: str | None = None
    instructions: str | None = None
    defaults: dict[str, Any] | None = None

    @property
    def tool_name(self) -> str:
        """Name of the tool invoked by a tool step."""
        return self.label

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Step:
        """Build a step from its manifest representation.

        Raises:
            ValueError: If ``kind`` is not a known step kind.
            KeyError: If ``id`` or ``kind`` is missing.
        """
        defaults = data.get("defaults")
        return cls(
            id=data["id"],
            kind=StepKind(data["kind"]),
            label=data.get("label", data["id"]),
            model=data.get("model"),
            instructions=data.get("instructions"),
            defaults=dict(defaults) if defaults is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the manifest representation, omitting unset optional keys."""
        data: dict[str, Any] = {"id": self.id, "kind": str(self.kind), "label": self.label}
        if self.model is not None:
            data["model"] = self.model
        if self.instructions is not None:
            data["instructions"] = self.instructions
        if self.defaults is not None:
            data["defaults"] = dict(self.defaults)
        return data


@dataclass(frozen=True)
class Edge:
    """A guarded transition between two steps.

    Outgoing edges of a step are considered in declaration order. The reserved
    conditions ``approved`` and ``otherwise`` have special meaning, any other
    condition is an expression evaluated against the run.

    Attributes:
        source: Id of the step the edge leaves.
        target: Id of the step the edge enters.
        condition: Optional guard expression.
        effects: Optional variable assignments applied when the edge is taken.

    Example:
        >>> retry = Edge(
        ...     source="reflect",
        ...     target="write_diff",
        ...     condition="retries < 3",
        ...     effects={"retries": "retries + 1"},
        ... )
    """

    source: str
    target: str
    condition: str | None = None
    effects: dict[str, str] | None = None

    @property
    def is_otherwise(self) -> bool:
        """Whether this is the fallback edge."""
        return self.condition is not None and self.condition.strip() == OTHERWISE_CONDITION

    @property
    def is_approval(self) -> bool:
        """Whether this edge requires an approved approval request."""
        return self.condition is not None and self.condition.strip() == APPROVED_CONDITION

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Edge:
        """Build an edge from its manifest representation (``from``/``to`` keys)."""
        effects = data.get("effects")
        return cls(
            source=data["from"],
            target=data["to"],
            condition=data.get("condition"),
            effects=dict(effects) if effects is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the manifest representation, omitting unset optional keys."""
        data: dict[str, Any] = {"from": self.source, "to": self.target}
        if self.condition is not None:
            data["condition"] = self.condition
        if self.effects is not None:
            data["effects"] = dict(self.effects)
        return data


@dataclass(frozen=True)
class WorkflowManifest:
    """Immutable DAG definition driving one workflow type.

    The manifest captures the ordered steps, the ordered guarded edges and the
    initial variable bindings. It is loaded once and never mutated; every run
    receives its own copy of ``variables``.

    Attributes:
        id: Manifest identifier.
        version: Version string.
        variables: Initial run variable bindings.
        steps: Ordered steps.
        edges: Ordered edges. Order matters for edge selection.

    Example:
        >>> manifest = WorkflowManifest(
        ...     id="tiny",
        ...     version="1",
        ...     variables={},
        ...     steps=(Step("start", StepKind.INPUT, "Start"), Step("done", StepKind.OUTPUT, "Done")),
        ...     edges=(Edge("start", "done"),),
        ... )
        >>> manifest.entry_step, manifest.terminal_step
        ('start', 'done')
    """

    id: str
    version: str
    variables: dict[str, Any] = field(default_factory=dict)
    steps: tuple[Step, ...] = ()
    edges: tuple[Edge, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "edges", tuple(self.edges))

    @property
    def step_ids(self) -> list[str]:
        """Step ids in declaration order."""
        return [step.id for step in self.steps]

    @property
    def entry_step(self) -> str | None:
        """Id of the first input step, the designated entry point."""
        return self._first_of_kind(StepKind.INPUT)

    @property
    def terminal_step(self) -> str | None:
        """Id of the first output step, the designated terminal step."""
        return self._first_of_kind(StepKind.OUTPUT)

    def _first_of_kind(self, kind: StepKind) -> str | None:
        for step in self.steps:
            if step.kind == kind:
                return step.id
        return None

    def get_step(self, step_id: str) -> Step:
        """Look up a step by id.

        Raises:
            StepNotFoundError: If no step has the given id.
        """
        for step in self.steps:
            if step.id == step_id:
                return step
        raise StepNotFoundError(step_id)

    def has_step(self, step_id: str) -> bool:
        return any(step.id == step_id for step in self.steps)

    def outgoing(self, step_id: str) -> list[Edge]:
        """Return the edges leaving ``step_id`` in declaration order."""
        return [edge for edge in self.edges if edge.source == step_id]

    def tool_names(self) -> set[str]:
        """Names of every tool referenced by a tool step."""
        return {step.tool_name for step in self.steps if step.kind == StepKind.TOOL}

    def validate(self, tools: Iterable[str] | None = None) -> list[str]:
        """Validate the manifest structure.

        Args:
            tools: Optional catalogue of known tool names. When given, tool steps
                naming a tool outside the catalogue are reported.

        Returns:
            List of validation error messages. Empty list if valid.

        Example:
            >>> errors = manifest.validate(tools=invoker.names())
            >>> if errors:
            ...     print("Validation errors:", errors)
        """
        errors: list[str] = []
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                errors.append(f"Duplicate step id '{step.id}'")
            seen.add(step.id)

        if self.entry_step is None:
            errors.append("Manifest has no input step")
        if self.terminal_step is None:
            errors.append("Manifest has no output step")

        for i, edge in enumerate(self.edges):
            if edge.source not in seen:
                errors.append(f"Edge {i}: source step '{edge.source}' not found")
            if edge.target not in seen:
                errors.append(f"Edge {i}: target step '{edge.target}' not found")
            if edge.effects is not None and not all(
                isinstance(key, str) and isinstance(value, str) for key, value in edge.effects.items()
            ):
                errors.append(f"Edge {i}: effects must map variable names to expression strings")

        for source in {edge.source for edge in self.edges}:
            fallbacks = [edge for edge in self.outgoing(source) if edge.is_otherwise]
            if len(fallbacks) > 1:
                errors.append(f"Step '{source}' has more than one 'otherwise' edge")

        if tools is not None:
            known = set(tools)
            for step in self.steps:
                if step.kind == StepKind.TOOL and step.tool_name not in known:
                    errors.append(f"Step '{step.id}' uses unknown tool '{step.tool_name}'")

        if self.entry_step is not None:
            reachable = {self.entry_step}
            changed = True
            while changed:
                changed = False
                for edge in self.edges:
                    if edge.source in reachable and edge.target not in reachable:
                        reachable.add(edge.target)
                        changed = True
            for step in self.steps:
                if step.id not in reachable:
                    errors.append(f"Step '{step.id}' is unreachable from entry step")

        for cycle in self._unguarded_cycles():
            errors.append(f"Cycle without a guarded edge: {' -> '.join(cycle)}")

        return errors

    def _unguarded_cycles(self) -> list[list[str]]:
        """Find cycles made only of edges without a guard or with ``otherwise``.

        A run entering such a cycle loops forever, so every loop must pass
        through at least one edge whose condition can stop it.
        """
        successors: dict[str, list[str]] = {}
        for edge in self.edges:
            if edge.condition is None or edge.is_otherwise:
                successors.setdefault(edge.source, []).append(edge.target)

        cycles: list[list[str]] = []
        done: set[str] = set()
        for root in successors:
            if root in done:
                continue
            path: list[str] = [root]
            on_path = {root}
            stack = [iter(successors.get(root, ()))]
            while stack:
                target = next(stack[-1], None)
                if target is None:
                    stack.pop()
                    finished = path.pop()
                    on_path.discard(finished)
                    done.add(finished)
                    continue
                if target in on_path:
                    cycles.append([*path[path.index(target):], target])
                elif target not in done:
                    path.append(target)
                    on_path.add(target)
                    stack.append(iter(successors.get(target, ())))
        return cycles

    def validate_or_raise(self, tools: Iterable[str] | None = None) -> None:
        """Validate the manifest, raising on the first pass with errors.

        Raises:
            ManifestValidationError: If :meth:`validate` reports any error.
        """
        errors = self.validate(tools)
        if errors:
            raise ManifestValidationError(errors)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorkflowManifest:
        """Build a manifest from its dict representation.

        ``version`` is stored as a string, so a numeric version such as ``2`` is
        read as ``"2"``. A missing ``variables`` key means no initial variables.

        Raises:
            ManifestValidationError: If a step or edge entry is malformed.
        """
        errors: list[str] = []
        steps: list[Step] = []
        edges: list[Edge] = []
        for i, raw in enumerate(data.get("nodes", [])):
            try:
                steps.append(Step.from_dict(raw))
            except KeyError as exc:
                errors.append(f"Node {i}: missing key {exc}")
            except ValueError:
                errors.append(f"Node {i}: unknown step kind '{raw.get('kind')}'")
        for i, raw in enumerate(data.get("edges", [])):
            try:
                edges.append(Edge.from_dict(raw))
            except KeyError as exc:
                errors.append(f"Edge {i}: missing key {exc}")
        for key in ("id", "version"):
            if key not in data:
                errors.append(f"Manifest: missing key '{key}'")
        if errors:
            raise ManifestValidationError(errors)

        return cls(
            id=data["id"],
            version=str(data["version"]),
            variables=dict(data.get("variables") or {}),
            steps=tuple(steps),
            edges=tuple(edges),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the canonical dict representation accepted by :meth:`from_dict`.

        The canonical form always carries ``variables`` and a string
        ``version``. A manifest already in canonical form, such as
        :data:`~litestar_changeflow.manifests.CHANGE_PIPELINE`, round-trips
        unchanged through :meth:`from_dict` and this method.
        """
        return {
            "id": self.id,
            "version": self.version,
            "variables": dict(self.variables),
            "nodes": [step.to_dict() for step in self.steps],
            "edges": [edge.to_dict() for edge in self.edges],
        }

    def to_mermaid(self) -> str:
        """Generate a MermaidJS graph representation of the manifest.

        Returns:
            MermaidJS graph definition as a string.

        Example:
            >>> print(manifest.to_mermaid())
            graph TD
                start([START: Start])
                done([END: Done])
                start --> done
        """
        lines = ["graph TD"]
        shapes = {
            StepKind.INPUT: ("([", "])"),
            StepKind.OUTPUT: ("([", "])"),
            StepKind.GATE: ("{", "}"),
            StepKind.HUMAN_APPROVAL: ("{{", "}}"),
            StepKind.AGENT: ("[/", "/]"),
        }
        for step in self.steps:
            shape_start, shape_end = shapes.get(step.kind, ("[", "]"))
            prefix = ""
            if step.id == self.entry_step:
                prefix = "START: "
            elif step.id == self.terminal_step:
                prefix = "END: "
            label = step.label.replace('"', "").replace("_", " ")
            lines.append(f"    {step.id}{shape_start}{prefix}{label}{shape_end}")

        for edge in self.edges:
            label = ""
            if edge.condition is not None:
                # Quotes and pipes break mermaid edge labels
                safe_condition = edge.condition.replace("'", "").replace('"', "").replace("||", "or").replace("|", "")
                label = f"|{safe_condition}|"
            lines.append(f"    {edge.source} -->{label} {edge.target}")

        return "\n".join(lines)
