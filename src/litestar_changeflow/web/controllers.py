"""REST API controllers for change pipeline management.

This module provides three controller classes:
- ManifestController: Inspect registered manifests and their graphs
- RunInstanceController: Start and inspect runs
- ApprovalController: Approve or reject a run's pending approval request
"""

from __future__ import annotations

import logging
from typing import ClassVar
from uuid import UUID

from litestar import Controller, delete, get, post
from litestar.exceptions import NotFoundException
from litestar.params import Parameter

from litestar_changeflow.engine.registry import ManifestRegistry  # noqa: TC001 - needed for DI
from litestar_changeflow.exceptions import ChangeflowError, ManifestNotFoundError
from litestar_changeflow.web.dto import (
    ApproveRunDTO,
    GraphDTO,
    ManifestDTO,
    MessageDTO,
    RejectRunDTO,
    RunDTO,
    StartRunDTO,
)
from litestar_changeflow.web.sessions import RunSession, RunSessions  # noqa: TC001 - needed for DI

__all__ = [
    "ApprovalController",
    "ManifestController",
    "RunInstanceController",
]

logger = logging.getLogger(__name__)


def _run_dto(session: RunSession) -> RunDTO:
    return RunDTO.from_snapshot(session.controller.state.snapshot())


class ManifestController(Controller):
    """API controller for workflow manifests.

    Provides endpoints for listing and retrieving manifests, including their
    graph visualizations.

    Tags: Manifests
    """

    path = "/manifests"
    tags: ClassVar[list[str]] = ["Manifests"]

    @get("/")
    async def list_manifests(
        self,
        changeflow_registry: ManifestRegistry,
        latest_only: bool = Parameter(
            default=True,
            description="Only return the latest version of each manifest",
        ),
    ) -> list[ManifestDTO]:
        """List all registered manifests.

        Args:
            changeflow_registry: Injected manifest registry.
            latest_only: Whether to collapse versions to the latest one.

        Returns:
            List of manifest DTOs.
        """
        return [ManifestDTO.from_manifest(m) for m in changeflow_registry.list_manifests(latest_only=latest_only)]

    @get("/{manifest_id:str}")
    async def get_manifest(
        self,
        manifest_id: str,
        changeflow_registry: ManifestRegistry,
        version: str | None = Parameter(
            default=None,
            description="Specific version to retrieve. If omitted, returns latest.",
        ),
    ) -> ManifestDTO:
        """Get a specific manifest by id.

        Raises:
            NotFoundException: If the manifest is not registered.
        """
        try:
            manifest = changeflow_registry.get(manifest_id, version=version)
        except ManifestNotFoundError as e:
            raise NotFoundException(detail=str(e)) from e
        return ManifestDTO.from_manifest(manifest)

    @get("/{manifest_id:str}/graph")
    async def get_manifest_graph(
        self,
        manifest_id: str,
        changeflow_registry: ManifestRegistry,
        graph_format: str = Parameter(
            default="mermaid",
            description="Graph format: 'mermaid' or 'json'",
        ),
    ) -> GraphDTO:
        """Get the manifest graph.

        Returns MermaidJS source alongside the node and edge lists, or only the
        lists when ``graph_format`` is ``json``.

        Raises:
            NotFoundException: If the manifest or the format is unknown.
        """
        try:
            manifest = changeflow_registry.get(manifest_id)
        except ManifestNotFoundError as e:
            raise NotFoundException(detail=str(e)) from e

        nodes = [
            {"id": step.id, "label": step.label, "kind": str(step.kind)}
            for step in manifest.steps
        ]
        edges = [
            {"source": edge.source, "target": edge.target, "condition": edge.condition}
            for edge in manifest.edges
        ]
        if graph_format == "mermaid":
            return GraphDTO(mermaid_source=manifest.to_mermaid(), nodes=nodes, edges=edges)
        if graph_format == "json":
            return GraphDTO(mermaid_source="", nodes=nodes, edges=edges)
        raise NotFoundException(detail=f"Unknown format: {graph_format}")


class RunInstanceController(Controller):
    """API controller for runs.

    Tags: Runs
    """

    path = "/runs"
    tags: ClassVar[list[str]] = ["Runs"]

    @post("/", dto=None, return_dto=None)
    async def start_run(
        self,
        data: StartRunDTO,
        changeflow_registry: ManifestRegistry,
        changeflow_sessions: RunSessions,
    ) -> RunDTO:
        """Start a run of a manifest with the user's instruction.

        The run executes until it completes, suspends, or waits for approval.
        A run that fails is still returned, with status ``failed`` and the error
        text, and stays available under its id.

        Args:
            data: Run start parameters.
            changeflow_registry: Injected manifest registry.
            changeflow_sessions: Injected run sessions.

        Returns:
            The run snapshot after the initial drive.
        """
        manifest_id = data.manifest_id or changeflow_sessions.default_manifest_id
        if manifest_id is None:
            manifests = changeflow_registry.list_manifests()
            if not manifests:
                raise NotFoundException(detail="No manifests are registered")
            manifest = manifests[0]
        else:
            manifest = changeflow_registry.get(manifest_id, version=data.version)

        session = changeflow_sessions.create(manifest)
        try:
            await session.controller.run(data.message)
        except ChangeflowError:
            logger.warning("Run %s failed during start", session.run_id, exc_info=True)
        return _run_dto(session)

    @get("/")
    async def list_runs(
        self,
        changeflow_sessions: RunSessions,
        status: str | None = Parameter(
            default=None,
            description="Filter by status",
        ),
    ) -> list[RunDTO]:
        """List runs, optionally filtered by status."""
        result = [_run_dto(session) for session in changeflow_sessions.list()]
        if status:
            result = [dto for dto in result if dto.status == status]
        return result

    @get("/{run_id:uuid}")
    async def get_run(self, run_id: UUID, changeflow_sessions: RunSessions) -> RunDTO:
        """Get the current snapshot of a run."""
        return _run_dto(changeflow_sessions.get(run_id))

    @delete("/{run_id:uuid}")
    async def delete_run(self, run_id: UUID, changeflow_sessions: RunSessions) -> None:
        """Forget a run and its message log.

        Runs are held in memory until deleted. A run awaiting approval can no
        longer be approved once deleted.
        """
        changeflow_sessions.discard(run_id)

    @get("/{run_id:uuid}/messages")
    async def get_messages(self, run_id: UUID, changeflow_sessions: RunSessions) -> list[MessageDTO]:
        """Get every message a run has emitted, in emission order."""
        session = changeflow_sessions.get(run_id)
        return [MessageDTO.from_message(message) for message in session.log.messages]

    @get("/{run_id:uuid}/graph")
    async def get_run_graph(self, run_id: UUID, changeflow_sessions: RunSessions) -> GraphDTO:
        """Get the run's manifest graph with the current step highlighted."""
        controller = changeflow_sessions.get(run_id).controller
        state = controller.state
        lines = [controller.manifest.to_mermaid()]
        if state.current_step is not None:
            lines.append("    classDef current fill:#fdd835,stroke:#f57f17,stroke-width:3px")
            lines.append(f"    class {state.current_step} current")
        nodes = [
            {
                "id": step.id,
                "label": step.label,
                "kind": str(step.kind),
                "current": step.id == state.current_step,
            }
            for step in controller.manifest.steps
        ]
        edges = [
            {"source": edge.source, "target": edge.target, "condition": edge.condition}
            for edge in controller.manifest.edges
        ]
        return GraphDTO(mermaid_source="\n".join(lines), nodes=nodes, edges=edges)


class ApprovalController(Controller):
    """API controller for human approval decisions.

    Approving or rejecting a run without a pending approval request is a no-op
    that returns the unchanged run.

    Tags: Approvals
    """

    path = "/runs/{run_id:uuid}"
    tags: ClassVar[list[str]] = ["Approvals"]

    @post("/approve", dto=None, return_dto=None)
    async def approve_run(self, run_id: UUID, data: ApproveRunDTO, changeflow_sessions: RunSessions) -> RunDTO:
        """Approve the pending request and resume the run.

        Args:
            run_id: The run id.
            data: Approval parameters.
            changeflow_sessions: Injected run sessions.

        Returns:
            The run snapshot after resuming.
        """
        session = changeflow_sessions.get(run_id)
        try:
            await session.controller.approve(data.approver)
        except ChangeflowError:
            logger.warning("Run %s failed after approval", run_id, exc_info=True)
        return _run_dto(session)

    @post("/reject", dto=None, return_dto=None)
    async def reject_run(self, run_id: UUID, data: RejectRunDTO, changeflow_sessions: RunSessions) -> RunDTO:
        """Reject the pending request and end the run.

        Args:
            run_id: The run id.
            data: Rejection parameters.
            changeflow_sessions: Injected run sessions.

        Returns:
            The run snapshot after rejection.
        """
        session = changeflow_sessions.get(run_id)
        await session.controller.reject(data.approver, data.reason)
        return _run_dto(session)
