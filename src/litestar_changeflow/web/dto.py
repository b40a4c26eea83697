"""Data Transfer Objects for the changeflow web API.

This module defines DTOs for serializing and deserializing manifests, runs,
messages and human decisions in REST API requests and responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from litestar_changeflow.core.definition import WorkflowManifest
    from litestar_changeflow.core.events import Message, RunSnapshot

__all__ = [
    "ApproveRunDTO",
    "GraphDTO",
    "ManifestDTO",
    "MessageDTO",
    "RejectRunDTO",
    "RunDTO",
    "StartRunDTO",
]


@dataclass
class StartRunDTO:
    """DTO for starting a run.

    Attributes:
        message: The initiating user instruction.
        manifest_id: Manifest to run. Defaults to the plugin's default manifest.
        version: Optional manifest version. Defaults to the latest.
    """

    message: str
    manifest_id: str | None = None
    version: str | None = None


@dataclass
class ApproveRunDTO:
    """DTO for approving a run's pending approval request.

    Attributes:
        approver: Identifier of the approving human.
    """

    approver: str


@dataclass
class RejectRunDTO:
    """DTO for rejecting a run's pending approval request.

    Attributes:
        approver: Identifier of the rejecting human.
        reason: Optional reason for the rejection.
    """

    approver: str
    reason: str | None = None


@dataclass
class ManifestDTO:
    """DTO for a workflow manifest.

    Attributes:
        id: Manifest id.
        version: Manifest version.
        variables: Initial run variables.
        nodes: Steps in manifest format.
        edges: Edges in manifest format.
        entry_step: Id of the entry step.
        terminal_step: Id of the terminal step.
    """

    id: str
    version: str
    variables: dict[str, Any]
    nodes: list[dict[str, Any]]
    edges: list[dict[str, Any]]
    entry_step: str | None
    terminal_step: str | None

    @classmethod
    def from_manifest(cls, manifest: WorkflowManifest) -> ManifestDTO:
        data = manifest.to_dict()
        return cls(
            id=manifest.id,
            version=manifest.version,
            variables=data["variables"],
            nodes=data["nodes"],
            edges=data["edges"],
            entry_step=manifest.entry_step,
            terminal_step=manifest.terminal_step,
        )


@dataclass
class GraphDTO:
    """DTO for manifest graph visualization.

    Attributes:
        mermaid_source: MermaidJS graph definition.
        nodes: Node descriptions.
        edges: Edge descriptions.
    """

    mermaid_source: str
    nodes: list[dict[str, Any]]
    edges: list[dict[str, Any]]


@dataclass
class RunDTO:
    """DTO for a run snapshot.

    Attributes:
        run_id: Run identifier.
        manifest_id: Manifest driving the run.
        status: Overall run status.
        current_step: Current step id.
        step_status: Current step status.
        variables: Run variables.
        history: Tool call records.
        approval: Approval request, if one was created.
        error: Failure text, if the run failed.
        started_at: When the run was created.
        updated_at: When the run last changed.
    """

    run_id: UUID
    manifest_id: str
    status: str
    current_step: str | None
    step_status: str
    variables: dict[str, Any]
    history: list[dict[str, Any]]
    approval: dict[str, Any] | None
    error: str | None
    started_at: datetime
    updated_at: datetime

    @classmethod
    def from_snapshot(cls, snapshot: RunSnapshot) -> RunDTO:
        data = snapshot.to_dict()
        return cls(
            run_id=snapshot.run_id,
            manifest_id=snapshot.manifest_id,
            status=data["status"],
            current_step=snapshot.current_step,
            step_status=data["step_status"],
            variables=data["variables"],
            history=data["history"],
            approval=data["approval"],
            error=snapshot.error,
            started_at=snapshot.started_at,
            updated_at=snapshot.updated_at,
        )


@dataclass
class MessageDTO:
    """DTO for a run message.

    Attributes:
        id: Message id.
        role: Message role.
        text: Message body.
        status: Optional message status.
        tool_calls: Tool call records the message reports on.
        timestamp: When the message was emitted.
    """

    id: UUID
    role: str
    text: str
    status: str | None
    tool_calls: list[dict[str, Any]]
    timestamp: datetime

    @classmethod
    def from_message(cls, message: Message) -> MessageDTO:
        return cls(
            id=message.id,
            role=str(message.role),
            text=message.text,
            status=str(message.status) if message.status is not None else None,
            tool_calls=[record.to_dict() for record in message.tool_calls],
            timestamp=message.timestamp,
        )
