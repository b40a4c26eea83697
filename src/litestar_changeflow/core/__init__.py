"""Core domain module for litestar-changeflow.

This module exports the building blocks of a change pipeline: manifests,
run state, observer events, protocols and the condition grammar.
"""

from __future__ import annotations

from litestar_changeflow.core.definition import Edge, Step, WorkflowManifest
from litestar_changeflow.core.events import Message, RunSnapshot
from litestar_changeflow.core.expressions import (
    ConditionSyntaxError,
    apply_effects,
    build_condition_context,
    compile_condition,
    evaluate_condition,
)
from litestar_changeflow.core.protocols import CompletionProvider, Observer, Tool
from litestar_changeflow.core.state import CHECK_TOOLS, ApprovalRequest, RunState, ToolCallRecord
from litestar_changeflow.core.types import (
    APPROVED_CONDITION,
    OTHERWISE_CONDITION,
    ApprovalStatus,
    MessageRole,
    MessageStatus,
    RunStatus,
    RunVariables,
    ScopeLevel,
    StepKind,
    StepStatus,
)

__all__ = [
    "APPROVED_CONDITION",
    "CHECK_TOOLS",
    "OTHERWISE_CONDITION",
    "ApprovalRequest",
    "ApprovalStatus",
    "CompletionProvider",
    "ConditionSyntaxError",
    "Edge",
    "Message",
    "MessageRole",
    "MessageStatus",
    "Observer",
    "RunSnapshot",
    "RunState",
    "RunStatus",
    "RunVariables",
    "ScopeLevel",
    "Step",
    "StepKind",
    "StepStatus",
    "Tool",
    "ToolCallRecord",
    "WorkflowManifest",
    "apply_effects",
    "build_condition_context",
    "compile_condition",
    "evaluate_condition",
]
