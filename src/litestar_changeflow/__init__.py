"""Litestar Changeflow - guarded change pipelines for Litestar.

This package runs a natural-language change request through a manifest-driven
pipeline: an agent classifies and plans the change, tools propose a diff and run
sandboxed quality checks, failing checks loop back through a bounded repair
step, and a human approves the change before it is rolled out behind a feature
flag with a metrics check that either widens the rollout or rolls it back.

Example:
    >>> from litestar_changeflow import RunController, SimulatedTools, default_manifest
    >>>
    >>> controller = RunController(default_manifest(), SimulatedTools().as_invoker())
    >>> state = await controller.run("Make the person card border thicker")
    >>> state = await controller.approve("alice")
"""

from __future__ import annotations

from litestar_changeflow.__metadata__ import __project__, __version__
from litestar_changeflow.config import ChangeflowConfig, configure_logging
from litestar_changeflow.core import (
    ApprovalRequest,
    Edge,
    Message,
    RunSnapshot,
    RunState,
    RunStatus,
    Step,
    StepKind,
    StepStatus,
    ToolCallRecord,
    WorkflowManifest,
)
from litestar_changeflow.engine import DagResolver, ManifestRegistry, NodeExecutor, RunController
from litestar_changeflow.exceptions import (
    ApprovalAlreadyResolvedError,
    ChangeflowError,
    InvalidRunStateError,
    ManifestNotFoundError,
    ManifestValidationError,
    ProviderError,
    RunNotFoundError,
    StepExecutionError,
    StepNotFoundError,
    ToolExecutionError,
    UnknownToolError,
)
from litestar_changeflow.manifests import CHANGE_PIPELINE, default_manifest, dump_manifest, load_manifest
from litestar_changeflow.plugin import ChangeflowPlugin, ChangeflowPluginConfig
from litestar_changeflow.providers import get_provider
from litestar_changeflow.tools import SimulatedTools, ToolInvoker

__all__ = (
    "CHANGE_PIPELINE",
    "ApprovalAlreadyResolvedError",
    "ApprovalRequest",
    "ChangeflowConfig",
    "ChangeflowError",
    "ChangeflowPlugin",
    "ChangeflowPluginConfig",
    "DagResolver",
    "Edge",
    "InvalidRunStateError",
    "ManifestNotFoundError",
    "ManifestRegistry",
    "ManifestValidationError",
    "Message",
    "NodeExecutor",
    "ProviderError",
    "RunController",
    "RunNotFoundError",
    "RunSnapshot",
    "RunState",
    "RunStatus",
    "SimulatedTools",
    "Step",
    "StepExecutionError",
    "StepKind",
    "StepNotFoundError",
    "StepStatus",
    "ToolCallRecord",
    "ToolExecutionError",
    "ToolInvoker",
    "UnknownToolError",
    "WorkflowManifest",
    "__project__",
    "__version__",
    "configure_logging",
    "default_manifest",
    "dump_manifest",
    "get_provider",
    "load_manifest",
)
