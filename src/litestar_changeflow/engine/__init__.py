"""Change pipeline execution engine.

This module provides the resolver that picks the next edge, the executor that
runs one step, the controller that drives a run, and the manifest registry.
"""

from __future__ import annotations

from litestar_changeflow.engine.controller import RunController
from litestar_changeflow.engine.executor import NodeExecutor, resolve_placeholders
from litestar_changeflow.engine.registry import ManifestRegistry
from litestar_changeflow.engine.resolver import SUSPEND, DagResolver, Suspend

__all__ = [
    "SUSPEND",
    "DagResolver",
    "ManifestRegistry",
    "NodeExecutor",
    "RunController",
    "Suspend",
    "resolve_placeholders",
]
