"""Tool catalogue, invoker and simulated tool set."""

from __future__ import annotations

from litestar_changeflow.tools.invoker import ToolInvoker
from litestar_changeflow.tools.schemas import TOOL_SCHEMAS, get_schema
from litestar_changeflow.tools.simulated import SimulatedTools

__all__ = ["TOOL_SCHEMAS", "SimulatedTools", "ToolInvoker", "get_schema"]
