"""Minimal example of litestar-changeflow integration.

This example mounts the change pipeline API with the built-in manifest, the
simulated tool set and the mock completion provider, plus one custom tool
overriding the simulated linter.

Run with:
    cd examples/minimal
    litestar run

Or:
    uvicorn app:app --reload

Then:
    curl -X POST localhost:8000/changeflow/runs/ -H 'Content-Type: application/json' \
        -d '{"message": "Make the card border thicker"}'
    curl -X POST localhost:8000/changeflow/runs/<run_id>/approve -H 'Content-Type: application/json' \
        -d '{"approver": "alice"}'
"""

from __future__ import annotations

from typing import Any

from litestar import Litestar, get

from litestar_changeflow import (
    ChangeflowConfig,
    ChangeflowPlugin,
    ChangeflowPluginConfig,
    ManifestRegistry,
    configure_logging,
)
from litestar_changeflow.tools import SimulatedTools

# =============================================================================
# Tools
# =============================================================================

tools = SimulatedTools().as_invoker()


@tools.tool("run_linter")
async def run_linter() -> dict[str, Any]:
    """Pretend to lint the workspace, flagging nothing."""
    return {"ok": True, "errors": [], "warnings": ["example linter: no rules configured"]}


# =============================================================================
# Application
# =============================================================================

changeflow = ChangeflowConfig.from_env()
configure_logging(changeflow.log_level)

plugin_config = ChangeflowPluginConfig(tools=tools, changeflow=changeflow)


@get("/health")
async def health_check(changeflow_registry: ManifestRegistry) -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "healthy", "manifests": [m.id for m in changeflow_registry.list_manifests()]}


app = Litestar(
    route_handlers=[health_check],
    plugins=[ChangeflowPlugin(config=plugin_config)],
    debug=True,
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
