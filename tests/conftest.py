"""Shared test fixtures for litestar-changeflow test suite."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from litestar_changeflow.core.definition import WorkflowManifest
    from litestar_changeflow.core.events import Message, RunSnapshot
    from litestar_changeflow.engine.controller import RunController
    from litestar_changeflow.tools.invoker import ToolInvoker
    from litestar_changeflow.tools.simulated import SimulatedTools


class RecordingObserver:
    """Observer collecting every message and snapshot it receives."""

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.snapshots: list[RunSnapshot] = []

    def on_state_change(self, snapshot: RunSnapshot) -> None:
        self.snapshots.append(snapshot)

    def on_message(self, message: Message) -> None:
        self.messages.append(message)

    @property
    def texts(self) -> list[str]:
        return [message.text for message in self.messages]


def make_manifest_dict(
    nodes: list[dict[str, Any]],
    edges: list[dict[str, Any]],
    variables: dict[str, Any] | None = None,
    manifest_id: str = "test-manifest",
    version: str = "1",
) -> dict[str, Any]:
    """Build a manifest dict for small hand-written graphs."""
    return {
        "id": manifest_id,
        "version": version,
        "variables": variables or {},
        "nodes": nodes,
        "edges": edges,
    }


@pytest.fixture
def change_manifest() -> WorkflowManifest:
    """The built-in change pipeline manifest."""
    from litestar_changeflow.manifests import default_manifest

    return default_manifest()


@pytest.fixture
def tiny_manifest() -> WorkflowManifest:
    """A three step manifest: start -> work -> done."""
    from litestar_changeflow.core.definition import WorkflowManifest

    return WorkflowManifest.from_dict(
        make_manifest_dict(
            nodes=[
                {"id": "start", "kind": "input", "label": "Start"},
                {"id": "work", "kind": "tool", "label": "run_linter"},
                {"id": "done", "kind": "output", "label": "Done"},
            ],
            edges=[{"from": "start", "to": "work"}, {"from": "work", "to": "done"}],
            manifest_id="tiny",
        )
    )


@pytest.fixture
def simulated_tools() -> SimulatedTools:
    """Simulated tool set with every check passing."""
    from litestar_changeflow.tools.simulated import SimulatedTools

    return SimulatedTools()


@pytest.fixture
def invoker(simulated_tools: SimulatedTools) -> ToolInvoker:
    """Tool invoker backed by the simulated tools."""
    return simulated_tools.as_invoker()


@pytest.fixture
def observer() -> RecordingObserver:
    """A fresh recording observer."""
    return RecordingObserver()


@pytest.fixture
def make_controller(
    change_manifest: WorkflowManifest,
    invoker: ToolInvoker,
    observer: RecordingObserver,
) -> Callable[..., RunController]:
    """Factory building a run controller over the change pipeline.

    Keyword arguments override the controller's constructor arguments.
    """
    from litestar_changeflow.engine.controller import RunController

    def factory(**kwargs: Any) -> RunController:
        kwargs.setdefault("observers", [observer])
        manifest = kwargs.pop("manifest", change_manifest)
        tools = kwargs.pop("tools", invoker)
        return RunController(manifest, tools, **kwargs)

    return factory


def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers.

    Args:
        config: Pytest config object
    """
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
