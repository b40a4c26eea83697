"""Litestar plugin for change pipeline integration.

This module provides the ChangeflowPlugin for integrating litestar-changeflow
with Litestar applications.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from litestar.di import Provide
from litestar.plugins import InitPluginProtocol

from litestar_changeflow.config import ChangeflowConfig
from litestar_changeflow.engine.registry import ManifestRegistry
from litestar_changeflow.manifests import default_manifest
from litestar_changeflow.providers import get_provider
from litestar_changeflow.tools.simulated import SimulatedTools
from litestar_changeflow.web.sessions import RunSessions

if TYPE_CHECKING:
    from litestar.config.app import AppConfig

    from litestar_changeflow.core.definition import WorkflowManifest
    from litestar_changeflow.core.protocols import CompletionProvider
    from litestar_changeflow.tools.invoker import ToolInvoker

__all__ = ["ChangeflowPlugin", "ChangeflowPluginConfig"]

logger = logging.getLogger(__name__)


@dataclass
class ChangeflowPluginConfig:
    """Configuration for the ChangeflowPlugin.

    Attributes:
        registry: Optional pre-configured ManifestRegistry. If not provided,
            a new one will be created.
        tools: Tool invoker used by every run. Defaults to the simulated
            tool set, which performs no real work.
        provider: Completion provider used by every run. Defaults to the
            provider selected by ``changeflow``, which the plugin closes on
            app shutdown. A provided instance is left for the caller to close.
        changeflow: Engine and provider configuration. Defaults to
            :meth:`ChangeflowConfig.from_env`.
        auto_register_manifests: Manifests to register on app startup.
        include_default_manifest: Whether to register the built-in change
            pipeline. Defaults to True.
        default_manifest_id: Manifest started when a run request names none.
            Defaults to the first registered manifest.
        dependency_key_registry: The key used for dependency injection of
            the ManifestRegistry. Defaults to "changeflow_registry".
        dependency_key_sessions: The key used for dependency injection of
            the RunSessions. Defaults to "changeflow_sessions".
        enable_api: Whether to enable the REST API endpoints. Defaults to True.
        api_path_prefix: URL path prefix for all API endpoints.
            Defaults to "/changeflow".
        api_guards: List of Litestar guards to apply to all API endpoints.
        api_tags: OpenAPI tags to apply to API endpoints.
        include_api_in_schema: Whether to include API endpoints in OpenAPI schema.
            Defaults to True.
    """

    registry: ManifestRegistry | None = None
    tools: ToolInvoker | None = None
    provider: CompletionProvider | None = None
    changeflow: ChangeflowConfig = field(default_factory=ChangeflowConfig.from_env)
    auto_register_manifests: list[WorkflowManifest] = field(default_factory=list)
    include_default_manifest: bool = True
    default_manifest_id: str | None = None
    dependency_key_registry: str = "changeflow_registry"
    dependency_key_sessions: str = "changeflow_sessions"
    enable_api: bool = True
    api_path_prefix: str = "/changeflow"
    api_guards: list[Any] = field(default_factory=list)
    api_tags: list[str] = field(default_factory=lambda: ["Changeflow"])
    include_api_in_schema: bool = True


class ChangeflowPlugin(InitPluginProtocol):
    """Litestar plugin for change pipeline management.

    This plugin provides dependency injection for the ManifestRegistry and the
    RunSessions, and mounts the REST API.

    Example:
        Basic usage::

            from litestar import Litestar
            from litestar_changeflow import ChangeflowPlugin, ChangeflowPluginConfig

            app = Litestar(plugins=[ChangeflowPlugin()])

        With real tools and a configured provider::

            invoker = ToolInvoker()


            @invoker.tool("run_linter")
            async def run_linter() -> dict:
                return await lint_workspace()


            app = Litestar(
                plugins=[
                    ChangeflowPlugin(
                        config=ChangeflowPluginConfig(
                            tools=invoker,
                            changeflow=ChangeflowConfig(provider="openai", openai_api_key="sk-..."),
                        )
                    )
                ]
            )

        Using in a route handler::

            from litestar import get


            @get("/pipelines")
            async def list_pipelines(changeflow_registry: ManifestRegistry) -> list[str]:
                return [m.id for m in changeflow_registry.list_manifests()]
    """

    __slots__ = ("_config", "_registry", "_sessions")

    def __init__(self, config: ChangeflowPluginConfig | None = None) -> None:
        """Initialize the plugin.

        Args:
            config: Optional configuration for the plugin.
        """
        self._config = config or ChangeflowPluginConfig()
        self._registry: ManifestRegistry | None = None
        self._sessions: RunSessions | None = None

    @property
    def registry(self) -> ManifestRegistry:
        """Get the manifest registry.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._registry is None:
            msg = "ChangeflowPlugin has not been initialized. Access registry after app startup."
            raise RuntimeError(msg)
        return self._registry

    @property
    def sessions(self) -> RunSessions:
        """Get the run sessions.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._sessions is None:
            msg = "ChangeflowPlugin has not been initialized. Access sessions after app startup."
            raise RuntimeError(msg)
        return self._sessions

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Initialize the plugin when the Litestar app starts.

        This method:
        1. Builds the tool invoker and completion provider
        2. Creates or uses the provided ManifestRegistry
        3. Registers the default and auto-registered manifests
        4. Adds dependency providers to the app config
        5. Optionally registers REST API controllers if enable_api=True

        Args:
            app_config: The Litestar application configuration.

        Returns:
            The modified application configuration.

        Raises:
            ManifestValidationError: If a manifest to register is invalid for the tool set.
        """
        config = self._config
        tools = config.tools
        if tools is None:
            logger.warning("No tools configured, runs will use the simulated tool set")
            tools = SimulatedTools().as_invoker()
        provider = config.provider
        if provider is None:
            owned_provider = get_provider(config.changeflow)
            app_config.on_shutdown.append(owned_provider.aclose)
            provider = owned_provider

        self._registry = config.registry or ManifestRegistry()
        manifests = list(config.auto_register_manifests)
        if config.include_default_manifest:
            manifests.insert(0, default_manifest())
        for manifest in manifests:
            self._registry.register(manifest, tools=tools.names())

        self._sessions = RunSessions(
            tools,
            provider,
            config.changeflow,
            default_manifest_id=config.default_manifest_id,
        )

        def provide_registry() -> ManifestRegistry:
            return self._registry  # type: ignore[return-value]

        def provide_sessions() -> RunSessions:
            return self._sessions  # type: ignore[return-value]

        app_config.dependencies[config.dependency_key_registry] = Provide(
            provide_registry,
            sync_to_thread=False,
        )
        app_config.dependencies[config.dependency_key_sessions] = Provide(
            provide_sessions,
            sync_to_thread=False,
        )

        if config.enable_api:
            from litestar import Router

            from litestar_changeflow.exceptions import ChangeflowError
            from litestar_changeflow.web.controllers import (
                ApprovalController,
                ManifestController,
                RunInstanceController,
            )
            from litestar_changeflow.web.exceptions import changeflow_error_handler

            changeflow_router = Router(
                path=config.api_path_prefix,
                route_handlers=[ManifestController, RunInstanceController, ApprovalController],
                guards=config.api_guards,
                tags=config.api_tags,
                include_in_schema=config.include_api_in_schema,
            )
            app_config.route_handlers.append(changeflow_router)
            app_config.exception_handlers[ChangeflowError] = changeflow_error_handler  # type: ignore[assignment]

        return app_config
