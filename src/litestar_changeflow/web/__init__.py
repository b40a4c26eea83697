"""Web layer for litestar-changeflow.

This module provides REST API controllers for inspecting manifests, starting
runs, reading their messages and deciding their approval requests. The API is
enabled automatically when using ChangeflowPlugin with ``enable_api=True`` (the
default).

Example:
    Basic usage with ChangeflowPlugin::

        from litestar import Litestar
        from litestar_changeflow import ChangeflowPlugin, ChangeflowPluginConfig

        app = Litestar(
            plugins=[
                ChangeflowPlugin(
                    config=ChangeflowPluginConfig(api_path_prefix="/changeflow"),
                ),
            ],
        )

    With authentication guards::

        config = ChangeflowPluginConfig(
            api_path_prefix="/api/v1/changeflow",
            api_guards=[require_auth_guard],
        )
"""

from __future__ import annotations

from litestar_changeflow.web.controllers import (
    ApprovalController,
    ManifestController,
    RunInstanceController,
)
from litestar_changeflow.web.dto import (
    ApproveRunDTO,
    GraphDTO,
    ManifestDTO,
    MessageDTO,
    RejectRunDTO,
    RunDTO,
    StartRunDTO,
)
from litestar_changeflow.web.exceptions import changeflow_error_handler, status_code_for
from litestar_changeflow.web.sessions import MessageLog, RunSession, RunSessions

__all__ = [
    "ApprovalController",
    "ApproveRunDTO",
    "GraphDTO",
    "ManifestController",
    "ManifestDTO",
    "MessageDTO",
    "MessageLog",
    "RejectRunDTO",
    "RunDTO",
    "RunInstanceController",
    "RunSession",
    "RunSessions",
    "StartRunDTO",
    "changeflow_error_handler",
    "status_code_for",
]
