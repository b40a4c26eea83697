"""In-process run sessions for the HTTP surface.

A :class:`RunSessions` instance belongs to one plugin instance and maps run ids
to their :class:`~litestar_changeflow.engine.controller.RunController` and
message log. Nothing here is module-level state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from litestar_changeflow.engine.controller import RunController
from litestar_changeflow.exceptions import RunNotFoundError

if TYPE_CHECKING:
    from uuid import UUID

    from litestar_changeflow.config import ChangeflowConfig
    from litestar_changeflow.core.definition import WorkflowManifest
    from litestar_changeflow.core.events import Message, RunSnapshot
    from litestar_changeflow.core.protocols import CompletionProvider
    from litestar_changeflow.tools.invoker import ToolInvoker

__all__ = ["MessageLog", "RunSession", "RunSessions"]

logger = logging.getLogger(__name__)


@dataclass
class MessageLog:
    """Observer keeping every message and the latest snapshot of one run."""

    messages: list[Message] = field(default_factory=list)
    latest: RunSnapshot | None = None

    def on_state_change(self, snapshot: RunSnapshot) -> None:
        self.latest = snapshot

    def on_message(self, message: Message) -> None:
        self.messages.append(message)


@dataclass
class RunSession:
    """A run controller together with its message log."""

    controller: RunController
    log: MessageLog

    @property
    def run_id(self) -> UUID:
        return self.controller.state.id


class RunSessions:
    """Holds the runs started through the HTTP surface.

    Runs stay in memory until they are discarded.

    Attributes:
        tools: Tool invoker shared by every run.
        provider: Completion provider shared by every run.
        config: Engine configuration.
        default_manifest_id: Manifest started when a request names none.
    """

    def __init__(
        self,
        tools: ToolInvoker,
        provider: CompletionProvider,
        config: ChangeflowConfig,
        default_manifest_id: str | None = None,
    ) -> None:
        self.tools = tools
        self.provider = provider
        self.config = config
        self.default_manifest_id = default_manifest_id
        self._sessions: dict[UUID, RunSession] = {}

    def create(self, manifest: WorkflowManifest) -> RunSession:
        """Create and store a run session for ``manifest`` without starting it."""
        log = MessageLog()
        controller = RunController(manifest, self.tools, self.provider, observers=[log], config=self.config)
        session = RunSession(controller=controller, log=log)
        self._sessions[session.run_id] = session
        logger.debug("Created run %s for manifest %s", session.run_id, manifest.id)
        return session

    def get(self, run_id: UUID) -> RunSession:
        """Look up a session.

        Raises:
            RunNotFoundError: If the run id is unknown.
        """
        try:
            return self._sessions[run_id]
        except KeyError:
            raise RunNotFoundError(run_id) from None

    def list(self) -> list[RunSession]:
        return list(self._sessions.values())

    def discard(self, run_id: UUID) -> None:
        """Forget a run.

        Raises:
            RunNotFoundError: If the run id is unknown.
        """
        if self._sessions.pop(run_id, None) is None:
            raise RunNotFoundError(run_id)
        logger.debug("Discarded run %s", run_id)

    def __len__(self) -> int:
        return len(self._sessions)
