"""Exception hierarchy for litestar-changeflow."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

__all__ = (
    "ApprovalAlreadyResolvedError",
    "ChangeflowError",
    "InvalidRunStateError",
    "ManifestNotFoundError",
    "ManifestValidationError",
    "ProviderError",
    "RunNotFoundError",
    "StepExecutionError",
    "StepNotFoundError",
    "ToolExecutionError",
    "UnknownToolError",
)


class ChangeflowError(Exception):
    """Base exception for all litestar-changeflow errors.

    All exceptions raised by litestar-changeflow inherit from this class so
    callers can catch every engine failure with a single except clause.
    """


class ManifestValidationError(ChangeflowError):
    """Raised when a workflow manifest fails structural validation.

    Manifests are validated when they are loaded or registered, never halfway
    through a run.

    Attributes:
        errors: List of validation error messages.
    """

    def __init__(self, errors: list[str]) -> None:
        """Initialize the exception with validation errors.

        Args:
            errors: List of validation error messages.
        """
        self.errors = errors
        super().__init__(f"Manifest validation failed: {'; '.join(errors)}")


class ManifestNotFoundError(ChangeflowError):
    """Raised when a manifest is not registered.

    Attributes:
        manifest_id: The id of the manifest that was not found.
        version: The specific version requested, if any.
    """

    def __init__(self, manifest_id: str, version: str | None = None) -> None:
        """Initialize the exception with manifest details.

        Args:
            manifest_id: The id of the manifest that was not found.
            version: The specific version requested, if any.
        """
        self.manifest_id = manifest_id
        self.version = version
        msg = f"Manifest '{manifest_id}'"
        if version:
            msg += f" version '{version}'"
        msg += " not found"
        super().__init__(msg)


class StepNotFoundError(ChangeflowError):
    """Raised when a step id does not exist in the manifest.

    Attributes:
        step_id: The missing step id.
    """

    def __init__(self, step_id: str) -> None:
        self.step_id = step_id
        super().__init__(f"Step '{step_id}' not found in manifest")


class UnknownToolError(ChangeflowError):
    """Raised when a tool name is not registered with the tool invoker.

    Attributes:
        tool: The unknown tool name.
    """

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"Unknown tool: {tool}")


class StepExecutionError(ChangeflowError):
    """Raised when a step fails to execute.

    This wraps the underlying exception that caused the step to fail,
    providing context about which step failed.

    Attributes:
        step_id: The id of the step that failed.
        cause: The underlying exception that caused the failure, if any.
    """

    def __init__(self, step_id: str, cause: Exception | None = None) -> None:
        """Initialize the exception with step execution details.

        Args:
            step_id: The id of the step that failed.
            cause: The underlying exception that caused the failure, if any.
        """
        self.step_id = step_id
        self.cause = cause
        msg = f"Step '{step_id}' failed"
        if cause:
            msg += f": {cause}"
        super().__init__(msg)


class ToolExecutionError(ChangeflowError):
    """Raised by a tool step whose tool call did not succeed.

    Attributes:
        tool: Name of the failing tool.
        error: Error text recorded on the tool call.
    """

    def __init__(self, tool: str, error: str | None = None) -> None:
        self.tool = tool
        self.error = error
        super().__init__(f"Tool {tool} failed: {error or 'unknown error'}")


class ProviderError(ChangeflowError):
    """Raised when a completion provider call fails.

    Covers transport errors, non-success HTTP responses and responses that
    cannot be mapped onto the common completion shape.

    Attributes:
        provider: Name of the provider adapter.
        detail: Human readable failure description.
        status_code: HTTP status code, when the backend answered.
    """

    def __init__(self, provider: str, detail: str, status_code: int | None = None) -> None:
        self.provider = provider
        self.detail = detail
        self.status_code = status_code
        msg = f"{provider} provider error"
        if status_code is not None:
            msg += f" ({status_code})"
        super().__init__(f"{msg}: {detail}")


class ApprovalAlreadyResolvedError(ChangeflowError):
    """Raised when an approval request is resolved a second time.

    Attributes:
        approval_id: The id of the approval request.
        status: Its current, already final, status.
    """

    def __init__(self, approval_id: str, status: str) -> None:
        self.approval_id = approval_id
        self.status = status
        super().__init__(f"Approval request '{approval_id}' is already {status}")


class InvalidRunStateError(ChangeflowError):
    """Raised when an operation is not valid for the run's current status.

    Attributes:
        run_id: The run identifier.
        status: The run status at the time of the call.
    """

    def __init__(self, run_id: str | UUID, status: str, reason: str | None = None) -> None:
        self.run_id = run_id
        self.status = status
        msg = f"Run '{run_id}' is {status}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class RunNotFoundError(ChangeflowError):
    """Raised when a run id is not known to the session store.

    Attributes:
        run_id: The id of the run that was not found.
    """

    def __init__(self, run_id: str | UUID) -> None:
        self.run_id = run_id
        super().__init__(f"Run '{run_id}' not found")
