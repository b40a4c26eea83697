"""Exception handling for changeflow web endpoints.

Maps the engine's exception hierarchy onto HTTP responses.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from litestar import Response
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from litestar_changeflow.exceptions import (
    ApprovalAlreadyResolvedError,
    ChangeflowError,
    InvalidRunStateError,
    ManifestNotFoundError,
    ManifestValidationError,
    RunNotFoundError,
    StepNotFoundError,
)

if TYPE_CHECKING:  # pragma: no cover
    from litestar import Request

__all__ = ["changeflow_error_handler", "status_code_for"]

_STATUS_CODES: tuple[tuple[type[ChangeflowError], int], ...] = (
    (RunNotFoundError, HTTP_404_NOT_FOUND),
    (ManifestNotFoundError, HTTP_404_NOT_FOUND),
    (StepNotFoundError, HTTP_404_NOT_FOUND),
    (ManifestValidationError, HTTP_400_BAD_REQUEST),
    (InvalidRunStateError, HTTP_409_CONFLICT),
    (ApprovalAlreadyResolvedError, HTTP_409_CONFLICT),
)


def status_code_for(exc: ChangeflowError) -> int:
    """Return the HTTP status code for an engine exception."""
    for exc_type, status_code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return HTTP_500_INTERNAL_SERVER_ERROR


def changeflow_error_handler(_request: Request, exc: ChangeflowError) -> Response:
    """Exception handler for :class:`ChangeflowError`.

    Args:
        _request: The Litestar request object.
        exc: The raised exception.

    Returns:
        JSON response with the error type and message.
    """
    status_code = status_code_for(exc)
    content: dict[str, object] = {"error": type(exc).__name__, "detail": str(exc), "status_code": status_code}
    if isinstance(exc, ManifestValidationError):
        content["errors"] = exc.errors
    return Response(content=content, status_code=status_code, media_type="application/json")
