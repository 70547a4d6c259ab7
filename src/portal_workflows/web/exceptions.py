"""Exception handling for host Litestar applications.

This module maps the portal-workflows exception hierarchy to HTTP responses
so route handlers can let workflow errors propagate.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from litestar import Response
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_501_NOT_IMPLEMENTED,
)

from portal_workflows.exceptions import (
    ConcurrencyConflictError,
    DelegationNotSupportedError,
    RelatedEntityNotFoundError,
    ScheduledReportNotFoundError,
    TemplateInactiveError,
    TemplateInUseError,
    UnauthorizedActionError,
    WorkflowInstanceNotFoundError,
    WorkflowNotActiveError,
    WorkflowNotFoundError,
    WorkflowsError,
    WorkflowValidationError,
)

if TYPE_CHECKING:  # pragma: no cover
    from litestar import Request

__all__ = ["EXCEPTION_STATUS_CODES", "exception_handlers", "status_code_for", "workflow_error_handler"]

EXCEPTION_STATUS_CODES: dict[type[WorkflowsError], tuple[int, str]] = {
    WorkflowValidationError: (HTTP_400_BAD_REQUEST, "validation_error"),
    WorkflowNotActiveError: (HTTP_400_BAD_REQUEST, "workflow_not_active"),
    TemplateInactiveError: (HTTP_400_BAD_REQUEST, "template_inactive"),
    TemplateInUseError: (HTTP_400_BAD_REQUEST, "template_in_use"),
    UnauthorizedActionError: (HTTP_403_FORBIDDEN, "forbidden"),
    WorkflowNotFoundError: (HTTP_404_NOT_FOUND, "template_not_found"),
    WorkflowInstanceNotFoundError: (HTTP_404_NOT_FOUND, "workflow_not_found"),
    RelatedEntityNotFoundError: (HTTP_404_NOT_FOUND, "related_entity_not_found"),
    ScheduledReportNotFoundError: (HTTP_404_NOT_FOUND, "report_not_found"),
    ConcurrencyConflictError: (HTTP_409_CONFLICT, "concurrent_modification"),
    DelegationNotSupportedError: (HTTP_501_NOT_IMPLEMENTED, "not_implemented"),
}
"""Status code and error key per exception type."""


def status_code_for(exc: WorkflowsError) -> tuple[int, str]:
    """Resolve the status code and error key of an exception.

    The most specific registered class in the exception's MRO wins; anything
    else maps to 400.
    """
    for cls in type(exc).__mro__:
        if cls in EXCEPTION_STATUS_CODES:
            return EXCEPTION_STATUS_CODES[cls]
    return HTTP_400_BAD_REQUEST, "workflow_error"


def workflow_error_handler(_request: Request, exc: WorkflowsError) -> Response:
    """Exception handler for every :class:`~portal_workflows.exceptions.WorkflowsError`.

    Args:
        _request: The Litestar request object.
        exc: The raised exception.

    Returns:
        JSON response with the error key and message. Validation errors also
        list their individual messages; concurrency conflicts flag the request
        as retriable.
    """
    status_code, error = status_code_for(exc)
    content: dict[str, Any] = {"error": error, "message": str(exc)}
    if isinstance(exc, WorkflowValidationError):
        content["errors"] = exc.errors
    if isinstance(exc, ConcurrencyConflictError):
        content["retriable"] = exc.retriable
    return Response(content=content, status_code=status_code, media_type="application/json")


def exception_handlers() -> dict[type[Exception], Any]:
    """Handlers to merge into a Litestar app's ``exception_handlers``."""
    return {WorkflowsError: workflow_error_handler}
