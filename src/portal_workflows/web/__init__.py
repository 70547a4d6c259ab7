"""Web integration helpers for portal-workflows."""

from __future__ import annotations

from portal_workflows.web.exceptions import (
    EXCEPTION_STATUS_CODES,
    exception_handlers,
    status_code_for,
    workflow_error_handler,
)

__all__ = ["EXCEPTION_STATUS_CODES", "exception_handlers", "status_code_for", "workflow_error_handler"]
