"""Exception hierarchy for portal-workflows."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

__all__ = (
    "ConcurrencyConflictError",
    "DelegationNotSupportedError",
    "RelatedEntityNotFoundError",
    "ScheduledReportNotFoundError",
    "TemplateInUseError",
    "TemplateInactiveError",
    "UnauthorizedActionError",
    "WorkflowInstanceNotFoundError",
    "WorkflowNotActiveError",
    "WorkflowNotFoundError",
    "WorkflowValidationError",
    "WorkflowsError",
)


class WorkflowsError(Exception):
    """Base exception for all portal-workflows errors.

    All exceptions raised by portal-workflows should inherit from this class.
    This allows callers to catch all workflow-related errors with a single except clause.
    """


class WorkflowNotFoundError(WorkflowsError):
    """Raised when a workflow template is not found.

    Attributes:
        template_id: The ID of the template that was not found.
    """

    def __init__(self, template_id: str | UUID) -> None:
        """Initialize the exception with template details.

        Args:
            template_id: The ID of the template that was not found.
        """
        self.template_id = template_id
        super().__init__(f"Workflow template '{template_id}' not found")


class WorkflowInstanceNotFoundError(WorkflowsError):
    """Raised when a workflow instance is not found.

    Attributes:
        instance_id: The ID of the workflow instance that was not found.
    """

    def __init__(self, instance_id: str | UUID) -> None:
        """Initialize the exception with instance details.

        Args:
            instance_id: The ID of the workflow instance that was not found.
        """
        self.instance_id = instance_id
        super().__init__(f"Workflow instance '{instance_id}' not found")


class RelatedEntityNotFoundError(WorkflowsError):
    """Raised when the task, document or user a workflow refers to does not exist.

    Attributes:
        entity_type: The kind of entity that was looked up.
        entity_id: The ID that was looked up.
    """

    def __init__(self, entity_type: str, entity_id: str) -> None:
        """Initialize the exception with entity details.

        Args:
            entity_type: The kind of entity that was looked up.
            entity_id: The ID that was looked up.
        """
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"Related {entity_type} '{entity_id}' not found")


class ScheduledReportNotFoundError(WorkflowsError):
    """Raised when a scheduled report is not found.

    Attributes:
        report_id: The ID of the report that was not found.
    """

    def __init__(self, report_id: str | UUID) -> None:
        self.report_id = report_id
        super().__init__(f"Scheduled report '{report_id}' not found")


class WorkflowValidationError(WorkflowsError):
    """Raised when input to a workflow operation is invalid.

    This covers malformed template definitions (missing names, empty step
    lists) as well as missing comments on actions that require one.

    Attributes:
        errors: List of validation error messages.
    """

    def __init__(self, errors: list[str]) -> None:
        """Initialize the exception with validation errors.

        Args:
            errors: List of validation error messages.
        """
        self.errors = errors
        super().__init__(f"Workflow validation failed: {'; '.join(errors)}")


class UnauthorizedActionError(WorkflowsError):
    """Raised when an actor is not allowed to perform an action.

    Attributes:
        actor_id: The ID of the actor attempting the action.
        action: The action that was attempted.
    """

    def __init__(self, actor_id: str, action: str) -> None:
        """Initialize the exception with authorization details.

        Args:
            actor_id: The ID of the actor attempting the action.
            action: The action that was attempted.
        """
        self.actor_id = actor_id
        self.action = action
        super().__init__(f"User '{actor_id}' is not authorized to {action}")


class WorkflowNotActiveError(WorkflowsError):
    """Raised when trying to process a workflow that is no longer active.

    This prevents operations on workflow instances that have reached a
    terminal state (completed, cancelled or rejected).

    Attributes:
        instance_id: The ID of the workflow instance.
        status: The current terminal status of the workflow.
    """

    def __init__(self, instance_id: str | UUID, status: str) -> None:
        """Initialize the exception with workflow state details.

        Args:
            instance_id: The ID of the workflow instance.
            status: The current status of the workflow.
        """
        self.instance_id = instance_id
        self.status = status
        super().__init__(f"Cannot process workflow '{instance_id}': workflow is {status}")


class TemplateInactiveError(WorkflowsError):
    """Raised when instantiating a template that has been deactivated."""

    def __init__(self, template_id: str | UUID) -> None:
        self.template_id = template_id
        super().__init__(f"Workflow template '{template_id}' is not active and cannot be used")


class TemplateInUseError(WorkflowsError):
    """Raised when deleting a template that still has running instances.

    Attributes:
        template_id: The ID of the template.
        active_count: Number of instances still registered as running.
    """

    def __init__(self, template_id: str | UUID, active_count: int) -> None:
        self.template_id = template_id
        self.active_count = active_count
        super().__init__(
            f"Workflow template '{template_id}' is used by {active_count} active workflow(s) "
            "and cannot be deleted; deactivate it instead"
        )


class ConcurrencyConflictError(WorkflowsError):
    """Raised when a workflow instance was modified by someone else.

    The write is rejected and nothing is persisted. Re-reading the instance
    and repeating the operation is safe.

    Attributes:
        instance_id: The ID of the workflow instance.
        expected_version: The version the caller read.
        actual_version: The version currently stored, if known.
    """

    retriable = True

    def __init__(
        self,
        instance_id: str | UUID,
        expected_version: int,
        actual_version: int | None = None,
    ) -> None:
        self.instance_id = instance_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        msg = f"Workflow instance '{instance_id}' was modified concurrently (expected version {expected_version}"
        if actual_version is not None:
            msg += f", found {actual_version}"
        super().__init__(msg + ")")


class DelegationNotSupportedError(WorkflowsError):
    """Raised for the ``delegate`` action, which has no defined semantics yet."""

    def __init__(self, instance_id: str | UUID) -> None:
        self.instance_id = instance_id
        super().__init__(f"Delegating steps of workflow '{instance_id}' is not yet supported")
