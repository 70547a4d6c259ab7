"""Step processing for workflow instances.

This module holds the pure state machine of a workflow instance: it creates
instances from templates and applies actor actions to the current step. It
never touches storage or external collaborators; :class:`WorkflowEngine`
persists the results and runs the side effects.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from portal_workflows.core.models import (
    HistoryEntry,
    RelatedEntity,
    StepActionRecord,
    StepRuntime,
    WorkflowComment,
    WorkflowInstanceData,
)
from portal_workflows.core.types import (
    HistoryAction,
    StepAction,
    StepStatus,
    WorkflowStatus,
)
from portal_workflows.exceptions import (
    DelegationNotSupportedError,
    UnauthorizedActionError,
    WorkflowNotActiveError,
    WorkflowValidationError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from portal_workflows.core.definition import WorkflowTemplate
    from portal_workflows.core.models import Actor, Attachment
    from portal_workflows.core.types import FormData, Priority

__all__ = ["StepProcessor", "utcnow", "validate_form_data"]

_FORM_VALUE_TYPES = (str, int, float, bool, datetime)


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def validate_form_data(form_data: Mapping[str, object]) -> list[str]:
    """Check that every submitted form value has a supported type.

    Args:
        form_data: Submitted form values.

    Returns:
        List of validation error messages. Empty list if valid.
    """
    errors = []
    for key, value in form_data.items():
        if not isinstance(key, str):
            errors.append(f"Form field name {key!r} must be a string")
        elif not isinstance(value, _FORM_VALUE_TYPES):
            errors.append(f"Form field '{key}' has unsupported type {type(value).__name__}")
    return errors


def _require_comment(comment: str | None, action: StepAction) -> str:
    if comment is None or not comment.strip():
        readable = str(action).replace("_", " ")
        raise WorkflowValidationError([f"A comment is required to {readable}"])
    return comment


class StepProcessor:
    """Applies actor actions to workflow instances.

    Every method mutates the instance it is given in place and raises before
    mutating anything when the action is not permitted.

    Attributes:
        clock: Callable returning the current aware datetime.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self.clock = clock or utcnow

    def instantiate(
        self,
        template: WorkflowTemplate,
        actor: Actor,
        *,
        name: str,
        related_entity: RelatedEntity | None = None,
        due_date: datetime | None = None,
        priority: Priority | None = None,
        department: str | None = None,
    ) -> WorkflowInstanceData:
        """Create a new active instance from a template.

        One runtime record is created per template step. The first step starts
        immediately; all others are pending.

        Args:
            template: The template to instantiate.
            actor: The initiating user.
            name: Display name of the instance.
            related_entity: Optional attached task, document or user.
            due_date: Optional deadline for the whole instance.
            priority: Priority override. Defaults to the template's.
            department: Department override. Defaults to the initiator's.

        Returns:
            The new, not yet persisted, instance.
        """
        now = self.clock()
        steps_data = [
            StepRuntime(
                step_number=step.step_number,
                name=step.name,
                description=step.description,
                assigned_to=step.assigned_user,
                duration_in_days=step.duration_in_days,
            )
            for step in template.steps
        ]
        self._start_step(steps_data[0], now)

        return WorkflowInstanceData(
            template_id=template.id,
            name=name,
            initiator=actor.id,
            steps_data=steps_data,
            department=department or actor.department or template.department,
            priority=priority or template.priority,
            start_date=now,
            due_date=due_date,
            related_entity=related_entity or RelatedEntity(),
            history=[
                HistoryEntry(
                    action=HistoryAction.CREATED,
                    actor=actor.id,
                    timestamp=now,
                    details=f"Workflow started by {actor.display_name}",
                )
            ],
        )

    def ensure_can_process(self, instance: WorkflowInstanceData, actor: Actor, action: StepAction) -> StepRuntime:
        """Check that the actor may act on the current step.

        Args:
            instance: The workflow instance.
            actor: The acting user.
            action: The attempted action, used in the error message.

        Returns:
            The current step.

        Raises:
            WorkflowNotActiveError: If the instance is not active.
            UnauthorizedActionError: If the actor is neither an admin nor the
                current step's assignee.
        """
        if instance.status is not WorkflowStatus.ACTIVE:
            raise WorkflowNotActiveError(instance.id, instance.status)

        step = instance.current
        if step is None:
            raise WorkflowNotActiveError(instance.id, instance.status)

        if not actor.is_admin and (step.assigned_to is None or step.assigned_to != actor.id):
            raise UnauthorizedActionError(actor.id, f"{str(action).replace('_', ' ')} step {step.step_number}")
        return step

    def approve(
        self,
        instance: WorkflowInstanceData,
        actor: Actor,
        *,
        comment: str | None = None,
        form_data: FormData | None = None,
        attachments: Sequence[Attachment] = (),
    ) -> None:
        """Approve the current step and advance the instance.

        Approving the last step completes the instance and leaves
        ``current_step`` where it is.
        """
        step = self.ensure_can_process(instance, actor, StepAction.APPROVE)
        if form_data:
            errors = validate_form_data(form_data)
            if errors:
                raise WorkflowValidationError(errors)

        now = self.clock()
        step.actions.append(
            StepActionRecord(
                action=StepAction.APPROVE,
                actor=actor.id,
                timestamp=now,
                comment=comment,
                attachments=list(attachments),
            )
        )
        if form_data:
            step.form_data.update(form_data)
        step.status = StepStatus.APPROVED
        step.completed_date = now
        self._record(instance, HistoryAction.STEP_COMPLETED, actor, f"Step {step.step_number} ({step.name}) completed")

        if step.step_number >= len(instance.steps_data):
            instance.status = WorkflowStatus.COMPLETED
            instance.completed_date = now
            self._record(instance, HistoryAction.COMPLETED, actor, "Workflow completed successfully")
            return

        instance.current_step += 1
        next_step = instance.steps_data[instance.current_step - 1]
        self._start_step(next_step, now)
        self._record(
            instance,
            HistoryAction.UPDATED,
            actor,
            f"Moved to step {next_step.step_number} ({next_step.name})",
        )

    def reject(
        self,
        instance: WorkflowInstanceData,
        actor: Actor,
        comment: str | None,
        *,
        attachments: Sequence[Attachment] = (),
    ) -> None:
        """Reject the current step, which rejects the whole instance.

        Raises:
            WorkflowValidationError: If no comment is given.
        """
        step = self.ensure_can_process(instance, actor, StepAction.REJECT)
        reason = _require_comment(comment, StepAction.REJECT)

        now = self.clock()
        step.actions.append(
            StepActionRecord(
                action=StepAction.REJECT,
                actor=actor.id,
                timestamp=now,
                comment=reason,
                attachments=list(attachments),
            )
        )
        step.status = StepStatus.REJECTED
        step.completed_date = now
        instance.status = WorkflowStatus.REJECTED
        instance.completed_date = now
        self._record(
            instance,
            HistoryAction.STEP_REJECTED,
            actor,
            f"Step {step.step_number} ({step.name}) rejected: {reason}",
        )
        self._record(instance, HistoryAction.REJECTED, actor, f"Workflow rejected at step {step.step_number}")

    def request_changes(
        self,
        instance: WorkflowInstanceData,
        actor: Actor,
        comment: str | None,
        *,
        attachments: Sequence[Attachment] = (),
    ) -> None:
        """Ask the initiator for changes without moving the instance.

        Raises:
            WorkflowValidationError: If no comment is given.
        """
        step = self.ensure_can_process(instance, actor, StepAction.REQUEST_CHANGES)
        reason = _require_comment(comment, StepAction.REQUEST_CHANGES)

        now = self.clock()
        step.actions.append(
            StepActionRecord(
                action=StepAction.REQUEST_CHANGES,
                actor=actor.id,
                timestamp=now,
                comment=reason,
                attachments=list(attachments),
            )
        )
        self._record(
            instance,
            HistoryAction.CHANGES_REQUESTED,
            actor,
            f"Changes requested at step {step.step_number}: {reason}",
        )

    def delegate(self, instance: WorkflowInstanceData, actor: Actor) -> None:
        """Reject delegation after the usual status and authorization checks.

        Raises:
            DelegationNotSupportedError: Always, when the checks pass.
        """
        self.ensure_can_process(instance, actor, StepAction.DELEGATE)
        raise DelegationNotSupportedError(instance.id)

    def add_comment(self, instance: WorkflowInstanceData, actor: Actor, text: str | None) -> WorkflowComment:
        """Append a free-form comment to an active instance.

        Comments may be posted by an admin, the initiator or the current
        step's assignee.
        """
        if instance.status is not WorkflowStatus.ACTIVE:
            raise WorkflowNotActiveError(instance.id, instance.status)

        current = instance.current
        allowed = (
            actor.is_admin
            or actor.id == instance.initiator
            or (current is not None and current.assigned_to == actor.id)
        )
        if not allowed:
            raise UnauthorizedActionError(actor.id, "comment on this workflow")

        body = _require_comment(text, StepAction.COMMENT)
        comment = WorkflowComment(actor=actor.id, text=body, timestamp=self.clock())
        instance.comments.append(comment)
        return comment

    def cancel(self, instance: WorkflowInstanceData, actor: Actor, reason: str | None = None) -> None:
        """Cancel an active instance on behalf of its initiator or an admin."""
        if instance.status is not WorkflowStatus.ACTIVE:
            raise WorkflowNotActiveError(instance.id, instance.status)
        if not actor.is_admin and actor.id != instance.initiator:
            raise UnauthorizedActionError(actor.id, "cancel this workflow")

        instance.status = WorkflowStatus.CANCELLED
        details = f"Workflow cancelled by {actor.display_name}"
        if reason:
            details = f"{details}: {reason}"
        self._record(instance, HistoryAction.CANCELLED, actor, details, step_number=instance.current_step)

    def _start_step(self, step: StepRuntime, now: datetime) -> None:
        step.status = StepStatus.IN_PROGRESS
        step.start_date = now
        step.due_date = now + timedelta(days=step.duration_in_days) if step.duration_in_days is not None else None

    def _record(
        self,
        instance: WorkflowInstanceData,
        action: HistoryAction,
        actor: Actor,
        details: str,
        *,
        step_number: int | None = None,
    ) -> None:
        instance.history.append(
            HistoryEntry(
                action=action,
                actor=actor.id,
                timestamp=self.clock(),
                details=details,
                step_number=step_number if step_number is not None else instance.current_step,
            )
        )
