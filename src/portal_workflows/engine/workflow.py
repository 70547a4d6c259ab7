"""Workflow engine.

This module provides :class:`WorkflowEngine`, which manages workflow templates,
instantiates them, and persists the transitions computed by
:class:`~portal_workflows.engine.processor.StepProcessor`. Side effects
(related entity status pushes, notifications, the template's running-instance
list) are run after the instance has been stored.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from portal_workflows.core.definition import WorkflowTemplate, number_steps, parse_choice
from portal_workflows.core.models import Notification, RelatedEntity
from portal_workflows.core.types import (
    ApprovalStatus,
    EntityType,
    Priority,
    Role,
    StepAction,
    WorkflowCategory,
    WorkflowStatus,
)
from portal_workflows.engine.processor import StepProcessor
from portal_workflows.exceptions import (
    RelatedEntityNotFoundError,
    TemplateInactiveError,
    TemplateInUseError,
    UnauthorizedActionError,
    WorkflowInstanceNotFoundError,
    WorkflowNotFoundError,
    WorkflowValidationError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence
    from datetime import datetime
    from uuid import UUID

    from portal_workflows.core.definition import StepTemplate
    from portal_workflows.core.models import Actor, Attachment, WorkflowComment, WorkflowInstanceData
    from portal_workflows.core.protocols import InstanceStore, Notifier, RelatedEntityBridge, TemplateStore
    from portal_workflows.core.types import FormData

__all__ = ["WorkflowEngine"]

logger = logging.getLogger(__name__)

_TEMPLATE_FIELDS = frozenset(
    {"name", "description", "department", "category", "priority", "steps", "is_active", "tags"}
)
_TEMPLATE_AUTHORS = frozenset({Role.ADMIN, Role.MANAGER})
_PREVIEW_LENGTH = 100


class WorkflowEngine:
    """Template management and instance lifecycle.

    Every instance mutation reads the instance, applies the transition on the
    copy and writes it back with a compare-and-swap on its version. A stale
    write raises :class:`~portal_workflows.exceptions.ConcurrencyConflictError`
    and nothing is persisted.

    Attributes:
        templates: Template persistence.
        instances: Instance persistence.
        entities: Optional bridge to tasks, documents and users.
        notifier: Optional notification sink.
        processor: The step state machine.

    Example:
        >>> engine = WorkflowEngine(MemoryTemplateStore(), MemoryInstanceStore())
        >>> template = await engine.create_template(
        ...     manager, name="Expense approval", steps=[{"name": "Review", "assigned_user": "u-2"}]
        ... )
        >>> instance = await engine.create_instance(template.id, employee, name="Laptop")
        >>> await engine.approve(instance.id, reviewer)
    """

    def __init__(
        self,
        templates: TemplateStore,
        instances: InstanceStore,
        *,
        entities: RelatedEntityBridge | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            templates: Template store.
            instances: Instance store.
            entities: Optional related entity bridge. Without one, instances
                cannot be attached to tasks, documents or users.
            notifier: Optional notifier.
            clock: Optional callable returning the current aware datetime.
        """
        self.templates = templates
        self.instances = instances
        self.entities = entities
        self.notifier = notifier
        self.processor = StepProcessor(clock=clock)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    async def create_template(
        self,
        actor: Actor,
        *,
        name: str,
        steps: Iterable[StepTemplate | Mapping[str, Any]],
        description: str | None = None,
        department: str | None = None,
        category: WorkflowCategory = WorkflowCategory.CUSTOM,
        priority: Priority = Priority.MEDIUM,
        is_active: bool = True,
        tags: Sequence[str] = (),
    ) -> WorkflowTemplate:
        """Create a workflow template.

        Step numbers are assigned from list position.

        Raises:
            UnauthorizedActionError: If the actor is not an admin or manager.
            WorkflowValidationError: If the name or a step name is missing, or
                there are no steps, or a role, category, priority or
                duration is invalid.
        """
        if actor.role not in _TEMPLATE_AUTHORS:
            raise UnauthorizedActionError(actor.id, "create workflow templates")

        template = WorkflowTemplate(
            name=name,
            creator=actor.id,
            steps=number_steps(steps),
            description=description,
            department=department if department is not None else actor.department,
            category=parse_choice(WorkflowCategory, category, "category"),
            priority=parse_choice(Priority, priority, "priority"),
            is_active=is_active,
            tags=list(tags),
            created_at=self.processor.clock(),
        )
        errors = template.validate()
        if errors:
            raise WorkflowValidationError(errors)

        stored = await self.templates.add(template)
        logger.info("Created workflow template %s (%s) with %d steps", stored.id, stored.name, len(stored.steps))
        return stored

    async def update_template(self, template_id: UUID, actor: Actor, **changes: Any) -> WorkflowTemplate:
        """Apply a partial update to a template.

        Args:
            template_id: The template to update.
            actor: The acting user. Must be an admin or the template's creator.
            **changes: Any of ``name``, ``description``, ``department``,
                ``category``, ``priority``, ``steps``, ``is_active`` and ``tags``.

        Returns:
            The updated template.

        Raises:
            WorkflowNotFoundError: If the template does not exist.
            UnauthorizedActionError: If the actor may not edit the template.
            WorkflowValidationError: On unknown fields or an invalid result.
        """
        template = await self.get_template(template_id)
        if not actor.is_admin and actor.id != template.creator:
            raise UnauthorizedActionError(actor.id, "update this workflow template")

        unknown = sorted(set(changes) - _TEMPLATE_FIELDS)
        if unknown:
            raise WorkflowValidationError([f"Unknown template field '{key}'" for key in unknown])

        if "steps" in changes:
            changes["steps"] = number_steps(changes["steps"] or [])
        if "category" in changes:
            changes["category"] = parse_choice(WorkflowCategory, changes["category"], "category")
        if "priority" in changes:
            changes["priority"] = parse_choice(Priority, changes["priority"], "priority")
        if "tags" in changes:
            changes["tags"] = list(changes["tags"] or [])

        updated = replace(template, **changes, updated_at=self.processor.clock())
        errors = updated.validate()
        if errors:
            raise WorkflowValidationError(errors)

        return await self.templates.update(updated)

    async def delete_template(self, template_id: UUID, actor: Actor) -> None:
        """Delete a template that has no running instances.

        Raises:
            WorkflowNotFoundError: If the template does not exist.
            UnauthorizedActionError: If the actor is not an admin or the creator.
            TemplateInUseError: If instances of the template are still running.
        """
        template = await self.get_template(template_id)
        if not actor.is_admin and actor.id != template.creator:
            raise UnauthorizedActionError(actor.id, "delete this workflow template")
        if template.current_active_workflows:
            raise TemplateInUseError(template_id, len(template.current_active_workflows))

        await self.templates.delete(template_id)
        logger.info("Deleted workflow template %s", template_id)

    async def get_template(self, template_id: UUID) -> WorkflowTemplate:
        template = await self.templates.get(template_id)
        if template is None:
            raise WorkflowNotFoundError(template_id)
        return template

    async def list_templates(
        self,
        *,
        category: WorkflowCategory | None = None,
        is_active: bool | None = None,
    ) -> list[WorkflowTemplate]:
        return list(await self.templates.list(category=category, is_active=is_active))

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    async def create_instance(
        self,
        template_id: UUID,
        actor: Actor,
        *,
        name: str,
        related_entity: RelatedEntity | None = None,
        due_date: datetime | None = None,
        priority: Priority | None = None,
        department: str | None = None,
    ) -> WorkflowInstanceData:
        """Start a workflow instance from a template.

        Args:
            template_id: The template to instantiate.
            actor: The initiating user.
            name: Display name of the instance.
            related_entity: Optional task, document or user to attach. Its
                snapshot is cached on the instance and its approval status is
                set to pending.
            due_date: Optional deadline.
            priority: Priority override.
            department: Department override.

        Returns:
            The persisted instance.

        Raises:
            WorkflowValidationError: If the name is missing or the priority is invalid.
            WorkflowNotFoundError: If the template does not exist.
            TemplateInactiveError: If the template is deactivated.
            RelatedEntityNotFoundError: If the related entity does not exist.
        """
        if not name or not name.strip():
            raise WorkflowValidationError(["Workflow name is required"])

        template = await self.get_template(template_id)
        if not template.is_active:
            raise TemplateInactiveError(template_id)
        if not template.steps:
            raise WorkflowValidationError(["At least one step is required"])

        entity = related_entity or RelatedEntity()
        if entity.entity_type is not EntityType.NONE:
            entity = await self._resolve_entity(entity)

        instance = self.processor.instantiate(
            template,
            actor,
            name=name,
            related_entity=entity,
            due_date=due_date,
            priority=parse_choice(Priority, priority, "priority") if priority is not None else None,
            department=department,
        )
        stored = await self.instances.add(instance)
        await self.templates.add_active_workflow(template.id, stored.id)
        logger.info("Started workflow %s from template %s", stored.id, template.id)

        await self._push_status(stored, ApprovalStatus.PENDING)
        await self._notify_assignee(stored)
        return stored

    async def approve(
        self,
        instance_id: UUID,
        actor: Actor,
        *,
        comment: str | None = None,
        form_data: FormData | None = None,
        attachments: Sequence[Attachment] = (),
    ) -> WorkflowInstanceData:
        """Approve the current step.

        Moves to the next step, or completes the instance when the approved
        step was the last one.
        """
        instance = await self._load(instance_id)
        expected = instance.version
        self.processor.approve(instance, actor, comment=comment, form_data=form_data, attachments=attachments)
        stored = await self.instances.save(instance, expected_version=expected)

        if stored.status is WorkflowStatus.COMPLETED:
            logger.info("Workflow %s completed", stored.id)
            await self._retire(stored)
            await self._push_status(stored, ApprovalStatus.APPROVED)
            await self._notify(
                stored.initiator,
                Notification(
                    type="WORKFLOW_COMPLETED",
                    title="Workflow Completed",
                    content=f'Your workflow "{stored.name}" has been completed',
                    workflow_id=stored.id,
                    metadata={"workflowName": stored.name},
                ),
            )
        else:
            await self._notify_assignee(stored)
        return stored

    async def reject(
        self,
        instance_id: UUID,
        actor: Actor,
        comment: str | None,
        *,
        attachments: Sequence[Attachment] = (),
    ) -> WorkflowInstanceData:
        """Reject the current step, which rejects the instance.

        Raises:
            WorkflowValidationError: If no comment is given.
        """
        instance = await self._load(instance_id)
        expected = instance.version
        step_name = instance.current.name if instance.current else ""
        self.processor.reject(instance, actor, comment, attachments=attachments)
        stored = await self.instances.save(instance, expected_version=expected)
        logger.info("Workflow %s rejected at step %d", stored.id, stored.current_step)

        await self._retire(stored)
        await self._push_status(stored, ApprovalStatus.REJECTED)
        await self._notify(
            stored.initiator,
            Notification(
                type="WORKFLOW_REJECTED",
                title="Workflow Rejected",
                content=f'Your workflow "{stored.name}" was rejected at step "{step_name}": {_preview(comment)}',
                workflow_id=stored.id,
                metadata={"workflowName": stored.name, "stepName": step_name, "stepNumber": stored.current_step},
            ),
        )
        return stored

    async def request_changes(
        self,
        instance_id: UUID,
        actor: Actor,
        comment: str | None,
        *,
        attachments: Sequence[Attachment] = (),
    ) -> WorkflowInstanceData:
        """Ask the initiator for changes without moving the instance.

        Raises:
            WorkflowValidationError: If no comment is given.
        """
        instance = await self._load(instance_id)
        expected = instance.version
        self.processor.request_changes(instance, actor, comment, attachments=attachments)
        stored = await self.instances.save(instance, expected_version=expected)

        status = "in_progress" if stored.related_entity.entity_type is EntityType.TASK else None
        await self._push_status(stored, ApprovalStatus.CHANGES_REQUESTED, status=status)
        step_name = stored.current.name if stored.current else ""
        await self._notify(
            stored.initiator,
            Notification(
                type="WORKFLOW_CHANGES",
                title="Workflow Changes Requested",
                content=f'Changes requested for workflow "{stored.name}" at step "{step_name}": {_preview(comment)}',
                workflow_id=stored.id,
                metadata={"workflowName": stored.name, "stepName": step_name, "stepNumber": stored.current_step},
            ),
        )
        return stored

    async def delegate(self, instance_id: UUID, actor: Actor) -> WorkflowInstanceData:
        """Delegate the current step.

        Raises:
            DelegationNotSupportedError: Delegation has no defined semantics;
                raised after the usual status and authorization checks.
        """
        instance = await self._load(instance_id)
        self.processor.delegate(instance, actor)
        return instance

    async def comment(self, instance_id: UUID, actor: Actor, text: str | None) -> WorkflowComment:
        """Post a free-form comment on an active instance."""
        instance = await self._load(instance_id)
        expected = instance.version
        comment = self.processor.add_comment(instance, actor, text)
        await self.instances.save(instance, expected_version=expected)
        return comment

    async def cancel(self, instance_id: UUID, actor: Actor, reason: str | None = None) -> WorkflowInstanceData:
        """Cancel an active instance on behalf of its initiator or an admin."""
        instance = await self._load(instance_id)
        expected = instance.version
        self.processor.cancel(instance, actor, reason)
        stored = await self.instances.save(instance, expected_version=expected)
        logger.info("Workflow %s cancelled by %s", stored.id, actor.id)

        await self._retire(stored)
        await self._push_status(stored, ApprovalStatus.CANCELLED)
        return stored

    async def process_step(
        self,
        instance_id: UUID,
        actor: Actor,
        action: StepAction,
        *,
        comment: str | None = None,
        form_data: FormData | None = None,
        attachments: Sequence[Attachment] = (),
    ) -> WorkflowInstanceData:
        """Dispatch a step action to the matching operation.

        Args:
            instance_id: The workflow instance.
            actor: The acting user.
            action: One of the :class:`~portal_workflows.core.types.StepAction` values.
            comment: Comment or reason. Required for reject, request changes and comment.
            form_data: Form values, merged into the step on approve.
            attachments: Files attached to the action.

        Returns:
            The instance after the action.
        """
        action = StepAction(action)
        if action is StepAction.APPROVE:
            return await self.approve(
                instance_id, actor, comment=comment, form_data=form_data, attachments=attachments
            )
        if action is StepAction.REJECT:
            return await self.reject(instance_id, actor, comment, attachments=attachments)
        if action is StepAction.REQUEST_CHANGES:
            return await self.request_changes(instance_id, actor, comment, attachments=attachments)
        if action is StepAction.DELEGATE:
            return await self.delegate(instance_id, actor)
        await self.comment(instance_id, actor, comment)
        return await self._load(instance_id)

    async def get_instance(self, instance_id: UUID) -> WorkflowInstanceData:
        """Get an instance with a freshly fetched related entity snapshot.

        The refreshed snapshot is returned to the caller only; it is not
        written back.

        Raises:
            WorkflowInstanceNotFoundError: If the instance does not exist.
        """
        instance = await self._load(instance_id)
        entity = instance.related_entity
        if self.entities is not None and entity.is_set:
            snapshot = await self.entities.fetch(entity.entity_type, entity.entity_id)  # type: ignore[arg-type]
            if snapshot is not None:
                entity.data = snapshot
        return instance

    async def list_instances(
        self,
        actor: Actor,
        *,
        status: WorkflowStatus | None = None,
        priority: Priority | None = None,
        entity_type: EntityType | None = None,
    ) -> list[WorkflowInstanceData]:
        """List the instances visible to an actor.

        Admins see everything. Managers see instances they initiated, instances
        of their department and instances with a step assigned to them. Everyone
        else sees instances they initiated or have a step assigned in.
        """
        instances = await self.instances.list(status=status, priority=priority, entity_type=entity_type)
        return [instance for instance in instances if self._can_view(instance, actor)]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _can_view(instance: WorkflowInstanceData, actor: Actor) -> bool:
        if actor.is_admin:
            return True
        if instance.involves(actor.id):
            return True
        return actor.role == Role.MANAGER and actor.department is not None and instance.department == actor.department

    async def _load(self, instance_id: UUID) -> WorkflowInstanceData:
        instance = await self.instances.get(instance_id)
        if instance is None:
            raise WorkflowInstanceNotFoundError(instance_id)
        return instance

    async def _resolve_entity(self, entity: RelatedEntity) -> RelatedEntity:
        if entity.entity_id is None or self.entities is None:
            raise RelatedEntityNotFoundError(entity.entity_type, entity.entity_id or "")
        snapshot = await self.entities.fetch(entity.entity_type, entity.entity_id)
        if snapshot is None:
            raise RelatedEntityNotFoundError(entity.entity_type, entity.entity_id)
        return RelatedEntity(entity_type=entity.entity_type, entity_id=entity.entity_id, data=snapshot)

    async def _retire(self, instance: WorkflowInstanceData) -> None:
        await self.templates.remove_active_workflow(instance.template_id, instance.id)

    async def _push_status(
        self,
        instance: WorkflowInstanceData,
        approval_status: ApprovalStatus,
        *,
        status: str | None = None,
    ) -> None:
        entity = instance.related_entity
        if self.entities is None or entity.entity_type not in (EntityType.TASK, EntityType.DOCUMENT):
            return
        if entity.entity_id is None:
            return
        try:
            await self.entities.update(
                entity.entity_type,
                entity.entity_id,
                approval_status=approval_status,
                status=status,
                workflow_id=instance.id,
            )
        except Exception:
            logger.exception(
                "Failed to push %s to %s %s for workflow %s",
                approval_status,
                entity.entity_type,
                entity.entity_id,
                instance.id,
            )

    async def _notify_assignee(self, instance: WorkflowInstanceData) -> None:
        step = instance.current
        if step is None or step.assigned_to is None:
            return
        await self._notify(
            step.assigned_to,
            Notification(
                type="WORKFLOW_TASK",
                title="New Workflow Step Assigned",
                content=f'You have been assigned to step "{step.name}" in workflow "{instance.name}"',
                workflow_id=instance.id,
                metadata={"workflowName": instance.name, "stepName": step.name, "stepNumber": step.step_number},
            ),
        )

    async def _notify(self, user_id: str, notification: Notification) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.notify(user_id, notification)
        except Exception:
            logger.exception("Failed to send %s notification to %s", notification.type, user_id)


def _preview(text: str | None) -> str:
    if text is None:
        return ""
    if len(text) > _PREVIEW_LENGTH:
        return f"{text[:_PREVIEW_LENGTH]}..."
    return text
