"""Core protocols for portal-workflows.

This module defines the Protocol-based interfaces the engine and the report
scheduler depend on: persistence stores and the external collaborators
(related entity bridge, notifier, report renderer and delivery transport).
Using Protocol allows duck typing while maintaining type safety.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from uuid import UUID

    from portal_workflows.core.definition import WorkflowTemplate
    from portal_workflows.core.models import (
        MailAttachment,
        Notification,
        ReportContent,
        ScheduledReport,
        WorkflowInstanceData,
    )
    from portal_workflows.core.types import (
        ApprovalStatus,
        EntityType,
        Priority,
        WorkflowCategory,
        WorkflowStatus,
    )

__all__ = [
    "DeliveryTransport",
    "InstanceStore",
    "Notifier",
    "RelatedEntityBridge",
    "ReportRenderer",
    "ReportStore",
    "TemplateStore",
]


@runtime_checkable
class TemplateStore(Protocol):
    """Persistence for workflow templates.

    The running-instance list of a template is only changed through
    :meth:`add_active_workflow` and :meth:`remove_active_workflow`, so that
    concurrent instance transitions never overwrite each other's entries.
    """

    async def add(self, template: WorkflowTemplate) -> WorkflowTemplate: ...

    async def get(self, template_id: UUID) -> WorkflowTemplate | None: ...

    async def update(self, template: WorkflowTemplate) -> WorkflowTemplate:
        """Persist every field of the template except its running-instance list."""
        ...

    async def delete(self, template_id: UUID) -> None: ...

    async def list(
        self,
        *,
        category: WorkflowCategory | None = None,
        is_active: bool | None = None,
    ) -> Sequence[WorkflowTemplate]: ...

    async def add_active_workflow(self, template_id: UUID, instance_id: UUID) -> None: ...

    async def remove_active_workflow(self, template_id: UUID, instance_id: UUID) -> None: ...


@runtime_checkable
class InstanceStore(Protocol):
    """Persistence for workflow instances with optimistic concurrency."""

    async def add(self, instance: WorkflowInstanceData) -> WorkflowInstanceData: ...

    async def get(self, instance_id: UUID) -> WorkflowInstanceData | None:
        """Return an independent copy of the stored instance, or None."""
        ...

    async def save(self, instance: WorkflowInstanceData, *, expected_version: int) -> WorkflowInstanceData:
        """Compare-and-swap write of an instance.

        Args:
            instance: The modified instance.
            expected_version: Version the caller read before modifying it.

        Returns:
            The stored instance, with its version incremented.

        Raises:
            ConcurrencyConflictError: If the stored version differs from
                ``expected_version``. Nothing is written.
            WorkflowInstanceNotFoundError: If the instance no longer exists.
        """
        ...

    async def list(
        self,
        *,
        status: WorkflowStatus | None = None,
        priority: Priority | None = None,
        entity_type: EntityType | None = None,
    ) -> Sequence[WorkflowInstanceData]: ...


@runtime_checkable
class ReportStore(Protocol):
    """Persistence for scheduled reports."""

    async def add(self, report: ScheduledReport) -> ScheduledReport: ...

    async def get(self, report_id: UUID) -> ScheduledReport | None: ...

    async def update(self, report: ScheduledReport) -> ScheduledReport: ...

    async def delete(self, report_id: UUID) -> None: ...

    async def list(
        self,
        *,
        department: str | None = None,
        is_active: bool | None = None,
    ) -> Sequence[ScheduledReport]: ...

    async def record_run(
        self,
        report_id: UUID,
        *,
        next_run: datetime | None,
        last_run: datetime | None = None,
    ) -> None:
        """Persist run bookkeeping without touching the report configuration.

        ``last_run`` is left unchanged when None.
        """
        ...


@runtime_checkable
class RelatedEntityBridge(Protocol):
    """Access to the portal records (tasks, documents, users) workflows attach to."""

    async def fetch(self, entity_type: EntityType, entity_id: str) -> dict[str, Any] | None:
        """Return a snapshot of the record, or None when it does not exist."""
        ...

    async def update(
        self,
        entity_type: EntityType,
        entity_id: str,
        *,
        approval_status: ApprovalStatus,
        status: str | None = None,
        workflow_id: UUID | None = None,
    ) -> None:
        """Push the workflow outcome to the record."""
        ...


@runtime_checkable
class Notifier(Protocol):
    """Fire-and-forget in-app notifications."""

    async def notify(self, user_id: str, notification: Notification) -> None: ...


@runtime_checkable
class ReportRenderer(Protocol):
    """Produces report content for a metric over a timeframe."""

    async def render(self, metric_type: str, timeframe: str, department_id: str | None) -> ReportContent: ...


@runtime_checkable
class DeliveryTransport(Protocol):
    """Sends rendered reports to their recipients."""

    async def deliver(
        self,
        recipients: Sequence[str],
        subject: str,
        html: str,
        attachments: Sequence[MailAttachment],
    ) -> bool:
        """Send one message to every recipient.

        Returns:
            True if the message was accepted for delivery.
        """
        ...
