"""Core domain module for portal-workflows.

This module exports the fundamental building blocks: types, template
definitions, runtime models and collaborator protocols.
"""

from __future__ import annotations

from portal_workflows.core.definition import StepTemplate, WorkflowTemplate, number_steps
from portal_workflows.core.models import (
    Actor,
    Attachment,
    HistoryEntry,
    MailAttachment,
    Notification,
    Recipient,
    RelatedEntity,
    ReportContent,
    ScheduledReport,
    StepActionRecord,
    StepRuntime,
    WorkflowComment,
    WorkflowInstanceData,
)
from portal_workflows.core.protocols import (
    DeliveryTransport,
    InstanceStore,
    Notifier,
    RelatedEntityBridge,
    ReportRenderer,
    ReportStore,
    TemplateStore,
)
from portal_workflows.core.types import (
    ApprovalStatus,
    EntityType,
    FormData,
    FormValue,
    HistoryAction,
    Priority,
    Role,
    StepAction,
    StepStatus,
    Timeframe,
    WorkflowCategory,
    WorkflowStatus,
)

__all__ = [
    "Actor",
    "ApprovalStatus",
    "Attachment",
    "DeliveryTransport",
    "EntityType",
    "FormData",
    "FormValue",
    "HistoryAction",
    "HistoryEntry",
    "InstanceStore",
    "MailAttachment",
    "Notification",
    "Notifier",
    "Priority",
    "Recipient",
    "RelatedEntity",
    "RelatedEntityBridge",
    "ReportContent",
    "ReportRenderer",
    "ReportStore",
    "Role",
    "ScheduledReport",
    "StepAction",
    "StepActionRecord",
    "StepRuntime",
    "StepStatus",
    "StepTemplate",
    "TemplateStore",
    "Timeframe",
    "WorkflowCategory",
    "WorkflowComment",
    "WorkflowInstanceData",
    "WorkflowStatus",
    "WorkflowTemplate",
    "number_steps",
]
