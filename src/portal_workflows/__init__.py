"""Portal Workflows - approval workflows and scheduled reports for Litestar portals.

This package provides the two engine subsystems of an enterprise portal
backend: template-driven, sequential approval workflows attached to tasks,
documents or users, and a cron-driven scheduler that renders and mails
recurring analytics reports.

Key Features:
    - Reusable workflow templates with ordered, assignable steps
    - Approve, reject, request changes, comment and cancel transitions
    - Optimistic concurrency on every instance write
    - One recurring timer per active scheduled report
    - In-memory and SQLAlchemy persistence
    - Litestar plugin with dependency injection and error mapping

Example:
    >>> from portal_workflows import Actor, Role, WorkflowEngine
    >>> from portal_workflows.engine import MemoryInstanceStore, MemoryTemplateStore
    >>>
    >>> engine = WorkflowEngine(MemoryTemplateStore(), MemoryInstanceStore())
    >>> manager = Actor(id="u-1", role=Role.MANAGER, name="Dana")
    >>> template = await engine.create_template(
    ...     manager,
    ...     name="Purchase approval",
    ...     steps=[{"name": "Manager review", "assigned_user": "u-1", "duration_in_days": 2}],
    ... )
"""

from __future__ import annotations

from portal_workflows.__metadata__ import __project__, __version__
from portal_workflows.core.definition import StepTemplate, WorkflowTemplate
from portal_workflows.core.models import (
    Actor,
    Attachment,
    RelatedEntity,
    ScheduledReport,
    WorkflowInstanceData,
)
from portal_workflows.core.types import (
    EntityType,
    Priority,
    Role,
    StepAction,
    Timeframe,
    WorkflowCategory,
    WorkflowStatus,
)
from portal_workflows.engine.workflow import WorkflowEngine
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
from portal_workflows.plugin import WorkflowPlugin, WorkflowPluginConfig
from portal_workflows.scheduler.reports import ScheduledReportManager
from portal_workflows.scheduler.service import ReportScheduler

__all__ = (
    "Actor",
    "Attachment",
    "ConcurrencyConflictError",
    "DelegationNotSupportedError",
    "EntityType",
    "Priority",
    "RelatedEntity",
    "RelatedEntityNotFoundError",
    "ReportScheduler",
    "Role",
    "ScheduledReport",
    "ScheduledReportManager",
    "ScheduledReportNotFoundError",
    "StepAction",
    "StepTemplate",
    "TemplateInUseError",
    "TemplateInactiveError",
    "Timeframe",
    "UnauthorizedActionError",
    "WorkflowCategory",
    "WorkflowEngine",
    "WorkflowInstanceData",
    "WorkflowInstanceNotFoundError",
    "WorkflowNotActiveError",
    "WorkflowNotFoundError",
    "WorkflowPlugin",
    "WorkflowPluginConfig",
    "WorkflowStatus",
    "WorkflowTemplate",
    "WorkflowValidationError",
    "WorkflowsError",
    "__project__",
    "__version__",
)
