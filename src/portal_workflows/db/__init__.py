"""Database persistence layer for portal-workflows.

This module provides SQLAlchemy models, repositories and store adapters for
persisting workflow templates, instances and scheduled reports.
"""

from __future__ import annotations

from portal_workflows.db.models import (
    ScheduledReportModel,
    TemplateActiveInstanceModel,
    WorkflowInstanceModel,
    WorkflowTemplateModel,
)
from portal_workflows.db.repositories import (
    ScheduledReportRepository,
    WorkflowInstanceRepository,
    WorkflowTemplateRepository,
)
from portal_workflows.db.stores import SQLAlchemyInstanceStore, SQLAlchemyReportStore, SQLAlchemyTemplateStore

__all__ = [
    "SQLAlchemyInstanceStore",
    "SQLAlchemyReportStore",
    "SQLAlchemyTemplateStore",
    "ScheduledReportModel",
    "ScheduledReportRepository",
    "TemplateActiveInstanceModel",
    "WorkflowInstanceModel",
    "WorkflowInstanceRepository",
    "WorkflowTemplateModel",
    "WorkflowTemplateRepository",
]
