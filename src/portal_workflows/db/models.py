"""SQLAlchemy models for workflow and report persistence.

This module defines the database models:
- WorkflowTemplateModel: Stores workflow templates and their ordered steps
- TemplateActiveInstanceModel: Links a template to its running instances
- WorkflowInstanceModel: Stores workflow instances with their step records and history
- ScheduledReportModel: Stores scheduled report configuration and run bookkeeping
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from advanced_alchemy.base import UUIDAuditBase, UUIDBase
from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import JSON, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal_workflows.core.types import EntityType, Priority, WorkflowCategory, WorkflowStatus

__all__ = [
    "ScheduledReportModel",
    "TemplateActiveInstanceModel",
    "WorkflowInstanceModel",
    "WorkflowTemplateModel",
]


# Cross-database JSON type: uses JSONB for PostgreSQL, JSON for others (SQLite, MySQL, etc.)
JSONType = JSON().with_variant(JSONB, "postgresql")


class WorkflowTemplateModel(UUIDAuditBase):
    """Persisted workflow template.

    Attributes:
        name: Display name of the template.
        description: Human-readable description.
        creator: ID of the user who created the template.
        department: Department owning the template.
        category: Kind of process.
        priority: Default priority of instances.
        is_active: Whether new instances may be started.
        is_template: Always True.
        tags: Free-form labels.
        steps: Serialized step templates, in order.
        active_links: Running instances of this template.
    """

    __tablename__ = "workflow_templates"
    __table_args__ = (
        Index("ix_workflow_templates_category", "category"),
        Index("ix_workflow_templates_is_active", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    creator: Mapped[str] = mapped_column(String(255))
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[WorkflowCategory] = mapped_column(
        Enum(WorkflowCategory, native_enum=False, length=50),
        default=WorkflowCategory.CUSTOM,
    )
    priority: Mapped[Priority] = mapped_column(
        Enum(Priority, native_enum=False, length=50),
        default=Priority.MEDIUM,
    )
    is_active: Mapped[bool] = mapped_column(default=True)
    is_template: Mapped[bool] = mapped_column(default=True)
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list)
    steps: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)

    # Relationships
    active_links: Mapped[list[TemplateActiveInstanceModel]] = relationship(
        back_populates="template",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="TemplateActiveInstanceModel.created_at",
    )


class TemplateActiveInstanceModel(UUIDAuditBase):
    """Membership of a running instance in its template's active list.

    Rows are inserted and deleted individually, so concurrent transitions of
    different instances never overwrite each other.
    """

    __tablename__ = "workflow_template_active_instances"
    __table_args__ = (
        Index("ix_template_active_instances_pair", "template_id", "instance_id", unique=True),
    )

    template_id: Mapped[UUID] = mapped_column(
        ForeignKey("workflow_templates.id", ondelete="CASCADE"),
    )
    instance_id: Mapped[UUID] = mapped_column()

    # Relationships
    template: Mapped[WorkflowTemplateModel] = relationship(back_populates="active_links")


class WorkflowInstanceModel(UUIDBase):
    """Persisted workflow instance.

    Step records, history and comments are stored as JSON documents and
    always written together with the instance row.

    Attributes:
        template_id: Template the instance was created from.
        name: Display name.
        initiator: ID of the user who started the instance.
        department: Department the instance belongs to.
        priority: Instance priority.
        status: Overall status.
        current_step: 1-based pointer into ``steps_data``.
        start_date: When the instance was started.
        due_date: Optional deadline.
        completed_date: When the instance completed or was rejected.
        entity_type: Kind of the related record.
        entity_id: ID of the related record.
        entity_data: Cached snapshot of the related record.
        steps_data: Serialized step runtime records.
        history: Serialized history entries.
        comments: Serialized comments.
        version: Optimistic concurrency counter.
    """

    __tablename__ = "workflow_instances"
    __table_args__ = (
        Index("ix_workflow_instances_status", "status"),
        Index("ix_workflow_instances_template_id", "template_id"),
        Index("ix_workflow_instances_initiator", "initiator"),
        Index("ix_workflow_instances_entity", "entity_type", "entity_id"),
    )

    template_id: Mapped[UUID] = mapped_column()
    name: Mapped[str] = mapped_column(String(255))
    initiator: Mapped[str] = mapped_column(String(255))
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)
    priority: Mapped[Priority] = mapped_column(
        Enum(Priority, native_enum=False, length=50),
        default=Priority.MEDIUM,
    )
    status: Mapped[WorkflowStatus] = mapped_column(
        Enum(WorkflowStatus, native_enum=False, length=50),
        default=WorkflowStatus.ACTIVE,
    )
    current_step: Mapped[int] = mapped_column(Integer, default=1)
    start_date: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))
    due_date: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    completed_date: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)

    # Related entity
    entity_type: Mapped[EntityType] = mapped_column(
        Enum(EntityType, native_enum=False, length=50),
        default=EntityType.NONE,
    )
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    entity_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    steps_data: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    history: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    comments: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    version: Mapped[int] = mapped_column(Integer, default=0)


class ScheduledReportModel(UUIDAuditBase):
    """Persisted scheduled report.

    Attributes:
        name: Display name.
        description: Human-readable description.
        metric_type: Kind of report to render.
        timeframe: Recurrence, stored verbatim.
        recipients: List of ``{"email": ...}`` objects.
        include_data_export: Whether to attach the CSV export.
        include_visualizations: Whether to include charts.
        department: Department the report covers.
        is_active: Whether the report is scheduled.
        created_by: ID of the user who created the report.
        last_run: When the report was last processed.
        next_run: Next computed fire time.
    """

    __tablename__ = "scheduled_reports"
    __table_args__ = (
        Index("ix_scheduled_reports_department", "department"),
        Index("ix_scheduled_reports_is_active", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    metric_type: Mapped[str] = mapped_column(String(50))
    timeframe: Mapped[str] = mapped_column(String(50))
    recipients: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    include_data_export: Mapped[bool] = mapped_column(default=True)
    include_visualizations: Mapped[bool] = mapped_column(default=True)
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_run: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
    next_run: Mapped[datetime | None] = mapped_column(DateTimeUTC(timezone=True), nullable=True)
