"""Repository implementations for workflow persistence.

This module provides async repositories for the workflow and report models
using advanced-alchemy's repository pattern.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import UUID

from advanced_alchemy.repository import SQLAlchemyAsyncRepository
from sqlalchemy import and_, delete, select, update

from portal_workflows.db.models import (
    ScheduledReportModel,
    TemplateActiveInstanceModel,
    WorkflowInstanceModel,
    WorkflowTemplateModel,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from portal_workflows.core.types import EntityType, Priority, WorkflowCategory, WorkflowStatus

__all__ = [
    "ScheduledReportRepository",
    "WorkflowInstanceRepository",
    "WorkflowTemplateRepository",
]


class WorkflowTemplateRepository(SQLAlchemyAsyncRepository[WorkflowTemplateModel]):
    """Repository for workflow template CRUD operations.

    Also maintains the template's running-instance links.
    """

    model_type = WorkflowTemplateModel

    async def find_filtered(
        self,
        category: WorkflowCategory | None = None,
        is_active: bool | None = None,
    ) -> Sequence[WorkflowTemplateModel]:
        """List templates, newest first.

        Args:
            category: Optional category filter.
            is_active: Optional activation filter.

        Returns:
            List of templates.
        """
        conditions = []
        if category is not None:
            conditions.append(WorkflowTemplateModel.category == category)
        if is_active is not None:
            conditions.append(WorkflowTemplateModel.is_active == is_active)

        stmt = select(WorkflowTemplateModel).order_by(WorkflowTemplateModel.created_at.desc())
        if conditions:
            stmt = stmt.where(and_(*conditions))
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def link_instance(self, template_id: UUID, instance_id: UUID) -> bool:
        """Register a running instance on a template.

        Returns:
            True if a link was created, False if it already existed.
        """
        stmt = select(TemplateActiveInstanceModel.id).where(
            and_(
                TemplateActiveInstanceModel.template_id == template_id,
                TemplateActiveInstanceModel.instance_id == instance_id,
            )
        )
        result = await self.session.execute(stmt)
        if result.scalar_one_or_none() is not None:
            return False

        self.session.add(TemplateActiveInstanceModel(template_id=template_id, instance_id=instance_id))
        await self.session.flush()
        return True

    async def unlink_instance(self, template_id: UUID, instance_id: UUID) -> None:
        """Remove a running instance from a template's active list."""
        stmt = delete(TemplateActiveInstanceModel).where(
            and_(
                TemplateActiveInstanceModel.template_id == template_id,
                TemplateActiveInstanceModel.instance_id == instance_id,
            )
        )
        await self.session.execute(stmt)


class WorkflowInstanceRepository(SQLAlchemyAsyncRepository[WorkflowInstanceModel]):
    """Repository for workflow instance CRUD operations.

    Provides filtered listing and the versioned compare-and-swap write.
    """

    model_type = WorkflowInstanceModel

    async def find_filtered(
        self,
        status: WorkflowStatus | None = None,
        priority: Priority | None = None,
        entity_type: EntityType | None = None,
    ) -> Sequence[WorkflowInstanceModel]:
        """List instances, most recently started first.

        Args:
            status: Optional status filter.
            priority: Optional priority filter.
            entity_type: Optional related entity type filter.

        Returns:
            List of workflow instances.
        """
        conditions = []
        if status is not None:
            conditions.append(WorkflowInstanceModel.status == status)
        if priority is not None:
            conditions.append(WorkflowInstanceModel.priority == priority)
        if entity_type is not None:
            conditions.append(WorkflowInstanceModel.entity_type == entity_type)

        stmt = select(WorkflowInstanceModel).order_by(WorkflowInstanceModel.start_date.desc())
        if conditions:
            stmt = stmt.where(and_(*conditions))
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def compare_and_swap(self, instance_id: UUID, expected_version: int, values: dict[str, Any]) -> bool:
        """Write new column values if the stored version still matches.

        The version is incremented as part of the same statement.

        Args:
            instance_id: The instance to update.
            expected_version: Version the caller read.
            values: Column values to write.

        Returns:
            True if the row was updated.
        """
        stmt = (
            update(WorkflowInstanceModel)
            .where(
                and_(
                    WorkflowInstanceModel.id == instance_id,
                    WorkflowInstanceModel.version == expected_version,
                )
            )
            .values(**values, version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_version(self, instance_id: UUID) -> int | None:
        """Return the stored version of an instance, or None if it does not exist."""
        stmt = select(WorkflowInstanceModel.version).where(WorkflowInstanceModel.id == instance_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class ScheduledReportRepository(SQLAlchemyAsyncRepository[ScheduledReportModel]):
    """Repository for scheduled report CRUD operations."""

    model_type = ScheduledReportModel

    async def find_filtered(
        self,
        department: str | None = None,
        is_active: bool | None = None,
    ) -> Sequence[ScheduledReportModel]:
        conditions = []
        if department is not None:
            conditions.append(ScheduledReportModel.department == department)
        if is_active is not None:
            conditions.append(ScheduledReportModel.is_active == is_active)

        stmt = select(ScheduledReportModel).order_by(ScheduledReportModel.created_at.desc())
        if conditions:
            stmt = stmt.where(and_(*conditions))
        result = await self.session.execute(stmt)
        return result.scalars().all()
