"""SQLAlchemy-backed stores.

These adapters implement the store protocols from
:mod:`portal_workflows.core.protocols` on top of the repositories. Each
operation runs in its own session taken from the given session factory, so a
store can be shared by the engine and the long-lived report scheduler.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from portal_workflows.core.definition import StepTemplate, WorkflowTemplate
from portal_workflows.core.models import (
    HistoryEntry,
    Recipient,
    RelatedEntity,
    ScheduledReport,
    StepRuntime,
    WorkflowComment,
    WorkflowInstanceData,
)
from portal_workflows.db.models import ScheduledReportModel, WorkflowInstanceModel, WorkflowTemplateModel
from portal_workflows.db.repositories import (
    ScheduledReportRepository,
    WorkflowInstanceRepository,
    WorkflowTemplateRepository,
)
from portal_workflows.exceptions import ConcurrencyConflictError, WorkflowInstanceNotFoundError

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from portal_workflows.core.types import EntityType, Priority, WorkflowCategory, WorkflowStatus

__all__ = ["SQLAlchemyInstanceStore", "SQLAlchemyReportStore", "SQLAlchemyTemplateStore"]


def _template_from_model(model: WorkflowTemplateModel) -> WorkflowTemplate:
    return WorkflowTemplate(
        id=model.id,
        name=model.name,
        creator=model.creator,
        steps=[StepTemplate.from_dict(step) for step in model.steps or []],
        description=model.description,
        department=model.department,
        category=model.category,
        priority=model.priority,
        is_active=model.is_active,
        is_template=model.is_template,
        tags=list(model.tags or []),
        current_active_workflows=[link.instance_id for link in model.active_links],
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _template_values(template: WorkflowTemplate) -> dict[str, Any]:
    return {
        "name": template.name,
        "description": template.description,
        "creator": template.creator,
        "department": template.department,
        "category": template.category,
        "priority": template.priority,
        "is_active": template.is_active,
        "is_template": template.is_template,
        "tags": list(template.tags),
        "steps": [step.to_dict() for step in template.steps],
    }


def _instance_from_model(model: WorkflowInstanceModel) -> WorkflowInstanceData:
    return WorkflowInstanceData(
        id=model.id,
        template_id=model.template_id,
        name=model.name,
        initiator=model.initiator,
        steps_data=[StepRuntime.from_dict(step) for step in model.steps_data or []],
        status=model.status,
        current_step=model.current_step,
        department=model.department,
        priority=model.priority,
        start_date=model.start_date,
        due_date=model.due_date,
        completed_date=model.completed_date,
        related_entity=RelatedEntity(
            entity_type=model.entity_type,
            entity_id=model.entity_id,
            data=model.entity_data,
        ),
        history=[HistoryEntry.from_dict(entry) for entry in model.history or []],
        comments=[WorkflowComment.from_dict(comment) for comment in model.comments or []],
        version=model.version,
    )


def _instance_values(instance: WorkflowInstanceData) -> dict[str, Any]:
    """Column values for an instance. ``template_id`` is only written on insert."""
    return {
        "name": instance.name,
        "initiator": instance.initiator,
        "department": instance.department,
        "priority": instance.priority,
        "status": instance.status,
        "current_step": instance.current_step,
        "start_date": instance.start_date,
        "due_date": instance.due_date,
        "completed_date": instance.completed_date,
        "entity_type": instance.related_entity.entity_type,
        "entity_id": instance.related_entity.entity_id,
        "entity_data": instance.related_entity.data,
        "steps_data": [step.to_dict() for step in instance.steps_data],
        "history": [entry.to_dict() for entry in instance.history],
        "comments": [comment.to_dict() for comment in instance.comments],
    }


def _report_from_model(model: ScheduledReportModel) -> ScheduledReport:
    return ScheduledReport(
        id=model.id,
        name=model.name,
        description=model.description,
        metric_type=model.metric_type,
        timeframe=model.timeframe,
        recipients=[Recipient(email=item["email"]) for item in model.recipients or []],
        include_data_export=model.include_data_export,
        include_visualizations=model.include_visualizations,
        department=model.department,
        is_active=model.is_active,
        created_by=model.created_by,
        last_run=model.last_run,
        next_run=model.next_run,
        created_at=model.created_at,
    )


def _report_values(report: ScheduledReport) -> dict[str, Any]:
    return {
        "name": report.name,
        "description": report.description,
        "metric_type": report.metric_type,
        "timeframe": report.timeframe,
        "recipients": [{"email": recipient.email} for recipient in report.recipients],
        "include_data_export": report.include_data_export,
        "include_visualizations": report.include_visualizations,
        "department": report.department,
        "is_active": report.is_active,
        "created_by": report.created_by,
        "last_run": report.last_run,
        "next_run": report.next_run,
    }


class SQLAlchemyTemplateStore:
    """:class:`~portal_workflows.core.protocols.TemplateStore` backed by SQLAlchemy.

    Args:
        session_factory: Factory for async sessions. It should be created with
            ``expire_on_commit=False``.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def add(self, template: WorkflowTemplate) -> WorkflowTemplate:
        async with self.session_factory() as session:
            repo = WorkflowTemplateRepository(session=session)
            model = WorkflowTemplateModel(
                id=template.id,
                created_at=template.created_at,
                active_links=[],
                **_template_values(template),
            )
            await repo.add(model, auto_commit=True)
        return template

    async def get(self, template_id: UUID) -> WorkflowTemplate | None:
        async with self.session_factory() as session:
            repo = WorkflowTemplateRepository(session=session)
            model = await repo.get_one_or_none(id=template_id)
            return _template_from_model(model) if model is not None else None

    async def update(self, template: WorkflowTemplate) -> WorkflowTemplate:
        async with self.session_factory() as session:
            repo = WorkflowTemplateRepository(session=session)
            model = await repo.get_one_or_none(id=template.id)
            if model is None:
                model = WorkflowTemplateModel(id=template.id, created_at=template.created_at, active_links=[])
                session.add(model)
            for key, value in _template_values(template).items():
                setattr(model, key, value)
            await session.flush()
            stored = _template_from_model(model)
            await session.commit()
        return stored

    async def delete(self, template_id: UUID) -> None:
        async with self.session_factory() as session:
            repo = WorkflowTemplateRepository(session=session)
            model = await repo.get_one_or_none(id=template_id)
            if model is not None:
                await session.delete(model)
                await session.commit()

    async def list(
        self,
        *,
        category: WorkflowCategory | None = None,
        is_active: bool | None = None,
    ) -> list[WorkflowTemplate]:
        async with self.session_factory() as session:
            repo = WorkflowTemplateRepository(session=session)
            models = await repo.find_filtered(category=category, is_active=is_active)
            return [_template_from_model(model) for model in models]

    async def add_active_workflow(self, template_id: UUID, instance_id: UUID) -> None:
        async with self.session_factory() as session:
            repo = WorkflowTemplateRepository(session=session)
            if await repo.link_instance(template_id, instance_id):
                await session.commit()

    async def remove_active_workflow(self, template_id: UUID, instance_id: UUID) -> None:
        async with self.session_factory() as session:
            repo = WorkflowTemplateRepository(session=session)
            await repo.unlink_instance(template_id, instance_id)
            await session.commit()


class SQLAlchemyInstanceStore:
    """:class:`~portal_workflows.core.protocols.InstanceStore` backed by SQLAlchemy.

    :meth:`save` issues a single ``UPDATE ... WHERE version = :expected``, so
    the version check and the write are atomic in the database.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def add(self, instance: WorkflowInstanceData) -> WorkflowInstanceData:
        async with self.session_factory() as session:
            repo = WorkflowInstanceRepository(session=session)
            model = WorkflowInstanceModel(
                id=instance.id,
                template_id=instance.template_id,
                version=instance.version,
                **_instance_values(instance),
            )
            await repo.add(model, auto_commit=True)
        return instance

    async def get(self, instance_id: UUID) -> WorkflowInstanceData | None:
        async with self.session_factory() as session:
            repo = WorkflowInstanceRepository(session=session)
            model = await repo.get_one_or_none(id=instance_id)
            return _instance_from_model(model) if model is not None else None

    async def save(self, instance: WorkflowInstanceData, *, expected_version: int) -> WorkflowInstanceData:
        async with self.session_factory() as session:
            repo = WorkflowInstanceRepository(session=session)
            if not await repo.compare_and_swap(instance.id, expected_version, _instance_values(instance)):
                actual = await repo.get_version(instance.id)
                await session.rollback()
                if actual is None:
                    raise WorkflowInstanceNotFoundError(instance.id)
                raise ConcurrencyConflictError(instance.id, expected_version, actual)
            await session.commit()

        instance.version = expected_version + 1
        return instance

    async def list(
        self,
        *,
        status: WorkflowStatus | None = None,
        priority: Priority | None = None,
        entity_type: EntityType | None = None,
    ) -> list[WorkflowInstanceData]:
        async with self.session_factory() as session:
            repo = WorkflowInstanceRepository(session=session)
            models = await repo.find_filtered(status=status, priority=priority, entity_type=entity_type)
            return [_instance_from_model(model) for model in models]


class SQLAlchemyReportStore:
    """:class:`~portal_workflows.core.protocols.ReportStore` backed by SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def add(self, report: ScheduledReport) -> ScheduledReport:
        async with self.session_factory() as session:
            repo = ScheduledReportRepository(session=session)
            model = ScheduledReportModel(id=report.id, created_at=report.created_at, **_report_values(report))
            await repo.add(model, auto_commit=True)
        return report

    async def get(self, report_id: UUID) -> ScheduledReport | None:
        async with self.session_factory() as session:
            repo = ScheduledReportRepository(session=session)
            model = await repo.get_one_or_none(id=report_id)
            return _report_from_model(model) if model is not None else None

    async def update(self, report: ScheduledReport) -> ScheduledReport:
        async with self.session_factory() as session:
            repo = ScheduledReportRepository(session=session)
            model = await repo.get_one_or_none(id=report.id)
            if model is None:
                model = ScheduledReportModel(id=report.id, created_at=report.created_at)
                session.add(model)
            for key, value in _report_values(report).items():
                setattr(model, key, value)
            await session.commit()
        return report

    async def delete(self, report_id: UUID) -> None:
        async with self.session_factory() as session:
            repo = ScheduledReportRepository(session=session)
            model = await repo.get_one_or_none(id=report_id)
            if model is not None:
                await session.delete(model)
                await session.commit()

    async def list(
        self,
        *,
        department: str | None = None,
        is_active: bool | None = None,
    ) -> list[ScheduledReport]:
        async with self.session_factory() as session:
            repo = ScheduledReportRepository(session=session)
            models = await repo.find_filtered(department=department, is_active=is_active)
            return [_report_from_model(model) for model in models]

    async def record_run(
        self,
        report_id: UUID,
        *,
        next_run: datetime | None,
        last_run: datetime | None = None,
    ) -> None:
        async with self.session_factory() as session:
            repo = ScheduledReportRepository(session=session)
            model = await repo.get_one_or_none(id=report_id)
            if model is None:
                return
            model.next_run = next_run
            if last_run is not None:
                model.last_run = last_run
            await session.commit()
