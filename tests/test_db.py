"""Integration tests for database persistence layer.

Tests the SQLAlchemy models, repositories, and store adapters using an async
SQLite in-memory database.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from portal_workflows.core.definition import WorkflowTemplate, number_steps
from portal_workflows.core.models import (
    Recipient,
    RelatedEntity,
    ScheduledReport,
    StepRuntime,
    WorkflowInstanceData,
)
from portal_workflows.core.types import EntityType, Priority, WorkflowCategory, WorkflowStatus
from portal_workflows.db.models import WorkflowTemplateModel
from portal_workflows.db.repositories import WorkflowInstanceRepository
from portal_workflows.db.stores import SQLAlchemyInstanceStore, SQLAlchemyReportStore, SQLAlchemyTemplateStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Create an async SQLite in-memory engine shared by every session."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(WorkflowTemplateModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def sql_templates(session_factory: async_sessionmaker[AsyncSession]) -> SQLAlchemyTemplateStore:
    return SQLAlchemyTemplateStore(session_factory)


@pytest.fixture
def sql_instances(session_factory: async_sessionmaker[AsyncSession]) -> SQLAlchemyInstanceStore:
    return SQLAlchemyInstanceStore(session_factory)


@pytest.fixture
def sql_reports(session_factory: async_sessionmaker[AsyncSession]) -> SQLAlchemyReportStore:
    return SQLAlchemyReportStore(session_factory)


# =============================================================================
# Sample Data
# =============================================================================


def _template(**kwargs: Any) -> WorkflowTemplate:
    return WorkflowTemplate(
        name=kwargs.pop("name", "Purchase"),
        creator="manager",
        steps=number_steps([{"name": "Review", "assigned_user": "u1", "duration_in_days": 2}, {"name": "Sign off"}]),
        **kwargs,
    )


def _instance(template_id: Any, **kwargs: Any) -> WorkflowInstanceData:
    return WorkflowInstanceData(
        template_id=template_id,
        name=kwargs.pop("name", "Laptops"),
        initiator="employee",
        steps_data=[
            StepRuntime(step_number=1, name="Review", assigned_to="u1", form_data={"amount": 12}),
            StepRuntime(step_number=2, name="Sign off"),
        ],
        **kwargs,
    )


# =============================================================================
# Template Store Tests
# =============================================================================


@pytest.mark.integration
class TestSQLAlchemyTemplateStore:
    """Tests for SQLAlchemyTemplateStore."""

    async def test_add_and_get(self, sql_templates: SQLAlchemyTemplateStore) -> None:
        template = _template(category=WorkflowCategory.FINANCE, tags=["it"], department="eng")
        await sql_templates.add(template)

        loaded = await sql_templates.get(template.id)

        assert loaded is not None
        assert loaded.name == "Purchase"
        assert loaded.category is WorkflowCategory.FINANCE
        assert loaded.tags == ["it"]
        assert loaded.steps == template.steps
        assert loaded.current_active_workflows == []

    async def test_get_missing(self, sql_templates: SQLAlchemyTemplateStore) -> None:
        assert await sql_templates.get(uuid4()) is None

    async def test_update(self, sql_templates: SQLAlchemyTemplateStore) -> None:
        from dataclasses import replace

        template = _template()
        await sql_templates.add(template)
        running = uuid4()
        await sql_templates.add_active_workflow(template.id, running)

        updated = await sql_templates.update(
            replace(template, name="Renamed", steps=number_steps([{"name": "Only"}]), current_active_workflows=[])
        )

        assert updated.name == "Renamed"
        assert [step.name for step in updated.steps] == ["Only"]
        assert updated.current_active_workflows == [running]

    async def test_active_links(self, sql_templates: SQLAlchemyTemplateStore) -> None:
        template = _template()
        await sql_templates.add(template)
        first, second = uuid4(), uuid4()

        await sql_templates.add_active_workflow(template.id, first)
        await sql_templates.add_active_workflow(template.id, first)
        await sql_templates.add_active_workflow(template.id, second)
        await sql_templates.remove_active_workflow(template.id, first)

        loaded = await sql_templates.get(template.id)
        assert loaded.current_active_workflows == [second]

    async def test_delete_cascades_links(
        self, sql_templates: SQLAlchemyTemplateStore, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        from sqlalchemy import func, select

        from portal_workflows.db.models import TemplateActiveInstanceModel

        template = _template()
        await sql_templates.add(template)
        await sql_templates.add_active_workflow(template.id, uuid4())

        await sql_templates.delete(template.id)

        assert await sql_templates.get(template.id) is None
        async with session_factory() as session:
            count = await session.scalar(select(func.count()).select_from(TemplateActiveInstanceModel))
        assert count == 0

    async def test_list_filters(self, sql_templates: SQLAlchemyTemplateStore) -> None:
        await sql_templates.add(_template(name="HR", category=WorkflowCategory.HR))
        await sql_templates.add(_template(name="Inactive", is_active=False))

        hr = await sql_templates.list(category=WorkflowCategory.HR)
        inactive = await sql_templates.list(is_active=False)

        assert [template.name for template in hr] == ["HR"]
        assert [template.name for template in inactive] == ["Inactive"]


# =============================================================================
# Instance Store Tests
# =============================================================================


@pytest.mark.integration
class TestSQLAlchemyInstanceStore:
    """Tests for SQLAlchemyInstanceStore."""

    async def test_add_and_get(self, sql_instances: SQLAlchemyInstanceStore) -> None:
        due = datetime(2024, 4, 1, 12, tzinfo=timezone.utc)
        instance = _instance(
            uuid4(),
            priority=Priority.HIGH,
            due_date=due,
            related_entity=RelatedEntity(EntityType.TASK, "task-1", {"title": "Buy laptops"}),
        )
        await sql_instances.add(instance)

        loaded = await sql_instances.get(instance.id)

        assert loaded is not None
        assert loaded.priority is Priority.HIGH
        assert loaded.due_date == due
        assert loaded.start_date == instance.start_date
        assert loaded.related_entity == instance.related_entity
        assert loaded.steps_data == instance.steps_data
        assert loaded.version == 0

    async def test_save_increments_version(self, sql_instances: SQLAlchemyInstanceStore) -> None:
        instance = _instance(uuid4())
        await sql_instances.add(instance)
        instance.current_step = 2
        instance.status = WorkflowStatus.COMPLETED

        saved = await sql_instances.save(instance, expected_version=0)

        assert saved.version == 1
        loaded = await sql_instances.get(instance.id)
        assert loaded.version == 1
        assert loaded.current_step == 2
        assert loaded.status is WorkflowStatus.COMPLETED

    async def test_stale_save_conflicts_and_leaves_row_unchanged(
        self, sql_instances: SQLAlchemyInstanceStore
    ) -> None:
        from portal_workflows.exceptions import ConcurrencyConflictError

        instance = _instance(uuid4())
        await sql_instances.add(instance)
        first = await sql_instances.get(instance.id)
        second = await sql_instances.get(instance.id)

        first.name = "First writer"
        await sql_instances.save(first, expected_version=0)
        second.name = "Second writer"

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await sql_instances.save(second, expected_version=0)

        assert exc_info.value.actual_version == 1
        loaded = await sql_instances.get(instance.id)
        assert loaded.name == "First writer"
        assert loaded.version == 1

    async def test_save_missing(self, sql_instances: SQLAlchemyInstanceStore) -> None:
        from portal_workflows.exceptions import WorkflowInstanceNotFoundError

        with pytest.raises(WorkflowInstanceNotFoundError):
            await sql_instances.save(_instance(uuid4()), expected_version=0)

    async def test_list_filters(self, sql_instances: SQLAlchemyInstanceStore) -> None:
        await sql_instances.add(_instance(uuid4(), name="Task", related_entity=RelatedEntity(EntityType.TASK, "t-1")))
        await sql_instances.add(_instance(uuid4(), name="Done", status=WorkflowStatus.COMPLETED))

        tasks = await sql_instances.list(entity_type=EntityType.TASK)
        done = await sql_instances.list(status=WorkflowStatus.COMPLETED)

        assert [instance.name for instance in tasks] == ["Task"]
        assert [instance.name for instance in done] == ["Done"]


@pytest.mark.integration
class TestWorkflowInstanceRepository:
    """Tests for the compare-and-swap primitive."""

    async def test_compare_and_swap(
        self, sql_instances: SQLAlchemyInstanceStore, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        instance = _instance(uuid4())
        await sql_instances.add(instance)

        async with session_factory() as session:
            repo = WorkflowInstanceRepository(session=session)
            assert await repo.compare_and_swap(instance.id, 0, {"current_step": 2}) is True
            assert await repo.compare_and_swap(instance.id, 0, {"current_step": 3}) is False
            assert await repo.get_version(instance.id) == 1
            assert await repo.get_version(uuid4()) is None
            await session.commit()


# =============================================================================
# Report Store Tests
# =============================================================================


@pytest.mark.integration
class TestSQLAlchemyReportStore:
    """Tests for SQLAlchemyReportStore."""

    async def test_round_trip(self, sql_reports: SQLAlchemyReportStore) -> None:
        report = ScheduledReport(
            name="Weekly performance",
            metric_type="PERFORMANCE",
            timeframe="WEEKLY",
            department="eng",
            recipients=[Recipient(email="lead@example.com")],
        )
        await sql_reports.add(report)

        loaded = await sql_reports.get(report.id)

        assert loaded is not None
        assert loaded.recipients == [Recipient(email="lead@example.com")]
        assert loaded.timeframe == "WEEKLY"
        assert loaded.include_data_export is True

    async def test_malformed_timeframe_is_stored(self, sql_reports: SQLAlchemyReportStore) -> None:
        report = ScheduledReport(name="Odd", metric_type="TASKS", timeframe="HOURLY", department="eng")
        await sql_reports.add(report)

        assert (await sql_reports.get(report.id)).timeframe == "HOURLY"

    async def test_record_run(self, sql_reports: SQLAlchemyReportStore) -> None:
        report = ScheduledReport(name="Daily", metric_type="TASKS", timeframe="DAILY", department="eng")
        await sql_reports.add(report)
        next_run = datetime(2024, 3, 7, 8, tzinfo=timezone.utc)
        last_run = datetime(2024, 3, 6, 8, tzinfo=timezone.utc)

        await sql_reports.record_run(report.id, next_run=next_run, last_run=last_run)

        loaded = await sql_reports.get(report.id)
        assert loaded.next_run == next_run
        assert loaded.last_run == last_run

    async def test_update_and_delete(self, sql_reports: SQLAlchemyReportStore) -> None:
        from dataclasses import replace

        report = ScheduledReport(name="Daily", metric_type="TASKS", timeframe="DAILY", department="eng")
        await sql_reports.add(report)

        await sql_reports.update(replace(report, is_active=False, timeframe="MONTHLY"))
        assert [r.name for r in await sql_reports.list(is_active=False)] == ["Daily"]

        await sql_reports.delete(report.id)
        assert await sql_reports.get(report.id) is None


# =============================================================================
# Engine over SQL stores
# =============================================================================


@pytest.mark.integration
class TestEngineWithDatabase:
    """The engine behaves the same over the SQLAlchemy stores."""

    async def test_full_lifecycle(
        self,
        sql_templates: SQLAlchemyTemplateStore,
        sql_instances: SQLAlchemyInstanceStore,
        manager: Any,
        employee: Any,
        user1: Any,
        user2: Any,
        clock: Any,
    ) -> None:
        from portal_workflows.engine.workflow import WorkflowEngine

        engine = WorkflowEngine(sql_templates, sql_instances, clock=clock)
        template = await engine.create_template(
            manager,
            name="Purchase",
            steps=[{"name": "Review", "assigned_user": "u1"}, {"name": "Sign off", "assigned_user": "u2"}],
        )
        instance = await engine.create_instance(template.id, employee, name="Laptops")
        assert (await engine.get_template(template.id)).current_active_workflows == [instance.id]

        await engine.approve(instance.id, user1, form_data={"amount": 1200})
        completed = await engine.approve(instance.id, user2)

        assert completed.status is WorkflowStatus.COMPLETED
        stored = await engine.get_instance(instance.id)
        assert stored.version == 2
        assert stored.steps_data[0].form_data == {"amount": 1200}
        assert [entry.details for entry in stored.history][-1] == "Workflow completed successfully"
        assert (await engine.get_template(template.id)).current_active_workflows == []

        await engine.delete_template(template.id, manager)
        assert await engine.list_templates() == []
