"""Tests for the in-memory stores."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest


def _instance(**kwargs):
    from portal_workflows.core.models import StepRuntime, WorkflowInstanceData

    return WorkflowInstanceData(
        template_id=uuid4(),
        name=kwargs.pop("name", "Request"),
        initiator="employee",
        steps_data=[StepRuntime(step_number=1, name="A", assigned_to="u1")],
        **kwargs,
    )


@pytest.mark.unit
class TestMemoryTemplateStore:
    """Tests for MemoryTemplateStore."""

    async def test_returns_copies(self) -> None:
        from portal_workflows.core.definition import WorkflowTemplate
        from portal_workflows.engine.memory import MemoryTemplateStore

        store = MemoryTemplateStore()
        template = await store.add(WorkflowTemplate(name="T", creator="m"))
        template.name = "Changed"

        assert (await store.get(template.id)).name == "T"

    async def test_active_workflow_list(self) -> None:
        from portal_workflows.core.definition import WorkflowTemplate
        from portal_workflows.engine.memory import MemoryTemplateStore

        store = MemoryTemplateStore()
        template = await store.add(WorkflowTemplate(name="T", creator="m"))
        first, second = uuid4(), uuid4()

        await store.add_active_workflow(template.id, first)
        await store.add_active_workflow(template.id, first)
        await store.add_active_workflow(template.id, second)
        await store.remove_active_workflow(template.id, first)
        await store.remove_active_workflow(template.id, uuid4())

        assert (await store.get(template.id)).current_active_workflows == [second]

    async def test_update_does_not_overwrite_active_list(self) -> None:
        from dataclasses import replace

        from portal_workflows.core.definition import WorkflowTemplate
        from portal_workflows.engine.memory import MemoryTemplateStore

        store = MemoryTemplateStore()
        template = await store.add(WorkflowTemplate(name="T", creator="m"))
        running = uuid4()
        await store.add_active_workflow(template.id, running)

        updated = await store.update(replace(template, name="Renamed"))

        assert updated.name == "Renamed"
        assert updated.current_active_workflows == [running]

    async def test_list_newest_first(self) -> None:
        from portal_workflows.core.definition import WorkflowTemplate
        from portal_workflows.engine.memory import MemoryTemplateStore

        store = MemoryTemplateStore()
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        await store.add(WorkflowTemplate(name="Old", creator="m", created_at=now))
        await store.add(WorkflowTemplate(name="New", creator="m", created_at=now + timedelta(days=1)))

        assert [template.name for template in await store.list()] == ["New", "Old"]

    async def test_delete_missing_is_noop(self) -> None:
        from portal_workflows.engine.memory import MemoryTemplateStore

        await MemoryTemplateStore().delete(uuid4())


@pytest.mark.unit
class TestMemoryInstanceStore:
    """Tests for MemoryInstanceStore compare-and-swap."""

    async def test_save_bumps_version(self) -> None:
        from portal_workflows.engine.memory import MemoryInstanceStore

        store = MemoryInstanceStore()
        instance = await store.add(_instance())
        instance.current_step = 2

        saved = await store.save(instance, expected_version=0)

        assert saved.version == 1
        assert (await store.get(instance.id)).current_step == 2

    async def test_stale_save_conflicts(self) -> None:
        from portal_workflows.engine.memory import MemoryInstanceStore
        from portal_workflows.exceptions import ConcurrencyConflictError

        store = MemoryInstanceStore()
        instance = await store.add(_instance())
        await store.save(instance, expected_version=0)
        instance.name = "Overwritten"

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            await store.save(instance, expected_version=0)

        assert exc_info.value.actual_version == 1
        assert (await store.get(instance.id)).name == "Request"

    async def test_save_unknown(self) -> None:
        from portal_workflows.engine.memory import MemoryInstanceStore
        from portal_workflows.exceptions import WorkflowInstanceNotFoundError

        with pytest.raises(WorkflowInstanceNotFoundError):
            await MemoryInstanceStore().save(_instance(), expected_version=0)

    async def test_list_filters(self) -> None:
        from portal_workflows.core.models import RelatedEntity
        from portal_workflows.core.types import EntityType, Priority, WorkflowStatus
        from portal_workflows.engine.memory import MemoryInstanceStore

        store = MemoryInstanceStore()
        await store.add(_instance(name="Task", related_entity=RelatedEntity(EntityType.TASK, "t-1")))
        await store.add(_instance(name="Urgent", priority=Priority.URGENT))
        await store.add(_instance(name="Done", status=WorkflowStatus.COMPLETED))

        assert [i.name for i in await store.list(entity_type=EntityType.TASK)] == ["Task"]
        assert [i.name for i in await store.list(priority=Priority.URGENT)] == ["Urgent"]
        assert [i.name for i in await store.list(status=WorkflowStatus.COMPLETED)] == ["Done"]


@pytest.mark.unit
class TestMemoryReportStore:
    """Tests for MemoryReportStore."""

    async def test_record_run(self) -> None:
        from portal_workflows.core.models import ScheduledReport
        from portal_workflows.engine.memory import MemoryReportStore

        store = MemoryReportStore()
        report = await store.add(ScheduledReport(name="Weekly", metric_type="tasks", timeframe="WEEKLY", department="eng"))
        next_run = datetime(2024, 3, 11, 8, tzinfo=timezone.utc)
        last_run = datetime(2024, 3, 4, 8, tzinfo=timezone.utc)

        await store.record_run(report.id, next_run=next_run)
        stored = await store.get(report.id)
        assert stored.next_run == next_run
        assert stored.last_run is None

        await store.record_run(report.id, next_run=None, last_run=last_run)
        stored = await store.get(report.id)
        assert stored.next_run is None
        assert stored.last_run == last_run

    async def test_record_run_for_deleted_report(self) -> None:
        from portal_workflows.engine.memory import MemoryReportStore

        await MemoryReportStore().record_run(uuid4(), next_run=None)

    async def test_list_filters(self) -> None:
        from portal_workflows.core.models import ScheduledReport
        from portal_workflows.engine.memory import MemoryReportStore

        store = MemoryReportStore()
        await store.add(ScheduledReport(name="Eng", metric_type="tasks", timeframe="DAILY", department="eng"))
        await store.add(
            ScheduledReport(name="Off", metric_type="tasks", timeframe="DAILY", department="eng", is_active=False)
        )
        await store.add(ScheduledReport(name="Fin", metric_type="tasks", timeframe="DAILY", department="finance"))

        assert sorted(r.name for r in await store.list(department="eng")) == ["Eng", "Off"]
        assert sorted(r.name for r in await store.list(is_active=True)) == ["Eng", "Fin"]
