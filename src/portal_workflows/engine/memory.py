"""In-memory stores.

These stores keep everything in process-local dictionaries and hand out deep
copies, so callers never share mutable state with the store. They are
suitable for development, testing, and single-instance deployments.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import replace
from typing import TYPE_CHECKING

from portal_workflows.exceptions import ConcurrencyConflictError, WorkflowInstanceNotFoundError

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from portal_workflows.core.definition import WorkflowTemplate
    from portal_workflows.core.models import ScheduledReport, WorkflowInstanceData
    from portal_workflows.core.types import EntityType, Priority, WorkflowCategory, WorkflowStatus

__all__ = ["MemoryInstanceStore", "MemoryReportStore", "MemoryTemplateStore"]


class MemoryTemplateStore:
    """Dictionary-backed :class:`~portal_workflows.core.protocols.TemplateStore`."""

    def __init__(self) -> None:
        self._templates: dict[UUID, WorkflowTemplate] = {}

    async def add(self, template: WorkflowTemplate) -> WorkflowTemplate:
        self._templates[template.id] = deepcopy(template)
        return deepcopy(template)

    async def get(self, template_id: UUID) -> WorkflowTemplate | None:
        template = self._templates.get(template_id)
        return deepcopy(template) if template is not None else None

    async def update(self, template: WorkflowTemplate) -> WorkflowTemplate:
        stored = self._templates.get(template.id)
        active = list(stored.current_active_workflows) if stored is not None else []
        self._templates[template.id] = replace(deepcopy(template), current_active_workflows=active)
        return deepcopy(self._templates[template.id])

    async def delete(self, template_id: UUID) -> None:
        self._templates.pop(template_id, None)

    async def list(
        self,
        *,
        category: WorkflowCategory | None = None,
        is_active: bool | None = None,
    ) -> list[WorkflowTemplate]:
        templates = [
            template
            for template in self._templates.values()
            if (category is None or template.category == category)
            and (is_active is None or template.is_active == is_active)
        ]
        templates.sort(key=lambda template: template.created_at, reverse=True)
        return deepcopy(templates)

    async def add_active_workflow(self, template_id: UUID, instance_id: UUID) -> None:
        template = self._templates.get(template_id)
        if template is not None and instance_id not in template.current_active_workflows:
            template.current_active_workflows.append(instance_id)

    async def remove_active_workflow(self, template_id: UUID, instance_id: UUID) -> None:
        template = self._templates.get(template_id)
        if template is not None and instance_id in template.current_active_workflows:
            template.current_active_workflows.remove(instance_id)


class MemoryInstanceStore:
    """Dictionary-backed :class:`~portal_workflows.core.protocols.InstanceStore`.

    :meth:`save` never awaits between the version check and the write, which
    makes the compare-and-swap atomic within one event loop.
    """

    def __init__(self) -> None:
        self._instances: dict[UUID, WorkflowInstanceData] = {}

    async def add(self, instance: WorkflowInstanceData) -> WorkflowInstanceData:
        self._instances[instance.id] = deepcopy(instance)
        return deepcopy(instance)

    async def get(self, instance_id: UUID) -> WorkflowInstanceData | None:
        instance = self._instances.get(instance_id)
        return deepcopy(instance) if instance is not None else None

    async def save(self, instance: WorkflowInstanceData, *, expected_version: int) -> WorkflowInstanceData:
        stored = self._instances.get(instance.id)
        if stored is None:
            raise WorkflowInstanceNotFoundError(instance.id)
        if stored.version != expected_version:
            raise ConcurrencyConflictError(instance.id, expected_version, stored.version)

        updated = replace(deepcopy(instance), version=expected_version + 1)
        self._instances[instance.id] = updated
        return deepcopy(updated)

    async def list(
        self,
        *,
        status: WorkflowStatus | None = None,
        priority: Priority | None = None,
        entity_type: EntityType | None = None,
    ) -> list[WorkflowInstanceData]:
        instances = [
            instance
            for instance in self._instances.values()
            if (status is None or instance.status == status)
            and (priority is None or instance.priority == priority)
            and (entity_type is None or instance.related_entity.entity_type == entity_type)
        ]
        instances.sort(key=lambda instance: instance.start_date, reverse=True)
        return deepcopy(instances)


class MemoryReportStore:
    """Dictionary-backed :class:`~portal_workflows.core.protocols.ReportStore`."""

    def __init__(self) -> None:
        self._reports: dict[UUID, ScheduledReport] = {}

    async def add(self, report: ScheduledReport) -> ScheduledReport:
        self._reports[report.id] = deepcopy(report)
        return deepcopy(report)

    async def get(self, report_id: UUID) -> ScheduledReport | None:
        report = self._reports.get(report_id)
        return deepcopy(report) if report is not None else None

    async def update(self, report: ScheduledReport) -> ScheduledReport:
        self._reports[report.id] = deepcopy(report)
        return deepcopy(report)

    async def delete(self, report_id: UUID) -> None:
        self._reports.pop(report_id, None)

    async def list(
        self,
        *,
        department: str | None = None,
        is_active: bool | None = None,
    ) -> list[ScheduledReport]:
        reports = [
            report
            for report in self._reports.values()
            if (department is None or report.department == department)
            and (is_active is None or report.is_active == is_active)
        ]
        reports.sort(key=lambda report: report.created_at, reverse=True)
        return deepcopy(reports)

    async def record_run(
        self,
        report_id: UUID,
        *,
        next_run: datetime | None,
        last_run: datetime | None = None,
    ) -> None:
        report = self._reports.get(report_id)
        if report is None:
            return
        report.next_run = next_run
        if last_run is not None:
            report.last_run = last_run
