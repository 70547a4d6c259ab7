"""Management of scheduled report configurations.

:class:`ScheduledReportManager` validates and persists report changes and
keeps the scheduler's timers in step with them.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from portal_workflows.core.models import Recipient, ScheduledReport
from portal_workflows.exceptions import (
    ScheduledReportNotFoundError,
    UnauthorizedActionError,
    WorkflowValidationError,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from uuid import UUID

    from portal_workflows.core.models import Actor
    from portal_workflows.core.protocols import ReportStore
    from portal_workflows.scheduler.service import ReportScheduler

__all__ = ["ScheduledReportManager"]

logger = logging.getLogger(__name__)

_REPORT_FIELDS = frozenset(
    {
        "name",
        "description",
        "metric_type",
        "timeframe",
        "recipients",
        "include_data_export",
        "include_visualizations",
        "department",
        "is_active",
    }
)
_SCHEDULE_FIELDS = frozenset({"is_active", "timeframe"})


def _recipients(values: Iterable[Recipient | Mapping[str, Any] | str]) -> list[Recipient]:
    recipients = []
    for value in values:
        if isinstance(value, Recipient):
            recipients.append(value)
        elif isinstance(value, str):
            recipients.append(Recipient(email=value))
        else:
            recipients.append(Recipient(email=value["email"]))
    return recipients


class ScheduledReportManager:
    """CRUD for scheduled reports with scheduler bookkeeping.

    Args:
        reports: Report store.
        scheduler: The process-wide report scheduler.
    """

    def __init__(self, reports: ReportStore, scheduler: ReportScheduler) -> None:
        self.reports = reports
        self.scheduler = scheduler

    async def create_report(
        self,
        actor: Actor,
        *,
        name: str,
        metric_type: str,
        timeframe: str,
        department: str | None,
        description: str | None = None,
        recipients: Iterable[Recipient | Mapping[str, Any] | str] = (),
        include_data_export: bool = True,
        include_visualizations: bool = True,
        is_active: bool = True,
    ) -> ScheduledReport:
        """Create a scheduled report and schedule it when active.

        Raises:
            WorkflowValidationError: If the name, metric type, timeframe or
                department is missing.
        """
        missing = [
            label
            for label, value in (
                ("name", name),
                ("metric_type", metric_type),
                ("timeframe", timeframe),
                ("department", department),
            )
            if not value
        ]
        if missing:
            raise WorkflowValidationError([f"Field '{label}' is required" for label in missing])

        report = ScheduledReport(
            name=name,
            metric_type=metric_type,
            timeframe=timeframe,
            department=department,
            created_by=actor.id,
            description=description,
            recipients=_recipients(recipients),
            include_data_export=include_data_export,
            include_visualizations=include_visualizations,
            is_active=is_active,
        )
        report.next_run = self.scheduler.calculate_next_run(report.timeframe)
        stored = await self.reports.add(report)
        await self.scheduler.schedule_new_report(stored)
        logger.info("Created scheduled report %s (%s)", stored.id, stored.name)
        return await self.get_report(stored.id)

    async def update_report(self, report_id: UUID, actor: Actor, **changes: Any) -> ScheduledReport:
        """Apply a partial update to a report.

        The report is rescheduled when ``is_active`` or ``timeframe`` changed.

        Raises:
            ScheduledReportNotFoundError: If the report does not exist.
            UnauthorizedActionError: If the actor is not an admin or the creator.
            WorkflowValidationError: On unknown fields.
        """
        report = await self.get_report(report_id)
        self._check_owner(report, actor, "update this scheduled report")

        unknown = sorted(set(changes) - _REPORT_FIELDS)
        if unknown:
            raise WorkflowValidationError([f"Unknown report field '{key}'" for key in unknown])
        if "recipients" in changes:
            changes["recipients"] = _recipients(changes["recipients"] or [])

        reschedule = any(key in changes and changes[key] != getattr(report, key) for key in _SCHEDULE_FIELDS)
        updated = await self.reports.update(replace(report, **changes))

        if reschedule:
            await self.scheduler.update_schedule(updated.id)
            updated = await self.get_report(updated.id)
        return updated

    async def delete_report(self, report_id: UUID, actor: Actor) -> None:
        """Stop a report's timer and delete it.

        Raises:
            ScheduledReportNotFoundError: If the report does not exist.
            UnauthorizedActionError: If the actor is not an admin or the creator.
        """
        report = await self.get_report(report_id)
        self._check_owner(report, actor, "delete this scheduled report")

        self.scheduler.stop_schedule(report_id)
        await self.reports.delete(report_id)
        logger.info("Deleted scheduled report %s", report_id)

    async def get_report(self, report_id: UUID) -> ScheduledReport:
        report = await self.reports.get(report_id)
        if report is None:
            raise ScheduledReportNotFoundError(report_id)
        return report

    async def list_reports(
        self,
        *,
        department: str | None = None,
        is_active: bool | None = None,
    ) -> list[ScheduledReport]:
        return list(await self.reports.list(department=department, is_active=is_active))

    async def run_report(self, report_id: UUID) -> bool:
        """Process a report immediately, outside its schedule.

        Returns:
            True if the report was delivered.
        """
        await self.get_report(report_id)
        return await self.scheduler.process_report(report_id)

    @staticmethod
    def _check_owner(report: ScheduledReport, actor: Actor, action: str) -> None:
        if not actor.is_admin and actor.id != report.created_by:
            raise UnauthorizedActionError(actor.id, action)
