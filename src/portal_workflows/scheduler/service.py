"""Cron-driven scheduler for recurring reports.

Each active scheduled report gets its own asyncio task that sleeps until the
next cron fire time, processes the report and repeats. A separate refresh task
reloads the set of active reports periodically so that changes made outside
this process are picked up.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from portal_workflows.core.models import MailAttachment
from portal_workflows.engine.processor import utcnow
from portal_workflows.scheduler.config import SchedulerConfig
from portal_workflows.scheduler.cron import get_cron_expression, next_fire_time

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from uuid import UUID

    from portal_workflows.core.models import ReportContent, ScheduledReport
    from portal_workflows.core.protocols import DeliveryTransport, ReportRenderer, ReportStore

__all__ = ["ReportScheduler", "export_filename"]

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def export_filename(report_name: str, day: datetime) -> str:
    """Name of the CSV attachment for a report run.

    Example:
        >>> export_filename("Weekly Load", datetime(2024, 3, 4, tzinfo=timezone.utc))
        'Weekly_Load_2024-03-04.csv'
    """
    return f"{_WHITESPACE.sub('_', report_name)}_{day.astimezone(timezone.utc).date().isoformat()}.csv"


class ReportScheduler:
    """Keeps one recurring timer per active scheduled report.

    Timers of different reports are independent; an error while processing one
    report is logged and never reaches another report's timer.

    Attributes:
        reports: Report persistence.
        renderer: Produces report content.
        transport: Delivers rendered reports. Without one nothing is sent.
        config: Scheduler settings.
    """

    def __init__(
        self,
        reports: ReportStore,
        renderer: ReportRenderer,
        transport: DeliveryTransport | None = None,
        *,
        config: SchedulerConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            reports: Report store.
            renderer: Report renderer.
            transport: Optional delivery transport.
            config: Optional scheduler configuration.
            clock: Optional callable returning the current aware datetime.
            sleep: Optional coroutine function used to wait between fire times.
        """
        self.reports = reports
        self.renderer = renderer
        self.transport = transport
        self.config = config or SchedulerConfig()
        self._clock = clock or utcnow
        self._sleep = sleep or asyncio.sleep
        self._timers: dict[UUID, asyncio.Task[None]] = {}
        self._runs: dict[asyncio.Task[None], asyncio.Task[bool]] = {}
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    @property
    def scheduled_report_ids(self) -> set[UUID]:
        """IDs of the reports that currently have a timer."""
        return set(self._timers)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> int:
        """Schedule every active report and start the periodic refresh.

        Calling it again replaces all existing timers.

        Returns:
            Number of reports scheduled.
        """
        self._cancel_refresh()
        try:
            count = await self.reload()
        except Exception:
            logger.exception("Failed to load scheduled reports; retrying on the next refresh")
            count = 0
        self._refresh_task = asyncio.create_task(self._refresh_loop(), name="scheduled-report-refresh")
        logger.info("Report scheduler started with %d report(s)", count)
        return count

    async def stop(self) -> None:
        """Cancel every timer and the refresh task, and wait for them to finish.

        Report runs already in progress are not cancelled; they are awaited.
        """
        tasks = list(self._timers.values())
        self._timers.clear()
        if self._refresh_task is not None:
            tasks.append(self._refresh_task)
            self._refresh_task = None

        current = asyncio.current_task()
        pending = [task for task in tasks if task is not current and not task.done()]
        for task in pending:
            task.cancel()
        runs = [run for run in self._runs.values() if run is not current]
        await asyncio.gather(*pending, *runs, return_exceptions=True)
        logger.info("Report scheduler stopped")

    async def reload(self) -> int:
        """Drop every report timer and schedule the currently active reports.

        A report that fails to schedule is logged and skipped.

        Returns:
            Number of reports scheduled.

        Raises:
            Exception: Whatever the store raises while listing active reports.
        """
        for report_id in list(self._timers):
            self.stop_schedule(report_id)

        count = 0
        for report in await self.reports.list(is_active=True):
            try:
                scheduled = await self.schedule_report(report)
            except Exception:
                logger.exception("Failed to schedule report %s", report.id)
                continue
            if scheduled:
                count += 1
        return count

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def get_cron_expression(self, timeframe: str) -> str | None:
        """Cron expression for a timeframe at the configured hour, or None if unknown."""
        return get_cron_expression(timeframe, hour=self.config.run_hour)

    def calculate_next_run(self, timeframe: str, after: datetime | None = None) -> datetime | None:
        """Next fire time of a timeframe in the configured timezone.

        Args:
            timeframe: The report timeframe.
            after: Reference time. Defaults to now.

        Returns:
            The next fire time, or None for an unknown timeframe.
        """
        expression = self.get_cron_expression(timeframe)
        if expression is None:
            return None
        reference = (after or self._clock()).astimezone(self.config.get_tzinfo())
        return next_fire_time(expression, reference)

    async def schedule_report(self, report: ScheduledReport) -> bool:
        """Register the recurring timer for a report and persist its next run.

        Any existing timer of the report is replaced.

        Returns:
            False, without registering anything, if the timeframe is unknown.
        """
        expression = self.get_cron_expression(report.timeframe)
        if expression is None:
            logger.warning("Invalid timeframe %r for report %s; not scheduling", report.timeframe, report.id)
            return False

        self.stop_schedule(report.id)
        next_run = self.calculate_next_run(report.timeframe)
        await self.reports.record_run(report.id, next_run=next_run)
        self._timers[report.id] = asyncio.create_task(
            self._run_timer(report.id, expression),
            name=f"scheduled-report-{report.id}",
        )
        logger.info("Scheduled report %s (%s) with cron '%s', next run %s", report.id, report.name, expression, next_run)
        return True

    async def schedule_new_report(self, report: ScheduledReport) -> bool:
        """Compute the first run of a newly created report and schedule it if active.

        Returns:
            True if a timer was registered.
        """
        if report.next_run is None:
            report.next_run = self.calculate_next_run(report.timeframe)
            await self.reports.record_run(report.id, next_run=report.next_run)
        if not report.is_active:
            return False
        return await self.schedule_report(report)

    async def update_schedule(self, report_id: UUID) -> bool:
        """Re-register a report's timer from its persisted state.

        Returns:
            True if a timer was registered.
        """
        self.stop_schedule(report_id)
        report = await self.reports.get(report_id)
        if report is None:
            logger.warning("Cannot update schedule: report %s not found", report_id)
            return False
        if not report.is_active:
            return False
        return await self.schedule_report(report)

    def stop_schedule(self, report_id: UUID) -> bool:
        """Cancel and forget a report's timer.

        A timer whose report run is in progress is only forgotten; the run
        completes and the timer ends after it.

        Returns:
            True if the report had a timer.
        """
        task = self._timers.pop(report_id, None)
        if task is None:
            return False
        if task not in self._runs and task is not asyncio.current_task() and not task.done():
            task.cancel()
        logger.info("Stopped schedule for report %s", report_id)
        return True

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_report(self, report_id: UUID) -> bool:
        """Generate and send one report run.

        The report is re-read first. A deleted or deactivated report gets its
        timer stopped and nothing else happens. Otherwise the run bookkeeping
        (``last_run`` and ``next_run``) is persisted whether or not rendering
        and delivery succeeded.

        Returns:
            True if the report was delivered.
        """
        report = await self.reports.get(report_id)
        if report is None or not report.is_active:
            logger.warning("Report %s not found or inactive; stopping its schedule", report_id)
            self.stop_schedule(report_id)
            return False

        delivered = False
        try:
            content = await self.renderer.render(report.metric_type, report.timeframe, report.department)
        except Exception:
            logger.exception("Failed to render report %s", report.id)
        else:
            delivered = await self.send_report_to_recipients(report, content)

        now = self._clock()
        await self.reports.record_run(
            report.id,
            last_run=now,
            next_run=self.calculate_next_run(report.timeframe, now),
        )
        logger.info("Processed report %s (delivered=%s)", report.id, delivered)
        return delivered

    async def send_report_to_recipients(self, report: ScheduledReport, content: ReportContent) -> bool:
        """Deliver rendered content to a report's recipients.

        Returns:
            False if there are no recipients, no transport is configured or the
            transport failed.
        """
        emails = [recipient.email for recipient in report.recipients if recipient.email]
        if not emails:
            logger.warning("Report %s has no recipients", report.id)
            return False
        if self.transport is None:
            logger.warning("No delivery transport configured; report %s not sent", report.id)
            return False

        attachments = []
        if report.include_data_export:
            attachments.append(
                MailAttachment(
                    filename=export_filename(report.name, self._clock()),
                    content=content.csv,
                    content_type="text/csv",
                )
            )

        try:
            return await self.transport.deliver(emails, f"Scheduled Report: {report.name}", content.html, attachments)
        except Exception:
            logger.exception("Failed to deliver report %s", report.id)
            return False

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    async def _run_timer(self, report_id: UUID, expression: str) -> None:
        timer = asyncio.current_task()
        tz = self.config.get_tzinfo()
        fire_at: datetime | None = None
        while True:
            now = self._clock().astimezone(tz)
            fire_at = next_fire_time(expression, now if fire_at is None else max(now, fire_at))
            await self._sleep(max((fire_at - now).total_seconds(), 0.0))
            run = asyncio.create_task(self._process_logged(report_id), name=f"scheduled-report-run-{report_id}")
            self._runs[timer] = run
            run.add_done_callback(lambda _: self._runs.pop(timer, None))
            await asyncio.shield(run)
            if self._timers.get(report_id) is not timer:
                return

    async def _process_logged(self, report_id: UUID) -> bool:
        try:
            return await self.process_report(report_id)
        except Exception:
            logger.exception("Unexpected error while processing report %s", report_id)
            return False

    async def _refresh_loop(self) -> None:
        interval = self.config.refresh_interval.total_seconds()
        while True:
            await self._sleep(interval)
            try:
                count = await self.reload()
            except Exception:
                logger.exception("Failed to refresh scheduled reports")
            else:
                logger.info("Refreshed scheduled reports: %d active", count)

    def _cancel_refresh(self) -> None:
        task, self._refresh_task = self._refresh_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
