"""Scheduled report dispatch for portal-workflows.

This module exports the cron-driven report scheduler, the report manager and
the bundled renderer and SMTP transport.
"""

from __future__ import annotations

from portal_workflows.scheduler.config import MailConfig, SchedulerConfig
from portal_workflows.scheduler.cron import get_cron_expression, next_fire_time
from portal_workflows.scheduler.delivery import SmtpDeliveryTransport
from portal_workflows.scheduler.rendering import SummaryReportRenderer, format_report
from portal_workflows.scheduler.reports import ScheduledReportManager
from portal_workflows.scheduler.service import ReportScheduler, export_filename

__all__ = [
    "MailConfig",
    "ReportScheduler",
    "ScheduledReportManager",
    "SchedulerConfig",
    "SmtpDeliveryTransport",
    "SummaryReportRenderer",
    "export_filename",
    "format_report",
    "get_cron_expression",
    "next_fire_time",
]
