"""Summary rendering of analytics reports.

The renderer turns the metrics returned by a per-metric data source into a
small HTML summary and a two-column CSV export.
"""

from __future__ import annotations

import csv
import html
import io
import json
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeAlias

from portal_workflows.core.models import ReportContent

__all__ = ["REPORT_TITLES", "MetricSource", "SummaryReportRenderer", "format_report"]

MetricSource: TypeAlias = Callable[[str | None, str], Awaitable[Mapping[str, Any]]]
"""Async callable returning metric values for a department and timeframe."""

REPORT_TITLES = {
    "PERFORMANCE": "Performance Analysis",
    "WORKLOAD": "Workload Distribution",
    "EFFICIENCY": "Efficiency Metrics",
    "SKILLS": "Skills Analysis",
}


def _dumps(value: Any, *, indent: int | None = None) -> str:
    return json.dumps(value, indent=indent, default=str)


def format_report(title: str, data: Mapping[str, Any], timeframe: str) -> ReportContent:
    """Format metric data as HTML and CSV.

    Args:
        title: Report title.
        data: Metric values keyed by name.
        timeframe: Report period, shown under the title.

    Returns:
        The rendered content. Each CSV row holds a key and its JSON-encoded value.
    """
    body = (
        f"<h2>{html.escape(title)}</h2>\n"
        f"<p>Report period: {html.escape(timeframe)}</p>\n"
        f"<div><pre>{html.escape(_dumps(dict(data), indent=2))}</pre></div>\n"
    )

    buffer = io.StringIO()
    buffer.write(f"{title}\nReport period: {timeframe}\n\n")
    writer = csv.writer(buffer, lineterminator="\n")
    for key, value in data.items():
        writer.writerow([key, _dumps(value)])
    return ReportContent(html=body, csv=buffer.getvalue())


class SummaryReportRenderer:
    """:class:`~portal_workflows.core.protocols.ReportRenderer` over pluggable metric sources.

    Args:
        sources: Async callables keyed by metric type. Each one receives the
            department ID and the timeframe and returns the metric values.
            Errors raised by a source propagate to the caller.

    Example:
        >>> async def workload(department_id, timeframe):
        ...     return {"open_tasks": 12}
        >>> renderer = SummaryReportRenderer({"WORKLOAD": workload})
    """

    def __init__(self, sources: Mapping[str, MetricSource]) -> None:
        self.sources = dict(sources)

    async def render(self, metric_type: str, timeframe: str, department_id: str | None) -> ReportContent:
        source = self.sources.get(metric_type)
        if source is None:
            message = f"No data available for {metric_type}"
            return ReportContent(html=f"<p>{html.escape(message)}</p>", csv=message)

        data = await source(department_id, timeframe)
        title = REPORT_TITLES.get(metric_type, metric_type.replace("_", " ").title())
        return format_report(title, data, timeframe)
