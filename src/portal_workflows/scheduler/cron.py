"""Timeframe to cron mapping and fire time computation."""

from __future__ import annotations

from datetime import datetime

from croniter import croniter

from portal_workflows.core.types import Timeframe

__all__ = ["get_cron_expression", "next_fire_time"]

_CRON_TEMPLATES = {
    Timeframe.DAILY: "0 {hour} * * *",
    Timeframe.WEEKLY: "0 {hour} * * 1",
    Timeframe.MONTHLY: "0 {hour} 1 * *",
    Timeframe.QUARTERLY: "0 {hour} 1 1,4,7,10 *",
}


def get_cron_expression(timeframe: str, *, hour: int = 8) -> str | None:
    """Map a report timeframe to a five-field cron expression.

    Args:
        timeframe: DAILY, WEEKLY, MONTHLY or QUARTERLY. Matching is exact.
        hour: Hour of day the report fires at.

    Returns:
        The cron expression, or None for any other timeframe.

    Example:
        >>> get_cron_expression("WEEKLY")
        '0 8 * * 1'
    """
    try:
        template = _CRON_TEMPLATES[Timeframe(timeframe)]
    except ValueError:
        return None
    return template.format(hour=hour)


def next_fire_time(expression: str, after: datetime) -> datetime:
    """Return the first time strictly after ``after`` matching the expression.

    The expression is evaluated in the timezone of ``after``, which must be
    timezone aware.
    """
    return croniter(expression, after).get_next(datetime)
