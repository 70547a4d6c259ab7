"""Tests for timeframe cron mapping."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest


@pytest.mark.unit
class TestGetCronExpression:
    """Tests for get_cron_expression."""

    @pytest.mark.parametrize(
        ("timeframe", "expected"),
        [
            ("DAILY", "0 8 * * *"),
            ("WEEKLY", "0 8 * * 1"),
            ("MONTHLY", "0 8 1 * *"),
            ("QUARTERLY", "0 8 1 1,4,7,10 *"),
        ],
    )
    def test_known_timeframes(self, timeframe: str, expected: str) -> None:
        from portal_workflows.scheduler.cron import get_cron_expression

        assert get_cron_expression(timeframe) == expected

    @pytest.mark.parametrize("timeframe", ["UNKNOWN", "weekly", "", " DAILY"])
    def test_unknown_timeframes(self, timeframe: str) -> None:
        from portal_workflows.scheduler.cron import get_cron_expression

        assert get_cron_expression(timeframe) is None

    def test_custom_hour(self) -> None:
        from portal_workflows.scheduler.cron import get_cron_expression

        assert get_cron_expression("DAILY", hour=6) == "0 6 * * *"


@pytest.mark.unit
class TestNextFireTime:
    """Tests for next_fire_time."""

    def test_weekly_fires_next_monday(self) -> None:
        from portal_workflows.scheduler.cron import next_fire_time

        wednesday = datetime(2024, 3, 6, 10, tzinfo=timezone.utc)

        assert next_fire_time("0 8 * * 1", wednesday) == datetime(2024, 3, 11, 8, tzinfo=timezone.utc)

    def test_strictly_after(self) -> None:
        from portal_workflows.scheduler.cron import next_fire_time

        at_fire_time = datetime(2024, 3, 6, 8, tzinfo=timezone.utc)

        assert next_fire_time("0 8 * * *", at_fire_time) == datetime(2024, 3, 7, 8, tzinfo=timezone.utc)

    def test_quarterly(self) -> None:
        from portal_workflows.scheduler.cron import next_fire_time

        after = datetime(2024, 4, 1, 9, tzinfo=timezone.utc)

        assert next_fire_time("0 8 1 1,4,7,10 *", after) == datetime(2024, 7, 1, 8, tzinfo=timezone.utc)

    def test_evaluated_in_timezone_of_reference(self) -> None:
        from portal_workflows.scheduler.cron import next_fire_time

        berlin = ZoneInfo("Europe/Berlin")
        after = datetime(2024, 3, 6, 10, tzinfo=timezone.utc).astimezone(berlin)

        fire = next_fire_time("0 8 * * *", after)

        assert fire == datetime(2024, 3, 7, 8, tzinfo=berlin)
        assert fire.astimezone(timezone.utc).hour == 7
