"""Tests for core enums and type aliases."""

from __future__ import annotations

import pytest


@pytest.mark.unit
class TestWorkflowStatus:
    """Tests for WorkflowStatus enum."""

    def test_values_are_lowercase_names(self) -> None:
        from portal_workflows.core.types import WorkflowStatus

        assert [str(status) for status in WorkflowStatus] == ["active", "completed", "cancelled", "rejected"]

    @pytest.mark.parametrize(
        ("status", "terminal"),
        [("active", False), ("completed", True), ("cancelled", True), ("rejected", True)],
    )
    def test_is_terminal(self, status: str, terminal: bool) -> None:
        from portal_workflows.core.types import WorkflowStatus

        assert WorkflowStatus(status).is_terminal is terminal


@pytest.mark.unit
class TestStepEnums:
    """Tests for step status and action enums."""

    def test_step_status_values(self) -> None:
        from portal_workflows.core.types import StepStatus

        assert StepStatus.IN_PROGRESS == "in_progress"
        assert set(StepStatus) == {"pending", "in_progress", "approved", "rejected"}

    def test_step_action_values(self) -> None:
        from portal_workflows.core.types import StepAction

        assert StepAction("request_changes") is StepAction.REQUEST_CHANGES
        assert set(StepAction) == {"approve", "reject", "request_changes", "delegate", "comment"}

    def test_history_actions(self) -> None:
        from portal_workflows.core.types import HistoryAction

        assert HistoryAction.STEP_COMPLETED == "step_completed"
        assert HistoryAction.CHANGES_REQUESTED == "changes_requested"
        assert len(HistoryAction) == 9


@pytest.mark.unit
class TestTimeframe:
    """Tests for the report Timeframe enum."""

    def test_values_are_uppercase(self) -> None:
        from portal_workflows.core.types import Timeframe

        assert [str(timeframe) for timeframe in Timeframe] == ["DAILY", "WEEKLY", "MONTHLY", "QUARTERLY"]

    def test_lookup_is_exact(self) -> None:
        from portal_workflows.core.types import Timeframe

        with pytest.raises(ValueError):
            Timeframe("weekly")


@pytest.mark.unit
class TestOtherEnums:
    def test_entity_types(self) -> None:
        from portal_workflows.core.types import EntityType

        assert set(EntityType) == {"task", "document", "user", "none"}

    def test_roles(self) -> None:
        from portal_workflows.core.types import Role

        assert Role.DEPARTMENT_HEAD == "department_head"

    def test_defaults_exist(self) -> None:
        from portal_workflows.core.types import Priority, WorkflowCategory

        assert Priority("medium") is Priority.MEDIUM
        assert WorkflowCategory("custom") is WorkflowCategory.CUSTOM
