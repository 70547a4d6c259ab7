"""Shared test fixtures for portal-workflows test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import pytest

from portal_workflows.core.models import Actor, ReportContent
from portal_workflows.core.types import EntityType, Role

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence
    from uuid import UUID

    from portal_workflows.core.models import MailAttachment, Notification
    from portal_workflows.core.types import ApprovalStatus
    from portal_workflows.engine.memory import MemoryInstanceStore, MemoryReportStore, MemoryTemplateStore
    from portal_workflows.engine.workflow import WorkflowEngine
    from portal_workflows.scheduler.service import ReportScheduler


# Wednesday; the next Monday 08:00 is 2024-03-11 08:00 UTC.
FROZEN_NOW = datetime(2024, 3, 6, 10, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock returning a fixed time that tests can move forward."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class MockNotifier:
    """Notifier recording every notification it receives."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, Notification]] = []

    async def notify(self, user_id: str, notification: Notification) -> None:
        self.sent.append((user_id, notification))

    def types_for(self, user_id: str) -> list[str]:
        return [notification.type for recipient, notification in self.sent if recipient == user_id]


class MockEntityBridge:
    """Related entity bridge over a dictionary of records."""

    def __init__(self, records: dict[tuple[EntityType, str], dict[str, Any]] | None = None) -> None:
        self.records = records or {}
        self.updates: list[dict[str, Any]] = []

    async def fetch(self, entity_type: EntityType, entity_id: str) -> dict[str, Any] | None:
        record = self.records.get((entity_type, entity_id))
        return dict(record) if record is not None else None

    async def update(
        self,
        entity_type: EntityType,
        entity_id: str,
        *,
        approval_status: ApprovalStatus,
        status: str | None = None,
        workflow_id: UUID | None = None,
    ) -> None:
        self.updates.append(
            {
                "entity_type": entity_type,
                "entity_id": entity_id,
                "approval_status": approval_status,
                "status": status,
                "workflow_id": workflow_id,
            }
        )
        record = self.records.setdefault((entity_type, entity_id), {})
        record["approval_status"] = str(approval_status)
        if status is not None:
            record["status"] = status


class MockTransport:
    """Delivery transport recording deliveries."""

    def __init__(self, *, result: bool = True, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.deliveries: list[dict[str, Any]] = []

    async def deliver(
        self,
        recipients: Sequence[str],
        subject: str,
        html: str,
        attachments: Sequence[MailAttachment],
    ) -> bool:
        self.deliveries.append(
            {"recipients": list(recipients), "subject": subject, "html": html, "attachments": list(attachments)}
        )
        if self.error is not None:
            raise self.error
        return self.result


class MockRenderer:
    """Renderer returning fixed content."""

    def __init__(self, *, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, str, str | None]] = []

    async def render(self, metric_type: str, timeframe: str, department_id: str | None) -> ReportContent:
        self.calls.append((metric_type, timeframe, department_id))
        if self.error is not None:
            raise self.error
        return ReportContent(html="<h2>Report</h2>", csv="Report\nkey,1")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FROZEN_NOW)


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin", role=Role.ADMIN, name="Ada Admin", department="ops")


@pytest.fixture
def manager() -> Actor:
    return Actor(id="manager", role=Role.MANAGER, name="Max Manager", department="eng")


@pytest.fixture
def employee() -> Actor:
    return Actor(id="employee", role=Role.EMPLOYEE, name="Eve Employee", department="eng")


@pytest.fixture
def user1() -> Actor:
    return Actor(id="u1", role=Role.EMPLOYEE, name="User One", department="eng")


@pytest.fixture
def user2() -> Actor:
    return Actor(id="u2", role=Role.EMPLOYEE, name="User Two", department="finance")


@pytest.fixture
def notifier() -> MockNotifier:
    return MockNotifier()


@pytest.fixture
def entity_bridge() -> MockEntityBridge:
    return MockEntityBridge(
        {
            (EntityType.TASK, "task-1"): {"title": "Buy laptops", "status": "todo"},
            (EntityType.DOCUMENT, "doc-1"): {"title": "Budget 2024"},
            (EntityType.USER, "u1"): {"name": "User One"},
        }
    )


@pytest.fixture
def template_store() -> MemoryTemplateStore:
    from portal_workflows.engine.memory import MemoryTemplateStore

    return MemoryTemplateStore()


@pytest.fixture
def instance_store() -> MemoryInstanceStore:
    from portal_workflows.engine.memory import MemoryInstanceStore

    return MemoryInstanceStore()


@pytest.fixture
def report_store() -> MemoryReportStore:
    from portal_workflows.engine.memory import MemoryReportStore

    return MemoryReportStore()


@pytest.fixture
def engine(
    template_store: MemoryTemplateStore,
    instance_store: MemoryInstanceStore,
    entity_bridge: MockEntityBridge,
    notifier: MockNotifier,
    clock: FrozenClock,
) -> WorkflowEngine:
    """Create a workflow engine over in-memory stores.

    Args:
        template_store: Template store fixture
        instance_store: Instance store fixture
        entity_bridge: Related entity bridge fixture
        notifier: Notifier fixture
        clock: Frozen clock fixture
    """
    from portal_workflows.engine.workflow import WorkflowEngine

    return WorkflowEngine(template_store, instance_store, entities=entity_bridge, notifier=notifier, clock=clock)


@pytest.fixture
def transport() -> MockTransport:
    return MockTransport()


@pytest.fixture
def renderer() -> MockRenderer:
    return MockRenderer()


@pytest.fixture
async def scheduler(
    report_store: MemoryReportStore,
    renderer: MockRenderer,
    transport: MockTransport,
    clock: FrozenClock,
) -> AsyncIterator[ReportScheduler]:
    """Create a report scheduler evaluating cron expressions in UTC.

    The scheduler is stopped after the test so no timer outlives it.
    """
    from portal_workflows.scheduler.config import SchedulerConfig
    from portal_workflows.scheduler.service import ReportScheduler

    scheduler = ReportScheduler(
        report_store,
        renderer,
        transport,
        config=SchedulerConfig(timezone="UTC"),
        clock=clock,
    )
    yield scheduler
    await scheduler.stop()


# Pytest configuration
def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers.

    Args:
        config: Pytest config object
    """
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "e2e: End-to-end tests")
