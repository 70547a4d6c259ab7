"""Concrete data models for portal-workflows.

This module provides the dataclasses for workflow runtime state (instances,
their step records, history and comments), scheduled reports, and the small
value objects exchanged with external collaborators.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from portal_workflows.core.definition import parse_choice
from portal_workflows.core.types import (
    EntityType,
    FormData,
    FormValue,
    HistoryAction,
    Priority,
    Role,
    StepAction,
    StepStatus,
    WorkflowStatus,
)

__all__ = [
    "Actor",
    "Attachment",
    "HistoryEntry",
    "MailAttachment",
    "Notification",
    "Recipient",
    "RelatedEntity",
    "ReportContent",
    "ScheduledReport",
    "StepActionRecord",
    "StepRuntime",
    "WorkflowComment",
    "WorkflowInstanceData",
    "dump_datetime",
    "load_datetime",
]

_DATE_TAG = "$date"


def dump_datetime(value: datetime | None) -> str | None:
    """Serialize a datetime to an ISO-8601 string."""
    return value.isoformat() if value is not None else None


def load_datetime(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 string, treating naive values as UTC."""
    if value is None:
        return None
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _dump_form_value(value: FormValue) -> Any:
    if isinstance(value, datetime):
        return {_DATE_TAG: value.isoformat()}
    return value


def _load_form_value(value: Any) -> FormValue:
    if isinstance(value, Mapping) and _DATE_TAG in value:
        return load_datetime(value[_DATE_TAG])  # type: ignore[return-value]
    return value


@dataclass(frozen=True)
class Actor:
    """Authorization context for the user performing an operation.

    Attributes:
        id: User ID.
        role: Portal role of the user.
        name: Display name, used in history details.
        department: Department the user belongs to.
    """

    id: str
    role: Role = Role.EMPLOYEE
    name: str | None = None
    department: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", parse_choice(Role, self.role, "role"))

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass
class Attachment:
    """File reference attached to a step action."""

    name: str
    path: str
    mime_type: str | None = None
    size: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "path": self.path, "mime_type": self.mime_type, "size": self.size}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Attachment:
        return cls(
            name=data["name"],
            path=data["path"],
            mime_type=data.get("mime_type"),
            size=data.get("size"),
        )


@dataclass
class StepActionRecord:
    """One entry of a step's append-only action log."""

    action: StepAction
    actor: str
    timestamp: datetime
    comment: str | None = None
    attachments: list[Attachment] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": str(self.action),
            "actor": self.actor,
            "timestamp": dump_datetime(self.timestamp),
            "comment": self.comment,
            "attachments": [attachment.to_dict() for attachment in self.attachments],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StepActionRecord:
        return cls(
            action=StepAction(data["action"]),
            actor=data["actor"],
            timestamp=load_datetime(data["timestamp"]),  # type: ignore[arg-type]
            comment=data.get("comment"),
            attachments=[Attachment.from_dict(item) for item in data.get("attachments") or []],
        )


@dataclass
class StepRuntime:
    """Mutable per-instance record of one step.

    Created eagerly from the template step when the instance starts.

    Attributes:
        step_number: 1-based position, copied from the template.
        name: Step name, copied from the template.
        description: Step description, copied from the template.
        status: Current step status.
        assigned_to: User responsible for the step.
        duration_in_days: Days allowed once the step starts.
        start_date: When the step became in progress.
        due_date: ``start_date`` plus ``duration_in_days``, when a duration is defined.
        completed_date: When the step was approved or rejected.
        actions: Append-only action log.
        form_data: Values submitted on the step, merged per key.
    """

    step_number: int
    name: str
    description: str | None = None
    status: StepStatus = StepStatus.PENDING
    assigned_to: str | None = None
    duration_in_days: int | None = None
    start_date: datetime | None = None
    due_date: datetime | None = None
    completed_date: datetime | None = None
    actions: list[StepActionRecord] = field(default_factory=list)
    form_data: FormData = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_number": self.step_number,
            "name": self.name,
            "description": self.description,
            "status": str(self.status),
            "assigned_to": self.assigned_to,
            "duration_in_days": self.duration_in_days,
            "start_date": dump_datetime(self.start_date),
            "due_date": dump_datetime(self.due_date),
            "completed_date": dump_datetime(self.completed_date),
            "actions": [record.to_dict() for record in self.actions],
            "form_data": {key: _dump_form_value(value) for key, value in self.form_data.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StepRuntime:
        return cls(
            step_number=data["step_number"],
            name=data["name"],
            description=data.get("description"),
            status=StepStatus(data.get("status") or StepStatus.PENDING),
            assigned_to=data.get("assigned_to"),
            duration_in_days=data.get("duration_in_days"),
            start_date=load_datetime(data.get("start_date")),
            due_date=load_datetime(data.get("due_date")),
            completed_date=load_datetime(data.get("completed_date")),
            actions=[StepActionRecord.from_dict(item) for item in data.get("actions") or []],
            form_data={key: _load_form_value(value) for key, value in (data.get("form_data") or {}).items()},
        )


@dataclass
class HistoryEntry:
    """One entry of an instance's append-only history."""

    action: HistoryAction
    actor: str
    timestamp: datetime
    details: str
    step_number: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": str(self.action),
            "actor": self.actor,
            "timestamp": dump_datetime(self.timestamp),
            "details": self.details,
            "step_number": self.step_number,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HistoryEntry:
        return cls(
            action=HistoryAction(data["action"]),
            actor=data["actor"],
            timestamp=load_datetime(data["timestamp"]),  # type: ignore[arg-type]
            details=data.get("details") or "",
            step_number=data.get("step_number"),
        )


@dataclass
class WorkflowComment:
    """Free-form comment posted on an instance."""

    actor: str
    text: str
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"actor": self.actor, "text": self.text, "timestamp": dump_datetime(self.timestamp)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorkflowComment:
        return cls(actor=data["actor"], text=data["text"], timestamp=load_datetime(data["timestamp"]))  # type: ignore[arg-type]


@dataclass
class RelatedEntity:
    """Reference to the task, document or user an instance is attached to.

    Attributes:
        entity_type: Kind of the related record.
        entity_id: ID of the related record.
        data: Cached snapshot of the record, refreshed on read.
    """

    entity_type: EntityType = EntityType.NONE
    entity_id: str | None = None
    data: dict[str, Any] | None = None

    @property
    def is_set(self) -> bool:
        return self.entity_type is not EntityType.NONE and self.entity_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {"entity_type": str(self.entity_type), "entity_id": self.entity_id, "data": self.data}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> RelatedEntity:
        if not data:
            return cls()
        return cls(
            entity_type=EntityType(data.get("entity_type") or EntityType.NONE),
            entity_id=data.get("entity_id"),
            data=data.get("data"),
        )


@dataclass
class WorkflowInstanceData:
    """Runtime state of one execution of a workflow template.

    Attributes:
        id: Unique identifier for this instance.
        template_id: Template the instance was created from. Never changes.
        name: Display name.
        initiator: ID of the user who started the instance.
        steps_data: One runtime record per template step.
        status: Overall status.
        current_step: 1-based pointer into ``steps_data``.
        department: Department the instance belongs to.
        priority: Priority, defaulting to the template's.
        start_date: When the instance was started.
        due_date: Optional caller-supplied deadline.
        completed_date: When the instance completed.
        related_entity: Attached task, document or user.
        history: Append-only audit trail.
        comments: Append-only comments.
        version: Incremented on every persisted change.
    """

    template_id: UUID
    name: str
    initiator: str
    steps_data: list[StepRuntime] = field(default_factory=list)
    id: UUID = field(default_factory=uuid4)
    status: WorkflowStatus = WorkflowStatus.ACTIVE
    current_step: int = 1
    department: str | None = None
    priority: Priority = Priority.MEDIUM
    start_date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    due_date: datetime | None = None
    completed_date: datetime | None = None
    related_entity: RelatedEntity = field(default_factory=RelatedEntity)
    history: list[HistoryEntry] = field(default_factory=list)
    comments: list[WorkflowComment] = field(default_factory=list)
    version: int = 0

    @property
    def current(self) -> StepRuntime | None:
        """The runtime record ``current_step`` points at."""
        if 1 <= self.current_step <= len(self.steps_data):
            return self.steps_data[self.current_step - 1]
        return None

    @property
    def progress(self) -> int:
        """Percentage of approved steps, rounded to the nearest integer."""
        if not self.steps_data:
            return 0
        approved = sum(1 for step in self.steps_data if step.status is StepStatus.APPROVED)
        return round(approved / len(self.steps_data) * 100)

    @property
    def is_overdue(self) -> bool:
        """Whether the due date has passed on a non-terminal instance."""
        if self.due_date is None or self.status.is_terminal:
            return False
        return datetime.now(timezone.utc) > self.due_date

    def involves(self, user_id: str) -> bool:
        """Whether the user initiated the instance or is assigned one of its steps."""
        return self.initiator == user_id or any(step.assigned_to == user_id for step in self.steps_data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "template_id": str(self.template_id),
            "name": self.name,
            "initiator": self.initiator,
            "steps_data": [step.to_dict() for step in self.steps_data],
            "status": str(self.status),
            "current_step": self.current_step,
            "department": self.department,
            "priority": str(self.priority),
            "start_date": dump_datetime(self.start_date),
            "due_date": dump_datetime(self.due_date),
            "completed_date": dump_datetime(self.completed_date),
            "related_entity": self.related_entity.to_dict(),
            "history": [entry.to_dict() for entry in self.history],
            "comments": [comment.to_dict() for comment in self.comments],
            "version": self.version,
            "progress": self.progress,
            "is_overdue": self.is_overdue,
        }


@dataclass
class Recipient:
    email: str


@dataclass
class ScheduledReport:
    """Recurring report configuration.

    ``timeframe`` is kept as a plain string so that a malformed value can be
    persisted; it is only rejected when the report is scheduled.

    Attributes:
        name: Display name, also used in the mail subject and attachment name.
        metric_type: Kind of report to render (PERFORMANCE, WORKLOAD, ...).
        timeframe: DAILY, WEEKLY, MONTHLY or QUARTERLY.
        department: Department the report covers.
        created_by: ID of the user who created the report.
        id: Unique identifier.
        description: Human-readable description.
        recipients: Mail recipients.
        include_data_export: Whether to attach the CSV export.
        include_visualizations: Whether the rendered report should include charts.
        is_active: Whether the report is scheduled.
        last_run: When the report was last processed.
        next_run: Next computed fire time.
        created_at: Creation timestamp.
    """

    name: str
    metric_type: str
    timeframe: str
    department: str | None = None
    created_by: str | None = None
    id: UUID = field(default_factory=uuid4)
    description: str | None = None
    recipients: list[Recipient] = field(default_factory=list)
    include_data_export: bool = True
    include_visualizations: bool = True
    is_active: bool = True
    last_run: datetime | None = None
    next_run: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ReportContent:
    """Rendered report body and CSV export."""

    html: str
    csv: str


@dataclass
class MailAttachment:
    filename: str
    content: str | bytes
    content_type: str = "text/csv"


@dataclass
class Notification:
    """In-app notification emitted by the workflow engine.

    Attributes:
        type: Notification kind, e.g. ``WORKFLOW_TASK``.
        title: Short title.
        content: Message body.
        workflow_id: ID of the instance the notification is about.
        metadata: Extra values for the notification template.
    """

    type: str
    title: str
    content: str
    workflow_id: UUID | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
