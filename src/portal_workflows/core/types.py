"""Core type definitions for portal-workflows.

This module defines the fundamental enums and type aliases used throughout
the workflow engine and the report scheduler.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum, auto
from typing import TypeAlias

__all__ = [
    "ApprovalStatus",
    "EntityType",
    "FormData",
    "FormValue",
    "HistoryAction",
    "Priority",
    "Role",
    "StepAction",
    "StepStatus",
    "Timeframe",
    "WorkflowCategory",
    "WorkflowStatus",
]


class WorkflowStatus(StrEnum):
    """Overall status of a workflow instance.

    Attributes:
        ACTIVE: Workflow is waiting on its current step.
        COMPLETED: Every step was approved.
        CANCELLED: Workflow was withdrawn by its initiator or an admin.
        REJECTED: A step was rejected.
    """

    ACTIVE = auto()
    COMPLETED = auto()
    CANCELLED = auto()
    REJECTED = auto()

    @property
    def is_terminal(self) -> bool:
        """Whether no further transitions are permitted from this status."""
        return self is not WorkflowStatus.ACTIVE


class StepStatus(StrEnum):
    """Status of a single step of a workflow instance.

    Attributes:
        PENDING: Step has not been reached yet.
        IN_PROGRESS: Step is the current step, waiting on its assignee.
        APPROVED: Step was approved.
        REJECTED: Step was rejected, which also rejects the workflow.
    """

    PENDING = auto()
    IN_PROGRESS = auto()
    APPROVED = auto()
    REJECTED = auto()


class StepAction(StrEnum):
    """Actions an actor can take on the current step."""

    APPROVE = auto()
    REJECT = auto()
    REQUEST_CHANGES = auto()
    DELEGATE = auto()
    COMMENT = auto()


class HistoryAction(StrEnum):
    """Kinds of entries recorded in a workflow instance history."""

    CREATED = auto()
    UPDATED = auto()
    STEP_COMPLETED = auto()
    STEP_REJECTED = auto()
    CHANGES_REQUESTED = auto()
    REASSIGNED = auto()
    CANCELLED = auto()
    COMPLETED = auto()
    REJECTED = auto()


class EntityType(StrEnum):
    """Kinds of portal records a workflow instance can be attached to."""

    TASK = auto()
    DOCUMENT = auto()
    USER = auto()
    NONE = auto()


class ApprovalStatus(StrEnum):
    """Approval outcome pushed to the related task or document."""

    PENDING = auto()
    APPROVED = auto()
    REJECTED = auto()
    CHANGES_REQUESTED = auto()
    CANCELLED = auto()


class Role(StrEnum):
    """Portal roles relevant to workflow authorization."""

    ADMIN = auto()
    MANAGER = auto()
    EMPLOYEE = auto()
    DEPARTMENT_HEAD = auto()
    SPECIFIC_USER = auto()


class WorkflowCategory(StrEnum):
    APPROVAL = auto()
    ONBOARDING = auto()
    OFFBOARDING = auto()
    PROCUREMENT = auto()
    REVIEW = auto()
    CUSTOM = auto()


class Priority(StrEnum):
    LOW = auto()
    MEDIUM = auto()
    HIGH = auto()
    URGENT = auto()


class Timeframe(StrEnum):
    """Recurrence of a scheduled report.

    Attributes:
        DAILY: Every day.
        WEEKLY: Every Monday.
        MONTHLY: First day of every month.
        QUARTERLY: First day of January, April, July and October.
    """

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"


FormValue: TypeAlias = str | int | float | bool | datetime
"""A single value an actor can submit in a step form."""

FormData: TypeAlias = dict[str, FormValue]
"""Form values collected on a step, keyed by field name."""
