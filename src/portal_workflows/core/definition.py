"""Workflow template and step template structures.

This module provides the data structures for defining reusable workflow
templates: an ordered list of steps, each with an optional assignee and
duration.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID, uuid4

from portal_workflows.core.types import Priority, Role, WorkflowCategory
from portal_workflows.exceptions import WorkflowValidationError

__all__ = ["StepTemplate", "WorkflowTemplate", "number_steps", "parse_choice"]

E = TypeVar("E", bound=Enum)


def parse_choice(enum_type: type[E], value: Any, field_name: str) -> E:
    """Convert a raw value to a member of ``enum_type``.

    Raises:
        WorkflowValidationError: If the value is not a member's value.
    """
    try:
        return enum_type(value)
    except ValueError:
        raise WorkflowValidationError([f"Invalid {field_name} {value!r}"]) from None


@dataclass
class StepTemplate:
    """Definition of one stage of a workflow template.

    Attributes:
        name: Display name of the step. Required.
        step_number: 1-based position in the template. Derived from list order,
            never taken from user input.
        description: Optional human-readable description.
        assigned_role: Role expected to handle the step.
        assigned_user: User who will be assigned the step when an instance starts.
        assigned_department: Department responsible for the step.
        duration_in_days: Days allowed for the step once it starts.

    Example:
        >>> step = StepTemplate(name="Manager review", assigned_user="u-42", duration_in_days=2)
    """

    name: str
    step_number: int = 0
    description: str | None = None
    assigned_role: Role = Role.MANAGER
    assigned_user: str | None = None
    assigned_department: str | None = None
    duration_in_days: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "step_number": self.step_number,
            "description": self.description,
            "assigned_role": str(self.assigned_role),
            "assigned_user": self.assigned_user,
            "assigned_department": self.assigned_department,
            "duration_in_days": self.duration_in_days,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StepTemplate:
        """Build a step from a mapping, ignoring unknown keys.

        Args:
            data: Raw step data, e.g. from a request body or a JSON column.

        Returns:
            The step template. ``step_number`` is kept as given; use
            :func:`number_steps` to re-derive it. ``duration_in_days`` is not
            converted; :meth:`WorkflowTemplate.validate` checks it.

        Raises:
            WorkflowValidationError: If ``assigned_role`` is not a known role.
        """
        step_number = data.get("step_number") or 0
        return cls(
            name=data.get("name") or "",
            step_number=step_number if isinstance(step_number, int) else 0,
            description=data.get("description"),
            assigned_role=parse_choice(Role, data.get("assigned_role") or Role.MANAGER, "assigned_role"),
            assigned_user=data.get("assigned_user"),
            assigned_department=data.get("assigned_department"),
            duration_in_days=data.get("duration_in_days"),
        )


def number_steps(steps: Iterable[StepTemplate | Mapping[str, Any]]) -> list[StepTemplate]:
    """Copy steps and assign sequential step numbers from their position.

    Args:
        steps: Step templates or raw step mappings, in the desired order.

    Returns:
        New step templates numbered ``1..n`` in list order.
    """
    numbered = []
    for index, step in enumerate(steps, start=1):
        template = step if isinstance(step, StepTemplate) else StepTemplate.from_dict(step)
        numbered.append(replace(template, step_number=index))
    return numbered


@dataclass
class WorkflowTemplate:
    """Reusable, named definition of an ordered approval process.

    Attributes:
        name: Display name of the template.
        creator: ID of the user who created the template.
        steps: Ordered step templates.
        id: Unique identifier.
        description: Human-readable description.
        department: Department owning the template.
        category: Kind of process.
        priority: Default priority of instances.
        is_active: Whether new instances may be started.
        is_template: Always ``True`` for stored templates.
        tags: Free-form labels.
        current_active_workflows: IDs of instances currently running against this template.
        created_at: Creation timestamp.
        updated_at: Timestamp of the last change.
    """

    name: str
    creator: str
    steps: list[StepTemplate] = field(default_factory=list)
    id: UUID = field(default_factory=uuid4)
    description: str | None = None
    department: str | None = None
    category: WorkflowCategory = WorkflowCategory.CUSTOM
    priority: Priority = Priority.MEDIUM
    is_active: bool = True
    is_template: bool = True
    tags: list[str] = field(default_factory=list)
    current_active_workflows: list[UUID] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime | None = None

    def validate(self) -> list[str]:
        """Validate the template for common issues.

        Returns:
            List of validation error messages. Empty list if valid.
        """
        errors: list[str] = []

        if not self.name or not self.name.strip():
            errors.append("Workflow name is required")

        if not self.steps:
            errors.append("At least one step is required")

        for index, step in enumerate(self.steps, start=1):
            if not step.name or not step.name.strip():
                errors.append(f"Step {index} is missing a name")
            duration = step.duration_in_days
            if duration is not None and (isinstance(duration, bool) or not isinstance(duration, int)):
                errors.append(f"Step {index} duration must be a whole number of days")
            elif duration is not None and duration < 0:
                errors.append(f"Step {index} has a negative duration")
            if step.step_number != index:
                errors.append(f"Step {index} is numbered {step.step_number}")

        return errors
