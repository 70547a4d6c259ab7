"""Workflow execution for portal-workflows.

This module exports the workflow engine, the step processor it delegates state
transitions to, and the in-memory stores.
"""

from __future__ import annotations

from portal_workflows.engine.memory import MemoryInstanceStore, MemoryReportStore, MemoryTemplateStore
from portal_workflows.engine.processor import StepProcessor, validate_form_data
from portal_workflows.engine.workflow import WorkflowEngine

__all__ = [
    "MemoryInstanceStore",
    "MemoryReportStore",
    "MemoryTemplateStore",
    "StepProcessor",
    "WorkflowEngine",
    "validate_form_data",
]
