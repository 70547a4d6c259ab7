"""Litestar plugin for workflow and report scheduling integration.

This module provides the WorkflowPlugin, which wires the workflow engine,
the report scheduler and the report manager into a Litestar application.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from litestar.di import Provide
from litestar.plugins import InitPluginProtocol

from portal_workflows.engine.memory import MemoryInstanceStore, MemoryReportStore, MemoryTemplateStore
from portal_workflows.engine.workflow import WorkflowEngine
from portal_workflows.scheduler.config import SchedulerConfig
from portal_workflows.scheduler.rendering import SummaryReportRenderer
from portal_workflows.scheduler.reports import ScheduledReportManager
from portal_workflows.scheduler.service import ReportScheduler

if TYPE_CHECKING:
    from litestar import Litestar
    from litestar.config.app import AppConfig

    from portal_workflows.core.protocols import (
        DeliveryTransport,
        InstanceStore,
        Notifier,
        RelatedEntityBridge,
        ReportRenderer,
        ReportStore,
        TemplateStore,
    )

__all__ = ["WorkflowPlugin", "WorkflowPluginConfig"]


@dataclass
class WorkflowPluginConfig:
    """Configuration for the WorkflowPlugin.

    Attributes:
        template_store: Template persistence. Defaults to an in-memory store.
        instance_store: Instance persistence. Defaults to an in-memory store.
        report_store: Scheduled report persistence. Defaults to an in-memory store.
        entity_bridge: Optional bridge to the portal's tasks, documents and users.
        notifier: Optional in-app notification sink.
        report_renderer: Report renderer. Defaults to a renderer without metric
            sources, which renders a "no data" notice.
        delivery_transport: Optional delivery transport for scheduled reports.
        scheduler_config: Scheduler settings.
        dependency_key_engine: The key used for dependency injection of the
            WorkflowEngine. Defaults to "workflow_engine".
        dependency_key_scheduler: The key used for dependency injection of the
            ReportScheduler. Defaults to "report_scheduler".
        dependency_key_reports: The key used for dependency injection of the
            ScheduledReportManager. Defaults to "report_manager".
        start_scheduler: Whether to start the scheduler on app startup and stop
            it on shutdown. Defaults to True.
        register_exception_handlers: Whether to map workflow errors to HTTP
            responses. Defaults to True.
    """

    template_store: TemplateStore | None = None
    instance_store: InstanceStore | None = None
    report_store: ReportStore | None = None
    entity_bridge: RelatedEntityBridge | None = None
    notifier: Notifier | None = None
    report_renderer: ReportRenderer | None = None
    delivery_transport: DeliveryTransport | None = None
    scheduler_config: SchedulerConfig = field(default_factory=SchedulerConfig)
    dependency_key_engine: str = "workflow_engine"
    dependency_key_scheduler: str = "report_scheduler"
    dependency_key_reports: str = "report_manager"
    start_scheduler: bool = True
    register_exception_handlers: bool = True


class WorkflowPlugin(InitPluginProtocol):
    """Litestar plugin for workflows and scheduled reports.

    Example:
        Basic usage::

            from litestar import Litestar, post
            from portal_workflows import Actor, WorkflowEngine, WorkflowPlugin, WorkflowPluginConfig


            @post("/workflows/{instance_id:uuid}/approve")
            async def approve(instance_id: UUID, workflow_engine: WorkflowEngine, actor: Actor) -> dict:
                instance = await workflow_engine.approve(instance_id, actor)
                return instance.to_dict()


            app = Litestar(
                route_handlers=[approve],
                plugins=[WorkflowPlugin(config=WorkflowPluginConfig(delivery_transport=transport))],
            )
    """

    __slots__ = ("_config", "_engine", "_reports", "_scheduler")

    def __init__(self, config: WorkflowPluginConfig | None = None) -> None:
        """Initialize the plugin.

        Args:
            config: Optional configuration for the plugin.
        """
        self._config = config or WorkflowPluginConfig()
        self._engine: WorkflowEngine | None = None
        self._scheduler: ReportScheduler | None = None
        self._reports: ScheduledReportManager | None = None

    @property
    def engine(self) -> WorkflowEngine:
        """Get the workflow engine.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._engine is None:
            msg = "WorkflowPlugin has not been initialized. Access engine after app startup."
            raise RuntimeError(msg)
        return self._engine

    @property
    def scheduler(self) -> ReportScheduler:
        """Get the report scheduler.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._scheduler is None:
            msg = "WorkflowPlugin has not been initialized. Access scheduler after app startup."
            raise RuntimeError(msg)
        return self._scheduler

    @property
    def reports(self) -> ScheduledReportManager:
        """Get the scheduled report manager.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._reports is None:
            msg = "WorkflowPlugin has not been initialized. Access reports after app startup."
            raise RuntimeError(msg)
        return self._reports

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Initialize the plugin when the Litestar app starts.

        This method:
        1. Creates the engine, scheduler and report manager from the configured
           stores and collaborators
        2. Adds dependency providers to the app config
        3. Hooks the scheduler into app startup and shutdown
        4. Optionally registers the workflow exception handlers

        Args:
            app_config: The Litestar application configuration.

        Returns:
            The modified application configuration.
        """
        config = self._config
        report_store = config.report_store or MemoryReportStore()

        self._engine = WorkflowEngine(
            config.template_store or MemoryTemplateStore(),
            config.instance_store or MemoryInstanceStore(),
            entities=config.entity_bridge,
            notifier=config.notifier,
        )
        self._scheduler = ReportScheduler(
            report_store,
            config.report_renderer or SummaryReportRenderer({}),
            config.delivery_transport,
            config=config.scheduler_config,
        )
        self._reports = ScheduledReportManager(report_store, self._scheduler)

        def provide_engine() -> WorkflowEngine:
            return self._engine  # type: ignore[return-value]

        def provide_scheduler() -> ReportScheduler:
            return self._scheduler  # type: ignore[return-value]

        def provide_reports() -> ScheduledReportManager:
            return self._reports  # type: ignore[return-value]

        app_config.dependencies[config.dependency_key_engine] = Provide(provide_engine, sync_to_thread=False)
        app_config.dependencies[config.dependency_key_scheduler] = Provide(provide_scheduler, sync_to_thread=False)
        app_config.dependencies[config.dependency_key_reports] = Provide(provide_reports, sync_to_thread=False)

        if config.start_scheduler:
            app_config.on_startup.append(self._start_scheduler)
            app_config.on_shutdown.append(self._stop_scheduler)

        if config.register_exception_handlers:
            from portal_workflows.web.exceptions import exception_handlers

            for exc_class, handler in exception_handlers().items():
                app_config.exception_handlers.setdefault(exc_class, handler)

        return app_config

    async def _start_scheduler(self, _app: Litestar) -> None:
        await self.scheduler.start()

    async def _stop_scheduler(self, _app: Litestar) -> None:
        await self.scheduler.stop()
