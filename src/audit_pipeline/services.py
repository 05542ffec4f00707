"""
Wiring of pipeline components.

Builds one instance of every component around a shared store, clock and
settings, so the API and CLI assemble the pipeline the same way.
"""

import logging
from dataclasses import dataclass, field

from audit_pipeline.analytics.service import ActivityAnalytics
from audit_pipeline.config import AuditSettings
from audit_pipeline.core.clock import Clock, SystemClock
from audit_pipeline.export.exporter import ActivityExporter
from audit_pipeline.gateway.broadcast import BroadcastGateway
from audit_pipeline.monitoring.monitor import ActivityMonitor
from audit_pipeline.recorder import ActivityRecorder
from audit_pipeline.retention.manager import RetentionManager
from audit_pipeline.retrieval.service import ActivityRetrieval
from audit_pipeline.store.base import EventStore
from audit_pipeline.store.sqlite import SQLiteEventStore

logger = logging.getLogger(__name__)


@dataclass
class AuditServices:
    """Every pipeline component, sharing one store and clock."""

    settings: AuditSettings
    clock: Clock
    store: EventStore
    monitor: ActivityMonitor
    gateway: BroadcastGateway
    recorder: ActivityRecorder
    analytics: ActivityAnalytics
    retrieval: ActivityRetrieval
    retention: RetentionManager
    exporter: ActivityExporter
    owns_store: bool = field(default=False)

    @classmethod
    def build(
        cls,
        settings: AuditSettings | None = None,
        store: EventStore | None = None,
        clock: Clock | None = None,
    ) -> "AuditServices":
        """
        Assemble the pipeline.

        Args:
            settings: Pipeline settings (default: from environment)
            store: Event store to use (default: SQLite at settings.db_path)
            clock: Shared time source

        Returns:
            AuditServices with the gateway attached to the monitor
        """
        settings = settings or AuditSettings.from_env()
        clock = clock or SystemClock()
        owns_store = store is None
        if store is None:
            store = SQLiteEventStore(settings.db_path, clock=clock)

        monitor = ActivityMonitor(settings, clock=clock)
        gateway = BroadcastGateway()
        gateway.attach(monitor)

        return cls(
            settings=settings,
            clock=clock,
            store=store,
            monitor=monitor,
            gateway=gateway,
            recorder=ActivityRecorder(store, monitor, clock=clock),
            analytics=ActivityAnalytics(store, clock=clock),
            retrieval=ActivityRetrieval(store),
            retention=RetentionManager(store, settings, clock=clock),
            exporter=ActivityExporter(store, settings),
            owns_store=owns_store,
        )

    def close(self) -> None:
        """Disconnect stream clients and close the store if it was created here."""
        self.gateway.close_all()
        self.gateway.detach()
        if self.owns_store and isinstance(self.store, SQLiteEventStore):
            self.store.close()
        logger.debug("Audit services closed")
