"""Background processing for orderflow.

Provides:
- PersistenceWorker: consumes the durable queue, writes Postgres then
  Elasticsearch, acknowledges only after both succeed
- ViewRefreshScheduler: periodic and manual refresh of the daily sales view

Example:
    worker = PersistenceWorker(store, search, consumer)
    await worker.run()

    scheduler = ViewRefreshScheduler(store, RefreshSchedule("@hourly"))
    await scheduler.start()
"""

from orderflow.jobs.scheduler import (
    SCHEDULE_DESCRIPTORS,
    CronExpression,
    RefreshSchedule,
    ViewRefreshScheduler,
)
from orderflow.jobs.worker import (
    DEFAULT_MESSAGE_TIMEOUT,
    DeliveryOutcome,
    PersistenceWorker,
    WorkItemState,
)

__all__ = [
    # Worker
    "PersistenceWorker",
    "DeliveryOutcome",
    "WorkItemState",
    "DEFAULT_MESSAGE_TIMEOUT",
    # Scheduler
    "ViewRefreshScheduler",
    "RefreshSchedule",
    "CronExpression",
    "SCHEDULE_DESCRIPTORS",
]
