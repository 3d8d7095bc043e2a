"""View refresh scheduler.

Refreshes the daily sales view on a schedule and on demand. Schedules are
given as a 5-field cron expression, a descriptor such as ``@hourly``, or a
fixed interval such as ``@every 15m``:

    "0 * * * *"    top of every hour
    "@daily"       midnight UTC
    "@every 90s"   every 90 seconds

Example:
    scheduler = ViewRefreshScheduler(store, RefreshSchedule("@hourly"))
    await scheduler.start()
    ...
    await scheduler.stop()  # waits for a running refresh
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import UTC, datetime, timedelta

from orderflow.observability.metrics import MetricsRegistry, get_metrics
from orderflow.persistence.store import OrderStore

logger = logging.getLogger(__name__)

# Feb 29 can be eight years away (2096 -> 2104)
_MAX_SEARCH_DAYS = 8 * 366 + 1

SCHEDULE_DESCRIPTORS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

_EVERY_PATTERN = re.compile(r"^@every\s+(\d+)([smh])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600}


class CronExpression:
    """Parse and evaluate cron expressions.

    Supports standard 5-field cron format:
    - minute (0-59)
    - hour (0-23)
    - day of month (1-31)
    - month (1-12)
    - day of week (0-6, 0=Sunday)

    Special characters:
    - * : any value
    - */n : every n values
    - n-m : range from n to m
    - n-m/s : every s values from n to m
    - n,m : specific values n and m

    As in cron, when both day fields are restricted a time matches if
    either of them does.
    """

    def __init__(self, expression: str) -> None:
        self.expression = expression
        self._parse(expression)

    def _parse(self, expression: str) -> None:
        parts = expression.strip().split()
        if len(parts) != 5:
            raise ValueError(f"Invalid cron expression (expected 5 parts): {expression}")

        self.minute = self._parse_field(parts[0], 0, 59)
        self.hour = self._parse_field(parts[1], 0, 23)
        self.day_of_month = self._parse_field(parts[2], 1, 31)
        self.month = self._parse_field(parts[3], 1, 12)
        self.day_of_week = self._parse_field(parts[4], 0, 6)
        self._dom_restricted = parts[2] != "*"
        self._dow_restricted = parts[4] != "*"

    def _parse_field(self, field: str, min_val: int, max_val: int) -> set[int]:
        values: set[int] = set()

        for part in field.split(","):
            step = 1
            if "/" in part:
                part, step_text = part.split("/", 1)
                step = int(step_text)
                if step < 1:
                    raise ValueError(f"Invalid step in cron field: {field}")

            if part == "*":
                start, end = min_val, max_val
            elif "-" in part:
                start, end = map(int, part.split("-", 1))
            else:
                start = end = int(part)

            if start < min_val or end > max_val or start > end:
                raise ValueError(f"Cron field out of range {min_val}-{max_val}: {field}")
            values.update(range(start, end + 1, step))

        return values

    def _day_matches(self, dt: datetime) -> bool:
        # Cron counts weekdays from Sunday, Python from Monday
        dom = dt.day in self.day_of_month
        dow = (dt.weekday() + 1) % 7 in self.day_of_week
        if self._dom_restricted and self._dow_restricted:
            return dom or dow
        return dom and dow

    def matches(self, dt: datetime) -> bool:
        """Check if datetime matches this cron expression."""
        return (
            dt.minute in self.minute
            and dt.hour in self.hour
            and dt.month in self.month
            and self._day_matches(dt)
        )

    def next_run(self, after: datetime) -> datetime:
        """First matching minute strictly after ``after``.

        Skips whole days and hours that cannot match.

        Raises:
            ValueError: If no date ever matches, e.g. "0 0 30 2 *".
        """
        current = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
        limit = current + timedelta(days=_MAX_SEARCH_DAYS)

        while current <= limit:
            if current.month not in self.month or not self._day_matches(current):
                current = (current + timedelta(days=1)).replace(hour=0, minute=0)
            elif current.hour not in self.hour:
                current = (current + timedelta(hours=1)).replace(minute=0)
            elif current.minute not in self.minute:
                current += timedelta(minutes=1)
            else:
                return current

        raise ValueError(f"No matching time found for: {self.expression}")


class RefreshSchedule:
    """When the aggregate view is refreshed.

    Raises:
        ValueError: If the expression is not a cron expression, a known
            descriptor or an ``@every`` interval, or names a date that
            never occurs.
    """

    def __init__(self, expression: str) -> None:
        self.expression = expression.strip()
        self.interval: timedelta | None = None
        self.cron: CronExpression | None = None

        every = _EVERY_PATTERN.match(self.expression)
        if every:
            seconds = int(every.group(1)) * _UNIT_SECONDS[every.group(2)]
            if seconds <= 0:
                raise ValueError(f"Interval must be positive: {expression}")
            self.interval = timedelta(seconds=seconds)
        elif self.expression.startswith("@"):
            cron = SCHEDULE_DESCRIPTORS.get(self.expression.lower())
            if cron is None:
                raise ValueError(f"Unknown schedule descriptor: {expression}")
            self.cron = CronExpression(cron)
        else:
            self.cron = CronExpression(self.expression)

        if self.cron is not None:
            # Fails for dates that never occur
            self.cron.next_run(datetime.now(UTC))

    def next_run(self, after: datetime | None = None) -> datetime:
        """Next refresh time after ``after`` (default: now, UTC)."""
        if after is None:
            after = datetime.now(UTC)
        if self.interval is not None:
            return after + self.interval
        assert self.cron is not None
        return self.cron.next_run(after)

    def __repr__(self) -> str:
        return f"RefreshSchedule({self.expression!r})"


class ViewRefreshScheduler:
    """Periodic and manual refresh of the daily sales view.

    Scheduled and manual refreshes share one code path and are not
    serialized against each other; the store's concurrent refresh keeps
    overlapping runs safe.
    """

    def __init__(
        self,
        store: OrderStore,
        schedule: RefreshSchedule,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self.store = store
        self.schedule = schedule
        self.last_run: datetime | None = None
        self.last_error: str | None = None
        self.next_run: datetime | None = None
        self._metrics = metrics or get_metrics()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the periodic refresh task."""
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name="view-refresh-scheduler")
        logger.info(f"View refresh scheduler started ({self.schedule.expression})")

    async def stop(self) -> None:
        """Stop the periodic task; a refresh that is running completes first."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("View refresh scheduler stopped")

    async def trigger(self, trigger: str = "manual") -> None:
        """Refresh now and return when the refresh has finished.

        Raises:
            StoreError: If the refresh failed or timed out.
        """
        await self._refresh(trigger)

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            now = datetime.now(UTC)
            self.next_run = self.schedule.next_run(now)
            delay = max((self.next_run - now).total_seconds(), 0.0)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

            await self._refresh("scheduled", reraise=False)

    async def _refresh(self, trigger: str, reraise: bool = True) -> None:
        logger.info(f"Refreshing daily sales view ({trigger})", extra={"component": "scheduler"})
        try:
            await self.store.refresh_daily_sales()
        except Exception as e:
            self.last_error = str(e)
            self._metrics.view_refresh_total.labels(trigger=trigger, status="error").inc()
            logger.error(
                f"Daily sales view refresh failed ({trigger})",
                extra={"component": "scheduler", "error": str(e)},
            )
            if reraise:
                raise
            return

        self.last_run = datetime.now(UTC)
        self.last_error = None
        self._metrics.view_refresh_total.labels(trigger=trigger, status="success").inc()
        logger.info("Daily sales view refreshed", extra={"component": "scheduler"})
