"""
In-process billing scheduler.

Cron-style jobs are matched minute by minute in the configured timezone on a
single background thread. Each job runs inside the application context. A
scheduled run that fails is logged and the loop carries on; the ``trigger_*``
methods run the same operations on demand and let failures propagate.

There is no cross-process coordination: run one scheduler per deployment.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context

from boardinghouse.extensions import db
from .archival import run_archival_sweep
from .notifications import run_lease_expiry_sweep, run_overdue_and_reminder_sweep
from .occupancy import cleanup_archived_tenants
from .rent import run_monthly_rent_generation

logger = logging.getLogger(__name__)


class CronField:
    """One field of a cron expression: ``*``, values, ranges, lists and steps."""

    def __init__(self, expression: str, min_val: int, max_val: int) -> None:
        self.expression = expression
        self.min_val = min_val
        self.max_val = max_val
        self.values = self._parse(expression)

    def _parse(self, expr: str) -> set:
        values = set()
        for part in expr.split(","):
            part = part.strip()
            if not part:
                continue

            step = 1
            if "/" in part:
                part, step_str = part.split("/", 1)
                step = int(step_str)
                if step <= 0:
                    raise ValueError(f"Invalid cron step in {expr!r}")

            if part == "*":
                values.update(range(self.min_val, self.max_val + 1, step))
            elif "-" in part:
                start_str, end_str = part.split("-", 1)
                start, end = int(start_str), int(end_str)
                values.update(range(start, end + 1, step))
            else:
                values.add(int(part))

        out_of_range = [v for v in values if v < self.min_val or v > self.max_val]
        if out_of_range:
            raise ValueError(f"Cron field {expr!r} out of range {self.min_val}-{self.max_val}")
        return values

    def matches(self, value: int) -> bool:
        return value in self.values

    def __repr__(self) -> str:
        return f"CronField({self.expression!r})"


class CronExpression:
    """
    Five-field cron expression: minute hour day-of-month month day-of-week.

    Day-of-week uses cron numbering (0 = Sunday). Datetimes are matched as
    given, so convert to the scheduler's timezone first.
    """

    def __init__(self, expression: str) -> None:
        self.expression = expression.strip()
        parts = self.expression.split()
        if len(parts) != 5:
            raise ValueError(
                f"Cron expression must have exactly 5 fields "
                f"(minute hour dom month dow), got {len(parts)}: {self.expression!r}"
            )
        self.minute = CronField(parts[0], 0, 59)
        self.hour = CronField(parts[1], 0, 23)
        self.day_of_month = CronField(parts[2], 1, 31)
        self.month = CronField(parts[3], 1, 12)
        self.day_of_week = CronField(parts[4], 0, 6)

    def matches(self, dt: datetime) -> bool:
        cron_weekday = (dt.weekday() + 1) % 7
        return (
            self.minute.matches(dt.minute)
            and self.hour.matches(dt.hour)
            and self.day_of_month.matches(dt.day)
            and self.month.matches(dt.month)
            and self.day_of_week.matches(cron_weekday)
        )

    def __str__(self) -> str:
        return self.expression


@dataclass
class Job:
    name: str
    cron: CronExpression
    func: Callable[[], Any]
    last_run_key: Optional[str] = None

    @classmethod
    def cron_job(cls, name: str, expression: str, func: Callable[[], Any]) -> "Job":
        return cls(name=name, cron=CronExpression(expression), func=func)


def default_jobs() -> List[Job]:
    return [
        Job.cron_job("monthly-rent-generation", "0 8 1 * *", run_monthly_rent_generation),
        Job.cron_job("payment-reminders", "0 9 * * *", run_overdue_and_reminder_sweep),
        Job.cron_job("lease-reminders", "0 10 * * 1", run_lease_expiry_sweep),
        Job.cron_job("archival", "0 0 * * *", run_archival_sweep),
        Job.cron_job("tenant-room-reconciliation", "30 0 * * *", cleanup_archived_tenants),
    ]


class BillingScheduler:

    def __init__(self, app, jobs=None, timezone=None, interval=None):
        self.app = app
        self.timezone = ZoneInfo(timezone or app.config.get("SCHEDULER_TIMEZONE", "America/New_York"))
        self.interval = interval or app.config.get("SCHEDULER_LOOP_INTERVAL", 30)
        self.jobs = list(jobs) if jobs is not None else default_jobs()
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            logger.warning("Scheduler is already running.")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="billing-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scheduler started with %d jobs every %ss (%s).",
                    len(self.jobs), self.interval, self.timezone.key)

    def stop(self, timeout=None):
        if not self.running:
            return
        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("Scheduler stopped.")

    def _loop(self):
        while not self._stop_event.is_set():
            try:
                self.run_due()
            except Exception:
                logger.exception("Error in scheduler loop iteration")
            self._stop_event.wait(self.interval)

    def _local(self, moment=None) -> datetime:
        if moment is None:
            return datetime.now(self.timezone)
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.timezone)
        return moment.astimezone(self.timezone)

    def run_due(self, moment=None) -> List[str]:
        """Run every job matching ``moment``'s minute, at most once per minute. Returns the names run."""
        local = self._local(moment)
        key = local.strftime("%Y%m%d%H%M")
        ran = []
        for job in self.jobs:
            if job.last_run_key == key or not job.cron.matches(local):
                continue
            job.last_run_key = key
            self._run_scheduled(job)
            ran.append(job.name)
        return ran

    def _run_scheduled(self, job: Job):
        logger.info("Running scheduled job %s", job.name)
        with self.app.app_context():
            try:
                result = job.func()
            except Exception:
                db.session.rollback()
                logger.exception("Scheduled job %s failed", job.name)
                return None
        logger.info("Scheduled job %s completed: %s", job.name, result)
        return result

    def _run_now(self, name, func, *args, **kwargs):
        if has_app_context() and current_app._get_current_object() is self.app:
            return self._call(name, func, *args, **kwargs)
        with self.app.app_context():
            return self._call(name, func, *args, **kwargs)

    @staticmethod
    def _call(name, func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception:
            db.session.rollback()
            logger.exception("Manual trigger %s failed", name)
            raise

    def trigger_monthly_rent(self, target=None, actor_id=None):
        return self._run_now("monthly-rent-generation", run_monthly_rent_generation,
                             target_month=target, actor_id=actor_id)

    def trigger_overdue_and_reminders(self):
        return self._run_now("payment-reminders", run_overdue_and_reminder_sweep)

    def trigger_lease_expiry(self):
        return self._run_now("lease-reminders", run_lease_expiry_sweep)

    def trigger_archival(self):
        return self._run_now("archival", run_archival_sweep)

    def trigger_reconciliation(self):
        return self._run_now("tenant-room-reconciliation", cleanup_archived_tenants)


def get_scheduler():
    scheduler = current_app.extensions.get("billing_scheduler")
    if scheduler is None:
        scheduler = BillingScheduler(current_app._get_current_object())
        current_app.extensions["billing_scheduler"] = scheduler
    return scheduler
