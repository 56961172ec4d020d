from datetime import datetime, timezone

import pytest

from boardinghouse.services import scheduler as scheduler_module
from boardinghouse.services.scheduler import BillingScheduler, CronExpression, Job, default_jobs


class TestCronExpression:
    def test_monthly_first_at_eight(self):
        cron = CronExpression("0 8 1 * *")
        assert cron.matches(datetime(2024, 1, 1, 8, 0))
        assert not cron.matches(datetime(2024, 1, 1, 8, 1))
        assert not cron.matches(datetime(2024, 1, 2, 8, 0))

    def test_day_of_week_is_sunday_based(self):
        mondays = CronExpression("0 10 * * 1")
        assert mondays.matches(datetime(2024, 1, 1, 10, 0))  # a Monday
        assert not mondays.matches(datetime(2024, 1, 7, 10, 0))  # a Sunday
        assert CronExpression("0 10 * * 0").matches(datetime(2024, 1, 7, 10, 0))

    def test_lists_ranges_and_steps(self):
        cron = CronExpression("*/15 9-17 * * 1,3,5")
        assert cron.matches(datetime(2024, 1, 3, 9, 45))
        assert not cron.matches(datetime(2024, 1, 3, 9, 50))
        assert not cron.matches(datetime(2024, 1, 2, 9, 45))

    @pytest.mark.parametrize("expression", ["0 8 1 *", "60 * * * *", "* 24 * * *", "*/0 * * * *"])
    def test_invalid_expressions(self, expression):
        with pytest.raises(ValueError):
            CronExpression(expression)


class TestDefaultJobs:
    def test_schedule(self):
        assert {job.name: str(job.cron) for job in default_jobs()} == {
            "monthly-rent-generation": "0 8 1 * *",
            "payment-reminders": "0 9 * * *",
            "lease-reminders": "0 10 * * 1",
            "archival": "0 0 * * *",
            "tenant-room-reconciliation": "30 0 * * *",
        }

    def test_app_factory_builds_an_idle_scheduler(self, app):
        scheduler = app.extensions["billing_scheduler"]
        assert isinstance(scheduler, BillingScheduler)
        assert not scheduler.running
        assert scheduler.timezone.key == "America/New_York"


class TestRunDue:
    def _scheduler(self, app, calls, fail=False):
        def work():
            calls.append("ran")
            if fail:
                raise RuntimeError("boom")
            return {"ok": True}
        return BillingScheduler(app, jobs=[Job.cron_job("daily", "0 9 * * *", work)])

    def test_matching_minute_runs_once(self, app):
        calls = []
        scheduler = self._scheduler(app, calls)

        assert scheduler.run_due(datetime(2024, 1, 5, 9, 0)) == ["daily"]
        assert scheduler.run_due(datetime(2024, 1, 5, 9, 0, 40)) == []
        assert scheduler.run_due(datetime(2024, 1, 5, 10, 0)) == []
        assert scheduler.run_due(datetime(2024, 1, 6, 9, 0)) == ["daily"]
        assert calls == ["ran", "ran"]

    def test_moments_are_converted_to_the_scheduler_timezone(self, app):
        calls = []
        scheduler = self._scheduler(app, calls)

        # 14:00 UTC is 09:00 in New York in winter
        assert scheduler.run_due(datetime(2024, 1, 5, 14, 0, tzinfo=timezone.utc)) == ["daily"]
        assert scheduler.run_due(datetime(2024, 1, 6, 9, 0, tzinfo=timezone.utc)) == []

    def test_scheduled_failures_are_logged_not_raised(self, app, caplog):
        calls = []
        scheduler = self._scheduler(app, calls, fail=True)

        assert scheduler.run_due(datetime(2024, 1, 5, 9, 0)) == ["daily"]
        assert "Scheduled job daily failed" in caplog.text


class TestTriggers:
    def test_manual_trigger_returns_the_summary(self, app):
        result = app.extensions["billing_scheduler"].trigger_monthly_rent(target=datetime(2024, 2, 1))
        assert result == {"created": 0, "month": "2024-02", "skipped": [], "failed": []}

    def test_manual_trigger_reraises(self, app, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("archive table locked")

        monkeypatch.setattr(scheduler_module, "run_archival_sweep", broken)
        with pytest.raises(RuntimeError, match="locked"):
            app.extensions["billing_scheduler"].trigger_archival()

    def test_reconciliation_trigger(self, app):
        scheduler = app.extensions["billing_scheduler"]
        with app.app_context():
            assert scheduler.trigger_reconciliation() == {
                "manually_removed": 0,
                "room_cleanup_result": {"removed_count": 0, "rooms_updated": 0},
            }


class TestThread:
    def test_start_and_stop(self, app):
        scheduler = BillingScheduler(app, jobs=[], interval=0.01)
        scheduler.start()
        assert scheduler.running
        scheduler.start()  # already running, no second thread
        scheduler.stop(timeout=2)
        assert not scheduler.running
