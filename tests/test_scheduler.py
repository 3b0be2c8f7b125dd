"""
Tests for the hourly sweep scheduler
"""
from apscheduler.triggers.cron import CronTrigger

import notifications
import scheduler


def test_start_runs_one_sweep_then_schedules_hourly(monkeypatch):
    calls = []
    monkeypatch.setattr(notifications, "run_sweep", lambda: calls.append(1) or 0)

    sched = scheduler.start_scheduler()
    try:
        assert calls == [1]
        job = sched.get_job(scheduler.JOB_ID)
        assert job is not None
        assert isinstance(job.trigger, CronTrigger)
        assert str(job.trigger.fields[CronTrigger.FIELD_NAMES.index("minute")]) == "0"
        assert job.max_instances > 1
    finally:
        sched.shutdown(wait=False)


def test_start_without_initial_run(monkeypatch):
    calls = []
    monkeypatch.setattr(notifications, "run_sweep", lambda: calls.append(1) or 0)

    sched = scheduler.start_scheduler(run_now=False)
    try:
        assert calls == []
        assert len(sched.get_jobs()) == 1
    finally:
        sched.shutdown(wait=False)


def test_sweep_job_returns_count(monkeypatch):
    monkeypatch.setattr(notifications, "run_sweep", lambda: 4)
    assert scheduler.sweep_job() == 4
