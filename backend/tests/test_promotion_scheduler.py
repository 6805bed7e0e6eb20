"""
PromotionScheduler lifecycle tests.

The APScheduler instance is replaced by a recorder so no background thread
is started; ticks are invoked directly.
"""

import logging
from datetime import datetime, timedelta

import pytest

from storefront.models import Promotion
from storefront.services import promotion_scheduler
from storefront.services.promotion_scheduler import JOB_ID, PromotionScheduler

NOW = datetime(2026, 5, 4, 9, 30, 0)


class FakeScheduler:
    def __init__(self):
        self.jobs = []
        self.started = False
        self.shutdown_calls = []

    def add_job(self, func, trigger, **kwargs):
        self.jobs.append({"func": func, "trigger": trigger, **kwargs})

    def start(self):
        self.started = True

    def shutdown(self, wait=True):
        self.shutdown_calls.append(wait)


@pytest.fixture
def fake():
    return FakeScheduler()


@pytest.fixture
def scheduler(app, fake):
    sched = PromotionScheduler(app, interval_seconds=30, scheduler_factory=lambda: fake, clock=lambda: NOW)
    yield sched
    sched.stop()


def test_start_registers_single_instance_job(scheduler, fake):
    scheduler.start()

    assert scheduler.is_running()
    assert fake.started
    (job,) = fake.jobs
    assert job["id"] == JOB_ID
    assert job["max_instances"] == 1
    assert job["coalesce"] is True
    assert job["trigger"].interval == timedelta(seconds=30)


def test_start_twice_is_harmless(scheduler, fake, caplog):
    scheduler.start()
    with caplog.at_level(logging.WARNING, logger="storefront.services.promotion_scheduler"):
        scheduler.start()

    assert len(fake.jobs) == 1
    assert "already running" in caplog.text


def test_stop_is_idempotent(scheduler, fake):
    scheduler.start()
    scheduler.stop(wait=False)
    scheduler.stop()

    assert not scheduler.is_running()
    assert fake.shutdown_calls == [False]


def test_interval_must_be_positive(app):
    with pytest.raises(ValueError):
        PromotionScheduler(app, interval_seconds=0)


def test_tick_uses_injected_clock(scheduler, db_session, make_promotion):
    make_promotion("SPRING", starts_at=NOW - timedelta(minutes=5), expires_at=NOW + timedelta(days=7))
    make_promotion("WINTER", starts_at=NOW - timedelta(days=60), expires_at=NOW - timedelta(days=1), is_active=True)

    result = scheduler.tick()

    assert (result.activated, result.deactivated) == (1, 1)
    assert result.ran_at == NOW
    db_session.expire_all()
    assert db_session.query(Promotion).filter_by(code="SPRING").one().is_active
    assert not db_session.query(Promotion).filter_by(code="WINTER").one().is_active


def test_overlapping_tick_is_skipped(scheduler, db_session, caplog):
    scheduler._tick_guard.acquire()
    try:
        with caplog.at_level(logging.WARNING, logger="storefront.services.promotion_scheduler"):
            assert scheduler.tick() is None
    finally:
        scheduler._tick_guard.release()

    assert "skipped" in caplog.text
    assert scheduler.tick() is not None


def test_failed_tick_is_logged_not_raised(scheduler, db_session, monkeypatch, caplog):
    def boom(now=None):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(promotion_scheduler, "run_promotion_scheduler_tick", boom)

    with caplog.at_level(logging.ERROR, logger="storefront.services.promotion_scheduler"):
        assert scheduler.tick() is None

    assert "database unavailable" in caplog.text
    assert not scheduler._tick_guard.locked()


def test_app_registers_disabled_scheduler(app):
    sched = app.extensions["promotion_scheduler"]
    assert isinstance(sched, PromotionScheduler)
    assert not sched.is_running()
