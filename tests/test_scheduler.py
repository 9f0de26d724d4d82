"""
test_scheduler.py — Tests for the APScheduler background job

Covers: configure_scheduler registration (enabled / disabled,
interval from settings), and the _job_risk_refresh job body.

The job uses SessionLocal() internally, so we patch
renewal_risk.database.SessionLocal to return the test DB session with
close() disabled.
"""

import asyncio
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.orm import Session

from renewal_risk.models import NotificationCache
from renewal_risk.scheduler import _job_risk_refresh, configure_scheduler, scheduler

# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture()
def scheduler_db(db_session: Session):
    """Patch SessionLocal so the job uses the test DB."""
    original_close = db_session.close
    db_session.close = lambda: None
    with patch("renewal_risk.database.SessionLocal", return_value=db_session):
        yield db_session
    db_session.close = original_close


@pytest.fixture(autouse=True)
def _clear_scheduler_jobs():
    """Remove all jobs before/after each test to prevent leakage."""
    for job in scheduler.get_jobs():
        job.remove()
    yield
    for job in scheduler.get_jobs():
        job.remove()


def _mock_settings(**overrides):
    mock = MagicMock()
    mock.scheduler_enabled = True
    mock.risk_refresh_interval_min = 15
    for k, v in overrides.items():
        setattr(mock, k, v)
    return mock


# ── configure_scheduler() ──────────────────────────────────────────────


def test_configure_registers_risk_refresh():
    with patch("renewal_risk.config.settings", _mock_settings(risk_refresh_interval_min=5)):
        configure_scheduler()

    job = scheduler.get_job("risk_refresh")
    assert job is not None
    assert job.trigger.interval == timedelta(minutes=5)


def test_configure_disabled_registers_nothing():
    with patch("renewal_risk.config.settings", _mock_settings(scheduler_enabled=False)):
        configure_scheduler()
    assert scheduler.get_jobs() == []


# ── _job_risk_refresh() ────────────────────────────────────────────────


def test_job_runs_refresh(scheduler_db, make_account, make_estimate):
    acct = make_account()
    make_estimate(acct, ends_in=30)

    asyncio.run(_job_risk_refresh())

    assert scheduler_db.get(NotificationCache, f"account-risk:{acct.id}") is not None


def test_job_swallows_errors(scheduler_db):
    with patch(
        "renewal_risk.services.risk_refresh_service.run_risk_refresh",
        side_effect=RuntimeError("boom"),
    ):
        asyncio.run(_job_risk_refresh())
