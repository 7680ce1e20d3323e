"""Tests for the cleanup scheduler."""

import json
from datetime import datetime, timedelta

import pytest

from conftest import NOW
from snapcleaner.models import Report, RetentionPolicy
from snapcleaner.scheduler import CleanupScheduler


def make_report(**overrides):
    kwargs = dict(generated_at=NOW, dry_run=True, datacenter="DC1", endpoint="fake",
                  headline="No snapshots were deleted in datacenter DC1 (fake)",
                  policy=RetentionPolicy(days=15, max_days=30))
    kwargs.update(overrides)
    return Report(**kwargs)


@pytest.fixture
def scheduler(config, notifier):
    return CleanupScheduler(config, make_report, notifier)


@pytest.mark.parametrize("text,minutes", [("10m", 10), ("10", 10), ("2h", 120), ("1D", 1440)])
def test_parse_interval(text, minutes):
    assert CleanupScheduler.parse_interval(text) == minutes


@pytest.mark.parametrize("text", ["", "0h", "1w", "h2", "-5m"])
def test_parse_interval_rejects(text):
    with pytest.raises(ValueError):
        CleanupScheduler.parse_interval(text)


@pytest.mark.parametrize("minutes,text", [(45, "45m"), (120, "2h"), (150, "2h30m"), (1440, "1d"), (1500, "1d1h")])
def test_format_interval(minutes, text):
    assert CleanupScheduler.format_interval(minutes) == text


def test_enable_persists_state(scheduler, config):
    scheduler.enable("12h")

    with open(config.get('scheduler.state_file')) as f:
        state = json.load(f)
    assert state["enabled"] is True
    assert state["interval_minutes"] == 720
    next_run = datetime.fromisoformat(state["next_run"])
    assert timedelta(hours=11) < next_run - datetime.now() <= timedelta(hours=12)


def test_disable(scheduler):
    scheduler.enable("1d")
    scheduler.disable()
    assert scheduler.is_enabled() is False
    assert scheduler.get_status()["next_run"] is None


def test_run_now_requires_enabled(scheduler):
    assert scheduler.run_now() is None


def test_run_now_records_summary(scheduler, config, notifier):
    scheduler.enable("1h")
    report = scheduler.run_now()

    assert report is not None
    summary = scheduler.get_status()["last_summary"]
    assert summary["headline"] == report.headline
    assert summary["deleted"] == 0
    assert scheduler.state["last_run"] is not None

    reloaded = CleanupScheduler(config, make_report, notifier)
    assert reloaded.get_status()["last_summary"] == summary


def test_failed_run_is_recorded(config, notifier):
    def runner():
        raise RuntimeError("inventory unavailable")

    scheduler = CleanupScheduler(config, runner, notifier)
    scheduler.enable("1h")

    assert scheduler.run_now() is None
    assert scheduler.get_status()["last_summary"] == {"error": "inventory unavailable"}


def test_should_run_when_due(scheduler):
    scheduler.enable("1h")
    assert scheduler._should_run() is False
    scheduler.state["next_run"] = (datetime.now() - timedelta(minutes=1)).isoformat()
    assert scheduler._should_run() is True
