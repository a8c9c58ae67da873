"""
Unit tests for the overdue scan scheduler.

Scan passes run in a worker thread against the shared in-memory test
database; events come back to the test loop through the scheduler queue.
"""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from backend.src.config.settings import get_settings
from backend.src.models.notification import Notification
from backend.src.services.overdue_scanner import ScanFailed, ScanProgress, ScanSummary
from backend.src.services.overdue_scheduler import (
    OverdueTaskScheduler,
    execute_scan_pass,
    seconds_until_next_run,
)


NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def settings():
    return get_settings().model_copy(update={"overdue_batch_size": 2, "overdue_check_hour": 3})


@pytest.fixture
def overdue_setup(test_db_session, sample_task, test_user, test_supervisor):
    """Three overdue tasks assigned to the test agent, one supervisor."""
    for i in range(3):
        sample_task(title=f"Late {i}", due_date=NOW - timedelta(days=1), assigned_to=test_user)
    test_db_session.commit()


def broken_session_factory():
    raise RuntimeError("database unavailable")


async def wait_for_terminal(scheduler, timeout=5):
    deadline = asyncio.get_running_loop().time() + timeout
    while scheduler.last_event is None:
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("scan did not finish")
        await asyncio.sleep(0.01)
    return scheduler.last_event


class TestSecondsUntilNextRun:
    def test_later_today(self):
        assert seconds_until_next_run(datetime(2026, 3, 1, 1, 30), 3) == 90 * 60

    def test_tomorrow_when_hour_passed(self):
        assert seconds_until_next_run(datetime(2026, 3, 1, 4, 0), 3) == 23 * 3600

    def test_exactly_on_the_hour_waits_a_day(self):
        assert seconds_until_next_run(datetime(2026, 3, 1, 3, 0), 3) == 24 * 3600


class TestExecuteScanPass:
    """Tests for execute_scan_pass."""

    @pytest.mark.asyncio
    async def test_success(self, overdue_setup, test_session_factory, settings):
        events = []

        async def sink(event):
            events.append(event)

        exit_code = await execute_scan_pass(
            sink, session_factory=test_session_factory, settings=settings, now=NOW
        )

        assert exit_code == 0
        assert [type(e) for e in events] == [ScanProgress, ScanProgress, ScanSummary]
        assert events[-1].notifications_created == 6

    @pytest.mark.asyncio
    async def test_session_failure_still_reports(self, settings):
        events = []

        async def sink(event):
            events.append(event)

        exit_code = await execute_scan_pass(
            sink, session_factory=broken_session_factory, settings=settings, now=NOW
        )

        assert exit_code == 1
        assert len(events) == 1
        assert isinstance(events[0], ScanFailed)
        assert events[0].error == "database unavailable"

    @pytest.mark.asyncio
    async def test_scan_failure_reported_once(self, test_session_factory, settings):
        events = []

        async def sink(event):
            events.append(event)

        with patch(
            "backend.src.services.task_directory.SqlTaskDirectory.count_overdue_candidates",
            side_effect=RuntimeError("query failed"),
        ):
            exit_code = await execute_scan_pass(
                sink, session_factory=test_session_factory, settings=settings, now=NOW
            )

        assert exit_code == 1
        assert [type(e) for e in events] == [ScanFailed]


class TestOverdueTaskScheduler:
    """Tests for OverdueTaskScheduler."""

    @pytest.mark.asyncio
    async def test_run_pass(self, overdue_setup, test_session_factory, test_db_session, settings):
        scheduler = OverdueTaskScheduler(session_factory=test_session_factory, settings=settings)

        exit_code = await scheduler.run_pass(now=NOW)

        assert exit_code == 0
        assert scheduler.last_exit_code == 0
        assert isinstance(scheduler.last_event, ScanSummary)
        assert scheduler.last_event.tasks_processed == 3
        assert not scheduler.is_processing
        assert test_db_session.query(Notification).count() == 6
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_run_now_refuses_while_processing(self, test_session_factory, settings):
        scheduler = OverdueTaskScheduler(session_factory=test_session_factory, settings=settings)

        assert scheduler.run_now(now=NOW) is True
        assert scheduler.is_processing
        assert scheduler.run_now(now=NOW) is False
        assert await scheduler.run_pass(now=NOW) is None

        await scheduler._current
        assert not scheduler.is_processing
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_failed_pass(self, settings):
        scheduler = OverdueTaskScheduler(session_factory=broken_session_factory, settings=settings)

        exit_code = await scheduler.run_pass(now=NOW)

        assert exit_code == 1
        assert isinstance(scheduler.last_event, ScanFailed)
        assert not scheduler.is_processing
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_small_event_queue(self, overdue_setup, test_session_factory, settings):
        scheduler = OverdueTaskScheduler(
            session_factory=test_session_factory, settings=settings, queue_size=1
        )

        assert await scheduler.run_pass(now=NOW) == 0
        assert isinstance(scheduler.last_event, ScanSummary)
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, test_session_factory, settings):
        scheduler = OverdueTaskScheduler(session_factory=test_session_factory, settings=settings)

        await scheduler.start()
        assert scheduler.is_running

        await scheduler.stop()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_timer_triggers_pass(self, test_session_factory, settings):
        scheduler = OverdueTaskScheduler(session_factory=test_session_factory, settings=settings)

        with patch(
            "backend.src.services.overdue_scheduler.seconds_until_next_run",
            side_effect=[0, 3600],
        ):
            await scheduler.start()
            event = await wait_for_terminal(scheduler)
            await scheduler.stop()

        assert isinstance(event, ScanSummary)
        assert event.total == 0
