"""
Unit tests for background job scheduling.

These tests cover:
- Delay computation to the next wall-clock trigger
- ClockScheduler run, failure backoff, pause and prompt stop
- JobHost registration, manual triggering, listing, pause/resume
"""

import asyncio
from datetime import UTC, datetime, time, timedelta, timezone
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from academic_worker.core.clock import FixedClock
from academic_worker.core.scheduler import ClockScheduler, JobHost, delay_until_next


class TestDelayUntilNext:
    """Tests for delay_until_next."""

    def test_target_later_today(self):
        """A target later today is reached the same day."""
        now = datetime(2024, 6, 1, 22, 30, tzinfo=UTC)
        assert delay_until_next(time(23, 0), now) == timedelta(minutes=30)

    def test_target_already_passed_rolls_to_tomorrow(self):
        """A passed target is scheduled for tomorrow."""
        now = datetime(2024, 6, 1, 0, 0, 1, tzinfo=UTC)
        assert delay_until_next(time(0, 0), now) == timedelta(hours=24) - timedelta(seconds=1)

    def test_exactly_at_target_is_a_full_day(self):
        """At the target instant the next run is a full day away, never zero."""
        now = datetime(2024, 6, 1, 5, 0, tzinfo=UTC)
        assert delay_until_next(time(5, 0), now) == timedelta(days=1)

    def test_always_positive(self):
        """The delay is strictly positive for every minute of the day."""
        start = datetime(2024, 6, 1, tzinfo=UTC)
        for minute in range(0, 24 * 60, 7):
            now = start + timedelta(minutes=minute)
            assert delay_until_next(time(0, 0), now) > timedelta(0)

    def test_lands_on_target_time(self):
        """now + delay is the target wall-clock time."""
        now = datetime(2024, 6, 1, 13, 17, 42, tzinfo=timezone(timedelta(hours=7)))
        target = now + delay_until_next(time(5, 0), now)
        assert target.time() == time(5, 0)
        assert target.date() == now.date() + timedelta(days=1)

    def test_dst_change_shortens_the_day(self):
        """Across a spring-forward night the real delay is 23 hours."""
        tz = ZoneInfo("Europe/Berlin")
        now = datetime(2024, 3, 30, 12, 0, tzinfo=tz)
        assert delay_until_next(time(12, 0), now) == timedelta(hours=23)

    def test_repeated_hour_after_fall_back(self):
        """In the repeated hour, a target already passed is not run again."""
        tz = ZoneInfo("America/New_York")
        # Second 01:15 (EST), after 01:30 EDT has already passed
        now = datetime(2024, 11, 3, 1, 15, fold=1, tzinfo=tz)

        delay = delay_until_next(time(1, 30), now)

        assert delay > timedelta(0)
        assert (now.astimezone(UTC) + delay).astimezone(tz) == datetime(2024, 11, 4, 1, 30, tzinfo=tz)

    def test_first_pass_of_repeated_hour(self):
        """Before the clocks go back, the target later in the hour is still today."""
        tz = ZoneInfo("America/New_York")
        now = datetime(2024, 11, 3, 1, 15, fold=0, tzinfo=tz)
        assert delay_until_next(time(1, 30), now) == timedelta(minutes=15)

    def test_naive_datetime(self):
        """Naive datetimes are compared as wall-clock times."""
        now = datetime(2024, 6, 1, 23, 0)
        assert delay_until_next(time(1, 0), now) == timedelta(hours=2)


def _clock_just_before_midnight() -> FixedClock:
    return FixedClock(datetime(2024, 5, 31, 23, 59, 59, 950000, tzinfo=UTC))


class TestClockScheduler:
    """Tests for ClockScheduler."""

    @pytest.mark.asyncio
    async def test_runs_job_at_target_time(self):
        """The job body runs once the target time is reached."""
        ran = asyncio.Event()

        async def job():
            ran.set()

        scheduler = ClockScheduler("test_job", job, time(0, 0), _clock_just_before_midnight())
        scheduler.start()
        try:
            await asyncio.wait_for(ran.wait(), timeout=2)
            assert scheduler.last_run_at is not None
            assert scheduler.failure_count == 0
        finally:
            await scheduler.stop(timeout=1)

        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_survives_failing_job(self):
        """A failing run is logged and followed by the next run."""
        calls = []
        second_run = asyncio.Event()

        async def job():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database unavailable")
            second_run.set()

        scheduler = ClockScheduler(
            "flaky_job", job, time(0, 0), _clock_just_before_midnight(), retry_backoff=0.01
        )
        scheduler.start()
        try:
            await asyncio.wait_for(second_run.wait(), timeout=2)
        finally:
            await scheduler.stop(timeout=1)

        assert len(calls) >= 2
        assert scheduler.failure_count == 1

    @pytest.mark.asyncio
    async def test_stop_during_sleep_does_not_run_job(self):
        """Stopping while asleep exits promptly without running the job."""
        job = AsyncMock()
        clock = FixedClock(datetime(2024, 6, 1, 0, 0, 1, tzinfo=UTC))

        scheduler = ClockScheduler("sleepy_job", job, time(0, 0), clock)
        scheduler.start()
        await asyncio.sleep(0.01)

        assert scheduler.next_run_time == datetime(2024, 6, 2, 0, 0, tzinfo=UTC)

        await asyncio.wait_for(scheduler.stop(), timeout=1)

        job.assert_not_called()
        assert not scheduler.running
        assert scheduler.next_run_time is None

    @pytest.mark.asyncio
    async def test_next_run_time_across_fall_back(self):
        """The announced next run is the target wall-clock time, not shifted by the clock change."""
        tz = ZoneInfo("America/New_York")
        job = AsyncMock()
        clock = FixedClock(datetime(2024, 11, 3, 0, 30, tzinfo=tz))

        scheduler = ClockScheduler("dst_job", job, time(5, 0), clock)
        scheduler.start()
        await asyncio.sleep(0.01)

        assert scheduler.next_run_time == datetime(2024, 11, 3, 5, 0, tzinfo=tz)
        assert scheduler.next_run_time.replace(tzinfo=None) == datetime(2024, 11, 3, 5, 0)

        await asyncio.wait_for(scheduler.stop(), timeout=1)

        job.assert_not_called()
        assert not scheduler.running
        assert scheduler.next_run_time is None

    @pytest.mark.asyncio
    async def test_paused_job_is_skipped(self):
        """A paused scheduler keeps its loop but does not run the job."""
        job = AsyncMock()

        scheduler = ClockScheduler("paused_job", job, time(0, 0), _clock_just_before_midnight())
        scheduler.paused = True
        scheduler.start()
        await asyncio.sleep(0.3)
        await scheduler.stop(timeout=1)

        job.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        """Stopping a scheduler that never started is a no-op."""
        scheduler = ClockScheduler("idle_job", AsyncMock(), time(0, 0), _clock_just_before_midnight())
        await scheduler.stop()
        assert not scheduler.running


class TestJobHost:
    """Tests for JobHost."""

    @pytest.fixture
    def host(self, fixed_clock):
        return JobHost(clock=fixed_clock)

    def test_register_duplicate_job_raises(self, host):
        """A job id can only be registered once."""
        host.register_daily_job("daily", AsyncMock(), time(0, 0))
        with pytest.raises(ValueError, match="already registered"):
            host.register_daily_job("daily", AsyncMock(), time(1, 0))

    @pytest.mark.asyncio
    async def test_trigger_job_manually_success(self, host):
        """Manual trigger runs the job and returns its result."""
        job = AsyncMock(return_value={"total": 3})
        host.register_daily_job("daily", job, time(0, 0))

        result = await host.trigger_job_manually("daily")

        job.assert_awaited_once()
        assert result["job_id"] == "daily"
        assert result["status"] == "success"
        assert result["result"] == {"total": 3}
        assert result["executed_at"] == "2024-06-01T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_trigger_job_manually_error(self, host):
        """A failing manual run is reported, not raised."""
        host.register_daily_job("daily", AsyncMock(side_effect=RuntimeError("boom")), time(0, 0))

        result = await host.trigger_job_manually("daily")

        assert result["status"] == "error"
        assert result["error"] == "boom"

    @pytest.mark.asyncio
    async def test_trigger_unknown_job_raises(self, host):
        """Unknown job ids raise ValueError listing the available jobs."""
        host.register_daily_job("daily", AsyncMock(), time(0, 0))
        with pytest.raises(ValueError, match="daily"):
            await host.trigger_job_manually("missing")

    def test_list_registered_jobs(self, host):
        """Daily and interval jobs are both listed."""
        host.register_daily_job("daily", AsyncMock(), time(5, 0))
        host.register_interval_job("interval", AsyncMock(), IntervalTrigger(minutes=5))

        jobs = {job["job_id"]: job for job in host.list_registered_jobs()}

        assert jobs["daily"]["schedule"] == "daily at 05:00"
        assert jobs["daily"]["is_paused"] is False
        assert jobs["interval"]["schedule"].startswith("every ")

    def test_pause_and_resume_daily_job(self, host):
        """Pausing flags the daily scheduler; resuming clears it."""
        scheduler = host.register_daily_job("daily", AsyncMock(), time(0, 0))

        assert host.pause_job("daily") is True
        assert scheduler.paused is True
        assert host.resume_job("daily") is True
        assert scheduler.paused is False

    def test_pause_unknown_job(self, host):
        """Pausing or resuming an unknown job returns False."""
        assert host.pause_job("missing") is False
        assert host.resume_job("missing") is False

    @pytest.mark.asyncio
    async def test_start_and_stop(self, host):
        """Start runs every registered job; stop shuts them all down."""
        daily = host.register_daily_job("daily", AsyncMock(), time(12, 0))
        host.register_interval_job("interval", AsyncMock(), IntervalTrigger(hours=1))

        await host.start()
        try:
            assert host.running
            assert daily.running
            interval = next(job for job in host.list_registered_jobs() if job["job_id"] == "interval")
            assert interval["next_run_time"] is not None
            assert host.pause_job("interval") is True
        finally:
            await host.stop(timeout=1)

        assert not host.running
        assert not daily.running
