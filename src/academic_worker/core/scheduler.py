"""
Background Job Scheduling

Two kinds of recurring jobs run in the worker process:

- Daily wall-clock jobs (the academic request lifecycle workers) run on a
  ClockScheduler: an asyncio task that sleeps until the next occurrence of a
  target time of day, runs the job, then recomputes the delay. Recomputing
  after every run keeps the schedule pinned to the wall clock no matter how
  long the job body takes or when the process was (re)started.
- Short-period jobs (attendance warnings) run on APScheduler's
  AsyncIOScheduler with an IntervalTrigger.

Both kinds are registered on a JobHost, which is created in the FastAPI
lifespan and owns every scheduler instance. The host also keeps the job
registry used for manual triggering, listing, pausing and resuming.

Design Principles:
- Jobs are idempotent (safe to run multiple times)
- Failed jobs are logged but don't crash the scheduler
- Jobs can be triggered manually for testing
- Stopping interrupts sleeps promptly and never starts a new batch

Usage:
    host = JobHost(clock=Clock(settings.scheduler_timezone))
    host.register_daily_job("end_suspensions", end_suspensions, run_at=time(0, 0))
    host.register_interval_job("attendance", check_attendance, IntervalTrigger(minutes=5))
    await host.start()
    ...
    await host.stop()
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime, time, timedelta
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from academic_worker.core.clock import Clock

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Coroutine[Any, Any, Any]]

# Backoff after a failed run before the schedule is recomputed
DEFAULT_RETRY_BACKOFF_SECONDS = 30.0


class SchedulerConfig:
    """Configuration for the interval job scheduler."""

    # Job execution settings
    JOB_COALESCE = True  # Combine multiple missed executions into one
    JOB_MAX_INSTANCES = 1  # Only one instance of each job can run at a time
    JOB_MISFIRE_GRACE_TIME = 60 * 5  # 5 minutes grace time for missed jobs

    EXECUTORS = {
        "default": {"type": "asyncio"},
    }

    JOB_DEFAULTS = {
        "coalesce": JOB_COALESCE,
        "max_instances": JOB_MAX_INSTANCES,
        "misfire_grace_time": JOB_MISFIRE_GRACE_TIME,
    }


def delay_until_next(run_at: time, now: datetime) -> timedelta:
    """
    Compute the time left until the next occurrence of a wall-clock time.

    If ``now`` is already at or past today's ``run_at``, the delay runs to
    tomorrow's occurrence, so the result is always strictly positive.

    Args:
        run_at: Target time of day (e.g. 00:00)
        now: Current datetime; aware datetimes are compared in UTC so a DST
             change between now and the target is accounted for

    Returns:
        Positive duration until the next trigger
    """
    target = datetime.combine(now.date(), run_at, tzinfo=now.tzinfo)
    if _instant(now) >= _instant(target):
        target = datetime.combine(now.date() + timedelta(days=1), run_at, tzinfo=now.tzinfo)

    return _instant(target) - _instant(now)


def _instant(value: datetime) -> datetime:
    """Aware datetimes as UTC instants; naive ones as plain wall-clock times."""
    return value if value.tzinfo is None else value.astimezone(UTC)


def _shift(value: datetime, delta: timedelta) -> datetime:
    """Add elapsed time to ``value``, keeping its timezone."""
    if value.tzinfo is None:
        return value + delta
    return (value.astimezone(UTC) + delta).astimezone(value.tzinfo)


class ClockScheduler:
    """
    Runs one job once a day at a fixed wall-clock time.

    Owns its asyncio task, its stop event and its next wake-up time. A failed
    run is logged, followed by a fixed backoff, then the normal schedule
    resumes.
    """

    def __init__(
        self,
        job_id: str,
        func: JobFunc,
        run_at: time,
        clock: Clock,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF_SECONDS,
    ):
        self.job_id = job_id
        self.run_at = run_at
        self.retry_backoff = retry_backoff
        self.next_run_time: datetime | None = None
        self.last_run_at: datetime | None = None
        self.last_error: str | None = None
        self.failure_count = 0
        self.paused = False
        self._func = func
        self._clock = clock
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the scheduling loop as a background task."""
        if self.running:
            logger.warning(f"Job {self.job_id} already running")
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run(), name=f"clock-job:{self.job_id}")

    async def stop(self, timeout: float | None = None) -> None:
        """
        Stop the loop.

        A sleeping loop wakes up and exits immediately. A job body that is
        already running is allowed to finish unless ``timeout`` elapses, in
        which case the task is cancelled.
        """
        self._stop_event.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except TimeoutError:
            logger.warning(f"Job {self.job_id} did not stop within {timeout}s, cancelled")
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def _sleep(self, seconds: float) -> bool:
        """Sleep for ``seconds``; return True if a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=max(seconds, 0))
            return True
        except TimeoutError:
            return False

    async def _run(self) -> None:
        logger.info(f"Job {self.job_id} is starting. Scheduled to run daily at {self.run_at:%H:%M}.")

        while not self._stop_event.is_set():
            now = self._clock.now()
            delay = delay_until_next(self.run_at, now)
            self.next_run_time = _shift(now, delay)
            logger.info(
                f"Next run of {self.job_id} at {self.next_run_time:%Y-%m-%d %H:%M:%S} "
                f"(in {delay.total_seconds() / 3600:.1f} hours)"
            )

            if await self._sleep(delay.total_seconds()):
                break

            # Timers may fire a little early; never run before the target instant
            early = (_instant(self.next_run_time) - _instant(self._clock.now())).total_seconds()
            if early > 0 and await self._sleep(early):
                break

            if self.paused:
                logger.info(f"Job {self.job_id} is paused, skipping run")
                continue

            try:
                await self._func()
                self.last_run_at = self._clock.now()
                self.last_error = None
            except Exception as e:
                self.failure_count += 1
                self.last_error = str(e)
                logger.error(
                    f"Job {self.job_id} failed: {e}. Retrying schedule in {self.retry_backoff}s",
                    exc_info=True,
                )
                if await self._sleep(self.retry_backoff):
                    break

        self.next_run_time = None
        logger.info(f"Job {self.job_id} is stopping.")


def _job_listener(event: JobExecutionEvent) -> None:
    """
    Listener for interval job execution events.

    Args:
        event: The job execution event from APScheduler
    """
    if event.exception:
        logger.error(
            f"Job {event.job_id} failed with exception: {event.exception}",
            exc_info=event.exception,
        )
    else:
        logger.debug(f"Job {event.job_id} executed successfully at {datetime.now(UTC).isoformat()}")


class JobHost:
    """
    Owns every scheduled job of the worker process.

    Daily jobs get their own ClockScheduler; interval jobs share one
    AsyncIOScheduler. Jobs should be registered before ``start()``; jobs
    registered afterwards are started immediately.
    """

    def __init__(
        self,
        clock: Clock,
        timezone: str = "UTC",
        retry_backoff: float = DEFAULT_RETRY_BACKOFF_SECONDS,
    ):
        self.clock = clock
        self.timezone = timezone
        self.retry_backoff = retry_backoff
        self.running = False
        self._clock_jobs: dict[str, ClockScheduler] = {}
        self._interval_triggers: dict[str, IntervalTrigger] = {}
        self._interval_scheduler: AsyncIOScheduler | None = None
        # Job registry for manual triggering
        self._job_registry: dict[str, JobFunc] = {}

    def register_daily_job(
        self,
        job_id: str,
        func: JobFunc,
        run_at: time,
        retry_backoff: float | None = None,
    ) -> ClockScheduler:
        """
        Register a job that runs once a day at ``run_at``.

        Args:
            job_id: Unique identifier for the job
            func: Async function to execute
            run_at: Wall-clock time of day, in the host clock's timezone
            retry_backoff: Seconds to wait after a failed run (host default if None)

        Returns:
            The ClockScheduler driving the job
        """
        if job_id in self._job_registry:
            raise ValueError(f"Job {job_id} is already registered")

        job = ClockScheduler(
            job_id=job_id,
            func=func,
            run_at=run_at,
            clock=self.clock,
            retry_backoff=self.retry_backoff if retry_backoff is None else retry_backoff,
        )
        self._clock_jobs[job_id] = job
        self._job_registry[job_id] = func

        if self.running:
            job.start()

        logger.info(f"Registered job: {job_id} (daily at {run_at:%H:%M})")
        return job

    def register_interval_job(self, job_id: str, func: JobFunc, trigger: IntervalTrigger) -> None:
        """
        Register a job that runs on a fixed interval.

        Args:
            job_id: Unique identifier for the job
            func: Async function to execute
            trigger: APScheduler interval trigger
        """
        if job_id in self._job_registry:
            raise ValueError(f"Job {job_id} is already registered")

        self._interval_triggers[job_id] = trigger
        self._job_registry[job_id] = func

        if self._interval_scheduler is not None:
            self._interval_scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True)

        logger.info(f"Registered job: {job_id} (interval: {trigger.interval})")

    async def start(self) -> None:
        """Start all registered jobs."""
        if self.running:
            logger.warning("Job host already running")
            return

        logger.info("Starting background jobs...")

        if self._interval_triggers:
            self._interval_scheduler = AsyncIOScheduler(
                timezone=self.timezone,
                executors=SchedulerConfig.EXECUTORS,
                job_defaults=SchedulerConfig.JOB_DEFAULTS,
            )
            self._interval_scheduler.add_listener(
                _job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR
            )
            for job_id, trigger in self._interval_triggers.items():
                self._interval_scheduler.add_job(
                    self._job_registry[job_id],
                    trigger=trigger,
                    id=job_id,
                    replace_existing=True,
                )
            self._interval_scheduler.start()

        for job in self._clock_jobs.values():
            job.start()

        self.running = True
        logger.info(f"Started {len(self._job_registry)} background job(s)")

    async def stop(self, timeout: float | None = None) -> None:
        """
        Stop all jobs.

        Sleeping jobs exit immediately; running job bodies are allowed to
        finish (bounded by ``timeout`` per job).
        """
        if not self.running:
            logger.debug("Job host not running, nothing to stop")
            return

        logger.info("Stopping background jobs...")

        await asyncio.gather(*(job.stop(timeout=timeout) for job in self._clock_jobs.values()))

        if self._interval_scheduler is not None:
            self._interval_scheduler.shutdown(wait=True)
            self._interval_scheduler = None

        self.running = False
        logger.info("Background jobs stopped")

    async def trigger_job_manually(self, job_id: str) -> dict[str, Any]:
        """
        Run a job immediately, bypassing its schedule.

        Args:
            job_id: The ID of the job to trigger

        Returns:
            Dict with job_id, status ("success" or "error"), executed_at and,
            on failure, the error message

        Raises:
            ValueError: If job_id is not registered
        """
        if job_id not in self._job_registry:
            raise ValueError(
                f"Job {job_id} not found in registry. Available jobs: {list(self._job_registry.keys())}"
            )

        func = self._job_registry[job_id]
        executed_at = self.clock.now()

        logger.info(f"Manually triggering job: {job_id}")

        try:
            result = await func()
            logger.info(f"Manual execution of job {job_id} completed successfully")
            response: dict[str, Any] = {
                "job_id": job_id,
                "status": "success",
                "executed_at": executed_at.isoformat(),
            }
            if isinstance(result, dict):
                response["result"] = result
            return response
        except Exception as e:
            logger.error(f"Manual execution of job {job_id} failed: {e}", exc_info=True)
            return {
                "job_id": job_id,
                "status": "error",
                "executed_at": executed_at.isoformat(),
                "error": str(e),
            }

    def list_registered_jobs(self) -> list[dict[str, Any]]:
        """
        List all registered jobs and their status.

        Returns:
            List of dicts with job_id, schedule, next_run_time and is_paused
            (daily jobs also report failure_count and last_error)
        """
        jobs = []

        for job_id, job in self._clock_jobs.items():
            jobs.append(
                {
                    "job_id": job_id,
                    "schedule": f"daily at {job.run_at:%H:%M}",
                    "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
                    "is_paused": job.paused,
                    "failure_count": job.failure_count,
                    "last_error": job.last_error,
                }
            )

        for job_id, trigger in self._interval_triggers.items():
            job_info: dict[str, Any] = {
                "job_id": job_id,
                "schedule": f"every {trigger.interval}",
                "next_run_time": None,
                "is_paused": True,
            }
            if self._interval_scheduler is not None:
                scheduled_job = self._interval_scheduler.get_job(job_id)
                if scheduled_job and scheduled_job.next_run_time:
                    job_info["next_run_time"] = scheduled_job.next_run_time.isoformat()
                    job_info["is_paused"] = False
            jobs.append(job_info)

        return jobs

    def pause_job(self, job_id: str) -> bool:
        """
        Pause a scheduled job.

        Returns:
            True if job was paused, False if job not found
        """
        if job_id in self._clock_jobs:
            self._clock_jobs[job_id].paused = True
            logger.info(f"Paused job: {job_id}")
            return True

        if self._interval_scheduler is not None and self._interval_scheduler.get_job(job_id):
            self._interval_scheduler.pause_job(job_id)
            logger.info(f"Paused job: {job_id}")
            return True

        logger.warning(f"Job not found for pausing: {job_id}")
        return False

    def resume_job(self, job_id: str) -> bool:
        """
        Resume a paused job.

        Returns:
            True if job was resumed, False if job not found
        """
        if job_id in self._clock_jobs:
            self._clock_jobs[job_id].paused = False
            logger.info(f"Resumed job: {job_id}")
            return True

        if self._interval_scheduler is not None and self._interval_scheduler.get_job(job_id):
            self._interval_scheduler.resume_job(job_id)
            logger.info(f"Resumed job: {job_id}")
            return True

        logger.warning(f"Job not found for resuming: {job_id}")
        return False
