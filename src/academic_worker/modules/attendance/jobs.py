"""
Attendance Background Jobs

Runs the attendance warning check on a short interval. The sent-warning
cache lives for the whole process so warnings are not repeated between runs.
"""

import logging

from apscheduler.triggers.interval import IntervalTrigger

from academic_worker.core.config import settings
from academic_worker.core.dedup import DedupCache
from academic_worker.core.scheduler import JobHost
from academic_worker.modules.lookups import LookupProvider

from .service import AttendanceWarningService

logger = logging.getLogger(__name__)

# Job ID for registration and manual triggering
JOB_ID_ATTENDANCE_WARNINGS = "attendance_send_warnings"


def register_attendance_jobs(
    host: JobHost,
    lookups: LookupProvider,
    cache: DedupCache | None = None,
) -> AttendanceWarningService:
    """
    Register the attendance warning job on ``host``.

    Runs every ``settings.attendance_check_interval_minutes`` minutes.
    """
    if cache is None:
        cache = DedupCache(ttl_seconds=settings.attendance_warning_cooldown_hours * 3600)
    service = AttendanceWarningService(lookups=lookups, cache=cache)

    host.register_interval_job(
        job_id=JOB_ID_ATTENDANCE_WARNINGS,
        func=service.process_attendance_warnings,
        trigger=IntervalTrigger(minutes=settings.attendance_check_interval_minutes),
    )

    logger.info("Attendance background jobs registered successfully")
    return service
