"""
Enrollment Background Jobs

Daily reminder to students whose class starts in a few days (7 by default).
Each student gets an in-app notification and an email with the course,
class, start date and the room of the first meeting ("TBA" when no meeting
is scheduled on the start date yet).
"""

import logging
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from academic_worker.core.clock import Clock
from academic_worker.core.config import settings
from academic_worker.core.database import async_session_maker
from academic_worker.core.email import send_course_start_reminder
from academic_worker.core.notifications import NotificationSeverity, send_notification
from academic_worker.core.scheduler import JobHost
from academic_worker.modules.lookups import EnrollmentStatus, LookupProvider

from . import repository
from .models import Enrollment

logger = logging.getLogger(__name__)

# Job ID for registration and manual triggering
JOB_ID_COURSE_START_REMINDERS = "enrollments_course_start_reminders"

ROOM_TBA = "TBA"
COURSE_REMINDER_RETRY_BACKOFF_SECONDS = 60.0
DATE_FORMAT = "%B %d, %Y"


class CourseStartReminder:
    """
    Sends start-of-class reminders.

    Args:
        clock: Source of "today"
        lookups: Provider of resolved lookup ids
        days_before: How many days ahead of the class start to remind
        session_factory: Async session factory
    """

    def __init__(
        self,
        clock: Clock,
        lookups: LookupProvider,
        days_before: int = 7,
        session_factory: Callable[[], Any] = async_session_maker,
    ):
        self.clock = clock
        self.lookups = lookups
        self.days_before = days_before
        self.session_factory = session_factory

    async def _remind(self, db, enrollment: Enrollment) -> dict[str, Any]:
        student = enrollment.student
        course_class = enrollment.course_class

        meeting = await repository.get_meeting_on(db, course_class.id, course_class.start_date)
        room = meeting.room_code if meeting and meeting.room_code else ROOM_TBA
        start_date = course_class.start_date.strftime(DATE_FORMAT)
        student_name = student.full_name or "Student"

        notified = await send_notification(
            recipient_id=student.user_id,
            title="Reminder: Class Starting Soon",
            message=(
                f"Hi {student_name}, your class {course_class.class_name} ({course_class.course_name}) "
                f"is scheduled to start on {start_date}. Please check your schedule."
            ),
            severity=NotificationSeverity.INFO,
        )

        emailed = False
        if student.email:
            emailed = await send_course_start_reminder(
                to_email=student.email,
                student_name=student_name,
                course_name=course_class.course_name,
                class_name=course_class.class_name,
                start_date=start_date,
                room=room,
            )
        else:
            logger.warning(f"Student {student.student_code} has no email, course reminder email not sent")

        return {
            "enrollment_id": str(enrollment.id),
            "class_name": course_class.class_name,
            "room": room,
            "status": "sent" if notified and emailed else "partially_sent",
        }

    async def send_course_start_reminders(self) -> dict[str, Any]:
        """
        Remind students whose class starts ``days_before`` days from today.

        Returns:
            Dict with job execution summary including:
            - executed_at: When the job ran
            - start_date: The class start date targeted
            - reminders: Per-enrollment results
            - total_processed: Enrollments handled
            - total_errors: Number of processing errors
        """
        executed_at = self.clock.now()
        start_date = self.clock.today() + timedelta(days=self.days_before)

        logger.info(f"Starting course start reminder job for classes starting {start_date.isoformat()}")

        results: dict[str, Any] = {
            "executed_at": executed_at.isoformat(),
            "start_date": start_date.isoformat(),
            "reminders": [],
            "total_processed": 0,
            "total_errors": 0,
        }

        lookups = await self.lookups.get()
        enrolled_id = lookups.enrollment_status_id(EnrollmentStatus.ENROLLED)
        if enrolled_id is None:
            logger.warning("Enrolled status not found in lookup data")
            return results

        async with self.session_factory() as db:
            enrollments = await repository.get_enrollments_for_classes_starting(db, enrolled_id, start_date)
            logger.info(f"Found {len(enrollments)} enrollments with classes starting {start_date.isoformat()}")

            for enrollment in enrollments:
                try:
                    result = await self._remind(db, enrollment)
                    results["reminders"].append(result)
                    results["total_processed"] += 1
                except SQLAlchemyError:
                    raise
                except Exception as e:
                    logger.error(
                        f"Failed to process course reminder for enrollment {enrollment.id}: {e}",
                        exc_info=True,
                    )
                    results["reminders"].append(
                        {"enrollment_id": str(enrollment.id), "status": "error", "error": str(e)}
                    )
                    results["total_errors"] += 1

        logger.info(
            f"Course start reminder job completed. "
            f"Processed: {results['total_processed']}, Errors: {results['total_errors']}"
        )
        return results


def register_enrollment_jobs(host: JobHost, lookups: LookupProvider) -> CourseStartReminder:
    """Register the daily course start reminder on ``host``."""
    reminder = CourseStartReminder(
        clock=host.clock,
        lookups=lookups,
        days_before=settings.course_reminder_days_before,
    )
    host.register_daily_job(
        JOB_ID_COURSE_START_REMINDERS,
        reminder.send_course_start_reminders,
        run_at=settings.course_reminder_run_time,
        retry_backoff=COURSE_REMINDER_RETRY_BACKOFF_SECONDS,
    )
    return reminder
