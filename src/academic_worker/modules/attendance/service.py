"""
Attendance Warning Service

Warns students whose absences in a class have reached the warning band:

    warning_threshold = ceil(10% of sessions)
    max_absent        = floor(50% of sessions)

A student with ``warning_threshold <= absent <= max_absent`` gets one email
per distinct absence count. The DedupCache remembers (student, class,
absent count) for the cooldown window, so re-checking an unchanged count is
silent while a new absence triggers a fresh warning. Students above
``max_absent`` are past warning and only logged.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from academic_worker.core.database import async_session_maker
from academic_worker.core.dedup import DedupCache
from academic_worker.core.email import send_attendance_warning
from academic_worker.modules.enrollments import repository as enrollments_repository
from academic_worker.modules.enrollments.models import Enrollment
from academic_worker.modules.lookups import AttendanceStatus, EnrollmentStatus, LookupProvider

logger = logging.getLogger(__name__)

UNKNOWN_CLASS_NAME = "(Unknown Class)"


@dataclass(frozen=True)
class AbsenceLimits:
    total_sessions: int
    warning_threshold: int
    max_absent: int

    @classmethod
    def for_sessions(cls, total_sessions: int) -> "AbsenceLimits":
        # Integer ceil/floor of 10% and 50%
        return cls(
            total_sessions=total_sessions,
            warning_threshold=-(-total_sessions // 10),
            max_absent=total_sessions // 2,
        )

    def in_warning_band(self, absent_count: int) -> bool:
        return self.warning_threshold <= absent_count <= self.max_absent


def dedup_key(student_id: UUID, class_id: UUID, absent_count: int) -> tuple[UUID, UUID, int]:
    return (student_id, class_id, absent_count)


class AttendanceWarningService:
    """
    Checks every active enrollment against its class's absence limits.

    Args:
        lookups: Provider of resolved lookup ids
        cache: Sent-warning cache shared across runs
        session_factory: Async session factory
    """

    def __init__(
        self,
        lookups: LookupProvider,
        cache: DedupCache,
        session_factory: Callable[[], Any] = async_session_maker,
    ):
        self.lookups = lookups
        self.cache = cache
        self.session_factory = session_factory

    async def _check_enrollment(
        self,
        db,
        enrollment: Enrollment,
        class_name: str,
        limits: AbsenceLimits,
        absent_status_id: UUID,
        results: dict[str, Any],
    ) -> None:
        student = enrollment.student
        class_id = enrollment.class_id
        absent = await enrollments_repository.count_absences(db, enrollment.student_id, class_id, absent_status_id)

        if absent > limits.max_absent:
            logger.info(
                f"Student {student.student_code} exceeded max absences in {class_name} "
                f"({absent}/{limits.total_sessions}, max {limits.max_absent}), no warning sent"
            )
            results["over_limit"] += 1
            return

        if not limits.in_warning_band(absent):
            if absent > 0:
                logger.debug(
                    f"Student {student.student_code} attendance check: {absent}/{limits.total_sessions} "
                    f"absent, warning threshold {limits.warning_threshold}, max {limits.max_absent}"
                )
            return

        key = dedup_key(enrollment.student_id, class_id, absent)
        if self.cache.contains(key):
            logger.info(
                f"Skipping attendance warning for student {student.student_code}, "
                f"absent {absent}/{limits.total_sessions} (already sent recently)"
            )
            results["suppressed"] += 1
            return

        if not student.email:
            logger.warning(f"Student {student.student_code} has no email, attendance warning not sent")
            results["failed"] += 1
            return

        logger.info(
            f"Sending attendance warning to student {student.student_code} ({student.email}), "
            f"absent {absent}/{limits.total_sessions} in {class_name}"
        )

        sent = await send_attendance_warning(
            to_email=student.email,
            student_name=student.full_name or "Student",
            course_name=enrollment.course_class.course_name if enrollment.course_class else class_name,
            class_name=class_name,
            absent_count=absent,
            total_sessions=limits.total_sessions,
            max_absent=limits.max_absent,
        )

        if sent:
            self.cache.add(key)
            results["warned"] += 1
        else:
            logger.error(f"Failed to send attendance warning to student {student.student_code}")
            results["failed"] += 1

    async def process_attendance_warnings(self) -> dict[str, Any]:
        """
        Send attendance warnings for every active enrollment.

        Returns:
            Dict with counts: classes_checked, classes_skipped, warned,
            suppressed, over_limit, failed
        """
        results = {
            "classes_checked": 0,
            "classes_skipped": 0,
            "warned": 0,
            "suppressed": 0,
            "over_limit": 0,
            "failed": 0,
        }

        lookups = await self.lookups.get()
        enrolled_id = lookups.enrollment_status_id(EnrollmentStatus.ENROLLED)
        absent_id = lookups.attendance_status_id(AttendanceStatus.ABSENT)
        if enrolled_id is None or absent_id is None:
            logger.warning("Enrolled or Absent status not found in lookup data, skipping attendance check")
            return results

        purged = self.cache.purge_expired()
        if purged:
            logger.debug(f"Purged {purged} expired attendance warning entries")

        async with self.session_factory() as db:
            enrollments = await enrollments_repository.get_active_enrollments(db, enrolled_id)
            if not enrollments:
                return results

            by_class: dict[UUID, list[Enrollment]] = {}
            for enrollment in enrollments:
                by_class.setdefault(enrollment.class_id, []).append(enrollment)

            for class_id, members in by_class.items():
                course_class = members[0].course_class
                class_name = course_class.class_name if course_class else UNKNOWN_CLASS_NAME

                total_sessions = await enrollments_repository.count_class_sessions(db, class_id)
                if total_sessions == 0:
                    results["classes_skipped"] += 1
                    continue

                results["classes_checked"] += 1
                limits = AbsenceLimits.for_sessions(total_sessions)

                for enrollment in members:
                    try:
                        await self._check_enrollment(db, enrollment, class_name, limits, absent_id, results)
                    except SQLAlchemyError:
                        raise
                    except Exception as e:
                        logger.error(
                            f"Attendance check failed for enrollment {enrollment.id}: {e}",
                            exc_info=True,
                        )
                        results["failed"] += 1

        logger.info(
            f"Attendance warning check completed: {results['warned']} warned, "
            f"{results['suppressed']} suppressed, {results['over_limit']} over limit, "
            f"{results['failed']} failed across {results['classes_checked']} classes"
        )
        return results
