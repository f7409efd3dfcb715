"""
Enrollments Repository

Database operations for enrollments, class meetings and attendance.
Only reads here; enrollment updates are persisted together with the academic
request that caused them (see academic_requests.repository.save_transition).
"""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Attendance, ClassMeeting, CourseClass, Enrollment


async def get_by_id(db: AsyncSession, id: UUID) -> Enrollment | None:
    """Get enrollment by ID."""
    return await db.get(Enrollment, id)


async def get_active_enrollments(db: AsyncSession, enrolled_status_id: UUID) -> list[Enrollment]:
    """Get enrollments in the Enrolled status that have a class assigned."""
    result = await db.execute(
        select(Enrollment)
        .where(
            Enrollment.enrollment_status_id == enrolled_status_id,
            Enrollment.class_id.is_not(None),
        )
        .order_by(Enrollment.class_id)
    )
    return list(result.scalars().all())


async def count_class_sessions(db: AsyncSession, class_id: UUID) -> int:
    """Count the non-deleted meetings of a class."""
    result = await db.execute(
        select(func.count(ClassMeeting.id)).where(
            ClassMeeting.class_id == class_id,
            ClassMeeting.is_deleted == False,  # noqa: E712
        )
    )
    return result.scalar_one()


async def count_absences(
    db: AsyncSession,
    student_id: UUID,
    class_id: UUID,
    absent_status_id: UUID,
) -> int:
    """Count a student's absences across the meetings of a class."""
    result = await db.execute(
        select(func.count(Attendance.id))
        .join(ClassMeeting, Attendance.meeting_id == ClassMeeting.id)
        .where(
            Attendance.student_id == student_id,
            Attendance.attendance_status_id == absent_status_id,
            ClassMeeting.class_id == class_id,
        )
    )
    return result.scalar_one()


async def get_enrollments_for_classes_starting(
    db: AsyncSession,
    enrolled_status_id: UUID,
    start_date: date,
) -> list[Enrollment]:
    """Get Enrolled enrollments whose class starts on ``start_date``."""
    result = await db.execute(
        select(Enrollment)
        .join(CourseClass, Enrollment.class_id == CourseClass.id)
        .where(
            Enrollment.enrollment_status_id == enrolled_status_id,
            CourseClass.start_date == start_date,
        )
    )
    return list(result.scalars().all())


async def get_meeting_on(db: AsyncSession, class_id: UUID, meeting_date: date) -> ClassMeeting | None:
    """Get the first non-deleted meeting of a class held on ``meeting_date``."""
    result = await db.execute(
        select(ClassMeeting)
        .where(
            ClassMeeting.class_id == class_id,
            ClassMeeting.meeting_date == meeting_date,
            ClassMeeting.is_deleted == False,  # noqa: E712
        )
        .order_by(ClassMeeting.slot_name)
        .limit(1)
    )
    return result.scalars().first()
