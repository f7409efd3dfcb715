"""
Enrollment Models

Mappings for the student, class, meeting, attendance and enrollment tables.
These tables are owned by the wider platform; the worker reads them and
updates enrollment status and class assignment only.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academic_worker.core.database import Base


class Student(Base):
    """A student; ``user_id`` is the account that receives notifications."""

    __tablename__ = "students"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    student_code: Mapped[str] = mapped_column(String(50), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Student {self.student_code}>"


class CourseClass(Base):
    """A scheduled class of a course."""

    __tablename__ = "classes"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    class_name: Mapped[str] = mapped_column(String(100), nullable=False)
    course_name: Mapped[str] = mapped_column(String(200), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<CourseClass {self.class_name}>"


class ClassMeeting(Base):
    """One session of a class."""

    __tablename__ = "class_meetings"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    class_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    meeting_date: Mapped[date] = mapped_column(Date, nullable=False)
    slot_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    room_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Attendance(Base):
    """Attendance of one student at one class meeting."""

    __tablename__ = "attendances"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    meeting_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("class_meetings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attendance_status_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)


class Enrollment(Base):
    """
    A student's enrollment in a course.

    ``class_id`` is the class the student currently attends; it is cleared
    when the student is dropped.
    """

    __tablename__ = "enrollments"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    class_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("classes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    enrollment_status_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=True
    )

    student: Mapped["Student"] = relationship("Student", lazy="selectin")
    course_class: Mapped["CourseClass | None"] = relationship("CourseClass", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Enrollment {self.id} student={self.student_id}>"
