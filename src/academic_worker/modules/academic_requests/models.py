"""
Academic Request Models

Student requests (suspension, dropout, ...) and their status history.
Requests are created and approved elsewhere on the platform; the worker only
moves them forward along their lifecycle.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academic_worker.core.database import Base
from academic_worker.modules.enrollments.models import Student


class AcademicRequest(Base):
    """
    A student's academic request.

    ``request_type_id`` and ``status_id`` reference lookup rows of type
    AcademicRequestType and AcademicRequestStatus.
    """

    __tablename__ = "academic_requests"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    request_type_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    status_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    enrollment_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("enrollments.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Suspension dates
    suspension_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    suspension_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expected_return_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Dropout effective date; also the deadline of a pending request
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    reason_category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachment_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=True
    )

    student: Mapped["Student"] = relationship("Student", lazy="selectin")

    def __repr__(self) -> str:
        return f"<AcademicRequest {self.id} status={self.status_id}>"


class AcademicRequestHistory(Base):
    """A status change record of an academic request."""

    __tablename__ = "academic_request_history"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("academic_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    attachment_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
