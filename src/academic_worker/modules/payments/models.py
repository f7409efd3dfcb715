"""
Payment Models

Mappings for class reservations and the invoices that pay for them. These
tables are owned by the wider platform; the worker only reads them.

A reservation is paid in installments. Each reservation item points at the
invoice of one installment, and each invoice lists its installments as
invoice items with a payment sequence and a due date.
"""

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academic_worker.core.database import Base
from academic_worker.modules.enrollments.models import Student


class CoursePackage(Base):
    """A bundle of courses sold as one reservation."""

    __tablename__ = "course_packages"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)


class InvoiceItem(Base):
    """One installment line of an invoice."""

    __tablename__ = "invoice_items"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payment_sequence: Mapped[int | None] = mapped_column(Integer, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)


class Invoice(Base):
    """An invoice issued for a reservation."""

    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    items: Mapped[list["InvoiceItem"]] = relationship("InvoiceItem", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number}>"


class ReservationItem(Base):
    """One paid (or payable) step of a reservation."""

    __tablename__ = "reservation_items"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reservation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("class_reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payment_sequence: Mapped[int | None] = mapped_column(Integer, nullable=True)
    invoice_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
    )

    invoice: Mapped["Invoice | None"] = relationship("Invoice", lazy="selectin")


class ClassReservation(Base):
    """A student's reservation of a course package, paid in installments."""

    __tablename__ = "class_reservations"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_package_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("course_packages.id", ondelete="SET NULL"),
        nullable=True,
    )
    reservation_status_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)

    student: Mapped["Student"] = relationship(Student, lazy="selectin")
    course_package: Mapped["CoursePackage | None"] = relationship("CoursePackage", lazy="selectin")
    items: Mapped[list["ReservationItem"]] = relationship(
        "ReservationItem",
        lazy="selectin",
        order_by="ReservationItem.payment_sequence",
    )

    def __repr__(self) -> str:
        return f"<ClassReservation {self.id} student={self.student_id}>"
