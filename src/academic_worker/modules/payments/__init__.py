"""
Payments module - Installment payment reminders for class reservations.
"""

from academic_worker.modules.payments.models import (
    ClassReservation,
    CoursePackage,
    Invoice,
    InvoiceItem,
    ReservationItem,
)

__all__ = ["ClassReservation", "CoursePackage", "Invoice", "InvoiceItem", "ReservationItem"]
