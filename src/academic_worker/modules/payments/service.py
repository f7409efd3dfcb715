"""
Payment Reminder Service

Reminds students with a reservation in the ``2ndPaid`` status that the
second installment of their invoice is coming due. A reminder goes out when
the installment is exactly 14, 7 or 1 day(s) away, as an in-app warning and
an email.

The second installment of an invoice is the item with payment sequence 2.
When the invoice items carry no sequence at all, or none of them is 2, the
second item by (sequence, id) is used instead.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from academic_worker.core.clock import Clock
from academic_worker.core.database import async_session_maker
from academic_worker.core.email import send_payment_reminder
from academic_worker.core.notifications import NotificationSeverity, send_notification
from academic_worker.modules.enrollments.models import Student
from academic_worker.modules.lookups import LookupProvider, ReservationStatus

from . import repository
from .models import ClassReservation, Invoice, InvoiceItem

logger = logging.getLogger(__name__)

PAYMENT_REMINDER_DAYS = (14, 7, 1)
DUE_DATE_FORMAT = "%d/%m/%Y"
UNKNOWN_PACKAGE_NAME = "Unknown Package"


@dataclass(frozen=True)
class PaymentReminder:
    """One installment that is due on a reminder day."""

    reservation_id: UUID
    student: Student
    invoice_number: str
    package_name: str
    amount: Decimal
    due_date: date
    days_until_due: int


def format_amount(amount: Decimal) -> str:
    """Whole currency units with thousands separators, e.g. 4,500,000."""
    return f"{amount:,.0f}"


def second_installment(invoice: Invoice) -> InvoiceItem | None:
    """Pick the invoice item of the second installment, or None if there is none."""
    items = list(invoice.items or [])
    if any(item.payment_sequence is not None for item in items):
        for item in items:
            if item.payment_sequence == 2:
                return item
        logger.warning(f"Invoice {invoice.invoice_number} has no item with payment sequence 2")

    if len(items) < 2:
        logger.warning(f"Invoice {invoice.invoice_number} has fewer than 2 invoice items ({len(items)})")
        return None

    ordered = sorted(
        items,
        key=lambda item: (
            item.payment_sequence if item.payment_sequence is not None else float("inf"),
            str(item.id),
        ),
    )
    logger.info(f"Using the 2nd invoice item by order for invoice {invoice.invoice_number}")
    return ordered[1]


def _invoices_of(reservation: ClassReservation) -> list[Invoice]:
    invoices: dict[UUID, Invoice] = {}
    for item in reservation.items or []:
        if item.invoice is not None:
            invoices.setdefault(item.invoice.id, item.invoice)
    return list(invoices.values())


def find_due_reminders(reservations: Iterable[ClassReservation], today: date) -> list[PaymentReminder]:
    """Collect the second installments that are due on a reminder day from ``today``."""
    reminders = []
    for reservation in reservations:
        invoices = _invoices_of(reservation)
        if not invoices:
            logger.warning(f"Reservation {reservation.id} has no invoices")
            continue

        for invoice in invoices:
            if not invoice.items:
                logger.warning(f"Invoice {invoice.invoice_number} has no invoice items")
                continue

            item = second_installment(invoice)
            if item is None:
                continue
            if item.due_date is None:
                logger.warning(f"Invoice item {item.id} of invoice {invoice.invoice_number} has no due date")
                continue

            days_until_due = (item.due_date - today).days
            if days_until_due not in PAYMENT_REMINDER_DAYS:
                logger.debug(
                    f"Skipping invoice {invoice.invoice_number}: due in {days_until_due} days, "
                    f"not a reminder day"
                )
                continue

            package = reservation.course_package
            reminders.append(
                PaymentReminder(
                    reservation_id=reservation.id,
                    student=reservation.student,
                    invoice_number=invoice.invoice_number,
                    package_name=(package.name if package and package.name else UNKNOWN_PACKAGE_NAME),
                    amount=invoice.total_amount,
                    due_date=item.due_date,
                    days_until_due=days_until_due,
                )
            )
    return reminders


def build_payment_notification(reminder: PaymentReminder) -> tuple[str, str]:
    """Title and message of the in-app reminder."""
    due_date = reminder.due_date.strftime(DUE_DATE_FORMAT)
    subject = (
        f"Your invoice {reminder.invoice_number} for the course package {reminder.package_name} "
        f"with an amount of {format_amount(reminder.amount)} VND"
    )

    if reminder.days_until_due == 1:
        return (
            "Payment Reminder - 1 Day Remaining",
            f"{subject} is due tomorrow (due date: {due_date}). Please make payment as soon as possible.",
        )
    if reminder.days_until_due in PAYMENT_REMINDER_DAYS:
        return (
            f"Payment Reminder - {reminder.days_until_due} Days Remaining",
            f"{subject} is due in {reminder.days_until_due} days (due date: {due_date}). "
            "Please make payment before the due date.",
        )
    return (
        "Payment Reminder",
        f"{subject} is due on {due_date}. Please make payment before the due date.",
    )


class PaymentReminderService:
    """
    Sends installment payment reminders.

    Args:
        clock: Source of "today"
        lookups: Provider of resolved lookup ids
        session_factory: Async session factory
    """

    def __init__(
        self,
        clock: Clock,
        lookups: LookupProvider,
        session_factory: Callable[[], Any] = async_session_maker,
    ):
        self.clock = clock
        self.lookups = lookups
        self.session_factory = session_factory

    async def _remind(self, reminder: PaymentReminder) -> dict[str, Any]:
        student = reminder.student
        title, message = build_payment_notification(reminder)

        notified = await send_notification(
            recipient_id=student.user_id,
            title=title,
            message=message,
            severity=NotificationSeverity.WARNING,
        )

        emailed = False
        if student.email:
            emailed = await send_payment_reminder(
                to_email=student.email,
                student_name=student.full_name or "Student",
                invoice_number=reminder.invoice_number,
                package_name=reminder.package_name,
                amount=format_amount(reminder.amount),
                due_date=reminder.due_date.strftime(DUE_DATE_FORMAT),
                days_until_due=reminder.days_until_due,
            )
        else:
            logger.warning(f"Student {student.student_code} has no email, payment reminder email not sent")

        if notified and emailed:
            status = "sent"
        elif notified or emailed:
            status = "partially_sent"
        else:
            status = "failed"

        return {
            "reservation_id": str(reminder.reservation_id),
            "invoice_number": reminder.invoice_number,
            "days_until_due": reminder.days_until_due,
            "status": status,
        }

    async def send_payment_reminders(self) -> dict[str, Any]:
        """
        Remind students whose second installment is due on a reminder day.

        Returns:
            Dict with job execution summary including:
            - executed_at: When the job ran
            - reminders: Per-invoice results
            - total: Reminders due today
            - succeeded: Reminders delivered on at least one channel
            - failed: Reminders not delivered at all
        """
        executed_at = self.clock.now()
        today = self.clock.today()

        logger.info(f"Starting payment reminder check for {today.isoformat()}")

        results: dict[str, Any] = {
            "executed_at": executed_at.isoformat(),
            "reminders": [],
            "total": 0,
            "succeeded": 0,
            "failed": 0,
        }

        lookups = await self.lookups.get()
        second_paid_id = lookups.reservation_status_id(ReservationStatus.SECOND_PAID)
        if second_paid_id is None:
            logger.warning(f"{ReservationStatus.SECOND_PAID.value} reservation status not found in lookup data")
            return results

        async with self.session_factory() as db:
            reservations = await repository.get_reservations_with_status(db, second_paid_id)
            logger.info(f"Found {len(reservations)} reservations with {ReservationStatus.SECOND_PAID.value} status")
            reminders = find_due_reminders(reservations, today)

        results["total"] = len(reminders)
        if not reminders:
            logger.info("No payment reminders to send")
            return results

        for reminder in reminders:
            try:
                result = await self._remind(reminder)
            except Exception as e:
                logger.error(
                    f"Failed to send payment reminder for invoice {reminder.invoice_number}: {e}",
                    exc_info=True,
                )
                result = {
                    "reservation_id": str(reminder.reservation_id),
                    "invoice_number": reminder.invoice_number,
                    "status": "error",
                    "error": str(e),
                }
            results["reminders"].append(result)
            if result["status"] in ("sent", "partially_sent"):
                results["succeeded"] += 1
            else:
                results["failed"] += 1

        logger.info(
            f"Payment reminder processing completed: {results['succeeded']} succeeded, "
            f"{results['failed']} failed out of {results['total']} total"
        )
        return results
