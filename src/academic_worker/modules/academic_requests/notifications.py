"""
Lifecycle Notifications

Turns a lifecycle step on a request into an in-app notification, plus an
email for the steps students must act on (suspension activated, return
reminder, automatic dropout).

Delivery failures are logged and reported to the caller as False; they never
raise, so one bad address cannot stop a batch.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from uuid import UUID

from academic_worker.core.email import (
    send_auto_dropout,
    send_return_reminder,
    send_suspension_activated,
)
from academic_worker.core.notifications import NotificationSeverity, send_notification

from .models import AcademicRequest
from .queries import LifecyclePolicy, TransitionKind

logger = logging.getLogger(__name__)

DATE_FORMAT = "%B %d, %Y"

# Suspensions without an end date are shown as one week long
DEFAULT_SUSPENSION_DAYS = 7

EMAIL_KINDS = {
    TransitionKind.ACTIVATE_SUSPENSION,
    TransitionKind.RETURN_REMINDER,
    TransitionKind.AUTO_DROPOUT,
}


def format_date(value: date | None) -> str:
    return value.strftime(DATE_FORMAT) if value else "N/A"


@dataclass(frozen=True)
class LifecycleNotice:
    """Everything needed to tell a student about one lifecycle step."""

    kind: TransitionKind
    request_id: UUID
    recipient_id: UUID | None
    student_name: str
    student_email: str | None
    start_date: date | None = None
    end_date: date | None = None
    expected_return_date: date | None = None
    effective_date: date | None = None
    reason_category: str | None = None
    days_until_return: int | None = None
    grace_days: int = 14

    @classmethod
    def from_request(
        cls,
        kind: TransitionKind,
        request: AcademicRequest,
        today: date,
        policy: LifecyclePolicy,
    ) -> "LifecycleNotice":
        student = request.student
        end_date = request.suspension_end_date
        if end_date is None and request.suspension_start_date is not None:
            end_date = request.suspension_start_date + timedelta(days=DEFAULT_SUSPENSION_DAYS)
        expected_return = request.expected_return_date
        if expected_return is None and end_date is not None:
            expected_return = end_date + timedelta(days=1)

        return cls(
            kind=kind,
            request_id=request.id,
            recipient_id=student.user_id if student else None,
            student_name=(student.full_name if student else None) or "Student",
            student_email=student.email if student else None,
            start_date=request.suspension_start_date,
            end_date=end_date,
            expected_return_date=expected_return,
            effective_date=request.effective_date,
            reason_category=request.reason_category,
            days_until_return=(end_date - today).days if end_date else None,
            grace_days=policy.suspension_grace_days,
        )


@dataclass(frozen=True)
class Notification:
    title: str
    message: str
    severity: NotificationSeverity


def build_notification(notice: LifecycleNotice) -> Notification:
    """Build the in-app notification for a lifecycle step."""
    end = format_date(notice.end_date)
    expected_return = format_date(notice.expected_return_date)

    if notice.kind == TransitionKind.ACTIVATE_SUSPENSION:
        return Notification(
            title="Suspension Activated",
            message=(
                f"Your suspension has been activated as of {format_date(notice.start_date)}. "
                f"Your suspension will end on {end}. "
                "Please ensure you return on or before the expected return date. "
                "You will receive a reminder before your return date."
            ),
            severity=NotificationSeverity.INFO,
        )
    if notice.kind == TransitionKind.END_SUSPENSION:
        return Notification(
            title="Suspension Ended - Please Return",
            message=(
                f"Your suspension period has ended as of {end}. "
                f"You are expected to return by {expected_return}. "
                "Please contact our support team to confirm your return. "
                f"Important: if you do not return within {notice.grace_days} days, "
                "you may be automatically dropped out."
            ),
            severity=NotificationSeverity.WARNING,
        )
    if notice.kind == TransitionKind.RETURN_REMINDER:
        return Notification(
            title="Reminder: Your Suspension Ends Soon",
            message=(
                f"This is a friendly reminder that your suspension will end in "
                f"{notice.days_until_return} days on {end}. "
                f"You are expected to return by {expected_return}. "
                "Please confirm your return date with our team."
            ),
            severity=NotificationSeverity.INFO,
        )
    if notice.kind == TransitionKind.AUTO_DROPOUT:
        return Notification(
            title="Automatic Dropout - Enrollment Terminated",
            message=(
                "You have been automatically dropped out due to failure to return after your "
                f"suspension period. Your suspension ended on {end} and you were expected to "
                f"return by {expected_return}. After {notice.grace_days} days of grace period, "
                "your enrollment has been terminated. If you believe this is an error or wish "
                "to re-enroll, please contact the admissions office."
            ),
            severity=NotificationSeverity.ERROR,
        )
    if notice.kind == TransitionKind.COMPLETE_DROPOUT:
        return Notification(
            title="Dropout Request Completed",
            message=(
                f"Your dropout request has been completed as of {format_date(notice.effective_date)}. "
                "Your enrollment has been terminated. "
                "If you wish to re-enroll in the future, please contact admissions."
            ),
            severity=NotificationSeverity.INFO,
        )
    if notice.kind == TransitionKind.EXPIRE_PENDING:
        return Notification(
            title="Request Expired",
            message=(
                "Your academic request was not processed before its effective date of "
                f"{format_date(notice.effective_date)} and has expired. "
                "Please submit a new request if it is still needed."
            ),
            severity=NotificationSeverity.INFO,
        )
    raise ValueError(f"No notification for {notice.kind}")


async def _send_email(notice: LifecycleNotice) -> bool:
    if notice.kind == TransitionKind.ACTIVATE_SUSPENSION:
        return await send_suspension_activated(
            to_email=notice.student_email,
            student_name=notice.student_name,
            start_date=format_date(notice.start_date),
            end_date=format_date(notice.end_date),
            return_date=format_date(notice.expected_return_date),
            reason_category=notice.reason_category or "Not specified",
        )
    if notice.kind == TransitionKind.RETURN_REMINDER:
        return await send_return_reminder(
            to_email=notice.student_email,
            student_name=notice.student_name,
            end_date=format_date(notice.end_date),
            return_date=format_date(notice.expected_return_date),
            days_until_return=notice.days_until_return or 0,
        )
    return await send_auto_dropout(
        to_email=notice.student_email,
        student_name=notice.student_name,
        end_date=format_date(notice.end_date),
        return_date=format_date(notice.expected_return_date),
        grace_period_days=notice.grace_days,
    )


class NotificationDispatcher:
    """Sends lifecycle notices to students. Never raises."""

    async def dispatch(self, notice: LifecycleNotice) -> bool:
        """
        Send the in-app notification (and email, where applicable).

        Returns:
            True if every delivery attempted succeeded
        """
        delivered = True
        notification = build_notification(notice)

        if notice.recipient_id is None:
            logger.warning(f"Request {notice.request_id} has no recipient, notification not sent")
            delivered = False
        else:
            try:
                if not await send_notification(
                    recipient_id=notice.recipient_id,
                    title=notification.title,
                    message=notification.message,
                    severity=notification.severity,
                ):
                    delivered = False
            except Exception as e:
                logger.error(
                    f"Failed to send notification for request {notice.request_id}: {e}",
                    exc_info=True,
                )
                delivered = False

        if notice.kind in EMAIL_KINDS:
            if not notice.student_email:
                logger.warning(f"Request {notice.request_id} has no student email, email not sent")
                delivered = False
            else:
                try:
                    if await _send_email(notice):
                        logger.info(f"Email sent to {notice.student_email}")
                    else:
                        delivered = False
                except Exception as e:
                    logger.error(f"Failed to send email to {notice.student_email}: {e}", exc_info=True)
                    delivered = False

        return delivered
