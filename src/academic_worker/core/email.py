"""
Email Service using Resend

Handles sending the student-facing emails of the academic request lifecycle,
attendance warnings, course start reminders and installment payment reminders.
"""

import asyncio
import logging
from html import escape

import resend

from academic_worker.core.config import settings

logger = logging.getLogger(__name__)

# Initialize Resend with API key
resend.api_key = settings.resend_api_key

SIGNATURE = "Academic Office - Student Services"

_STYLES = """
    body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
    .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
    .header { color: #1a365d; margin-bottom: 24px; }
    .info-box { background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }
    .warning { background-color: #fef3c7; border: 1px solid #f59e0b; padding: 16px; border-radius: 8px; margin: 16px 0; }
    .danger { background-color: #fee2e2; border: 1px solid #ef4444; padding: 16px; border-radius: 8px; margin: 16px 0; }
    .button { display: inline-block; background-color: #1a365d; color: white; padding: 14px 28px; text-decoration: none; border-radius: 8px; margin: 24px 0; }
    .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def _render(heading: str, body: str) -> str:
    """Wrap an HTML body fragment in the shared email layout."""
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>{_STYLES}</style>
    </head>
    <body>
        <div class="container">
            <h1 class="header">{heading}</h1>
            {body}
            <div class="footer">
                <p>{SIGNATURE}</p>
            </div>
        </div>
    </body>
    </html>
    """


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent successfully
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Run sync Resend call in thread pool to avoid blocking event loop
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent successfully to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_suspension_activated(
    to_email: str,
    student_name: str,
    start_date: str,
    end_date: str,
    return_date: str,
    reason_category: str,
) -> bool:
    """Tell a student their approved suspension is now in effect."""
    safe_student_name = escape(student_name)
    safe_reason = escape(reason_category)

    body = f"""
            <p>Hello {safe_student_name},</p>

            <p>Your suspension request has been activated.</p>

            <div class="info-box">
                <p><strong>Start date:</strong> {escape(start_date)}</p>
                <p><strong>End date:</strong> {escape(end_date)}</p>
                <p><strong>Expected return:</strong> {escape(return_date)}</p>
                <p><strong>Reason:</strong> {safe_reason}</p>
            </div>

            <p>You will receive a reminder a few days before your suspension ends.</p>
    """
    return await send_email(
        to_email=to_email,
        subject="Suspension Activated",
        html_content=_render("Suspension Activated", body),
    )


async def send_return_reminder(
    to_email: str,
    student_name: str,
    end_date: str,
    return_date: str,
    days_until_return: int,
) -> bool:
    """Remind a suspended student that their suspension ends soon."""
    safe_student_name = escape(student_name)

    body = f"""
            <p>Hello {safe_student_name},</p>

            <div class="warning">
                Your suspension ends in <strong>{days_until_return} days</strong>, on {escape(end_date)}.
            </div>

            <p>You are expected to return by <strong>{escape(return_date)}</strong>.
            Please confirm your return date with the academic office.</p>

            <a href="{settings.frontend_url}/student/requests" class="button">View My Requests</a>
    """
    return await send_email(
        to_email=to_email,
        subject="Reminder: Your Suspension Ends Soon",
        html_content=_render("Your Suspension Ends Soon", body),
    )


async def send_auto_dropout(
    to_email: str,
    student_name: str,
    end_date: str,
    return_date: str,
    grace_period_days: int,
) -> bool:
    """Tell a student they were dropped out for not returning after a suspension."""
    safe_student_name = escape(student_name)

    body = f"""
            <p>Hello {safe_student_name},</p>

            <div class="danger">
                Your enrollment has been terminated because you did not return after your suspension.
            </div>

            <p>Your suspension ended on {escape(end_date)} and you were expected to return by
            {escape(return_date)}. No return was recorded within the {grace_period_days}-day grace period.</p>

            <p>If you believe this is an error or wish to re-enroll, please contact the admissions office.</p>
    """
    return await send_email(
        to_email=to_email,
        subject="Enrollment Terminated - Automatic Dropout",
        html_content=_render("Automatic Dropout", body),
    )


async def send_attendance_warning(
    to_email: str,
    student_name: str,
    course_name: str,
    class_name: str,
    absent_count: int,
    total_sessions: int,
    max_absent: int,
) -> bool:
    """Warn a student that their absences are approaching the allowed maximum."""
    safe_student_name = escape(student_name)
    safe_course_name = escape(course_name)
    safe_class_name = escape(class_name)
    remaining = max(max_absent - absent_count, 0)

    body = f"""
            <p>Hello {safe_student_name},</p>

            <div class="warning">
                You have been absent from <strong>{absent_count} of {total_sessions}</strong> sessions of
                <strong>{safe_course_name}</strong> ({safe_class_name}).
            </div>

            <p>The maximum number of absences allowed for this class is <strong>{max_absent}</strong>.
            You can miss at most {remaining} more session(s).</p>

            <p>Please contact your teacher or the academic office if you are having difficulties attending.</p>
    """
    return await send_email(
        to_email=to_email,
        subject="Attendance Warning",
        html_content=_render("Attendance Warning", body),
    )


async def send_course_start_reminder(
    to_email: str,
    student_name: str,
    course_name: str,
    class_name: str,
    start_date: str,
    room: str,
) -> bool:
    """Remind a student that their class starts soon."""
    safe_student_name = escape(student_name)
    safe_course_name = escape(course_name)
    safe_class_name = escape(class_name)

    body = f"""
            <p>Hello {safe_student_name},</p>

            <p>Your class is starting soon.</p>

            <div class="info-box">
                <p><strong>Course:</strong> {safe_course_name}</p>
                <p><strong>Class:</strong> {safe_class_name}</p>
                <p><strong>Start date:</strong> {escape(start_date)}</p>
                <p><strong>Room:</strong> {escape(room)}</p>
            </div>

            <a href="{settings.frontend_url}/student/schedule" class="button">View Schedule</a>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Upcoming Class Reminder: {safe_course_name}",
        html_content=_render("Class Starting Soon", body),
    )


async def send_payment_reminder(
    to_email: str,
    student_name: str,
    invoice_number: str,
    package_name: str,
    amount: str,
    due_date: str,
    days_until_due: int,
) -> bool:
    """Remind a student that an installment of their invoice is due soon."""
    safe_student_name = escape(student_name)
    due_in = "tomorrow" if days_until_due == 1 else f"in {days_until_due} days"

    body = f"""
            <p>Hello {safe_student_name},</p>

            <div class="warning">
                Your next installment is due <strong>{due_in}</strong>.
            </div>

            <div class="info-box">
                <p><strong>Invoice:</strong> {escape(invoice_number)}</p>
                <p><strong>Course package:</strong> {escape(package_name)}</p>
                <p><strong>Amount:</strong> {escape(amount)} VND</p>
                <p><strong>Due date:</strong> {escape(due_date)}</p>
            </div>

            <p>Please make the payment before the due date.</p>

            <a href="{settings.frontend_url}/student/invoices" class="button">View My Invoices</a>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Payment Reminder: Invoice {escape(invoice_number)}",
        html_content=_render("Payment Reminder", body),
    )
