"""
Payment Background Jobs

Daily installment payment reminder (08:00 by default). A failed run is
retried after five minutes.
"""

import logging

from academic_worker.core.config import settings
from academic_worker.core.scheduler import JobHost
from academic_worker.modules.lookups import LookupProvider

from .service import PaymentReminderService

logger = logging.getLogger(__name__)

# Job ID for registration and manual triggering
JOB_ID_PAYMENT_REMINDERS = "payments_payment_reminders"

PAYMENT_REMINDER_RETRY_BACKOFF_SECONDS = 300.0


def register_payment_jobs(host: JobHost, lookups: LookupProvider) -> PaymentReminderService:
    """Register the daily payment reminder on ``host``."""
    service = PaymentReminderService(clock=host.clock, lookups=lookups)
    host.register_daily_job(
        JOB_ID_PAYMENT_REMINDERS,
        service.send_payment_reminders,
        run_at=settings.payment_reminder_run_time,
        retry_backoff=PAYMENT_REMINDER_RETRY_BACKOFF_SECONDS,
    )

    logger.info("Payment background jobs registered successfully")
    return service
