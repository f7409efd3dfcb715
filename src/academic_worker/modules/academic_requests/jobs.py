"""
Academic Request Lifecycle Jobs

One daily job per lifecycle step:
1. Activate approved suspensions starting today
2. End suspensions whose end date has passed
3. Remind suspended students a few days before their suspension ends
4. Drop out students who did not return within the grace period
5. Complete approved dropouts effective today
6. Expire pending requests whose effective date has passed

All six run the same LifecycleWorker, parameterised by a TransitionRule.

Design Principles:
- Jobs are idempotent (a transitioned request no longer matches its query)
- Each request is transitioned in its own database session
- Jobs continue processing even if individual requests fail
- Notifications are sent after the transition is saved

Error Handling:
- Missing lookup data yields an empty batch, the job completes normally
- Requests deleted or changed since the query are skipped with a warning
- Database errors abort the batch and propagate to the scheduler, which
  backs off and waits for the next scheduled run
- Notification and email failures are logged and counted, never raised
"""

import logging
from collections.abc import Callable
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from academic_worker.core.clock import Clock
from academic_worker.core.config import settings
from academic_worker.core.database import async_session_maker
from academic_worker.core.scheduler import JobHost
from academic_worker.modules.lookups import LookupProvider, LookupTable

from .notifications import LifecycleNotice, NotificationDispatcher
from .queries import RULES, LifecyclePolicy, TransitionKind, TransitionRule, find_eligible
from .transitions import TransitionOutcome, apply_transition

logger = logging.getLogger(__name__)

# Job IDs for registration and manual triggering
JOB_IDS: dict[TransitionKind, str] = {kind: f"academic_requests_{kind.value}" for kind in TransitionKind}


class LifecycleWorker:
    """
    Runs one lifecycle step over every eligible request.

    Args:
        rule: The lifecycle step
        clock: Source of "now" and "today"
        lookups: Provider of resolved lookup ids
        dispatcher: Notification sender
        policy: Day offsets for the date predicates
        session_factory: Async session factory
    """

    def __init__(
        self,
        rule: TransitionRule,
        clock: Clock,
        lookups: LookupProvider,
        dispatcher: NotificationDispatcher | None = None,
        policy: LifecyclePolicy | None = None,
        session_factory: Callable[[], Any] = async_session_maker,
    ):
        self.rule = rule
        self.clock = clock
        self.lookups = lookups
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.policy = policy or LifecyclePolicy.from_settings()
        self.session_factory = session_factory

    @property
    def job_id(self) -> str:
        return JOB_IDS[self.rule.kind]

    async def _process_request(
        self,
        request_id: UUID,
        lookups: LookupTable,
        results: dict[str, Any],
    ) -> dict[str, Any]:
        now = self.clock.now()

        async with self.session_factory() as db:
            result = await apply_transition(db, self.rule, request_id, lookups, now)

        if result.outcome == TransitionOutcome.SKIPPED:
            return {"request_id": str(request_id), "status": "skipped", "reason": result.reason}

        notice = LifecycleNotice.from_request(self.rule.kind, result.request, self.clock.today(), self.policy)
        delivered = await self.dispatcher.dispatch(notice)
        if not delivered:
            results["notification_failures"] += 1

        return {
            "request_id": str(request_id),
            "status": result.outcome.value,
            "notified": delivered,
        }

    async def run(self) -> dict[str, Any]:
        """
        Run the lifecycle step once for today.

        Returns:
            Dict with job execution summary including:
            - executed_at: When the job ran
            - kind: The lifecycle step
            - requests: Per-request results
            - total: Number of eligible requests
            - succeeded / failed / skipped: Per-outcome counts
            - notification_failures: Requests whose notification or email failed

        Raises:
            SQLAlchemyError: If reading or saving requests fails
        """
        kind = self.rule.kind.value
        executed_at = self.clock.now()
        today = self.clock.today()

        logger.info(f"Starting {kind} job for {today.isoformat()}")

        results: dict[str, Any] = {
            "executed_at": executed_at.isoformat(),
            "kind": kind,
            "requests": [],
            "total": 0,
            "succeeded": 0,
            "failed": 0,
            "skipped": 0,
            "notification_failures": 0,
        }

        lookups = await self.lookups.get()

        async with self.session_factory() as db:
            eligible = await find_eligible(db, self.rule, lookups, today, self.policy)
            request_ids = [request.id for request in eligible]

        results["total"] = len(request_ids)
        logger.info(f"Found {len(request_ids)} requests eligible for {kind}")

        for request_id in request_ids:
            try:
                result = await self._process_request(request_id, lookups, results)
            except SQLAlchemyError as e:
                logger.error(f"Database error during {kind} for request {request_id}: {e}", exc_info=True)
                raise
            except Exception as e:
                logger.error(f"Failed to process {kind} for request {request_id}: {e}", exc_info=True)
                results["requests"].append({"request_id": str(request_id), "status": "error", "error": str(e)})
                results["failed"] += 1
                continue

            results["requests"].append(result)
            if result["status"] == "skipped":
                results["skipped"] += 1
            else:
                results["succeeded"] += 1

        logger.info(
            f"{kind} job completed: {results['succeeded']} succeeded, {results['failed']} failed, "
            f"{results['skipped']} skipped out of {results['total']} total"
        )

        return results


def register_lifecycle_jobs(
    host: JobHost,
    lookups: LookupProvider,
    dispatcher: NotificationDispatcher | None = None,
    policy: LifecyclePolicy | None = None,
) -> list[LifecycleWorker]:
    """
    Register one daily job per lifecycle step on ``host``.

    All steps run at ``settings.lifecycle_run_time`` in the host clock's
    timezone, each on its own schedule.
    """
    logger.info("Registering academic request lifecycle jobs...")

    dispatcher = dispatcher or NotificationDispatcher()
    policy = policy or LifecyclePolicy.from_settings()

    workers = []
    for rule in RULES.values():
        worker = LifecycleWorker(
            rule=rule,
            clock=host.clock,
            lookups=lookups,
            dispatcher=dispatcher,
            policy=policy,
        )
        host.register_daily_job(worker.job_id, worker.run, run_at=settings.lifecycle_run_time)
        workers.append(worker)

    logger.info("Academic request lifecycle jobs registered successfully")
    return workers
