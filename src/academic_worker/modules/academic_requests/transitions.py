"""
Lifecycle Transitions

Applies one lifecycle step to one academic request: moves the request to its
next status, mirrors the change onto the linked enrollment, and appends a
history row where the step calls for one.

State machines:
- suspension: Approved -> Suspended -> AwaitingReturn -> AutoDroppedOut
  (AwaitingReturn -> Completed exists but is only ever set manually)
- dropout: Approved -> Completed
- any request type: Pending -> Expired

``compute_transition`` is pure; ``apply_transition`` loads, mutates and
saves. Records that vanished or changed status since they were queried are
skipped with a warning. Persistence errors propagate to the caller.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from academic_worker.modules.enrollments import repository as enrollments_repository
from academic_worker.modules.enrollments.models import Enrollment
from academic_worker.modules.lookups import LookupResolutionError, LookupTable, RequestStatus

from . import repository
from .models import AcademicRequest, AcademicRequestHistory
from .queries import TransitionKind, TransitionRule

logger = logging.getLogger(__name__)


# Valid status transitions - prevents invalid state changes
VALID_STATUS_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.PENDING: {
        RequestStatus.APPROVED,  # Approved by staff
        RequestStatus.EXPIRED,  # Effective date lapsed while pending
    },
    RequestStatus.APPROVED: {
        RequestStatus.SUSPENDED,  # Suspension start date reached
        RequestStatus.COMPLETED,  # Dropout effective date reached
    },
    RequestStatus.SUSPENDED: {
        RequestStatus.AWAITING_RETURN,  # Suspension end date passed
    },
    RequestStatus.AWAITING_RETURN: {
        RequestStatus.COMPLETED,  # Return confirmed by staff (manual only)
        RequestStatus.AUTO_DROPPED_OUT,  # Grace period passed without return
    },
    # Terminal states - no transitions allowed
    RequestStatus.AUTO_DROPPED_OUT: set(),
    RequestStatus.COMPLETED: set(),
    RequestStatus.EXPIRED: set(),
}

# Edges that exist in the state machine but are never taken automatically
MANUAL_ONLY_TRANSITIONS: set[tuple[RequestStatus, RequestStatus]] = {
    (RequestStatus.AWAITING_RETURN, RequestStatus.COMPLETED),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, current_status: RequestStatus, new_status: RequestStatus):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


def validate_transition(
    current_status: RequestStatus,
    new_status: RequestStatus,
    automated: bool = True,
) -> None:
    """
    Check a status change against the state machine.

    Raises:
        InvalidStatusTransitionError: If the edge does not exist, or is
            manual-only and ``automated`` is set
    """
    if new_status not in VALID_STATUS_TRANSITIONS.get(current_status, set()):
        raise InvalidStatusTransitionError(current_status, new_status)
    if automated and (current_status, new_status) in MANUAL_ONLY_TRANSITIONS:
        raise InvalidStatusTransitionError(current_status, new_status)


class TransitionOutcome(str, enum.Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"  # read-only step, record still eligible
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TransitionPlan:
    """What a lifecycle step will change on one request."""

    kind: TransitionKind
    request_id: UUID
    from_status: RequestStatus
    to_status: RequestStatus
    new_status_id: UUID
    processed_at: datetime | None = None
    enrollment_status_id: UUID | None = None
    clear_class: bool = False
    record_history: bool = False

    @property
    def touches_enrollment(self) -> bool:
        return self.enrollment_status_id is not None or self.clear_class


@dataclass
class TransitionResult:
    outcome: TransitionOutcome
    request: AcademicRequest | None = None
    plan: TransitionPlan | None = None
    reason: str | None = None


def compute_transition(
    rule: TransitionRule,
    request: AcademicRequest,
    current_status: RequestStatus,
    lookups: LookupTable,
    now: datetime,
) -> TransitionPlan:
    """
    Work out the changes ``rule`` makes to ``request``.

    ``processed_at`` is stamped with ``now`` when the rule asks for it,
    replacing any earlier value but never moving it backwards.

    Raises:
        ValueError: If the rule is read-only
        InvalidStatusTransitionError: If the state machine refuses the edge
        LookupResolutionError: If a target status id is not mapped
    """
    if rule.target_status is None:
        raise ValueError(f"{rule.kind.value} does not change request status")

    validate_transition(current_status, rule.target_status)

    new_status_id = lookups.require_request_status(rule.target_status)
    enrollment_status_id = (
        lookups.require_enrollment_status(rule.enrollment_status) if rule.enrollment_status else None
    )

    processed_at = None
    if rule.stamp_processed_at and (request.processed_at is None or request.processed_at <= now):
        processed_at = now

    return TransitionPlan(
        kind=rule.kind,
        request_id=request.id,
        from_status=current_status,
        to_status=rule.target_status,
        new_status_id=new_status_id,
        processed_at=processed_at,
        enrollment_status_id=enrollment_status_id,
        clear_class=rule.clear_class,
        record_history=rule.record_history,
    )


def _sync_enrollment(enrollment: Enrollment, plan: TransitionPlan, now: datetime) -> None:
    if plan.enrollment_status_id is not None:
        enrollment.enrollment_status_id = plan.enrollment_status_id
    if plan.clear_class:
        enrollment.class_id = None
    enrollment.updated_at = now


async def apply_transition(
    db: AsyncSession,
    rule: TransitionRule,
    request_id: UUID,
    lookups: LookupTable,
    now: datetime,
) -> TransitionResult:
    """
    Apply one lifecycle step to one request and save it.

    The request is re-read first, so a record deleted or moved on since the
    batch query is skipped rather than overwritten.

    Returns:
        TransitionResult with the outcome and the (updated) request
    """
    request = await repository.get_by_id(db, request_id)
    if request is None:
        logger.warning(f"Request {request_id} not found, skipping {rule.kind.value}")
        return TransitionResult(TransitionOutcome.SKIPPED, reason="not_found")

    current_status = lookups.request_status_of(request.status_id)
    if current_status != rule.required_status:
        logger.warning(
            f"Request {request_id} is no longer {rule.required_status.value} "
            f"(now {current_status.value if current_status else request.status_id}), "
            f"skipping {rule.kind.value}"
        )
        return TransitionResult(TransitionOutcome.SKIPPED, request=request, reason="status_changed")

    if rule.target_status is None:
        return TransitionResult(TransitionOutcome.UNCHANGED, request=request)

    try:
        plan = compute_transition(rule, request, current_status, lookups, now)
    except (LookupResolutionError, InvalidStatusTransitionError) as e:
        logger.warning(f"Cannot apply {rule.kind.value} to request {request_id}: {e}")
        return TransitionResult(TransitionOutcome.SKIPPED, request=request, reason=str(e))

    request.status_id = plan.new_status_id
    if plan.processed_at is not None:
        request.processed_at = plan.processed_at
    request.updated_at = now

    enrollment = None
    if plan.touches_enrollment:
        if request.enrollment_id is None:
            logger.warning(f"Request {request_id} has no linked enrollment, enrollment not updated")
        else:
            enrollment = await enrollments_repository.get_by_id(db, request.enrollment_id)
            if enrollment is None:
                logger.warning(
                    f"Enrollment {request.enrollment_id} of request {request_id} not found, "
                    "enrollment not updated"
                )
            else:
                _sync_enrollment(enrollment, plan, now)

    history = None
    if plan.record_history:
        history = AcademicRequestHistory(
            request_id=request.id,
            status_id=plan.new_status_id,
            attachment_url=request.attachment_url,
        )

    await repository.save_transition(db, request, enrollment, history)

    logger.info(
        f"Request {request_id}: {plan.from_status.value} -> {plan.to_status.value} ({rule.kind.value})"
    )
    return TransitionResult(TransitionOutcome.APPLIED, request=request, plan=plan)
