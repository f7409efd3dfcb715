"""
Lifecycle Queries

Every automated lifecycle step is described by a TransitionRule: which
request category and status it applies to, which date it compares against
"today", and what the transition does. Rules are turned into a RequestFilter
of resolved lookup ids, which can be evaluated in Python (``matches``) or
rendered as SQLAlchemy where-clauses (``clauses``).

| Kind               | Category   | Status         | Date predicate                       |
|--------------------|------------|----------------|--------------------------------------|
| activate_suspension| suspension | Approved       | suspension_start_date == today       |
| end_suspension     | suspension | Suspended      | suspension_end_date < today          |
| return_reminder    | suspension | Suspended      | suspension_end_date == today + N     |
| auto_dropout       | suspension | AwaitingReturn | suspension_end_date <= today - grace |
| complete_dropout   | dropout    | Approved       | effective_date == today              |
| expire_pending     | (any)      | Pending        | effective_date < today               |
"""

import enum
import logging
import operator
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from academic_worker.core.config import settings
from academic_worker.modules.lookups import (
    EnrollmentStatus,
    LookupTable,
    RequestCategory,
    RequestStatus,
)

from . import repository
from .models import AcademicRequest

logger = logging.getLogger(__name__)

Comparison = Callable[[Any, Any], Any]


class TransitionKind(str, enum.Enum):
    """The automated lifecycle steps."""

    ACTIVATE_SUSPENSION = "activate_suspension"
    END_SUSPENSION = "end_suspension"
    RETURN_REMINDER = "return_reminder"
    AUTO_DROPOUT = "auto_dropout"
    COMPLETE_DROPOUT = "complete_dropout"
    EXPIRE_PENDING = "expire_pending"


@dataclass(frozen=True)
class LifecyclePolicy:
    """Day offsets used by the date predicates."""

    suspension_grace_days: int = 14
    return_reminder_days: int = 3

    @classmethod
    def from_settings(cls) -> "LifecyclePolicy":
        return cls(
            suspension_grace_days=settings.suspension_grace_days,
            return_reminder_days=settings.return_reminder_days,
        )


@dataclass(frozen=True)
class TransitionRule:
    """
    Descriptor of one lifecycle step.

    ``target_status`` is None for read-only steps (reminders) that never
    change the request.
    """

    kind: TransitionKind
    category: RequestCategory | None
    required_status: RequestStatus
    target_status: RequestStatus | None
    date_field: str
    comparison: Comparison
    pivot: Callable[[date, LifecyclePolicy], date]
    enrollment_status: EnrollmentStatus | None = None
    clear_class: bool = False
    stamp_processed_at: bool = False
    record_history: bool = False

    def pivot_date(self, today: date, policy: LifecyclePolicy) -> date:
        return self.pivot(today, policy)


def _today(today: date, policy: LifecyclePolicy) -> date:
    return today


RULES: dict[TransitionKind, TransitionRule] = {
    TransitionKind.ACTIVATE_SUSPENSION: TransitionRule(
        kind=TransitionKind.ACTIVATE_SUSPENSION,
        category=RequestCategory.SUSPENSION,
        required_status=RequestStatus.APPROVED,
        target_status=RequestStatus.SUSPENDED,
        date_field="suspension_start_date",
        comparison=operator.eq,
        pivot=_today,
        enrollment_status=EnrollmentStatus.SUSPENDED,
        stamp_processed_at=True,
    ),
    TransitionKind.END_SUSPENSION: TransitionRule(
        kind=TransitionKind.END_SUSPENSION,
        category=RequestCategory.SUSPENSION,
        required_status=RequestStatus.SUSPENDED,
        target_status=RequestStatus.AWAITING_RETURN,
        date_field="suspension_end_date",
        comparison=operator.lt,
        pivot=_today,
    ),
    TransitionKind.RETURN_REMINDER: TransitionRule(
        kind=TransitionKind.RETURN_REMINDER,
        category=RequestCategory.SUSPENSION,
        required_status=RequestStatus.SUSPENDED,
        target_status=None,
        date_field="suspension_end_date",
        comparison=operator.eq,
        pivot=lambda today, policy: today + timedelta(days=policy.return_reminder_days),
    ),
    TransitionKind.AUTO_DROPOUT: TransitionRule(
        kind=TransitionKind.AUTO_DROPOUT,
        category=RequestCategory.SUSPENSION,
        required_status=RequestStatus.AWAITING_RETURN,
        target_status=RequestStatus.AUTO_DROPPED_OUT,
        date_field="suspension_end_date",
        comparison=operator.le,
        pivot=lambda today, policy: today - timedelta(days=policy.suspension_grace_days),
        enrollment_status=EnrollmentStatus.DROPPED,
        clear_class=True,
    ),
    TransitionKind.COMPLETE_DROPOUT: TransitionRule(
        kind=TransitionKind.COMPLETE_DROPOUT,
        category=RequestCategory.DROPOUT,
        required_status=RequestStatus.APPROVED,
        target_status=RequestStatus.COMPLETED,
        date_field="effective_date",
        comparison=operator.eq,
        pivot=_today,
        enrollment_status=EnrollmentStatus.DROPPED,
        clear_class=True,
        stamp_processed_at=True,
    ),
    TransitionKind.EXPIRE_PENDING: TransitionRule(
        kind=TransitionKind.EXPIRE_PENDING,
        category=None,
        required_status=RequestStatus.PENDING,
        target_status=RequestStatus.EXPIRED,
        date_field="effective_date",
        comparison=operator.lt,
        pivot=_today,
        record_history=True,
    ),
}


@dataclass(frozen=True)
class RequestFilter:
    """
    Resolved eligibility predicate for one lifecycle step.

    ``type_ids`` of None means any request type. A request whose compared
    date is null never matches.
    """

    status_id: UUID
    type_ids: tuple[UUID, ...] | None
    date_field: str
    comparison: Comparison
    pivot: date

    def matches(self, request: AcademicRequest) -> bool:
        if request.status_id != self.status_id:
            return False
        if self.type_ids is not None and request.request_type_id not in self.type_ids:
            return False
        value = getattr(request, self.date_field)
        if value is None:
            return False
        return bool(self.comparison(value, self.pivot))

    def clauses(self) -> list:
        column = getattr(AcademicRequest, self.date_field)
        clauses = [AcademicRequest.status_id == self.status_id]
        if self.type_ids is not None:
            clauses.append(AcademicRequest.request_type_id.in_(self.type_ids))
        clauses.append(column.is_not(None))
        clauses.append(self.comparison(column, self.pivot))
        return clauses


def build_filter(
    rule: TransitionRule,
    lookups: LookupTable,
    today: date,
    policy: LifecyclePolicy,
) -> RequestFilter | None:
    """
    Resolve a rule into a RequestFilter for ``today``.

    Returns None (and logs a warning) when the required status or every
    request type of the rule's category is missing from the lookup table.
    """
    status_id = lookups.request_status_id(rule.required_status)
    if status_id is None:
        logger.warning(f"{rule.required_status.value} status not found in lookup data")
        return None

    type_ids: tuple[UUID, ...] | None = None
    if rule.category is not None:
        type_ids = tuple(lookups.request_type_ids(rule.category))
        if not type_ids:
            logger.warning(f"No {rule.category.value} request types found in lookup data")
            return None

    return RequestFilter(
        status_id=status_id,
        type_ids=type_ids,
        date_field=rule.date_field,
        comparison=rule.comparison,
        pivot=rule.pivot_date(today, policy),
    )


async def find_eligible(
    db: AsyncSession,
    rule: TransitionRule,
    lookups: LookupTable,
    today: date,
    policy: LifecyclePolicy,
) -> list[AcademicRequest]:
    """Get the requests eligible for ``rule`` today; empty if lookups are missing."""
    request_filter = build_filter(rule, lookups, today, policy)
    if request_filter is None:
        return []
    return await repository.find_requests(db, request_filter)
