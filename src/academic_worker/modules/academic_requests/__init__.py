"""
Academic requests module - Suspension and dropout request lifecycle.
"""

from academic_worker.modules.academic_requests.models import AcademicRequest, AcademicRequestHistory
from academic_worker.modules.academic_requests.queries import (
    RULES,
    LifecyclePolicy,
    RequestFilter,
    TransitionKind,
    TransitionRule,
)
from academic_worker.modules.academic_requests.transitions import (
    InvalidStatusTransitionError,
    TransitionOutcome,
)

__all__ = [
    "AcademicRequest",
    "AcademicRequestHistory",
    "InvalidStatusTransitionError",
    "LifecyclePolicy",
    "RULES",
    "RequestFilter",
    "TransitionKind",
    "TransitionOutcome",
    "TransitionRule",
]
