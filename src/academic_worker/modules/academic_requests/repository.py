"""
Academic Requests Repository

Database operations for academic requests and their history.

Design Principles:
- Single responsibility - only database operations, no business logic
- A transition (request, linked enrollment, history row) is committed at once
"""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from academic_worker.modules.enrollments.models import Enrollment

from .models import AcademicRequest, AcademicRequestHistory

if TYPE_CHECKING:
    from .queries import RequestFilter


async def get_by_id(db: AsyncSession, id: UUID) -> AcademicRequest | None:
    """Get request by ID."""
    return await db.get(AcademicRequest, id)


async def find_requests(db: AsyncSession, request_filter: "RequestFilter") -> list[AcademicRequest]:
    """Get all requests matching a lifecycle filter, oldest first."""
    result = await db.execute(
        select(AcademicRequest)
        .where(*request_filter.clauses())
        .order_by(AcademicRequest.created_at)
    )
    return list(result.scalars().all())


async def save_transition(
    db: AsyncSession,
    request: AcademicRequest,
    enrollment: Enrollment | None = None,
    history: AcademicRequestHistory | None = None,
) -> AcademicRequest:
    """
    Persist a transitioned request together with its side effects.

    The request, the linked enrollment and the history row are written in a
    single commit; on failure the session is rolled back and the error is
    re-raised.
    """
    db.add(request)
    if enrollment is not None:
        db.add(enrollment)
    if history is not None:
        db.add(history)

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return request
