"""
Payments Repository

Read-only queries over class reservations and their invoices.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import ClassReservation


async def get_reservations_with_status(db: AsyncSession, status_id: UUID) -> list[ClassReservation]:
    """Get reservations in ``status_id`` with student, package and invoices loaded."""
    result = await db.execute(
        select(ClassReservation)
        .where(ClassReservation.reservation_status_id == status_id)
        .order_by(ClassReservation.id)
    )
    return list(result.scalars().all())
