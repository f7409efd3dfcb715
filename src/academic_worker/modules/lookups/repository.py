"""
Lookups Repository

Read-only access to the ``lookups`` table.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .codes import LookupType
from .models import LookUp


async def list_by_type(db: AsyncSession, type_code: LookupType) -> list[LookUp]:
    """Get all active lookups of a type."""
    result = await db.execute(
        select(LookUp).where(
            LookUp.type_code == type_code.value,
            LookUp.is_active == True,  # noqa: E712
        )
    )
    return list(result.scalars().all())
