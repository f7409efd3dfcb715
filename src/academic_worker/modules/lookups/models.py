"""
Lookup Models

Generic code/name lookup rows shared by the whole platform.
"""

import uuid

from sqlalchemy import Boolean, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from academic_worker.core.database import Base


class LookUp(Base):
    """A single lookup value, e.g. (AcademicRequestStatus, Approved)."""

    __tablename__ = "lookups"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type_code: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (Index("ix_lookups_type_code_code", "type_code", "code"),)

    def __repr__(self) -> str:
        return f"<LookUp {self.type_code}:{self.code}>"
