"""
Lookup Table

The worker never compares lookup codes against strings at query time.
Instead, all the codes it needs are resolved once into a LookupTable of ids,
and queries and transitions work with those ids.

Missing codes are not an error at load time: the table simply has no entry,
and each consumer decides how to degrade (queries return nothing, transitions
are skipped). Callers that cannot proceed without an id use the
``require_*`` helpers, which raise LookupResolutionError.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from academic_worker.core.database import async_session_maker

from . import repository
from .codes import (
    AttendanceStatus,
    EnrollmentStatus,
    LookupType,
    RequestCategory,
    RequestStatus,
    ReservationStatus,
)

logger = logging.getLogger(__name__)


class LookupResolutionError(LookupError):
    """Raised when a required lookup code has no id in the lookup table."""

    def __init__(self, type_code: LookupType, code: str):
        self.type_code = type_code
        self.code = code
        super().__init__(f"Lookup {type_code.value}:{code} not found")


@dataclass
class LookupTable:
    """Resolved lookup ids for every code the worker uses."""

    request_statuses: dict[RequestStatus, UUID] = field(default_factory=dict)
    enrollment_statuses: dict[EnrollmentStatus, UUID] = field(default_factory=dict)
    attendance_statuses: dict[AttendanceStatus, UUID] = field(default_factory=dict)
    reservation_statuses: dict[ReservationStatus, UUID] = field(default_factory=dict)
    request_types: dict[RequestCategory, list[UUID]] = field(default_factory=dict)

    def request_status_id(self, status: RequestStatus) -> UUID | None:
        return self.request_statuses.get(status)

    def enrollment_status_id(self, status: EnrollmentStatus) -> UUID | None:
        return self.enrollment_statuses.get(status)

    def attendance_status_id(self, status: AttendanceStatus) -> UUID | None:
        return self.attendance_statuses.get(status)

    def reservation_status_id(self, status: ReservationStatus) -> UUID | None:
        return self.reservation_statuses.get(status)

    def request_type_ids(self, category: RequestCategory) -> list[UUID]:
        return list(self.request_types.get(category, []))

    def request_status_of(self, status_id: UUID | None) -> RequestStatus | None:
        """Reverse lookup: the RequestStatus whose id is ``status_id``."""
        for status, lookup_id in self.request_statuses.items():
            if lookup_id == status_id:
                return status
        return None

    def require_request_status(self, status: RequestStatus) -> UUID:
        status_id = self.request_status_id(status)
        if status_id is None:
            raise LookupResolutionError(LookupType.ACADEMIC_REQUEST_STATUS, status.value)
        return status_id

    def require_enrollment_status(self, status: EnrollmentStatus) -> UUID:
        status_id = self.enrollment_status_id(status)
        if status_id is None:
            raise LookupResolutionError(LookupType.ENROLLMENT_STATUS, status.value)
        return status_id


def _index_codes(rows: list[Any], codes: type) -> dict:
    by_code = {row.code: row.id for row in rows}
    return {member: by_code[member.value] for member in codes if member.value in by_code}


def _match_request_types(rows: list[Any]) -> dict[RequestCategory, list[UUID]]:
    return {
        category: [row.id for row in rows if category.value in (row.name or "").lower()]
        for category in RequestCategory
    }


async def load_lookup_table(db: AsyncSession) -> LookupTable:
    """
    Resolve every lookup code the worker needs.

    Codes that are absent from the database are logged and left unmapped.
    """
    request_statuses = await repository.list_by_type(db, LookupType.ACADEMIC_REQUEST_STATUS)
    request_types = await repository.list_by_type(db, LookupType.ACADEMIC_REQUEST_TYPE)
    enrollment_statuses = await repository.list_by_type(db, LookupType.ENROLLMENT_STATUS)
    attendance_statuses = await repository.list_by_type(db, LookupType.ATTENDANCE_STATUS)
    reservation_statuses = await repository.list_by_type(db, LookupType.RESERVATION_STATUS)

    table = LookupTable(
        request_statuses=_index_codes(request_statuses, RequestStatus),
        enrollment_statuses=_index_codes(enrollment_statuses, EnrollmentStatus),
        attendance_statuses=_index_codes(attendance_statuses, AttendanceStatus),
        reservation_statuses=_index_codes(reservation_statuses, ReservationStatus),
        request_types=_match_request_types(request_types),
    )

    for codes, resolved, type_code in (
        (RequestStatus, table.request_statuses, LookupType.ACADEMIC_REQUEST_STATUS),
        (EnrollmentStatus, table.enrollment_statuses, LookupType.ENROLLMENT_STATUS),
        (AttendanceStatus, table.attendance_statuses, LookupType.ATTENDANCE_STATUS),
        (ReservationStatus, table.reservation_statuses, LookupType.RESERVATION_STATUS),
    ):
        missing = [member.value for member in codes if member not in resolved]
        if missing:
            logger.warning(f"{type_code.value} lookups not found: {missing}")

    for category, type_ids in table.request_types.items():
        if not type_ids:
            logger.warning(f"No {category.value} request types found in lookup data")

    return table


class LookupProvider:
    """
    Loads the LookupTable on first use and caches it for the process lifetime.

    Call ``refresh()`` after lookup data changes.
    """

    def __init__(self, session_factory: Callable[[], Any] = async_session_maker):
        self._session_factory = session_factory
        self._table: LookupTable | None = None
        self._lock = asyncio.Lock()

    async def get(self) -> LookupTable:
        if self._table is not None:
            return self._table
        async with self._lock:
            if self._table is None:
                async with self._session_factory() as db:
                    self._table = await load_lookup_table(db)
                logger.info("Lookup table loaded")
        return self._table

    async def refresh(self) -> LookupTable:
        self._table = None
        return await self.get()
