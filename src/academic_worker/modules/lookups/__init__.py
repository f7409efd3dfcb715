"""
Lookups module - Lookup codes and their resolved ids.
"""

from academic_worker.modules.lookups.codes import (
    AttendanceStatus,
    EnrollmentStatus,
    LookupType,
    RequestCategory,
    RequestStatus,
    ReservationStatus,
)
from academic_worker.modules.lookups.models import LookUp
from academic_worker.modules.lookups.table import (
    LookupProvider,
    LookupResolutionError,
    LookupTable,
    load_lookup_table,
)

__all__ = [
    "AttendanceStatus",
    "EnrollmentStatus",
    "LookUp",
    "LookupProvider",
    "LookupResolutionError",
    "LookupTable",
    "LookupType",
    "RequestCategory",
    "RequestStatus",
    "ReservationStatus",
    "load_lookup_table",
]
