"""
Lookup Codes

Closed sets of the lookup codes the worker depends on. The ids behind these
codes live in the ``lookups`` table and are resolved at runtime into a
LookupTable.
"""

import enum


class LookupType(str, enum.Enum):
    """Lookup type codes (``lookups.type_code``)."""

    ACADEMIC_REQUEST_STATUS = "AcademicRequestStatus"
    ACADEMIC_REQUEST_TYPE = "AcademicRequestType"
    ENROLLMENT_STATUS = "EnrollmentStatus"
    ATTENDANCE_STATUS = "AttendanceStatus"
    RESERVATION_STATUS = "ReservationStatus"


class RequestStatus(str, enum.Enum):
    """Status of an academic request."""

    PENDING = "Pending"
    APPROVED = "Approved"
    SUSPENDED = "Suspended"
    AWAITING_RETURN = "AwaitingReturn"
    AUTO_DROPPED_OUT = "AutoDroppedOut"
    COMPLETED = "Completed"
    EXPIRED = "Expired"


class EnrollmentStatus(str, enum.Enum):
    """Status of a student's enrollment."""

    ENROLLED = "Enrolled"
    SUSPENDED = "Suspended"
    DROPPED = "Dropped"


class AttendanceStatus(str, enum.Enum):
    """Attendance statuses the worker counts."""

    ABSENT = "Absent"


class ReservationStatus(str, enum.Enum):
    """Status of a class reservation."""

    SECOND_PAID = "2ndPaid"


class RequestCategory(str, enum.Enum):
    """
    Family of academic request types.

    Request types are matched by name: every type whose name contains the
    category value (case-insensitive) belongs to the category.
    """

    SUSPENSION = "suspension"
    DROPOUT = "dropout"
