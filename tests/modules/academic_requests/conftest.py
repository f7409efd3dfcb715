"""
Fixtures for academic requests tests.
"""

from datetime import date
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from academic_worker.modules.academic_requests.models import AcademicRequest
from academic_worker.modules.enrollments.models import Enrollment, Student
from academic_worker.modules.lookups import EnrollmentStatus, RequestCategory, RequestStatus


@pytest.fixture
def sample_student():
    """Create a sample student."""
    student = MagicMock(spec=Student)
    student.id = uuid4()
    student.user_id = uuid4()
    student.student_code = "ST0001"
    student.full_name = "Jane Student"
    student.email = "jane@test.com"
    return student


@pytest.fixture
def make_request(lookup_table, sample_student):
    """Factory for academic request models in a given status and category."""

    def factory(
        status: RequestStatus,
        category: RequestCategory | None = RequestCategory.SUSPENSION,
        **fields,
    ):
        request = MagicMock(spec=AcademicRequest)
        request.id = uuid4()
        request.student_id = sample_student.id
        request.student = sample_student
        request.request_type_id = (
            lookup_table.request_type_ids(category)[0] if category is not None else uuid4()
        )
        request.status_id = lookup_table.request_status_id(status)
        request.enrollment_id = uuid4()
        request.suspension_start_date = None
        request.suspension_end_date = None
        request.expected_return_date = None
        request.effective_date = None
        request.reason_category = "Medical"
        request.reason = None
        request.attachment_url = None
        request.processed_at = None
        request.updated_at = None
        for name, value in fields.items():
            setattr(request, name, value)
        return request

    return factory


@pytest.fixture
def sample_enrollment(lookup_table, sample_student):
    """Create a sample enrollment in the Enrolled status with a class."""
    enrollment = MagicMock(spec=Enrollment)
    enrollment.id = uuid4()
    enrollment.student_id = sample_student.id
    enrollment.class_id = uuid4()
    enrollment.enrollment_status_id = lookup_table.enrollment_status_id(EnrollmentStatus.ENROLLED)
    enrollment.updated_at = None
    return enrollment


@pytest.fixture
def today():
    return date(2024, 6, 1)
