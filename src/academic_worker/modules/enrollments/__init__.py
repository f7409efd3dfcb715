"""
Enrollments module - Students, classes, meetings, attendance and enrollments.
"""

from academic_worker.modules.enrollments.models import (
    Attendance,
    ClassMeeting,
    CourseClass,
    Enrollment,
    Student,
)

__all__ = ["Attendance", "ClassMeeting", "CourseClass", "Enrollment", "Student"]
