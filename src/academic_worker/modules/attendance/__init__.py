"""
Attendance module - Absence threshold warnings.
"""
