"""
Academic lifecycle worker.

Schedules and applies the date-driven steps of student academic requests
(suspensions, dropouts, stale requests) and sends attendance warnings.
"""

__version__ = "0.1.0"
