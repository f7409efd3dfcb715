"""
Shared fixtures: lookup ids, a frozen clock and mocked database sessions.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from academic_worker.core.clock import FixedClock
from academic_worker.modules.lookups import (
    AttendanceStatus,
    EnrollmentStatus,
    LookupTable,
    RequestCategory,
    RequestStatus,
    ReservationStatus,
)


@pytest.fixture
def lookup_table():
    """A fully resolved lookup table with random ids."""
    return LookupTable(
        request_statuses={status: uuid4() for status in RequestStatus},
        enrollment_statuses={status: uuid4() for status in EnrollmentStatus},
        attendance_statuses={status: uuid4() for status in AttendanceStatus},
        reservation_statuses={status: uuid4() for status in ReservationStatus},
        request_types={
            RequestCategory.SUSPENSION: [uuid4()],
            RequestCategory.DROPOUT: [uuid4()],
        },
    )


@pytest.fixture
def lookup_provider(lookup_table):
    """A LookupProvider stand-in that returns ``lookup_table``."""
    provider = MagicMock()
    provider.get = AsyncMock(return_value=lookup_table)
    return provider


@pytest.fixture
def fixed_clock():
    """Clock frozen at 2024-06-01 00:00 UTC."""
    return FixedClock(datetime(2024, 6, 1, 0, 0, tzinfo=UTC))


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def session_factory(mock_db):
    """Session factory whose sessions are all ``mock_db``."""

    @asynccontextmanager
    async def factory():
        yield mock_db

    return factory


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    redis.ping = AsyncMock(return_value=True)
    return redis
