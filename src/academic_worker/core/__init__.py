"""
Core module - Configuration, database, scheduling, and delivery channels.
"""

from academic_worker.core.clock import Clock, FixedClock
from academic_worker.core.config import get_settings, settings
from academic_worker.core.database import Base, close_db, init_db
from academic_worker.core.dedup import DedupCache
from academic_worker.core.redis import close_redis, get_redis, init_redis

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "init_db",
    "close_db",
    # Redis
    "get_redis",
    "init_redis",
    "close_redis",
    # Time and dedup
    "Clock",
    "FixedClock",
    "DedupCache",
]
