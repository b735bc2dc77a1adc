"""Storage layer for record persistence."""

from agent_pulse.storage.database import Database, get_database
from agent_pulse.storage.repository import RecordRepository

__all__ = ["Database", "get_database", "RecordRepository"]
