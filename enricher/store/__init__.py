"""Record store adapters."""

from .base import RecordStore
from .memory import InMemoryRecordStore
from .mongo import MongoRecordStore

__all__ = ["RecordStore", "InMemoryRecordStore", "MongoRecordStore"]
