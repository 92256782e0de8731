from .base import JobStore
from .event_log import EventLog
from .history import JobHistoryWriter
from .memory_storage import MemoryJobStore

__all__ = ["EventLog", "JobHistoryWriter", "JobStore", "MemoryJobStore"]
