# compactflow/common/events.py
import logging
import socket
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict, Optional

# Job id recorded on events that do not belong to a job.
SYSTEM_JOB_ID = "SYSTEM"

_HOST = socket.gethostname()


class Severity(str, Enum):
    DEBUG = "Debug"
    INFORMATION = "Information"
    WARNING = "Warning"
    ERROR = "Error"

    @property
    def log_level(self) -> int:
        return _LOG_LEVELS[self]


_LOG_LEVELS = {
    Severity.DEBUG: logging.DEBUG,
    Severity.INFORMATION: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class LogEvent:
    message: str
    severity: Severity = Severity.INFORMATION
    job_id: str = SYSTEM_JOB_ID
    data: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    host: str = _HOST
