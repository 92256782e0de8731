# compactflow/common/job.py
import uuid
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional

from compactflow.common.exceptions import InvalidJobRequest
from compactflow.common.states import JobStatus


@dataclass
class JobParameters:
    """What a job was asked to do. Fixed once the job is created."""

    path: Optional[str] = None
    single_file: Optional[str] = None
    include_template: bool = False
    defrag: bool = False
    zero_free_space: bool = False
    # Advisory only, nothing promotes a job when this time is reached.
    scheduled_time: Optional[datetime] = None

    @property
    def target(self) -> str:
        return self.single_file or self.path or ""

    @classmethod
    def from_payload(cls, payload: Any) -> "JobParameters":
        """Builds parameters from a submission body.

        Accepts the keys used by the browser client (``path``, ``singleFile``,
        ``includeTemplate``, ``defrag``, ``zeroFreeSpace``, ``scheduledTime``)
        and raises InvalidJobRequest on anything it cannot use.
        """
        if not isinstance(payload, dict):
            raise InvalidJobRequest("Request body must be a JSON object")

        path = _optional_str(payload, "path")
        single_file = _optional_str(payload, "singleFile")
        if not path and not single_file:
            raise InvalidJobRequest("Either 'path' or 'singleFile' is required")

        scheduled_time = None
        raw_time = payload.get("scheduledTime")
        if raw_time not in (None, ""):
            if not isinstance(raw_time, str):
                raise InvalidJobRequest("'scheduledTime' must be an ISO-8601 string")
            try:
                scheduled_time = datetime.fromisoformat(raw_time)
            except ValueError as e:
                raise InvalidJobRequest(f"Invalid 'scheduledTime': {raw_time}") from e
            if scheduled_time.tzinfo is None:
                scheduled_time = scheduled_time.replace(tzinfo=UTC)

        return cls(
            path=path,
            single_file=single_file,
            include_template=_flag(payload, "includeTemplate"),
            defrag=_flag(payload, "defrag"),
            zero_free_space=_flag(payload, "zeroFreeSpace"),
            scheduled_time=scheduled_time,
        )


def _optional_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidJobRequest(f"'{key}' must be a string")
    return value.strip() or None


def _flag(payload: Dict[str, Any], key: str) -> bool:
    value = payload.get(key, False)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise InvalidJobRequest(f"'{key}' must be a boolean")
    return value


@dataclass
class Job:
    """
    A single compaction request and everything observed while running it.

    The store owns these records. Readers only ever see copies.
    """

    parameters: JobParameters = field(default_factory=JobParameters)
    status: JobStatus = JobStatus.QUEUED

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # Progress
    progress: float = 0.0
    total_files: int = 0
    processed_files: int = 0

    # Sizes in GB
    size_before: float = 0.0
    size_after: float = 0.0
    savings: float = 0.0

    errors: List[str] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()
