# compactflow/storage/memory_storage.py
import copy
import itertools
import logging
import uuid
from datetime import datetime, UTC
from threading import Lock
from typing import Callable, Dict, List, Optional

from compactflow.common.job import Job, JobParameters
from compactflow.common.states import JobStatus, can_transition, is_terminal
from compactflow.storage.base import JobStore
from compactflow.storage.event_log import EventLog

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("job", "lock", "seq")

    def __init__(self, job: Job, seq: int):
        self.job = job
        self.lock = Lock()
        # Insertion order, breaks created_at ties
        self.seq = seq

    def snapshot(self) -> Job:
        with self.lock:
            return copy.deepcopy(self.job)


class MemoryJobStore(JobStore):
    """
    In-process job table.

    ``_lock`` only guards the mapping itself (insert, lookup, copying the
    entry list). Each record has its own lock, so a worker updating one job
    never blocks readers or writers of another.
    """

    def __init__(self, event_log: Optional[EventLog] = None):
        self._entries: Dict[str, _Entry] = {}
        self._lock = Lock()
        self._sequence = itertools.count()
        self.event_log = event_log

    def _entry(self, job_id: str) -> Optional[_Entry]:
        with self._lock:
            return self._entries.get(job_id)

    def _all_entries(self) -> List[_Entry]:
        with self._lock:
            return list(self._entries.values())

    def create(self, parameters: JobParameters) -> Job:
        job = Job(parameters=copy.deepcopy(parameters))
        with self._lock:
            while job.id in self._entries:
                job.id = str(uuid.uuid4())
            entry = _Entry(job, next(self._sequence))
            self._entries[job.id] = entry

        if self.event_log is not None:
            self.event_log.info(
                f"Job created for {parameters.target}",
                job_id=job.id,
                scheduled=parameters.scheduled_time is not None,
            )
        return entry.snapshot()

    def get(self, job_id: str) -> Optional[Job]:
        entry = self._entry(job_id)
        return entry.snapshot() if entry else None

    def list(self, limit: Optional[int] = None) -> List[Job]:
        if limit is not None and limit <= 0:
            return []
        entries = [(entry.seq, entry.snapshot()) for entry in self._all_entries()]
        entries.sort(key=lambda item: (item[1].created_at, item[0]), reverse=True)
        jobs = [job for _, job in entries]
        return jobs if limit is None else jobs[:limit]

    def update(self, job_id: str, mutator: Callable[[Job], None]) -> bool:
        entry = self._entry(job_id)
        if entry is None:
            return False
        with entry.lock:
            mutator(entry.job)
        return True

    def set_status(
        self,
        job_id: str,
        status: JobStatus,
        expected_old_status: Optional[JobStatus] = None,
    ) -> bool:
        entry = self._entry(job_id)
        if entry is None:
            return False

        with entry.lock:
            job = entry.job
            if expected_old_status and job.status != expected_old_status:
                return False
            if not can_transition(job.status, status):
                logger.debug(
                    "Refusing transition %s -> %s for job %s",
                    job.status.value, status.value, job_id,
                )
                return False

            now = datetime.now(UTC)
            job.status = status
            if status is JobStatus.RUNNING and job.started_at is None:
                job.started_at = now
            if is_terminal(status) and job.completed_at is None:
                job.completed_at = now
            return True

    def count_by_status(self) -> Dict[JobStatus, int]:
        counts = {status: 0 for status in JobStatus}
        for entry in self._all_entries():
            # A single attribute read, no need for the record lock.
            counts[entry.job.status] += 1
        return counts

    def oldest_queued(self, exclude_scheduled: bool = True) -> Optional[Job]:
        oldest = None
        for entry in self._all_entries():
            job = entry.snapshot()
            if job.status is not JobStatus.QUEUED:
                continue
            if exclude_scheduled and job.parameters.scheduled_time is not None:
                continue
            key = (job.created_at, entry.seq)
            if oldest is None or key < oldest[0]:
                oldest = (key, job)
        return oldest[1] if oldest else None
