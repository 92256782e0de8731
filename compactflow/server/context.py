from typing import Callable, Optional

from compactflow.common.job import Job, JobParameters
from compactflow.common.states import JobStatus
from compactflow.storage.base import JobStore
from compactflow.storage.event_log import EventLog


class JobContext:
    """
    Handed to the work function. All job mutations go through the store and
    only land while the job is Running; a finished record is left untouched.
    """

    def __init__(
        self,
        job_id: str,
        parameters: JobParameters,
        store: JobStore,
        event_log: Optional[EventLog] = None,
    ):
        self.job_id = job_id
        self.parameters = parameters
        self._store = store
        self._event_log = event_log

    def _update(self, apply: Callable[[Job], None]) -> bool:
        applied = False

        def guarded(job: Job) -> None:
            nonlocal applied
            if job.status is JobStatus.RUNNING:
                apply(job)
                applied = True

        self._store.update(self.job_id, guarded)
        return applied

    def set_total_files(self, total: int) -> None:
        def apply(job: Job) -> None:
            job.total_files = total
            job.progress = _percent(job.processed_files, total)

        self._update(apply)

    def file_processed(self, count: int = 1) -> None:
        def apply(job: Job) -> None:
            job.processed_files += count
            job.progress = _percent(job.processed_files, job.total_files)

        self._update(apply)

    def set_sizes(
        self, before: Optional[float] = None, after: Optional[float] = None
    ) -> None:
        """Sizes are in GB; savings follow from whichever values are set."""

        def apply(job: Job) -> None:
            if before is not None:
                job.size_before = before
            if after is not None:
                job.size_after = after
            job.savings = job.size_before - job.size_after if job.size_after else 0.0

        self._update(apply)

    def info(self, message: str) -> None:
        recorded = self._update(lambda job: job.messages.append(message))
        if recorded and self._event_log is not None:
            self._event_log.info(message, job_id=self.job_id)

    def error(self, message: str) -> None:
        """Records a non-fatal error. Raise from the work function to fail the job."""
        recorded = self._update(lambda job: job.errors.append(message))
        if recorded and self._event_log is not None:
            self._event_log.warning(message, job_id=self.job_id)


def _percent(done: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(min(done, total) * 100.0 / total, 2)
