# compactflow/server/processor.py
import logging
from typing import Callable, Optional

from compactflow.common.states import JobStatus
from compactflow.server.context import JobContext
from compactflow.storage.base import JobStore
from compactflow.storage.event_log import EventLog

logger = logging.getLogger(__name__)

WorkFunction = Callable[[JobContext], None]


class JobProcessor:
    """Runs the work function for one admitted job and records its outcome."""

    def __init__(
        self,
        job_id: str,
        store: JobStore,
        work: WorkFunction,
        event_log: Optional[EventLog] = None,
    ):
        self.job_id = job_id
        self.store = store
        self.work = work
        self.event_log = event_log

    def process(self) -> JobStatus:
        final_status = JobStatus.FAILED
        try:
            # 1. Load the parameters the job was created with
            job = self.store.get(self.job_id)
            if job is None:
                raise LookupError(f"Job {self.job_id} disappeared from the store")

            # 2. Perform the work
            context = JobContext(self.job_id, job.parameters, self.store, self.event_log)
            self.work(context)
            final_status = JobStatus.COMPLETED

        except Exception as e:
            # 3. A failing job never takes the worker down with it
            logger.error(f"Job {self.job_id} failed.", exc_info=True)
            detail = f"{type(e).__name__}: {e}"
            self.store.update(self.job_id, lambda job: job.errors.append(detail))
            if self.event_log is not None:
                self.event_log.error(f"Job failed: {detail}", job_id=self.job_id)

        finally:
            # 4. Terminal transition, also reached on BaseException
            self.store.set_status(
                self.job_id, final_status, expected_old_status=JobStatus.RUNNING
            )
        return final_status
