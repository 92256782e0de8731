# compactflow/server/worker.py
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_for
from threading import Lock
from typing import Callable, List, Optional, Set

from compactflow.common.exceptions import JobNotAdmittedError
from compactflow.common.job import Job
from compactflow.common.states import JobStatus
from compactflow.server.processor import JobProcessor, WorkFunction
from compactflow.storage.base import JobStore
from compactflow.storage.event_log import EventLog
from compactflow.storage.history import JobHistoryWriter

logger = logging.getLogger(__name__)

CompletionListener = Callable[[Job], None]


class WorkerController:
    """
    Single-flight execution of jobs.

    At most one job holds the worker slot. ``try_admit`` claims it and marks
    the job Running; ``execute`` runs the job on the worker thread and the
    completion path releases the slot on every exit.
    """

    def __init__(
        self,
        store: JobStore,
        work: WorkFunction,
        event_log: EventLog,
        history: Optional[JobHistoryWriter] = None,
        auto_start_next: bool = False,
    ):
        self.store = store
        self.work = work
        self.event_log = event_log
        self.history = history
        self.auto_start_next = auto_start_next

        self._slot_lock = Lock()
        self._active_job_id: Optional[str] = None
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="compactflow-worker"
        )
        self._pending: Set[Future] = set()
        self._pending_lock = Lock()
        self._listeners: List[CompletionListener] = []
        self._shutting_down = False

    @property
    def active_job_id(self) -> Optional[str]:
        return self._active_job_id

    def add_completion_listener(self, listener: CompletionListener) -> None:
        self._listeners.append(listener)

    def try_admit(self, job_id: str) -> bool:
        with self._slot_lock:
            if self._active_job_id is not None:
                self.event_log.warning(
                    "Job not started: another job is running",
                    job_id=job_id,
                    running_job=self._active_job_id,
                )
                return False
            if not self.store.set_status(
                job_id, JobStatus.RUNNING, expected_old_status=JobStatus.QUEUED
            ):
                self.event_log.warning("Job not started: job is not queued", job_id=job_id)
                return False
            self._active_job_id = job_id

        self.event_log.info("Job started", job_id=job_id)
        return True

    def execute(self, job_id: str) -> Future:
        """Runs an admitted job on the worker thread.

        The returned future resolves to the terminal JobStatus after the slot
        has been released and the history file written.
        """
        if self._active_job_id != job_id:
            raise JobNotAdmittedError(f"Job {job_id} does not hold the worker slot")

        try:
            future = self._executor.submit(self._run, job_id)
        except RuntimeError:
            # Executor already shut down; give the slot back before re-raising.
            self.store.set_status(job_id, JobStatus.FAILED, JobStatus.RUNNING)
            self._release(job_id)
            raise

        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def admit_and_execute(self, job_id: str) -> Optional[Future]:
        if not self.try_admit(job_id):
            return None
        return self.execute(job_id)

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _release(self, job_id: str) -> None:
        with self._slot_lock:
            if self._active_job_id == job_id:
                self._active_job_id = None

    def _run(self, job_id: str) -> JobStatus:
        status = JobStatus.FAILED
        try:
            processor = JobProcessor(job_id, self.store, self.work, self.event_log)
            status = processor.process()
        finally:
            self._release(job_id)
            self._on_terminal(job_id)

        if self.auto_start_next and not self._shutting_down:
            self._start_next()
        return status

    def _on_terminal(self, job_id: str) -> None:
        job = self.store.get(job_id)
        if job is None:
            return

        if self.history is not None:
            try:
                self.history.write(job)
            except OSError as e:
                # The job outcome stands even if the record cannot be persisted.
                self.event_log.error(f"Failed to write job history: {e}", job_id=job_id)

        duration = job.duration_seconds or 0.0
        self.event_log.info(
            f"Job {job.status.value.lower()} in {duration:.1f}s, "
            f"saved {job.savings:.2f} GB",
            job_id=job_id,
            status=job.status.value,
            duration_seconds=duration,
            savings=job.savings,
            errors=len(job.errors),
        )

        for listener in list(self._listeners):
            try:
                listener(job)
            except Exception:
                logger.exception("Completion listener failed for job %s", job_id)

    def _start_next(self) -> None:
        job = self.store.oldest_queued(exclude_scheduled=True)
        if job is not None:
            self.admit_and_execute(job.id)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Waits for in-flight jobs. Returns False if any is still running."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            # A finishing job may queue the next one, so look again after each wait.
            with self._pending_lock:
                pending = [f for f in self._pending if not f.done()]
            if not pending:
                return True
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            _, not_done = wait_for(pending, timeout=remaining)
            if not_done:
                return False

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> bool:
        """Stops accepting jobs. A running job is never cancelled."""
        self._shutting_down = True
        drained = self.drain(timeout if wait else 0)
        if not drained and self._active_job_id is not None:
            self.event_log.warning(
                "Shutting down while a job is still running",
                job_id=self._active_job_id,
            )
        self._executor.shutdown(wait=False)
        return drained
