# compactflow/service.py
import logging
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional, Tuple

from .common.events import LogEvent
from .common.job import Job, JobParameters
from .common.states import JobStatus
from .config import ServiceConfig
from .execution.performer import VhdxCompactor, load_work_function
from .serialization.base import BaseSerializer
from .serialization.json_serializer import JsonSerializer
from .server.processor import WorkFunction
from .server.worker import WorkerController
from .storage.base import JobStore
from .storage.event_log import EventLog
from .storage.history import JobHistoryWriter
from .storage.memory_storage import MemoryJobStore

logger = logging.getLogger(__name__)


class CompactionService:
    """
    Everything the HTTP layer talks to: job submission, admission, queries
    and the status snapshot. Owns the store, the worker and the event log.
    """

    def __init__(
        self,
        config: ServiceConfig,
        event_log: EventLog,
        store: JobStore,
        controller: WorkerController,
        serializer: Optional[BaseSerializer] = None,
    ):
        self.config = config
        self.event_log = event_log
        self.store = store
        self.controller = controller
        self.serializer = serializer or JsonSerializer()
        self.started_at = datetime.now(UTC)
        self.running = True

    # --- Jobs ---

    def submit(self, parameters: JobParameters) -> Job:
        """Creates a job and starts it right away unless it carries a scheduled time.

        Returns the record as created, whether or not it could be started.
        """
        job = self.store.create(parameters)
        if parameters.scheduled_time is None:
            self.controller.admit_and_execute(job.id)
        else:
            self.event_log.info(
                f"Job scheduled for {parameters.scheduled_time.isoformat()}, "
                "waiting for an explicit start",
                job_id=job.id,
            )
        return job

    def start(self, job_id: str) -> Tuple[Optional[Job], bool]:
        """Explicit admission. Returns (job, started); job is None if unknown."""
        if self.store.get(job_id) is None:
            return None, False
        if not self.controller.try_admit(job_id):
            return self.store.get(job_id), False
        job = self.store.get(job_id)
        self.controller.execute(job_id)
        return job, True

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.store.get(job_id)

    def list_jobs(self, limit: Optional[int] = None) -> List[Job]:
        return self.store.list(self.config.job_list_limit if limit is None else limit)

    # --- Logs ---

    def query_logs(
        self,
        count: Optional[int] = None,
        severity: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> List[LogEvent]:
        if count is None:
            count = self.config.log_query_default_count
        return self.event_log.query(count, severity=severity, job_id=job_id)

    def sweep(self) -> int:
        return len(self.event_log.sweep(self.config.retention_days))

    # --- Status ---

    def status_snapshot(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        counts = self.store.count_by_status()
        uptime = (now or datetime.now(UTC)) - self.started_at
        total_seconds = max(0, int(uptime.total_seconds()))
        return {
            "ServiceRunning": self.running,
            "CurrentJob": self.controller.active_job_id,
            "TotalJobs": sum(counts.values()),
            "QueuedJobs": counts[JobStatus.QUEUED],
            "RunningJobs": counts[JobStatus.RUNNING],
            "CompletedJobs": counts[JobStatus.COMPLETED],
            "FailedJobs": counts[JobStatus.FAILED],
            "StartedAt": self.started_at.isoformat(),
            "Uptime": {
                "Days": total_seconds // 86400,
                "Hours": total_seconds % 86400 // 3600,
                "Minutes": total_seconds % 3600 // 60,
                "Seconds": total_seconds % 60,
                "TotalSeconds": uptime.total_seconds(),
            },
        }

    # --- Lifecycle ---

    def close(self, timeout: Optional[float] = None) -> bool:
        """Stops taking work and waits for the active job (never cancels it)."""
        self.running = False
        active = self.controller.active_job_id
        if active:
            self.event_log.info("Waiting for the running job before exit", job_id=active)
        drained = self.controller.shutdown(wait=True, timeout=timeout)
        self.event_log.info("Service stopped")
        return drained


def build_work_function(config: ServiceConfig) -> WorkFunction:
    if config.work_function:
        return load_work_function(config.work_function)
    return VhdxCompactor(config.compact_command, config.compact_timeout)


def create_service(
    config: Optional[ServiceConfig] = None,
    work: Optional[WorkFunction] = None,
) -> CompactionService:
    """Wires a service from a config. ``work`` replaces the configured work function."""
    config = config or ServiceConfig()
    serializer = JsonSerializer()
    event_log = EventLog(
        config.log_dir,
        history_dir=config.history_dir,
        retention_days=config.retention_days,
        query_window=config.log_query_window,
        serializer=serializer,
    )
    store = MemoryJobStore(event_log)
    controller = WorkerController(
        store,
        work or build_work_function(config),
        event_log,
        history=JobHistoryWriter(config.history_dir, serializer),
        auto_start_next=config.auto_start_next,
    )
    return CompactionService(config, event_log, store, controller, serializer)
