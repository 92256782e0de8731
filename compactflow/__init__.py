from .common.job import Job, JobParameters
from .common.states import JobStatus
from .config import ServiceConfig, load_config
from .server.context import JobContext
from .service import CompactionService, create_service

__all__ = [
    "CompactionService",
    "Job",
    "JobContext",
    "JobParameters",
    "JobStatus",
    "ServiceConfig",
    "create_service",
    "load_config",
]
