# compactflow/storage/base.py
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from compactflow.common.job import Job, JobParameters
from compactflow.common.states import JobStatus


class JobStore(ABC):
    @abstractmethod
    def create(self, parameters: JobParameters) -> Job: ...

    @abstractmethod
    def get(self, job_id: str) -> Optional[Job]: ...

    @abstractmethod
    def list(self, limit: Optional[int] = None) -> List[Job]: ...

    @abstractmethod
    def update(self, job_id: str, mutator: Callable[[Job], None]) -> bool: ...

    @abstractmethod
    def set_status(
        self,
        job_id: str,
        status: JobStatus,
        expected_old_status: Optional[JobStatus] = None,
    ) -> bool: ...

    @abstractmethod
    def count_by_status(self) -> Dict[JobStatus, int]: ...

    @abstractmethod
    def oldest_queued(self, exclude_scheduled: bool = True) -> Optional[Job]: ...
