# compactflow/serialization/base.py
from abc import ABC, abstractmethod
from typing import Any, Dict

from compactflow.common.events import LogEvent
from compactflow.common.job import Job


class BaseSerializer(ABC):
    @abstractmethod
    def job_to_dict(self, job: Job) -> Dict[str, Any]: ...

    @abstractmethod
    def job_from_dict(self, data: Dict[str, Any]) -> Job: ...

    @abstractmethod
    def serialize_job(self, job: Job) -> str: ...

    @abstractmethod
    def deserialize_job(self, data: str) -> Job: ...

    @abstractmethod
    def serialize_event(self, event: LogEvent) -> str: ...

    @abstractmethod
    def deserialize_event(self, data: str) -> LogEvent: ...

    @abstractmethod
    def event_to_dict(self, event: LogEvent) -> Dict[str, Any]: ...
