# compactflow/serialization/json_serializer.py
import json
from datetime import datetime
from typing import Any, Dict, Optional

from compactflow.common.events import LogEvent, Severity, SYSTEM_JOB_ID
from compactflow.common.job import Job, JobParameters
from compactflow.common.states import JobStatus
from compactflow.serialization.base import BaseSerializer


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class JsonSerializer(BaseSerializer):
    """
    Converts jobs and log events to the PascalCase JSON shape shared by the
    HTTP API, the job history files and the daily log files.
    """

    def job_to_dict(self, job: Job) -> Dict[str, Any]:
        params = job.parameters
        return {
            "JobId": job.id,
            "Status": job.status.value,
            "CreatedAt": _iso(job.created_at),
            "StartedAt": _iso(job.started_at),
            "CompletedAt": _iso(job.completed_at),
            "Path": params.path,
            "SingleVhdxFile": params.single_file,
            "IncludeTemplate": params.include_template,
            "Defrag": params.defrag,
            "ZeroFreeSpace": params.zero_free_space,
            "ScheduledTime": _iso(params.scheduled_time),
            "Progress": job.progress,
            "TotalFiles": job.total_files,
            "ProcessedFiles": job.processed_files,
            "SizeBefore": job.size_before,
            "SizeAfter": job.size_after,
            "Savings": job.savings,
            "Errors": list(job.errors),
            "Messages": list(job.messages),
        }

    def job_from_dict(self, data: Dict[str, Any]) -> Job:
        parameters = JobParameters(
            path=data.get("Path"),
            single_file=data.get("SingleVhdxFile"),
            include_template=bool(data.get("IncludeTemplate", False)),
            defrag=bool(data.get("Defrag", False)),
            zero_free_space=bool(data.get("ZeroFreeSpace", False)),
            scheduled_time=_parse_time(data.get("ScheduledTime")),
        )
        return Job(
            id=data["JobId"],
            status=JobStatus(data["Status"]),
            created_at=datetime.fromisoformat(data["CreatedAt"]),
            started_at=_parse_time(data.get("StartedAt")),
            completed_at=_parse_time(data.get("CompletedAt")),
            parameters=parameters,
            progress=float(data.get("Progress", 0.0)),
            total_files=int(data.get("TotalFiles", 0)),
            processed_files=int(data.get("ProcessedFiles", 0)),
            size_before=float(data.get("SizeBefore", 0.0)),
            size_after=float(data.get("SizeAfter", 0.0)),
            savings=float(data.get("Savings", 0.0)),
            errors=list(data.get("Errors", [])),
            messages=list(data.get("Messages", [])),
        )

    def serialize_job(self, job: Job) -> str:
        return json.dumps(self.job_to_dict(job), indent=2)

    def deserialize_job(self, data: str) -> Job:
        return self.job_from_dict(json.loads(data))

    def event_to_dict(self, event: LogEvent) -> Dict[str, Any]:
        return {
            "Timestamp": event.timestamp.isoformat(),
            "Severity": event.severity.value,
            "JobId": event.job_id,
            "Message": event.message,
            "Data": event.data,
            "Host": event.host,
        }

    def serialize_event(self, event: LogEvent) -> str:
        # One line per event, so no indentation here.
        return json.dumps(self.event_to_dict(event), default=str)

    def deserialize_event(self, data: str) -> LogEvent:
        raw = json.loads(data)
        return LogEvent(
            message=raw["Message"],
            severity=Severity(raw["Severity"]),
            job_id=raw.get("JobId") or SYSTEM_JOB_ID,
            data=raw.get("Data"),
            timestamp=datetime.fromisoformat(raw["Timestamp"]),
            host=raw.get("Host", ""),
        )
