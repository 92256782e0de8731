"""Job routes."""
from typing import Any, Dict, List

from litestar import Controller, Response, get, post
from litestar.status_codes import (
    HTTP_202_ACCEPTED,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)

from compactflow.common.job import JobParameters
from compactflow.common.states import JobStatus
from compactflow.service import CompactionService

JOB_NOT_FOUND = "Job not found"


class JobsController(Controller):
    path = "/api/jobs"

    @get()
    async def list_jobs(self, service: CompactionService) -> List[Dict[str, Any]]:
        return [service.serializer.job_to_dict(job) for job in service.list_jobs()]

    # Submission appends to the event log, so it runs on the thread pool.
    @post(sync_to_thread=True)
    def create_job(
        self, service: CompactionService, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        parameters = JobParameters.from_payload(data)
        job = service.submit(parameters)
        return service.serializer.job_to_dict(job)

    @get("/{job_id:str}")
    async def job_details(self, service: CompactionService, job_id: str) -> Response:
        job = service.get_job(job_id)
        if job is None:
            return Response({"error": JOB_NOT_FOUND}, status_code=HTTP_404_NOT_FOUND)
        return Response(service.serializer.job_to_dict(job))

    @post("/{job_id:str}/start", status_code=HTTP_202_ACCEPTED, sync_to_thread=True)
    def start_job(self, service: CompactionService, job_id: str) -> Response:
        job, started = service.start(job_id)
        if job is None:
            return Response({"error": JOB_NOT_FOUND}, status_code=HTTP_404_NOT_FOUND)
        if not started:
            reason = (
                "Another job is running"
                if job.status is JobStatus.QUEUED
                else f"Job is {job.status.value}, not Queued"
            )
            return Response({"error": reason}, status_code=HTTP_409_CONFLICT)
        return Response(service.serializer.job_to_dict(job), status_code=HTTP_202_ACCEPTED)
