"""Status and log routes."""
from typing import Any, Dict, List, Optional

from litestar import Controller, get
from litestar.params import Parameter

from compactflow.service import CompactionService


class CoreController(Controller):
    path = "/api"

    @get("/status")
    async def status(self, service: CompactionService) -> Dict[str, Any]:
        return service.status_snapshot()

    # Reads log files, so it runs on the thread pool.
    @get("/logs", sync_to_thread=True)
    def logs(
        self,
        service: CompactionService,
        count: Optional[int] = Parameter(query="count", default=None, ge=0),
        severity: Optional[str] = Parameter(query="severity", default=None),
        job_id: Optional[str] = Parameter(query="jobId", default=None),
    ) -> List[Dict[str, Any]]:
        events = service.query_logs(count, severity=severity or None, job_id=job_id or None)
        return [service.serializer.event_to_dict(event) for event in events]
