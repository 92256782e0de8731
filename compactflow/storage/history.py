# compactflow/storage/history.py
import logging
from pathlib import Path
from typing import Optional

from compactflow.common.job import Job
from compactflow.serialization.base import BaseSerializer
from compactflow.serialization.json_serializer import JsonSerializer

logger = logging.getLogger(__name__)


class JobHistoryWriter:
    """Persists terminal job records, one write-once JSON file per job id."""

    def __init__(self, history_dir: Path, serializer: Optional[BaseSerializer] = None):
        self.history_dir = Path(history_dir)
        self.serializer = serializer or JsonSerializer()

    def path_for(self, job_id: str) -> Path:
        return self.history_dir / f"{job_id}.json"

    def write(self, job: Job) -> Path:
        """Raises FileExistsError if the job was already written."""
        self.history_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(job.id)
        with open(path, "x", encoding="utf-8") as f:
            f.write(self.serializer.serialize_job(job))
        logger.debug("Wrote history for job %s to %s", job.id, path)
        return path

    def read(self, job_id: str) -> Optional[Job]:
        path = self.path_for(job_id)
        if not path.is_file():
            return None
        return self.serializer.deserialize_job(path.read_text(encoding="utf-8"))
