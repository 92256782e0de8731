# compactflow/storage/event_log.py
import logging
import os
from datetime import datetime, timedelta, UTC
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Iterator, List, Optional

from compactflow.common.events import LogEvent, Severity, SYSTEM_JOB_ID
from compactflow.serialization.base import BaseSerializer
from compactflow.serialization.json_serializer import JsonSerializer

logger = logging.getLogger(__name__)

LOG_FILE_PATTERN = "log-*.jsonl"
HISTORY_FILE_PATTERN = "*.json"


class EventLog:
    """
    Append-only structured event log, one JSON-lines file per UTC day.

    Every event is also forwarded to the stdlib logger of this module so the
    console output and the queryable log carry the same records.
    """

    def __init__(
        self,
        log_dir: Path,
        history_dir: Optional[Path] = None,
        retention_days: int = 30,
        query_window: int = 7,
        serializer: Optional[BaseSerializer] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.log_dir = Path(log_dir)
        self.history_dir = Path(history_dir) if history_dir else None
        self.retention_days = retention_days
        self.query_window = query_window
        self.serializer = serializer or JsonSerializer()
        self._clock = clock
        self._lock = Lock()

    def path_for(self, day: datetime) -> Path:
        return self.log_dir / f"log-{day:%Y%m%d}.jsonl"

    def write(self, event: LogEvent) -> bool:
        """Appends the event to its day file. Returns False if the file could not be written.

        Write failures go to the stdlib logger and are never raised.
        """
        line = self.serializer.serialize_event(event)
        written = True
        try:
            with self._lock:
                self.log_dir.mkdir(parents=True, exist_ok=True)
                with open(self.path_for(event.timestamp), "a", encoding="utf-8") as f:
                    f.write(line + "\n")
        except OSError:
            logger.exception("Could not write event to %s", self.log_dir)
            written = False
        logger.log(
            event.severity.log_level, "[%s] %s", event.job_id, event.message
        )
        return written

    def log(
        self,
        severity: Severity,
        message: str,
        job_id: Optional[str] = None,
        **data: Any,
    ) -> LogEvent:
        event = LogEvent(
            message=message,
            severity=severity,
            job_id=job_id or SYSTEM_JOB_ID,
            data=data or None,
            timestamp=self._clock(),
        )
        self.write(event)
        return event

    def debug(self, message: str, job_id: Optional[str] = None, **data: Any) -> LogEvent:
        return self.log(Severity.DEBUG, message, job_id, **data)

    def info(self, message: str, job_id: Optional[str] = None, **data: Any) -> LogEvent:
        return self.log(Severity.INFORMATION, message, job_id, **data)

    def warning(self, message: str, job_id: Optional[str] = None, **data: Any) -> LogEvent:
        return self.log(Severity.WARNING, message, job_id, **data)

    def error(self, message: str, job_id: Optional[str] = None, **data: Any) -> LogEvent:
        return self.log(Severity.ERROR, message, job_id, **data)

    # --- Reading ---

    def _cutoff(self, retention_days: Optional[int] = None) -> float:
        days = self.retention_days if retention_days is None else retention_days
        return (self._clock() - timedelta(days=days)).timestamp()

    def _recent_files(self) -> List[Path]:
        if not self.log_dir.is_dir():
            return []
        cutoff = self._cutoff()
        files = [
            p for p in self.log_dir.glob(LOG_FILE_PATTERN)
            if p.is_file() and p.stat().st_mtime >= cutoff
        ]
        # The date in the file name sorts lexically.
        files.sort(key=lambda p: p.name, reverse=True)
        return files[: self.query_window]

    def _read_reversed(self, path: Path) -> Iterator[LogEvent]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                lines = f.readlines()
        except FileNotFoundError:
            # Swept between listing and reading.
            return
        for line in reversed(lines):
            line = line.strip()
            if not line:
                continue
            try:
                yield self.serializer.deserialize_event(line)
            except (ValueError, KeyError, TypeError):
                logger.debug("Skipping unreadable log line in %s", path.name)

    def query(
        self,
        count: int = 100,
        severity: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> List[LogEvent]:
        """Returns up to ``count`` events, most recent first.

        Only the newest ``query_window`` day files are read. ``severity`` is
        matched case-insensitively against the severity name.
        """
        if count <= 0:
            return []
        wanted = severity.strip().lower() if severity else None

        results: List[LogEvent] = []
        for path in self._recent_files():
            for event in self._read_reversed(path):
                if wanted and event.severity.value.lower() != wanted:
                    continue
                if job_id and event.job_id != job_id:
                    continue
                results.append(event)
                if len(results) >= count:
                    return results
        return results

    # --- Retention ---

    def sweep(self, retention_days: Optional[int] = None) -> List[Path]:
        """Deletes log and job history files older than the retention window."""
        cutoff = self._cutoff(retention_days)
        targets = [(self.log_dir, LOG_FILE_PATTERN)]
        if self.history_dir is not None:
            targets.append((self.history_dir, HISTORY_FILE_PATTERN))

        removed: List[Path] = []
        for directory, pattern in targets:
            if not directory.is_dir():
                continue
            for path in directory.glob(pattern):
                try:
                    if path.is_file() and path.stat().st_mtime < cutoff:
                        with self._lock:
                            os.remove(path)
                        removed.append(path)
                except OSError as e:
                    logger.warning("Could not remove %s: %s", path, e)

        if removed:
            self.info(
                f"Retention sweep removed {len(removed)} file(s)",
                files=[p.name for p in removed],
            )
        return removed
