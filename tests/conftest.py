import pytest

from compactflow.common.job import JobParameters
from compactflow.config import ServiceConfig
from compactflow.service import create_service
from compactflow.storage.event_log import EventLog
from compactflow.storage.history import JobHistoryWriter
from compactflow.storage.memory_storage import MemoryJobStore

from .support import GatedWork


# --- Fixtures ---
@pytest.fixture
def event_log(tmp_path):
    return EventLog(tmp_path / "logs", history_dir=tmp_path / "jobs", retention_days=30)


@pytest.fixture
def history(tmp_path):
    return JobHistoryWriter(tmp_path / "jobs")


@pytest.fixture
def store(event_log):
    return MemoryJobStore(event_log)


@pytest.fixture
def params():
    return JobParameters(path="D:\\UPD", defrag=True)


@pytest.fixture
def gated_work():
    work = GatedWork()
    yield work
    work.release.set()


@pytest.fixture
def config(tmp_path):
    return ServiceConfig(data_dir=tmp_path / "data", port=0)


@pytest.fixture
def service(config, gated_work):
    service = create_service(config, work=gated_work)
    yield service
    gated_work.release.set()
    service.close(timeout=5)
