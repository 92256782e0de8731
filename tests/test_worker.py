import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, UTC

import pytest

from compactflow.common.exceptions import JobNotAdmittedError
from compactflow.common.job import JobParameters
from compactflow.common.states import JobStatus
from compactflow.server.worker import WorkerController

from .support import GatedWork, wait_until


@pytest.fixture
def controller(store, event_log, history, gated_work):
    controller = WorkerController(store, gated_work, event_log, history=history)
    yield controller
    gated_work.release.set()
    controller.shutdown(wait=True, timeout=5)


def test_try_admit_marks_job_running(controller, store, params):
    job = store.create(params)
    assert controller.try_admit(job.id)

    running = store.get(job.id)
    assert running.status == JobStatus.RUNNING
    assert running.started_at is not None
    assert controller.active_job_id == job.id


def test_try_admit_refuses_while_another_job_runs(controller, store, event_log, params):
    first = store.create(params)
    second = store.create(params)
    assert controller.try_admit(first.id)

    assert not controller.try_admit(second.id)
    assert store.get(second.id).status == JobStatus.QUEUED
    assert store.get(second.id).started_at is None

    warnings = event_log.query(10, severity="Warning", job_id=second.id)
    assert "another job is running" in warnings[0].message


def test_try_admit_refuses_job_that_is_not_queued(controller, store, gated_work, params):
    job = store.create(params)
    gated_work.release.set()
    controller.admit_and_execute(job.id).result(timeout=5)

    assert not controller.try_admit(job.id)
    assert store.get(job.id).status == JobStatus.COMPLETED


def test_only_one_concurrent_admission_wins(controller, store):
    jobs = [store.create(JobParameters(path=f"/upd/{i}")) for i in range(20)]
    barrier = threading.Barrier(len(jobs))

    def admit(job_id):
        barrier.wait()
        return controller.try_admit(job_id)

    with ThreadPoolExecutor(max_workers=len(jobs)) as pool:
        results = list(pool.map(admit, [job.id for job in jobs]))

    assert results.count(True) == 1
    assert store.count_by_status()[JobStatus.RUNNING] == 1


def test_execute_requires_admission(controller, store, params):
    job = store.create(params)
    with pytest.raises(JobNotAdmittedError):
        controller.execute(job.id)


def test_execute_completes_job(controller, store, history, event_log, gated_work, params):
    job = store.create(params)
    future = controller.admit_and_execute(job.id)

    assert gated_work.started.wait(5)
    running = store.get(job.id)
    assert running.status == JobStatus.RUNNING
    assert running.total_files == 2
    assert running.size_before == 10.0

    gated_work.release.set()
    assert future.result(timeout=5) == JobStatus.COMPLETED

    done = store.get(job.id)
    assert done.status == JobStatus.COMPLETED
    assert done.completed_at >= done.started_at
    assert done.processed_files == 2
    assert done.progress == 100.0
    assert done.savings == 2.5
    assert done.messages == ["compacted"]
    assert controller.active_job_id is None

    persisted = history.read(job.id)
    assert persisted.status == JobStatus.COMPLETED
    assert persisted.completed_at == done.completed_at
    assert persisted.size_after == 7.5

    summary = event_log.query(1, job_id=job.id)[0]
    assert summary.data["status"] == "Completed"
    assert summary.data["savings"] == 2.5


def test_failure_is_recorded_on_the_job(store, event_log, history, params):
    work = GatedWork(fail=True)
    work.release.set()
    controller = WorkerController(store, work, event_log, history=history)
    try:
        job = store.create(params)
        assert controller.admit_and_execute(job.id).result(timeout=5) == JobStatus.FAILED

        failed = store.get(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.completed_at is not None
        assert failed.errors == ["RuntimeError: disk is locked"]
        assert history.read(job.id).status == JobStatus.FAILED
        assert controller.active_job_id is None
        assert event_log.query(10, severity="Error", job_id=job.id)

        # The slot was released, the next job can start.
        other = store.create(params)
        assert controller.try_admit(other.id)
    finally:
        controller.shutdown(wait=True, timeout=5)


def test_history_failure_keeps_terminal_status(store, event_log, params):
    class BrokenHistory:
        def write(self, job):
            raise PermissionError("read-only volume")

    def work(context):
        context.info("ok")

    controller = WorkerController(store, work, event_log, history=BrokenHistory())
    try:
        job = store.create(params)
        assert controller.admit_and_execute(job.id).result(timeout=5) == JobStatus.COMPLETED
        assert store.get(job.id).status == JobStatus.COMPLETED
        errors = event_log.query(10, severity="Error", job_id=job.id)
        assert "read-only volume" in errors[0].message
    finally:
        controller.shutdown(wait=True, timeout=5)


def test_second_job_waits_for_the_first(controller, store, gated_work):
    first = store.create(JobParameters(path="/a"))
    second = store.create(JobParameters(path="/b"))

    future = controller.admit_and_execute(first.id)
    assert gated_work.started.wait(5)
    assert controller.admit_and_execute(second.id) is None
    assert store.get(second.id).status == JobStatus.QUEUED

    gated_work.release.set()
    future.result(timeout=5)

    assert controller.admit_and_execute(second.id).result(timeout=5) == JobStatus.COMPLETED
    assert gated_work.calls == [first.id, second.id]


def test_auto_start_next_drains_the_queue(store, event_log, history):
    work = GatedWork()
    controller = WorkerController(store, work, event_log, history=history, auto_start_next=True)
    try:
        first = store.create(JobParameters(path="/a"))
        second = store.create(JobParameters(path="/b"))
        controller.admit_and_execute(first.id)
        assert work.started.wait(5)
        assert store.get(second.id).status == JobStatus.QUEUED

        work.release.set()
        assert controller.drain(timeout=5)
        assert store.get(first.id).status == JobStatus.COMPLETED
        assert store.get(second.id).status == JobStatus.COMPLETED
    finally:
        controller.shutdown(wait=True, timeout=5)


def test_completion_listeners_receive_terminal_job(controller, store, gated_work, params):
    seen = []
    controller.add_completion_listener(lambda job: seen.append(job.status))
    controller.add_completion_listener(lambda job: 1 / 0)

    gated_work.release.set()
    job = store.create(params)
    controller.admit_and_execute(job.id).result(timeout=5)
    assert seen == [JobStatus.COMPLETED]


def test_shutdown_waits_without_cancelling(store, event_log):
    work = GatedWork()
    controller = WorkerController(store, work, event_log)
    job = store.create(JobParameters(path="/a"))
    controller.admit_and_execute(job.id)
    assert work.started.wait(5)

    assert not controller.drain(timeout=0.05)
    assert store.get(job.id).status == JobStatus.RUNNING

    threading.Timer(0.1, work.release.set).start()
    assert controller.shutdown(wait=True, timeout=5)
    assert wait_until(lambda: store.get(job.id).status == JobStatus.COMPLETED)


def test_execute_after_shutdown_releases_slot(store, event_log):
    controller = WorkerController(store, lambda context: None, event_log)
    controller.shutdown()
    job = store.create(JobParameters(path="/a"))
    assert controller.try_admit(job.id)

    with pytest.raises(RuntimeError):
        controller.execute(job.id)
    assert controller.active_job_id is None
    assert store.get(job.id).status == JobStatus.FAILED


def test_unwritable_event_log_does_not_hold_the_slot(store, event_log, history, params):
    controller = WorkerController(
        store, lambda context: context.info("done"), event_log, history=history
    )
    try:
        job = store.create(params)
        today = event_log.path_for(datetime.now(UTC))
        today.unlink(missing_ok=True)
        today.mkdir(parents=True)

        assert controller.admit_and_execute(job.id).result(timeout=5) == JobStatus.COMPLETED
        assert controller.active_job_id is None
        assert history.read(job.id).status == JobStatus.COMPLETED

        other = store.create(params)
        assert controller.try_admit(other.id)
    finally:
        controller.shutdown(wait=True, timeout=5)


def test_context_cannot_change_a_finished_job(store, event_log, history, params):
    kept = []

    def work(context):
        kept.append(context)
        context.set_sizes(before=4.0, after=3.0)

    controller = WorkerController(store, work, event_log, history=history)
    try:
        job = store.create(params)
        assert controller.admit_and_execute(job.id).result(timeout=5) == JobStatus.COMPLETED
    finally:
        controller.shutdown(wait=True, timeout=5)

    late = kept[0]
    late.set_sizes(before=1.0, after=99.0)
    late.set_total_files(9)
    late.file_processed()
    late.error("late error")
    late.info("late message")

    done = store.get(job.id)
    assert done.savings == 1.0
    assert done.total_files == 0 and done.processed_files == 0
    assert done.errors == [] and done.messages == []
    assert history.read(job.id).savings == done.savings
    messages = [e.message for e in event_log.query(20, job_id=job.id)]
    assert "late error" not in messages and "late message" not in messages
