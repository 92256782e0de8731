import sys

import pytest

from compactflow.common.exceptions import CompactionError, WorkFunctionLoadError
from compactflow.common.job import JobParameters
from compactflow.common.states import JobStatus
from compactflow.execution.performer import VhdxCompactor, load_work_function
from compactflow.server.context import JobContext

GB = 1024 ** 3


def work_for_tests(context):
    context.info("loaded")


@pytest.fixture
def disks(tmp_path):
    folder = tmp_path / "UPD"
    folder.mkdir()
    for name, size in [("UVHD-a.vhdx", 2048), ("UVHD-b.vhdx", 1024), ("UVHD-template.vhdx", 512)]:
        (folder / name).write_bytes(b"\0" * size)
    (folder / "notes.txt").write_text("not a disk")
    return folder


def _running_context(store, params):
    job = store.create(params)
    store.set_status(job.id, JobStatus.RUNNING)
    return JobContext(job.id, params, store)


def test_targets_skip_template_by_default(store, disks):
    context = _running_context(store, JobParameters(path=str(disks)))
    names = [d.name for d in VhdxCompactor().targets(context)]
    assert names == ["UVHD-a.vhdx", "UVHD-b.vhdx"]


def test_targets_include_template_on_request(store, disks):
    context = _running_context(store, JobParameters(path=str(disks), include_template=True))
    assert len(VhdxCompactor().targets(context)) == 3


def test_targets_single_file(store, disks):
    single = disks / "UVHD-b.vhdx"
    context = _running_context(store, JobParameters(single_file=str(single)))
    assert VhdxCompactor().targets(context) == [single]


def test_missing_folder_fails(store, tmp_path):
    context = _running_context(store, JobParameters(path=str(tmp_path / "missing")))
    with pytest.raises(CompactionError, match="Folder not found"):
        VhdxCompactor()(context)


def test_measure_only_without_command(store, disks):
    context = _running_context(store, JobParameters(path=str(disks)))
    VhdxCompactor()(context)

    job = store.get(context.job_id)
    assert job.total_files == 2
    assert job.processed_files == 2
    assert job.progress == 100.0
    assert job.size_before == pytest.approx(3072 / GB)
    assert job.size_after == pytest.approx(3072 / GB)
    assert job.savings == pytest.approx(0.0)
    assert any("only measured" in m for m in job.messages)


def test_command_shrinks_disks(store, disks):
    shrink = [sys.executable, "-c", "import sys; open(sys.argv[1], 'wb').write(b'x' * 100)", "{file}"]
    context = _running_context(store, JobParameters(path=str(disks), defrag=True))
    VhdxCompactor(shrink, timeout=30)(context)

    job = store.get(context.job_id)
    assert job.errors == []
    assert job.size_after == pytest.approx(200 / GB)
    assert job.savings == pytest.approx((3072 - 200) / GB)


def test_command_receives_flags(store, disks, tmp_path):
    out = tmp_path / "args.txt"
    record = [
        sys.executable, "-c",
        "import sys; open(sys.argv[1], 'a').write(' '.join(sys.argv[2:]) + '\\n')",
        str(out), "{defrag}", "{zero_free_space}",
    ]
    single = disks / "UVHD-a.vhdx"
    context = _running_context(store, JobParameters(single_file=str(single), zero_free_space=True))
    VhdxCompactor(record, timeout=30)(context)

    assert out.read_text().splitlines() == ["false true"]


def test_failing_command_is_recorded_per_disk(store, disks):
    fail_on_a = [
        sys.executable, "-c",
        "import sys; sys.exit(3 if sys.argv[1].endswith('UVHD-a.vhdx') else 0)",
        "{file}",
    ]
    context = _running_context(store, JobParameters(path=str(disks)))
    VhdxCompactor(fail_on_a, timeout=30)(context)

    job = store.get(context.job_id)
    assert len(job.errors) == 1
    assert job.errors[0].startswith("UVHD-a.vhdx: exit code 3")
    assert job.processed_files == 2


def test_all_disks_failing_raises(store, disks):
    always_fail = [sys.executable, "-c", "import sys; sys.exit(1)"]
    context = _running_context(store, JobParameters(path=str(disks)))
    with pytest.raises(CompactionError, match="all 2 disk"):
        VhdxCompactor(always_fail, timeout=30)(context)


def test_load_work_function():
    assert load_work_function("tests.test_performer:work_for_tests") is work_for_tests
    assert load_work_function("tests.test_performer.work_for_tests") is work_for_tests


@pytest.mark.parametrize(
    "target",
    ["no_such_module:work", "tests.test_performer:missing", "tests.test_performer:GB"],
)
def test_load_work_function_errors(target):
    with pytest.raises(WorkFunctionLoadError):
        load_work_function(target)
