import threading
import time


class GatedWork:
    """A work function that blocks until the test releases it."""

    def __init__(self, fail: bool = False):
        self.started = threading.Event()
        self.release = threading.Event()
        self.fail = fail
        self.calls = []

    def __call__(self, context):
        self.calls.append(context.job_id)
        context.set_total_files(2)
        context.set_sizes(before=10.0)
        self.started.set()
        if not self.release.wait(timeout=5):
            raise TimeoutError("test never released the work function")
        context.file_processed()
        context.file_processed()
        if self.fail:
            raise RuntimeError("disk is locked")
        context.set_sizes(after=7.5)
        context.info("compacted")


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
