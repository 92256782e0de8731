# compactflow/common/states.py
from enum import Enum
from typing import Dict, FrozenSet


class JobStatus(str, Enum):
    QUEUED = "Queued"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"


TERMINAL_STATES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED}
)

# Status only ever moves forward.
_TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: TERMINAL_STATES,
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def can_transition(old: JobStatus, new: JobStatus) -> bool:
    return new in _TRANSITIONS[old]


def is_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_STATES
