from exam_backend.api.schemas import JobStatus
from exam_backend.errors import JobStateError

# Queued and pending are both "not started"; done and failed are both terminal.
_RANK = {
    JobStatus.QUEUED: 0,
    JobStatus.PENDING: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.DONE: 2,
    JobStatus.FAILED: 2,
}

TERMINAL_STATUSES = frozenset({JobStatus.DONE, JobStatus.FAILED})


# PUBLIC_INTERFACE
def is_terminal(status: JobStatus) -> bool:
    return JobStatus(status) in TERMINAL_STATUSES


# PUBLIC_INTERFACE
def check_transition(current: JobStatus, new: JobStatus) -> JobStatus:
    """
    Validate a job status transition and return the new status.

    Raises:
        JobStateError: If the job would leave a terminal state or move to an
            earlier stage of the lifecycle.
    """
    current, new = JobStatus(current), JobStatus(new)
    if current == new:
        return new
    if is_terminal(current):
        raise JobStateError(f"Job already finished with status '{current.value}'")
    if _RANK[new] < _RANK[current]:
        raise JobStateError(f"Cannot move job from '{current.value}' back to '{new.value}'")
    return new


# PUBLIC_INTERFACE
def clamp_progress(current: int, new: float) -> int:
    """Return the next progress value: never below the current one, always within 0..100."""
    return max(int(current), min(100, max(0, int(round(new)))))
