import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from exam_backend.api.schemas import JobStatus, JobStatusOut, Quiz
from exam_backend.services.job_state import clamp_progress

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.8
RESULT_MISSING_MESSAGE = "Generation finished but result could not be retrieved."


class JobApi(Protocol):
    """What the poller needs from a job service (HTTP or simulated)."""

    async def get_job_status(self, job_id: str) -> JobStatusOut: ...

    async def get_quiz(self, job_id: str) -> Optional[Quiz]: ...


class PollState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PollSnapshot:
    """Poller state as seen by observers after each poll."""

    job_id: str
    state: PollState
    progress: int
    quiz: Optional[Quiz] = None
    message: Optional[str] = None

    @property
    def finished(self) -> bool:
        return self.state in (PollState.DONE, PollState.FAILED)


class JobPoller:
    """
    Polls a job until it reaches a terminal state, then fetches its result.

    State machine: pending -> processing -> done | failed.

    - The first poll happens immediately, then one every `interval` seconds.
    - On 'done' the quiz is fetched once and polling stops.
    - On 'failed' (or any error talking to the job service) polling stops and
      the message is surfaced. Nothing is retried.
    - Progress never decreases and is forced to 100 on completion.
    - cancel() / aclose() / leaving the async context stops the polling task.
    """

    def __init__(
        self,
        api: JobApi,
        interval: float = DEFAULT_POLL_INTERVAL,
        on_update: Optional[Callable[[PollSnapshot], None]] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.api = api
        self.interval = interval
        self.on_update = on_update
        self._task: Optional[asyncio.Task] = None
        self._reset("")

    def _reset(self, job_id: str) -> None:
        self.job_id = job_id
        self.state = PollState.PENDING
        self.progress = 0
        self.quiz: Optional[Quiz] = None
        self.message: Optional[str] = None

    async def __aenter__(self) -> "JobPoller":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def snapshot(self) -> PollSnapshot:
        return PollSnapshot(
            job_id=self.job_id,
            state=self.state,
            progress=self.progress,
            quiz=self.quiz,
            message=self.message,
        )

    # PUBLIC_INTERFACE
    def start(self, job_id: str) -> "asyncio.Task[PollSnapshot]":
        """Start polling in a background task, cancelling any previous one."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self.run(job_id))
        return self._task

    # PUBLIC_INTERFACE
    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    # PUBLIC_INTERFACE
    async def aclose(self) -> None:
        """Cancel polling and wait until the task has actually stopped."""
        task = self._task
        self.cancel()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._task = None

    # PUBLIC_INTERFACE
    async def run(self, job_id: str) -> PollSnapshot:
        """Poll until the job is done or failed and return the final snapshot."""
        self._reset(job_id)
        while not await self._poll_once():
            await asyncio.sleep(self.interval)
        return self.snapshot()

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self.snapshot())

    def _fail(self, message: str) -> bool:
        self.state = PollState.FAILED
        self.message = message
        self._notify()
        return True

    async def _poll_once(self) -> bool:
        """Run one poll. Returns True once the job is finished."""
        try:
            status = await self.api.get_job_status(self.job_id)
        except Exception as exc:
            logger.warning("Status poll for job %s failed: %s", self.job_id, exc)
            return self._fail(str(exc))

        if status.status == JobStatus.FAILED:
            return self._fail(status.message or "Job failed")

        if status.status == JobStatus.DONE:
            self.progress = 100
            try:
                quiz = await self.api.get_quiz(self.job_id)
            except Exception as exc:
                logger.warning("Result fetch for job %s failed: %s", self.job_id, exc)
                return self._fail(str(exc))
            if quiz is None:
                return self._fail(RESULT_MISSING_MESSAGE)
            self.quiz = quiz
            self.message = status.message
            self.state = PollState.DONE
            self._notify()
            return True

        self.progress = clamp_progress(self.progress, status.progress)
        if status.status == JobStatus.PROCESSING or self.progress > 0:
            self.state = PollState.PROCESSING
        self._notify()
        return False
