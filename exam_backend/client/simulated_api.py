import asyncio
import logging
import random
import string
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set

from exam_backend.api.schemas import JobStatus, JobStatusOut, Quiz
from exam_backend.services.job_state import check_transition, clamp_progress
from exam_backend.services.quiz_generator import generate_sample_quiz

logger = logging.getLogger(__name__)

DEFAULT_STEPS = 12
# Progress stays below this until the last step.
PROGRESS_CAP = 95


@dataclass
class SimulatedJob:
    """In-memory job driven by the progress simulation."""

    job_id: str
    filenames: List[str]
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    result: Optional[Quiz] = None
    message: Optional[str] = None

    def advance(self, value: float) -> None:
        """Move progress forward. Lower values never decrease it."""
        self.progress = clamp_progress(self.progress, value)

    def transition(self, status: JobStatus) -> None:
        self.status = check_transition(self.status, status)


def simulation_step_seconds(file_count: int, steps: int = DEFAULT_STEPS) -> float:
    """Step interval: about 3.5s in total plus 0.5s per file (up to 6s), never under 0.2s per step."""
    total = 3.5 + min(6.0, file_count * 0.5)
    return max(0.2, total / steps)


class SimulatedJobApi:
    """
    Client-side stand-in for the upload/generation backend.

    Jobs live in an in-memory map owned by this object. Each upload starts a
    progress simulation task; close() cancels every task still running, so
    the object must be closed (or used as an async context manager) on teardown.
    """

    def __init__(
        self,
        latency: float = 0.2,
        result_latency: float = 0.12,
        steps: int = DEFAULT_STEPS,
        step_seconds: Optional[float] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        if steps < 1:
            raise ValueError("steps must be at least 1")
        self.latency = latency
        self.result_latency = result_latency
        self.steps = steps
        self.step_seconds = step_seconds
        self._rng = rng or random.Random()
        self._jobs: Dict[str, SimulatedJob] = {}
        self._tasks: Set[asyncio.Task] = set()

    async def __aenter__(self) -> "SimulatedJobApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def running_tasks(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def get_job(self, job_id: str) -> Optional[SimulatedJob]:
        return self._jobs.get(job_id)

    def _new_job_id(self) -> str:
        alphabet = string.ascii_lowercase + string.digits
        return "job_" + "".join(self._rng.choice(alphabet) for _ in range(8))

    # PUBLIC_INTERFACE
    async def upload_files(self, filenames: Sequence[str]) -> str:
        """
        Pretend to upload files: register a pending job and start processing it.

        Returns:
            str: The new job id.
        """
        job_id = self._new_job_id()
        while job_id in self._jobs:
            job_id = self._new_job_id()
        job = SimulatedJob(job_id=job_id, filenames=list(filenames))
        self._jobs[job_id] = job

        task = asyncio.get_running_loop().create_task(self._simulate(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        await asyncio.sleep(self.latency)
        return job_id

    # PUBLIC_INTERFACE
    async def get_job_status(self, job_id: str) -> JobStatusOut:
        """Unknown jobs report 'failed' with an explanatory message."""
        job = self._jobs.get(job_id)
        if job is None:
            return JobStatusOut(job_id=job_id, status=JobStatus.FAILED, progress=0, message="Job not found.")
        message = job.message
        if message is None and job.status == JobStatus.DONE:
            message = "Finished"
        return JobStatusOut(job_id=job_id, status=job.status, progress=job.progress, message=message)

    # PUBLIC_INTERFACE
    async def get_quiz(self, job_id: str) -> Optional[Quiz]:
        job = self._jobs.get(job_id)
        if job is None:
            return None
        await asyncio.sleep(self.result_latency)
        return job.result if job.status == JobStatus.DONE else None

    # PUBLIC_INTERFACE
    async def close(self) -> None:
        """Cancel every running simulation and wait for the tasks to finish."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _simulate(self, job: SimulatedJob) -> None:
        step_seconds = self.step_seconds
        if step_seconds is None:
            step_seconds = simulation_step_seconds(len(job.filenames), self.steps)
        increment = 100 / self.steps

        try:
            job.transition(JobStatus.PROCESSING)
            job.advance(2)
            for step in range(1, self.steps + 1):
                await asyncio.sleep(step_seconds)
                if step >= self.steps:
                    job.result = generate_sample_quiz(job.filenames)
                    job.advance(100)
                    job.transition(JobStatus.DONE)
                    break
                job.advance(min(PROGRESS_CAP, job.progress + self._rng.random() * increment + (increment - 3)))
        except asyncio.CancelledError:
            logger.debug("Simulation of %s cancelled", job.job_id)
            raise
        except Exception as exc:
            logger.exception("Simulation of %s failed", job.job_id)
            job.message = str(exc)
            job.transition(JobStatus.FAILED)
