import logging

from exam_backend.api.schemas import JobStatus
from exam_backend.services.job_state import is_terminal
from exam_backend.services.quiz_generator import generate_placeholder_quiz
from exam_backend.storage.job_store import JobJsonStore

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def process_queued_job(store: JobJsonStore, job_id: str) -> None:
    """
    Run a queued upload job to completion.

    The job moves to 'processing', the placeholder generator runs on the stored
    payload and the job ends 'done' with the quiz attached. Any failure marks
    the job 'failed' with the error message; nothing is retried.
    """
    record = store.read(job_id)
    if record is None:
        logger.warning("Queued job %s disappeared before processing", job_id)
        return
    if is_terminal(record.status):
        return

    store.update(job_id, {"status": JobStatus.PROCESSING, "progress": 10})
    try:
        quiz = generate_placeholder_quiz(record.payload)
    except Exception as exc:
        logger.exception("Generation failed for job %s", job_id)
        store.update(job_id, {"status": JobStatus.FAILED, "message": str(exc)})
        return
    store.update(job_id, {"status": JobStatus.DONE, "progress": 100, "result": quiz, "message": "Finished"})
