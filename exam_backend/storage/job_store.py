import json
import logging
import os
import re
import tempfile
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Sequence

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from exam_backend.api.schemas import (
    GenerationConfig,
    JobMode,
    JobRecord,
    JobStatus,
    JobStatusOut,
    Quiz,
)
from exam_backend.errors import JobNotFoundError
from exam_backend.services.job_state import check_transition, clamp_progress

logger = logging.getLogger(__name__)

DEFAULT_JOBS_DIR = "./jobs"
NOT_FOUND_MESSAGE = "Job not found."

# Job ids double as file and directory names, so only plain identifiers are addressable.
_JOB_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


# PUBLIC_INTERFACE
def new_job_id() -> str:
    """Allocate a new opaque job identifier."""
    return str(uuid.uuid4())


# PUBLIC_INTERFACE
def is_valid_job_id(job_id: str) -> bool:
    return bool(job_id) and bool(_JOB_ID_PATTERN.match(job_id))


class JobJsonStore:
    """
    File-backed job store: one JSON document per job, written atomically.

    Layout:
        <directory>/<jobId>.json  ->  {"jobId": ..., "status": ..., "type": ...,
                                       "createdAt": ..., "payload": {...},
                                       "files": [...], "result": {...} | null,
                                       "progress": 0..100, "message": ...}

    Records are never deleted here; retention is handled outside this service.
    Distinct job ids never share a file, and a single writer per job is assumed.
    """

    # PUBLIC_INTERFACE
    def __init__(self, directory: Optional[str] = None) -> None:
        """
        Initialize the store. The directory is created on the first write.

        Args:
            directory: Where job records live. Defaults to EXAM_JOBS_DIR or './jobs'.
        """
        self.directory = os.path.abspath(directory or os.getenv("EXAM_JOBS_DIR") or DEFAULT_JOBS_DIR)

    def path_for(self, job_id: str) -> str:
        return os.path.join(self.directory, f"{job_id}.json")

    # PUBLIC_INTERFACE
    def create(
        self,
        payload: GenerationConfig,
        mode: JobMode,
        status: JobStatus = JobStatus.QUEUED,
        files: Sequence[str] = (),
        result: Optional[Quiz] = None,
        job_id: Optional[str] = None,
    ) -> str:
        """
        Write the initial record of a new job.

        Args:
            payload: The validated generation config.
            mode: How the job was submitted.
            status: Initial status, 'queued' unless the job was completed synchronously.
            files: Absolute paths of persisted uploads.
            result: The quiz, for jobs that are already done.
            job_id: Pre-allocated identifier (e.g. when uploads were stored under it first).

        Returns:
            str: The job identifier.
        """
        job_id = job_id or new_job_id()
        if not is_valid_job_id(job_id):
            raise ValueError(f"Invalid job id: {job_id!r}")
        record = JobRecord(
            job_id=job_id,
            status=status,
            type=mode,
            created_at=datetime.now(timezone.utc),
            payload=payload,
            files=list(files),
            result=result,
            progress=100 if status == JobStatus.DONE else 0,
        )
        self._atomic_write(self.path_for(job_id), record)
        logger.info("Created job %s (type=%s, status=%s, files=%d)", job_id, mode.value, status.value, len(files))
        return job_id

    # PUBLIC_INTERFACE
    def read(self, job_id: str) -> Optional[JobRecord]:
        """
        Return the full job record, or None when no such job exists or its file
        cannot be parsed.

        Callers must treat None as a terminal failure, not as something to retry.
        """
        if not is_valid_job_id(job_id):
            return None
        path = self.path_for(job_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return JobRecord.model_validate(data)
        except (ValueError, ValidationError) as exc:
            # Damaged records read as missing.
            logger.warning("Unreadable job record %s: %s", path, exc)
            return None

    # PUBLIC_INTERFACE
    def update(self, job_id: str, patch: Mapping[str, Any]) -> JobRecord:
        """
        Merge fields into an existing record and persist it.
        Progress never decreases: a lower value keeps the stored one.

        Args:
            job_id: The job identifier.
            patch: Fields to merge, keyed by attribute name or wire (camelCase) name.

        Returns:
            JobRecord: The updated record.

        Raises:
            JobNotFoundError: If the job does not exist.
            JobStateError: If the patch would move the status backwards.
            ValueError: If the patch tries to change the job id.
        """
        record = self.read(job_id)
        if record is None:
            raise JobNotFoundError(job_id)

        changes = _normalize_keys(patch)
        if changes.get("job_id", job_id) != job_id:
            raise ValueError("jobId cannot be changed")
        if "status" in changes:
            changes["status"] = check_transition(record.status, JobStatus(changes["status"]))
        if "progress" in changes:
            changes["progress"] = clamp_progress(record.progress, changes["progress"])

        merged: Dict[str, Any] = record.model_dump()
        merged.update(changes)
        updated = JobRecord.model_validate(merged)
        self._atomic_write(self.path_for(job_id), updated)
        if updated.status != record.status:
            logger.info("Job %s: %s -> %s", job_id, record.status.value, updated.status.value)
        return updated

    # PUBLIC_INTERFACE
    def status(self, job_id: str) -> JobStatusOut:
        """Polling view of a job. Unknown ids report 'failed' instead of raising."""
        record = self.read(job_id)
        if record is None:
            return JobStatusOut(job_id=job_id, status=JobStatus.FAILED, progress=0, message=NOT_FOUND_MESSAGE)
        message = record.message
        if message is None and record.status == JobStatus.DONE:
            message = "Finished"
        return JobStatusOut(job_id=job_id, status=record.status, progress=record.progress, message=message)

    def _atomic_write(self, path: str, record: JobRecord) -> None:
        """
        Write JSON to a temporary file and atomically replace the target.

        This ensures that readers never see a partially-written file.
        """
        data = record.model_dump(mode="json", by_alias=True)
        os.makedirs(self.directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".job.", suffix=".tmp", dir=self.directory, text=True)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
                json.dump(data, tmp_file, indent=2, ensure_ascii=False)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())
            os.replace(tmp_path, path)
        finally:
            # If os.replace succeeded, tmp_path no longer exists
            if os.path.exists(tmp_path):
                os.remove(tmp_path)


def _normalize_keys(patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Map wire names (camelCase) in a patch to JobRecord attribute names."""
    aliases = {to_camel(name): name for name in JobRecord.model_fields}
    return {aliases.get(key, key): value for key, value in patch.items()}
