import logging
import os
import tempfile
import time
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Optional, Tuple

from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from exam_backend.errors import UploadTooLargeError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass
class StagedUpload:
    """An upload copied to temporary storage, not yet committed to a job directory."""

    tmp_path: str
    filename: str
    size: int


# PUBLIC_INTERFACE
def safe_filename(name: Optional[str]) -> str:
    """Reduce a client supplied filename to a plain basename."""
    base = os.path.basename((name or "").replace("\\", "/")).strip()
    if base in ("", ".", ".."):
        return f"file-{int(time.time() * 1000)}"
    return base


def _open_temp_file(tmp_dir: str) -> Tuple[BinaryIO, str]:
    os.makedirs(tmp_dir, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix="exam-upload-", dir=tmp_dir)
    return os.fdopen(fd, "wb"), tmp_path


def _close_temp_file(out: BinaryIO, tmp_path: str, keep: bool) -> None:
    out.close()
    if not keep and os.path.exists(tmp_path):
        os.remove(tmp_path)


# PUBLIC_INTERFACE
async def stage_upload(upload: UploadFile, tmp_dir: str, max_bytes: int) -> StagedUpload:
    """
    Copy an incoming upload to a temporary file, enforcing the size ceiling.

    The size check happens while streaming, so an oversized file is rejected
    before anything is written to a job directory. Disk work runs in the
    threadpool; only the reads from the request body happen on the event loop.

    Raises:
        UploadTooLargeError: If the upload exceeds max_bytes. The partial
            temporary file is removed.
    """
    filename = safe_filename(upload.filename)
    out, tmp_path = await run_in_threadpool(_open_temp_file, tmp_dir)
    size = 0
    staged = False
    try:
        while True:
            chunk = await upload.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > max_bytes:
                raise UploadTooLargeError(filename, max_bytes)
            await run_in_threadpool(out.write, chunk)
        staged = True
    finally:
        await run_in_threadpool(_close_temp_file, out, tmp_path, staged)
    return StagedUpload(tmp_path=tmp_path, filename=filename, size=size)


# PUBLIC_INTERFACE
def discard_staged(staged: Iterable[StagedUpload]) -> None:
    """Remove temporary files of uploads that will not be persisted."""
    for item in staged:
        try:
            os.remove(item.tmp_path)
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Could not remove staged upload %s: %s", item.tmp_path, exc)


def _unique_destination(job_dir: str, filename: str) -> str:
    dest = os.path.join(job_dir, filename)
    stem, ext = os.path.splitext(filename)
    counter = 1
    while os.path.exists(dest):
        dest = os.path.join(job_dir, f"{stem}-{counter}{ext}")
        counter += 1
    return dest


# PUBLIC_INTERFACE
def persist_upload(tmp_path: str, filename: str, job_dir: str) -> str:
    """
    Move a temporary file into a job directory and return its durable path.

    - The job directory is created if needed.
    - os.rename is tried first (same volume).
    - On failure (e.g. a cross-device move) the file is read entirely, written
      to the destination and the source is deleted. Failing to delete the
      source only logs a warning; the orphaned temp file does not fail the request.
    - Existing files are never overwritten; a numeric suffix is added instead.

    Args:
        tmp_path: Path of the temporary file.
        filename: Display filename of the upload.
        job_dir: The job-scoped destination directory.

    Returns:
        str: Absolute path of the persisted file.
    """
    os.makedirs(job_dir, exist_ok=True)
    dest = os.path.abspath(_unique_destination(job_dir, safe_filename(filename)))
    try:
        os.rename(tmp_path, dest)
    except OSError as exc:
        logger.info("Rename of %s failed (%s), copying instead", tmp_path, exc)
        with open(tmp_path, "rb") as src:
            data = src.read()
        with open(dest, "wb") as dst:
            dst.write(data)
        try:
            os.remove(tmp_path)
        except OSError as rm_exc:
            logger.warning("Could not remove temporary upload %s: %s", tmp_path, rm_exc)
    return dest
