import os
import tempfile
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from a .env file if present
load_dotenv()

DEFAULT_JOBS_DIR = "./jobs"
DEFAULT_UPLOADS_DIR = "./uploads"
# 50 MB per file
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [part.strip() for part in raw.split(",") if part.strip()]


# PUBLIC_INTERFACE
@dataclass
class Settings:
    """
    Runtime settings for the exam generator backend.

    Every value can be overridden through environment variables (or a .env file):
        EXAM_JOBS_DIR          Directory holding one JSON record per job.
        EXAM_UPLOADS_DIR       Root directory for per-job upload folders.
        EXAM_TMP_DIR           Staging directory for incoming uploads.
        EXAM_MAX_UPLOAD_BYTES  Per-file size ceiling.
        EXAM_PROCESS_UPLOADS   Run queued upload jobs in a background task.
        CORS_ALLOW_ORIGINS     Comma separated list of allowed origins.
        LOG_LEVEL              Root log level.
    """

    jobs_dir: str = DEFAULT_JOBS_DIR
    uploads_dir: str = DEFAULT_UPLOADS_DIR
    tmp_dir: Optional[str] = None
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    process_uploads: bool = False
    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.jobs_dir = os.path.abspath(self.jobs_dir)
        self.uploads_dir = os.path.abspath(self.uploads_dir)
        self.tmp_dir = os.path.abspath(self.tmp_dir or tempfile.gettempdir())
        if self.max_upload_bytes <= 0:
            raise ValueError("max_upload_bytes must be positive")

    # PUBLIC_INTERFACE
    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        return cls(
            jobs_dir=os.getenv("EXAM_JOBS_DIR") or DEFAULT_JOBS_DIR,
            uploads_dir=os.getenv("EXAM_UPLOADS_DIR") or DEFAULT_UPLOADS_DIR,
            tmp_dir=os.getenv("EXAM_TMP_DIR") or None,
            max_upload_bytes=_env_int("EXAM_MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES),
            process_uploads=_env_bool("EXAM_PROCESS_UPLOADS", False),
            cors_allow_origins=_env_list("CORS_ALLOW_ORIGINS", ["*"]),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        )
