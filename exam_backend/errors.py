from typing import Any, Dict, List, Optional


class ApiError(Exception):
    """
    Error carrying an HTTP status and the JSON body returned to the caller.

    The body always has the shape {"error": <message>, "details": <optional>}.
    """

    def __init__(self, status_code: int, error: str, details: Optional[Any] = None) -> None:
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


class ConfigValidationError(ValueError):
    """A generation configuration failed validation. Holds every failing field."""

    def __init__(self, field_errors: Dict[str, List[str]]) -> None:
        fields = ", ".join(sorted(field_errors)) or "payload"
        super().__init__(f"Invalid generation config: {fields}")
        self.field_errors = field_errors


class UploadTooLargeError(ValueError):
    """An uploaded file exceeded the configured per-file size ceiling."""

    def __init__(self, filename: str, limit: int) -> None:
        super().__init__(f"File '{filename}' exceeds the {limit} byte upload limit")
        self.filename = filename
        self.limit = limit


class JobNotFoundError(KeyError):
    """No job record exists for the given identifier."""

    def __init__(self, job_id: str) -> None:
        super().__init__(job_id)
        self.job_id = job_id

    def __str__(self) -> str:
        return f"Job not found: {self.job_id}"


class JobStateError(ValueError):
    """A job status transition would move the job backwards."""


class ExportFormatError(ValueError):
    """The requested export format is not supported."""
