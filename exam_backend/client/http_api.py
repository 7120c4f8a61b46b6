import json
from typing import Optional, Sequence, Tuple

import httpx

from exam_backend.api.schemas import (
    GenerationConfig,
    JobStatusOut,
    Quiz,
    SubmitDoneOut,
    SubmitQueuedOut,
)

# (filename, content, content type)
FilePart = Tuple[str, bytes, str]


class HttpJobApi:
    """
    Async client for the exam generator HTTP API.

    Implements the job API used by JobPoller (get_job_status / get_quiz) on top of
    httpx. HTTP errors are raised as httpx.HTTPStatusError; nothing is retried.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> "HttpJobApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # PUBLIC_INTERFACE
    async def submit_json(self, config: GenerationConfig) -> SubmitDoneOut:
        """Submit a config as JSON; the quiz comes back synchronously."""
        resp = await self._client.post(
            "/api/generate-exam",
            json=config.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        resp.raise_for_status()
        return SubmitDoneOut.model_validate(resp.json())

    # PUBLIC_INTERFACE
    async def submit_files(self, config: GenerationConfig, files: Sequence[FilePart]) -> SubmitQueuedOut:
        """Submit a config plus source documents as multipart; returns the queued job."""
        payload = json.dumps(config.model_dump(mode="json", by_alias=True, exclude_none=True))
        resp = await self._client.post(
            "/api/generate-exam",
            data={"payload": payload},
            files=[("files", (name, content, content_type)) for name, content, content_type in files],
        )
        resp.raise_for_status()
        return SubmitQueuedOut.model_validate(resp.json())

    # PUBLIC_INTERFACE
    async def get_job_status(self, job_id: str) -> JobStatusOut:
        resp = await self._client.get(f"/api/jobs/{job_id}")
        resp.raise_for_status()
        return JobStatusOut.model_validate(resp.json())

    # PUBLIC_INTERFACE
    async def get_quiz(self, job_id: str) -> Optional[Quiz]:
        """Return the quiz of a finished job, or None while it is not available."""
        resp = await self._client.get(f"/api/jobs/{job_id}/result")
        resp.raise_for_status()
        data = resp.json()
        if not data:
            return None
        return Quiz.model_validate(data)
