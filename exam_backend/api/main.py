import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from exam_backend.api.schemas import (
    ErrorOut,
    JobMode,
    JobStatus,
    JobStatusOut,
    Quiz,
    SubmitDoneOut,
    SubmitQueuedOut,
)
from exam_backend.errors import ApiError, ConfigValidationError, ExportFormatError, UploadTooLargeError
from exam_backend.services.config_validator import config_from_form, validate_generation_config
from exam_backend.services.exporter import export_quiz
from exam_backend.services.job_runner import process_queued_job
from exam_backend.services.quiz_generator import generate_placeholder_quiz
from exam_backend.settings import Settings
from exam_backend.storage.job_store import JobJsonStore, new_job_id
from exam_backend.storage.upload_store import StagedUpload, discard_staged, persist_upload, stage_upload

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "System", "description": "System and service endpoints"},
    {"name": "Exams", "description": "Exam generation submission"},
    {"name": "Jobs", "description": "Job status, result retrieval and export"},
]

_ERROR_RESPONSES = {
    400: {"model": ErrorOut, "description": "Invalid body or payload"},
    413: {"model": ErrorOut, "description": "Uploaded file too large"},
    415: {"model": ErrorOut, "description": "Unsupported content type"},
    500: {"model": ErrorOut, "description": "Internal error"},
}


# PUBLIC_INTERFACE
def get_settings(request: Request) -> Settings:
    """Return the settings the running app was created with."""
    return request.app.state.settings


# PUBLIC_INTERFACE
def get_job_store(request: Request) -> JobJsonStore:
    """Return the job store owned by the running app."""
    return request.app.state.job_store


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def _lifespan(app: FastAPI):
    _configure_logging(app.state.settings.log_level)
    yield


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


def _invalid_payload(exc: ConfigValidationError) -> ApiError:
    return ApiError(400, "Invalid payload", details=exc.field_errors)


async def _submit_json(request: Request, store: JobJsonStore) -> SubmitDoneOut:
    raw = await request.body()
    try:
        body = json.loads(raw)
    except ValueError:
        raise ApiError(400, "Invalid JSON body")

    try:
        config = validate_generation_config(body)
    except ConfigValidationError as exc:
        raise _invalid_payload(exc)

    # Paste mode: generate immediately for fast feedback.
    quiz = generate_placeholder_quiz(config)
    job_id = await run_in_threadpool(
        store.create, config, JobMode.DEMO, status=JobStatus.DONE, result=quiz
    )
    return SubmitDoneOut(job_id=job_id, quiz=quiz)


async def _submit_multipart(
    request: Request,
    store: JobJsonStore,
    settings: Settings,
    background_tasks: BackgroundTasks,
) -> SubmitQueuedOut:
    try:
        form = await request.form()
    except Exception as exc:
        raise ApiError(400, "Invalid multipart body", details=str(exc))

    uploads: List[UploadFile] = []
    fields: Dict[str, List[str]] = {}
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            uploads.append(value)
        else:
            fields.setdefault(key, []).append(value)

    try:
        if "payload" in fields:
            try:
                payload = json.loads(fields["payload"][-1])
            except ValueError:
                raise ApiError(400, "Invalid payload JSON in multipart form")
            config = validate_generation_config(payload)
        else:
            config = config_from_form(fields)
    except ConfigValidationError as exc:
        raise _invalid_payload(exc)

    staged: List[StagedUpload] = []
    try:
        for upload in uploads:
            staged.append(await stage_upload(upload, settings.tmp_dir, settings.max_upload_bytes))
    except UploadTooLargeError as exc:
        discard_staged(staged)
        raise ApiError(413, "File too large", details=str(exc))

    job_id = new_job_id()
    job_dir = os.path.join(settings.uploads_dir, job_id)
    saved_paths: List[str] = []
    for item in staged:
        saved_paths.append(await run_in_threadpool(persist_upload, item.tmp_path, item.filename, job_dir))
    if not staged:
        os.makedirs(job_dir, exist_ok=True)

    await run_in_threadpool(
        store.create, config, JobMode.UPLOAD, status=JobStatus.QUEUED, files=saved_paths, job_id=job_id
    )
    if settings.process_uploads:
        background_tasks.add_task(process_queued_job, store, job_id)
    return SubmitQueuedOut(job_id=job_id)


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    The job store is created here and owned by the app (app.state); routes get it
    through the get_job_store dependency. Nothing touches the filesystem or the
    logging setup until the app serves: logging is configured on startup and the
    jobs directory on the first write.
    """
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="Exam Generator Backend",
        description="Accepts exam generation requests (pasted text or uploaded documents), tracks jobs and exports quizzes.",
        version="0.1.0",
        openapi_tags=openapi_tags,
        lifespan=_lifespan,
    )
    app.state.settings = settings
    app.state.job_store = JobJsonStore(settings.jobs_dir)

    # CORS configuration to allow frontend integration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ApiError, _api_error_handler)

    @app.get("/", summary="Health Check", tags=["System"])
    def health_check(store: JobJsonStore = Depends(get_job_store), cfg: Settings = Depends(get_settings)):
        """
        Health check endpoint.

        Returns:
            JSON payload with a simple 'Healthy' message and the storage directories.
        """
        return {"message": "Healthy", "jobs_dir": store.directory, "uploads_dir": cfg.uploads_dir}

    @app.post(
        "/api/generate-exam",
        summary="Submit an exam generation request",
        description=(
            "application/json bodies are validated and answered synchronously with a generated quiz. "
            "multipart/form-data bodies store the uploaded files and queue a job."
        ),
        tags=["Exams"],
        responses=_ERROR_RESPONSES,
    )
    async def generate_exam(
        request: Request,
        background_tasks: BackgroundTasks,
        store: JobJsonStore = Depends(get_job_store),
        cfg: Settings = Depends(get_settings),
    ):
        """
        Submit an exam generation request.

        Args:
            request: JSON config body, or multipart form with a 'payload' JSON field
                (or flat config fields) and any number of files.

        Returns:
            200 {jobId, status: "done", quiz} for JSON submissions,
            200 {jobId, status: "queued", message} for multipart submissions.

        Notes:
            - Validation failures never create a job record or persist files.
            - Failures after validation are reported as 500; files written before
              the failure are not rolled back.
        """
        content_type = request.headers.get("content-type", "").lower()
        try:
            if "application/json" in content_type:
                out = await _submit_json(request, store)
            elif "multipart/form-data" in content_type:
                out = await _submit_multipart(request, store, cfg, background_tasks)
            else:
                raise ApiError(415, "Unsupported Content-Type. Use application/json or multipart/form-data")
        except ApiError:
            raise
        except Exception as exc:
            logger.exception("generate-exam failed")
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "details": str(exc)},
            )
        return JSONResponse(content=out.model_dump(mode="json", by_alias=True, exclude_none=True))

    @app.get(
        "/api/jobs/{job_id}",
        response_model=JobStatusOut,
        response_model_exclude_none=True,
        summary="Get job status",
        description="Unknown job ids report status 'failed' with an explanatory message.",
        tags=["Jobs"],
    )
    def job_status(job_id: str, store: JobJsonStore = Depends(get_job_store)) -> JobStatusOut:
        """
        Report the status of a job for polling.

        Args:
            job_id: The job identifier.

        Returns:
            JobStatusOut: Status, progress and optional message. Unknown or unreadable
            jobs report status 'failed' rather than an error.
        """
        return store.status(job_id)

    @app.get(
        "/api/jobs/{job_id}/result",
        response_model=Optional[Quiz],
        response_model_exclude_none=True,
        summary="Get job result",
        description="Returns the quiz of a finished job, otherwise null.",
        tags=["Jobs"],
    )
    def job_result(job_id: str, store: JobJsonStore = Depends(get_job_store)) -> Optional[Quiz]:
        """
        Return the quiz of a finished job.

        Args:
            job_id: The job identifier.

        Returns:
            Quiz or null: null while the job is not done or does not exist.
        """
        record = store.read(job_id)
        if record is None or record.status != JobStatus.DONE:
            return None
        return record.result

    @app.get(
        "/api/jobs/{job_id}/export",
        summary="Export a job's quiz",
        description="Download the quiz of a finished job as JSON, TXT or (mock) PDF.",
        tags=["Jobs"],
        responses={404: {"model": ErrorOut}, 400: {"model": ErrorOut}},
    )
    def export_job(
        job_id: str,
        fmt: str = Query("json", alias="format", description="json, txt or pdf"),
        include_answers: bool = Query(True, alias="includeAnswers"),
        store: JobJsonStore = Depends(get_job_store),
    ) -> Response:
        """
        Download the quiz of a finished job.

        Args:
            job_id: The job identifier.
            fmt: Export format (query parameter 'format'): json, txt or pdf.
            include_answers: When false, answers are left out.

        Returns:
            The exported file as an attachment named '{quizId}.{ext}'.

        Raises:
            ApiError: 404 when the job has no quiz, 400 for an unknown format.
        """
        record = store.read(job_id)
        if record is None or record.status != JobStatus.DONE or record.result is None:
            raise ApiError(404, "Quiz not found")
        try:
            artifact = export_quiz(record.result, fmt, include_answers=include_answers)
        except ExportFormatError as exc:
            raise ApiError(400, "Unsupported export format", details=str(exc))
        return Response(
            content=artifact.content,
            media_type=artifact.media_type,
            headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
        )

    return app


app = create_app()

