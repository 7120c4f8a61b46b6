import pytest
from fastapi.testclient import TestClient

from exam_backend.api.main import create_app
from exam_backend.api.schemas import GenerationConfig
from exam_backend.settings import Settings

MAX_UPLOAD_BYTES = 64 * 1024


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jobs_dir=str(tmp_path / "jobs"),
        uploads_dir=str(tmp_path / "uploads"),
        tmp_dir=str(tmp_path / "tmp"),
        max_upload_bytes=MAX_UPLOAD_BYTES,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def store(app):
    return app.state.job_store


@pytest.fixture
def config_body():
    return {
        "title": "T",
        "subject": "Biology",
        "questionCount": 4,
        "questionType": "mcq",
        "complexity": "HighSchool",
    }


@pytest.fixture
def config(config_body):
    return GenerationConfig.model_validate(config_body)


def multipart_body(fields, boundary="exam-test-boundary"):
    """Encode text-only multipart/form-data (httpx falls back to urlencoded without files)."""
    lines = []
    for name, value in fields:
        lines += [f"--{boundary}", f'Content-Disposition: form-data; name="{name}"', "", value]
    lines += [f"--{boundary}--", ""]
    body = "\r\n".join(lines).encode("utf-8")
    return body, {"content-type": f"multipart/form-data; boundary={boundary}"}


@pytest.fixture
def multipart():
    return multipart_body
