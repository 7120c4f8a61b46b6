import json
import os

import pytest

from exam_backend.api.main import create_app
from exam_backend.api.schemas import JobMode, JobStatus


@pytest.fixture
def done_job(client, config_body):
    config_body["questionType"] = "mixed"
    return client.post("/api/generate-exam", json=config_body).json()


def test_health_check(client, settings):
    res = client.get("/")
    assert res.status_code == 200
    assert res.json()["message"] == "Healthy"
    assert res.json()["jobs_dir"] == settings.jobs_dir


def test_creating_the_app_writes_nothing(settings):
    create_app(settings)
    assert not os.path.exists(settings.jobs_dir)
    assert not os.path.exists(settings.uploads_dir)


def test_jobs_dir_is_created_on_first_submission(client, settings, config_body):
    assert client.post("/api/generate-exam", json=config_body).status_code == 200
    assert os.path.isdir(settings.jobs_dir)


def test_unknown_job_status_is_failed(client):
    res = client.get("/api/jobs/does-not-exist")
    assert res.status_code == 200
    assert res.json() == {"jobId": "does-not-exist", "status": "failed", "progress": 0, "message": "Job not found."}


def test_corrupt_job_record_polls_as_failed(client, store, done_job):
    with open(store.path_for(done_job["jobId"]), "w", encoding="utf-8") as f:
        f.write("{truncated")
    res = client.get(f"/api/jobs/{done_job['jobId']}")
    assert res.status_code == 200
    assert res.json()["status"] == "failed"
    assert client.get(f"/api/jobs/{done_job['jobId']}/result").json() is None


def test_done_job_status(client, done_job):
    res = client.get(f"/api/jobs/{done_job['jobId']}")
    assert res.json()["status"] == "done"
    assert res.json()["progress"] == 100


def test_result_of_done_job(client, done_job):
    res = client.get(f"/api/jobs/{done_job['jobId']}/result")
    assert res.status_code == 200
    assert res.json() == done_job["quiz"]


def test_result_of_queued_or_unknown_job_is_null(client, store, config):
    job_id = store.create(config, JobMode.UPLOAD, status=JobStatus.QUEUED)
    assert client.get(f"/api/jobs/{job_id}/result").json() is None
    assert client.get("/api/jobs/unknown/result").json() is None


def test_export_json(client, done_job):
    res = client.get(f"/api/jobs/{done_job['jobId']}/export", params={"format": "json", "includeAnswers": "false"})
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("application/json")
    quiz_id = done_job["quiz"]["quizId"]
    assert f'filename="{quiz_id}.json"' in res.headers["content-disposition"]
    data = json.loads(res.content)
    assert all("answer" not in q for q in data["questions"])


def test_export_txt_and_pdf(client, done_job):
    txt = client.get(f"/api/jobs/{done_job['jobId']}/export", params={"format": "txt"})
    pdf = client.get(f"/api/jobs/{done_job['jobId']}/export", params={"format": "pdf"})
    assert txt.headers["content-type"].startswith("text/plain")
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content == txt.content
    assert "   Answer: A" in txt.text


def test_export_unknown_format(client, done_job):
    res = client.get(f"/api/jobs/{done_job['jobId']}/export", params={"format": "docx"})
    assert res.status_code == 400
    assert res.json()["error"] == "Unsupported export format"


def test_export_without_result(client):
    res = client.get("/api/jobs/missing/export")
    assert res.status_code == 404
    assert res.json() == {"error": "Quiz not found"}


def test_job_routes_are_documented(app):
    endpoints = {route.path: route.endpoint for route in app.routes if route.path.startswith("/api/")}
    assert set(endpoints) >= {"/api/jobs/{job_id}", "/api/jobs/{job_id}/result", "/api/jobs/{job_id}/export"}
    for path, endpoint in endpoints.items():
        assert endpoint.__doc__ and "Args:" in endpoint.__doc__, path
