import json
import os

from exam_backend.api.schemas import JobStatus

URL = "/api/generate-exam"


def _job_files(store):
    if not os.path.isdir(store.directory):
        return []
    return [name for name in os.listdir(store.directory) if name.endswith(".json")]


def test_json_submission_returns_generated_quiz(client, store, config_body):
    res = client.post(URL, json=config_body)
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "done"
    questions = body["quiz"]["questions"]
    assert len(questions) == 4
    for q in questions:
        assert q["type"] == "mcq"
        assert len(q["choices"]) == 4
        assert q["answer"] == "A"

    record = store.read(body["jobId"])
    assert record.status == JobStatus.DONE
    assert record.type.value == "demo"
    assert record.result.quiz_id == body["quiz"]["quizId"]


def test_json_mixed_submission_alternates_types(client, config_body):
    config_body["questionType"] = "mixed"
    questions = client.post(URL, json=config_body).json()["quiz"]["questions"]
    assert [q["type"] for q in questions] == ["mcq", "tf", "mcq", "tf"]
    assert "choices" not in questions[1]
    assert questions[1]["answer"] == "True"


def test_whole_number_float_count_is_accepted(client, config_body):
    config_body["questionCount"] = 3.0
    res = client.post(URL, json=config_body)
    assert res.status_code == 200
    assert len(res.json()["quiz"]["questions"]) == 3


def test_fractional_count_is_rejected(client, store, config_body):
    config_body["questionCount"] = 3.5
    res = client.post(URL, json=config_body)
    assert res.status_code == 400
    assert list(res.json()["details"]) == ["questionCount"]
    assert _job_files(store) == []


def test_invalid_json_body_is_rejected(client, store):
    res = client.post(URL, content=b"{not json", headers={"content-type": "application/json"})
    assert res.status_code == 400
    assert res.json() == {"error": "Invalid JSON body"}
    assert _job_files(store) == []


def test_schema_failure_lists_every_field(client, store, config_body):
    config_body.update({"title": "", "questionCount": 0})
    res = client.post(URL, json=config_body)
    assert res.status_code == 400
    body = res.json()
    assert body["error"] == "Invalid payload"
    assert {"title", "questionCount"} <= set(body["details"])
    assert _job_files(store) == []


def test_unsupported_content_type(client, store):
    res = client.post(URL, content=b"title=T", headers={"content-type": "text/plain"})
    assert res.status_code == 415
    assert "Unsupported Content-Type" in res.json()["error"]
    assert _job_files(store) == []


def test_multipart_upload_is_persisted_and_queued(client, store, settings, config_body):
    res = client.post(
        URL,
        data={"payload": json.dumps(config_body)},
        files=[("files", ("notes.pdf", b"%PDF" + b"x" * 5116, "application/pdf"))],
    )
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "queued"
    assert body["message"]
    assert "quiz" not in body

    record = store.read(body["jobId"])
    assert record.status == JobStatus.QUEUED
    assert record.type.value == "upload"
    assert len(record.files) == 1
    saved = record.files[0]
    assert saved.endswith("notes.pdf")
    assert os.path.basename(os.path.dirname(saved)) == body["jobId"]
    assert os.path.dirname(os.path.dirname(saved)) == settings.uploads_dir
    assert os.path.getsize(saved) == 5120


def test_multipart_accepts_several_files_under_one_field(client, store, config_body):
    res = client.post(
        URL,
        data={"payload": json.dumps(config_body)},
        files=[
            ("files", ("a.txt", b"first", "text/plain")),
            ("files", ("a.txt", b"second", "text/plain")),
            ("extra", ("b.md", b"third", "text/markdown")),
        ],
    )
    assert res.status_code == 200
    record = store.read(res.json()["jobId"])
    assert [os.path.basename(p) for p in record.files] == ["a.txt", "a-1.txt", "b.md"]


def test_multipart_without_files_still_queues_a_job(client, store, config_body, multipart):
    body, headers = multipart([("payload", json.dumps(config_body))])
    res = client.post(URL, content=body, headers=headers)
    assert res.status_code == 200
    assert res.json()["status"] == "queued"
    record = store.read(res.json()["jobId"])
    assert record.files == []


def test_multipart_discrete_fields_are_coerced(client, store, multipart):
    body, headers = multipart(
        [
            ("title", "Cells"),
            ("subject", "Biology"),
            ("questionCount", "3"),
            ("questionType", "mixed"),
            ("complexity", "Undergrad"),
            ("aoc", '["cells", "organelles"]'),
        ]
    )
    res = client.post(URL, content=body, headers=headers)
    assert res.status_code == 200
    payload = store.read(res.json()["jobId"]).payload
    assert payload.question_count == 3
    assert payload.aoc == ["cells", "organelles"]


def test_multipart_invalid_discrete_fields(client, store, multipart):
    body, headers = multipart(
        [
            ("title", "Cells"),
            ("subject", "Biology"),
            ("questionCount", "three"),
            ("questionType", "mcq"),
            ("complexity", "Undergrad"),
            ("aoc", "[cells"),
        ]
    )
    res = client.post(URL, content=body, headers=headers)
    assert res.status_code == 400
    assert set(res.json()["details"]) == {"questionCount", "aoc"}
    assert _job_files(store) == []


def test_multipart_invalid_payload_json(client, store, settings):
    res = client.post(
        URL,
        data={"payload": "{broken"},
        files=[("files", ("notes.pdf", b"data", "application/pdf"))],
    )
    assert res.status_code == 400
    assert res.json()["error"] == "Invalid payload JSON in multipart form"
    assert _job_files(store) == []
    assert not os.path.exists(settings.uploads_dir)


def test_multipart_schema_failure_persists_nothing(client, store, settings, config_body):
    config_body["complexity"] = "PhD"
    res = client.post(
        URL,
        data={"payload": json.dumps(config_body)},
        files=[("files", ("notes.pdf", b"data", "application/pdf"))],
    )
    assert res.status_code == 400
    assert "complexity" in res.json()["details"]
    assert _job_files(store) == []
    assert not os.path.exists(settings.uploads_dir)


def test_oversized_upload_is_rejected_before_persisting(client, store, settings, config_body):
    res = client.post(
        URL,
        data={"payload": json.dumps(config_body)},
        files=[
            ("files", ("small.txt", b"ok", "text/plain")),
            ("files", ("big.pdf", b"x" * (settings.max_upload_bytes + 1), "application/pdf")),
        ],
    )
    assert res.status_code == 413
    assert "big.pdf" in res.json()["details"]
    assert _job_files(store) == []
    assert not os.path.exists(settings.uploads_dir)
    assert os.listdir(settings.tmp_dir) == []


def test_internal_failure_returns_500(client, store, monkeypatch, config_body):
    def _boom(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(store, "create", _boom)
    res = client.post(URL, json=config_body)
    assert res.status_code == 500
    assert res.json() == {"error": "Internal server error", "details": "disk full"}


def test_queued_jobs_are_processed_when_enabled(settings, config_body):
    from fastapi.testclient import TestClient

    from exam_backend.api.main import create_app

    settings.process_uploads = True
    app = create_app(settings)
    client = TestClient(app)
    res = client.post(
        URL,
        data={"payload": json.dumps(config_body)},
        files=[("files", ("notes.pdf", b"data", "application/pdf"))],
    )
    assert res.json()["status"] == "queued"

    record = app.state.job_store.read(res.json()["jobId"])
    assert record.status == JobStatus.DONE
    assert record.progress == 100
    assert len(record.result.questions) == config_body["questionCount"]
    assert len(record.files) == 1
