"""
API tests against the FastAPI app with local storage in a temporary directory.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from interview_recorder.main import WS_CAPTURE_FAILED, WS_NOT_FOUND, app


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path / "media"))
    monkeypatch.setenv("DATA_FILE", str(tmp_path / "interviews.json"))
    monkeypatch.setenv("PUBLIC_BASE_URL", "http://testserver")
    monkeypatch.setenv("GEMINI_API_KEY", "")
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def interview(client):
    response = client.post("/api/interview", json={
        "job_title": "Backend Engineer",
        "questions": ["Q1", "Q2", "Q3"],
        "seniority": "Senior",
    })
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def candidate(client, interview):
    response = client.post(f"/api/interview/{interview['interview_id']}/candidates", json={"name": "Sam"})
    assert response.status_code == 201
    return response.json()


def upload(client, interview_id, candidate_id, question_index, data=b"webm-bytes", content_type="video/webm"):
    return client.post(
        f"/api/interview/{interview_id}/upload",
        params={"candidate_id": candidate_id, "question_index": question_index},
        files={"video": ("answer.webm", data, content_type)},
    )


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["components"]["scoring_service"] is False


def test_root_and_metrics(client):
    assert client.get("/").json()["status"] == "operational"
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "uploads_abandoned_total" in response.text


def test_interview_lifecycle(client, interview, candidate):
    interview_id = interview["interview_id"]
    assert client.get(f"/api/interview/{interview_id}").json()["questions"] == ["Q1", "Q2", "Q3"]
    assert sorted(candidate["question_order"]) == [0, 1, 2]

    fetched = client.get(f"/api/interview/{interview_id}/candidate",
                         params={"candidate_id": candidate["candidate_id"]})
    assert fetched.json()["question_order"] == candidate["question_order"]


def test_unknown_interview(client):
    response = client.get("/api/interview/missing")
    assert response.status_code == 404
    assert "not found" in response.json()["error"]
    assert client.post("/api/interview/missing/candidates", json={}).status_code == 404


def test_create_interview_requires_questions(client):
    response = client.post("/api/interview", json={"job_title": "X", "questions": []})
    assert response.status_code == 422


def test_upload_and_list_recordings(client, interview, candidate):
    interview_id, candidate_id = interview["interview_id"], candidate["candidate_id"]

    response = upload(client, interview_id, candidate_id, 1)
    assert response.status_code == 201
    body = response.json()
    assert body["question_index"] == 1
    assert body["size"] == len(b"webm-bytes")
    assert body["url"].endswith(f"/media/interviews/{interview_id}/{candidate_id}/question-1.webm")

    assert upload(client, interview_id, candidate_id, 1, data=b"retake").status_code == 201
    assert upload(client, interview_id, candidate_id, 0, content_type="video/mp4").status_code == 201

    listed = client.get(f"/api/interview/{interview_id}/upload", params={"candidate_id": candidate_id}).json()
    assert [r["question_index"] for r in listed["recordings"]] == [0, 1]

    media = client.get(f"/media/interviews/{interview_id}/{candidate_id}/question-1.webm")
    assert media.status_code == 200
    assert media.content == b"retake"


def test_upload_stores_recorded_duration(client, interview, candidate):
    interview_id, candidate_id = interview["interview_id"], candidate["candidate_id"]

    response = client.post(
        f"/api/interview/{interview_id}/upload",
        params={"candidate_id": candidate_id, "question_index": 2, "duration": 41.5},
        files={"video": ("answer.webm", b"webm-bytes", "video/webm")},
    )
    assert response.status_code == 201

    listed = client.get(f"/api/interview/{interview_id}/upload", params={"candidate_id": candidate_id}).json()
    assert listed["recordings"][0]["duration"] == 41.5


@pytest.mark.parametrize("kwargs,status_code", [
    ({"content_type": "image/png"}, 400),
    ({"question_index": 3}, 400),
    ({"data": b""}, 400),
    ({"candidate_id": ""}, 400),
    ({"candidate_id": "missing"}, 404),
])
def test_upload_validation(client, interview, candidate, kwargs, status_code):
    kwargs = dict(kwargs)
    args = {
        "interview_id": interview["interview_id"],
        "candidate_id": candidate["candidate_id"],
        "question_index": 0,
    }
    for key in ("candidate_id", "question_index"):
        if key in kwargs:
            args[key] = kwargs.pop(key)
    response = upload(client, **args, **kwargs)
    assert response.status_code == status_code


def test_media_outside_storage_is_not_served(client):
    assert client.get("/media/..%2F..%2Fetc%2Fpasswd").status_code == 404
    assert client.get("/media/interviews/none.webm").status_code == 404


def test_log_upload_failure(client):
    response = client.post("/api/log-upload-failure", json={
        "interview_id": "i1", "candidate_id": "c1", "question_index": 2, "attempts": 3,
    })
    assert response.status_code == 200
    assert response.json()["success"] is True

    missing = client.post("/api/log-upload-failure", json={"question_index": 2})
    assert missing.status_code == 400
    assert missing.json() == {"error": "Missing required fields"}

    garbled = client.post("/api/log-upload-failure", content=b"not json",
                          headers={"Content-Type": "application/json"})
    assert garbled.status_code == 200
    assert garbled.json()["success"] is False


def test_scoring_disabled_without_key(client, interview, candidate):
    response = client.post(
        f"/api/interview/{interview['interview_id']}/candidates/{candidate['candidate_id']}/score",
        json={"transcripts": {"0": "I led the migration."}},
    )
    assert response.status_code == 503


def test_websocket_requires_candidate_id(client, interview):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"/ws/interview/{interview['interview_id']}"):
            pass
    assert exc_info.value.code == WS_NOT_FOUND


def test_websocket_unknown_candidate(client, interview):
    with client.websocket_connect(f"/ws/interview/{interview['interview_id']}?candidate_id=missing") as ws:
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["data"]["fatal"] is True
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    assert exc_info.value.code == WS_NOT_FOUND


def test_websocket_permission_denied(client, interview, candidate):
    url = f"/ws/interview/{interview['interview_id']}?candidate_id={candidate['candidate_id']}"
    with client.websocket_connect(url) as ws:
        loaded = ws.receive_json()
        assert loaded["type"] == "session_loaded"
        assert loaded["data"]["total_questions"] == 3

        request = ws.receive_json()
        assert request["type"] == "get_user_media"
        ws.send_json({
            "type": "media_error",
            "request_id": request["request_id"],
            "name": "NotAllowedError",
            "message": "Permission denied",
        })

        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["data"]["kind"] == "permission_denied"
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    assert exc_info.value.code == WS_CAPTURE_FAILED
