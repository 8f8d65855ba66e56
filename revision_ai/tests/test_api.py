import base64
import json

import pytest
from fastapi.testclient import TestClient

from revision_ai.main import create_app


@pytest.fixture
def client(mock_env):
    app = create_app()
    with TestClient(app) as c:
        yield c


def _upload(data: bytes, name: str = "photo.png"):
    return {"image": (name, data, "image/png")}


def test_validate_context_without_markers(client):
    r = client.post("/api/v1/context/validate", json={"processing_type": "objectRemoval"})
    assert r.status_code == 200
    body = r.json()
    assert body["is_valid"] is False
    assert body["recommended_type"] == "enhance"
    assert body["context"]["processing_type"] == "enhance"


def test_validate_context_with_annotations(client):
    r = client.post("/api/v1/context/validate", json={
        "processing_type": "objectRemoval",
        "quality_level": "professional",
        "performance_priority": "balanced",
        "annotations": [{"id": "s1", "kind": "stroke", "points": [[0.1, 0.1], [0.2, 0.2]]}],
    })
    body = r.json()
    assert body["is_valid"] is True
    assert body["recommended_type"] == "objectRemoval"
    assert body["context"]["quality_level"] == "high"
    assert [m["id"] for m in body["context"]["markers"]] == ["s1-0", "s1-1"]


def test_validate_context_rejects_short_custom_instructions(client):
    r = client.post("/api/v1/context/validate", json={
        "processing_type": "custom",
        "custom_instructions": "short",
    })
    assert r.status_code == 400


def test_hit_test_uses_configured_radius(client):
    r = client.post("/api/v1/context/hit-test", json={
        "markers": [
            {"id": "p1", "x": 0.5, "y": 0.5},
            {"id": "d1", "origin": "objectDetection", "box_2d": [0, 0, 100, 100], "confidence": 0.9},
        ],
        "x": 510,
        "y": 505,
        "image_width": 1000,
        "image_height": 1000,
    })
    assert r.status_code == 200
    body = r.json()
    assert body["hit_radius_px"] == 20
    assert [m["id"] for m in body["hits"]] == ["p1"]


def test_process_one_shot(client, png_bytes):
    r = client.post(
        "/api/v1/process",
        files=_upload(png_bytes),
        data={"prompt": "test", "context": json.dumps({"processing_type": "enhance"})},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "success"
    assert body["history"] == ["initial", "inProgress", "inProgress", "inProgress", "success"]
    assert body["result"]["original_prompt"] == "test"
    assert base64.b64decode(body["result"]["image_base64"]) == png_bytes


def test_process_empty_upload_reports_error_state(client):
    r = client.post("/api/v1/process", files=_upload(b""), data={"prompt": "test"})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "error"
    assert body["error_type"] == "ValidationError"
    assert body["history"] == ["initial", "error"]


def test_process_rejects_malformed_context(client, png_bytes):
    r = client.post("/api/v1/process", files=_upload(png_bytes), data={"context": "{not json"})
    assert r.status_code == 400


def test_pipeline_session_lifecycle(client, png_bytes):
    created = client.post("/api/v1/pipelines")
    assert created.status_code == 201
    session_id = created.json()["session_id"]
    assert created.json()["state"]["status"] == "initial"
    assert created.json()["state"]["busy"] is False

    assert client.get(f"/api/v1/pipelines/{session_id}").json()["status"] == "initial"
    assert client.get("/api/v1/health").json()["open_sessions"] == 1

    submitted = client.post(
        f"/api/v1/pipelines/{session_id}/submit",
        files=_upload(png_bytes),
        data={"prompt": "brighter"},
    )
    assert submitted.json()["status"] == "success"
    assert submitted.json()["session_id"] == session_id

    # Nothing to cancel once finished
    cancelled = client.post(f"/api/v1/pipelines/{session_id}/cancel")
    assert cancelled.json()["status"] == "success"

    reset = client.post(f"/api/v1/pipelines/{session_id}/reset")
    assert reset.json()["status"] == "initial"

    assert client.delete(f"/api/v1/pipelines/{session_id}").json()["deleted"] is True
    assert client.get(f"/api/v1/pipelines/{session_id}").status_code == 404
    assert client.delete(f"/api/v1/pipelines/{session_id}").status_code == 404


def test_submit_rejects_non_positive_timeout(client, png_bytes):
    session_id = client.post("/api/v1/pipelines").json()["session_id"]
    r = client.post(
        f"/api/v1/pipelines/{session_id}/submit",
        files=_upload(png_bytes),
        data={"timeout_seconds": "0"},
    )
    assert r.status_code == 400


def test_segment(client, image_factory):
    png = image_factory(64, 32)
    r = client.post("/api/v1/segment", files=_upload(png), data={"prompt": "cups"})
    assert r.status_code == 200
    body = r.json()
    assert body["image_width"] == 64
    assert body["image_height"] == 32
    assert body["stats"]["total_masks"] == 1
    assert body["stats"]["unique_labels"] == ["object"]
    assert body["markers"][0]["id"] == "seg-0"
    assert body["markers"][0]["origin"] == "aiSegmentation"
    assert body["masks"][0]["absolute_box"] == {"y0": 8.0, "x0": 16.0, "y1": 24.0, "x1": 48.0}
    assert body["masks"][0]["coverage"] == 1.0


def test_segment_rejects_non_images(client):
    r = client.post("/api/v1/segment", files=_upload(b"definitely not a png"))
    assert r.status_code == 400
    assert r.json()["error_type"] == "ValidationError"
