"""Tests for the job API."""

import json

import pytest

from reelpipe.blueprints import api as api_module


@pytest.fixture
def started(monkeypatch):
    jobs = []
    monkeypatch.setattr(api_module, "start_job", lambda job: jobs.append(job.id))
    return jobs


def _create(client, **payload):
    payload.setdefault("inputs", ["/media/disc1.mkv", "/media/disc2.mkv"])
    return client.post("/api/jobs", json=payload)


def test_create_job(client, started):
    response = _create(client, naming={"enabled": True, "title": "Show", "season": 2})
    assert response.status_code == 200
    data = response.get_json()
    assert data["status"] == "pending"
    assert started == [data["job_id"]]

    job = client.get(f"/api/jobs/{data['job_id']}").get_json()
    assert job["inputs"] == ["/media/disc1.mkv", "/media/disc2.mkv"]
    assert job["naming"]["season"] == 2
    assert job["stage"] == "idle"
    assert job["outputs"] == []


@pytest.mark.parametrize(
    "payload",
    [
        {"inputs": []},
        {"inputs": "/media/disc1.mkv"},
        {"inputs": [1, 2]},
        {"inputs": ["/media/a.mkv"], "naming": "Show"},
        {"inputs": ["/media/a.mkv"], "naming": {"season": "two"}},
    ],
)
def test_create_job_rejects_bad_payload(client, started, payload):
    response = client.post("/api/jobs", json=payload)
    assert response.status_code == 400
    assert "error" in response.get_json()
    assert started == []


def test_list_jobs(client, started):
    _create(client)
    _create(client, inputs=["/media/movie.mkv"])
    jobs = client.get("/api/jobs").get_json()["jobs"]
    assert len(jobs) == 2


def test_unknown_job(client):
    assert client.get("/api/jobs/nope").status_code == 404
    assert client.post("/api/jobs/nope/cancel").status_code == 404
    assert client.post("/api/jobs/nope/remove").status_code == 404


def test_cancel_then_remove_pending_job(client, started):
    job_id = _create(client).get_json()["job_id"]

    # Active jobs can't be removed
    assert client.post(f"/api/jobs/{job_id}/remove").status_code == 400

    response = client.post(f"/api/jobs/{job_id}/cancel")
    assert response.get_json() == {"status": "cancelled"}
    assert client.get(f"/api/jobs/{job_id}").get_json()["status"] == "cancelled"

    # Already finished
    assert client.post(f"/api/jobs/{job_id}/cancel").status_code == 400

    assert client.post(f"/api/jobs/{job_id}/remove").get_json() == {"status": "removed"}
    assert client.get(f"/api/jobs/{job_id}").status_code == 404


def test_transcode_config_preview(client):
    data = client.get("/api/config/transcode").get_json()
    assert data["template"]["video_options"]["codec"] == "libx265"
    assert data["resolved"]["video"] == ["libx265", "-crf", "22", "-preset", "medium"]
    assert data["resolved"]["audio"] == ["copy"]
    assert data["resolved"]["container"] == ["-f", "matroska"]


def test_transcode_config_invalid(client, config_file):
    config = json.loads(config_file.read_text())
    config["transcode"] = {"video_options": {"codec": "libx264", "qp": "high"}}
    config_file.write_text(json.dumps(config))

    response = client.get("/api/config/transcode")
    assert response.status_code == 400
    assert response.get_json()["field"] == "qp"
