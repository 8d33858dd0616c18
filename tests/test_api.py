from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from storyforge.api import create_app
from storyforge.model import Project
from storyforge.persistence import InMemoryBlobStore
from storyforge.settings import StudioSettings


@pytest.fixture()
def client() -> TestClient:
    return TestClient(create_app(settings=StudioSettings(), store=InMemoryBlobStore()))


def _payload(project: Project) -> dict:
    return project.model_dump(mode="json", by_alias=True)


def test_validate_endpoint_reports_issues(client: TestClient, cave_project: Project) -> None:
    payload = _payload(cave_project)
    payload["scenes"][1]["choices"][1]["nextSceneId"] = "nowhere"

    response = client.post("/validate", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "errors"
    assert body["valid"] is False
    assert body["issues"][0]["code"] == "dangling-target"
    assert body["issues"][0]["choiceId"] == "leave"
    assert body["reachableScenes"] == ["cave", "start"]


def test_validate_rejects_malformed_projects(client: TestClient) -> None:
    response = client.post("/validate", json={"name": "missing id"})

    assert response.status_code == 422


def test_export_endpoint_returns_artifacts(client: TestClient, cave_project: Project) -> None:
    twine = client.post("/export/twine", json=_payload(cave_project))
    html = client.post("/export/HTML", json=_payload(cave_project))

    assert twine.status_code == 200
    assert twine.headers["content-type"].startswith("text/plain")
    assert ":: Cave" in twine.text
    assert 'filename="cave-story.twee"' in twine.headers["content-disposition"]
    assert html.status_code == 200
    assert html.text.startswith("<!DOCTYPE html>")


def test_export_endpoint_errors(client: TestClient, cave_project: Project) -> None:
    unknown = client.post("/export/pdf", json=_payload(cave_project))
    assert unknown.status_code == 400

    payload = _payload(cave_project)
    payload["scenes"] = []
    invalid = client.post("/export/html", json=payload)
    assert invalid.status_code == 422
    assert invalid.json()["detail"]["issues"][0]["code"] == "no-scenes"


def test_project_storage_endpoints(client: TestClient, cave_project: Project) -> None:
    assert client.get("/projects/cave-story").status_code == 404

    stored = client.put("/projects/cave-story", json=_payload(cave_project))
    assert stored.status_code == 200
    assert stored.json() == {"id": "cave-story", "name": "The Cave", "sceneCount": 2}

    fetched = client.get("/projects/cave-story")
    assert fetched.status_code == 200
    assert Project.model_validate(fetched.json()) == cave_project
    assert client.get("/projects").json() == {"data": ["cave-story"]}

    mismatch = client.put("/projects/other", json=_payload(cave_project))
    assert mismatch.status_code == 400

    assert client.delete("/projects/cave-story").status_code == 204
    assert client.get("/projects").json() == {"data": []}


def test_playtest_flow(client: TestClient, cave_project: Project) -> None:
    started = client.post("/playtest", json={"project": _payload(cave_project)})
    assert started.status_code == 201
    session = started.json()
    session_id = session["sessionId"]
    assert session["scene"]["id"] == "start"
    assert [choice["allowed"] for choice in session["choices"]] == [True, False, True]

    rejected = client.post(f"/playtest/{session_id}/choices/enter-cave")
    assert rejected.status_code == 200
    assert rejected.json()["accepted"] is False
    assert "torch" in rejected.json()["reason"]

    client.post(f"/playtest/{session_id}/choices/take-torch")
    moved = client.post(f"/playtest/{session_id}/choices/enter-cave").json()
    assert moved["accepted"] is True
    assert moved["scene"]["title"] == "Cave"
    assert moved["variables"] == {"torch": 1}

    ended = client.post(f"/playtest/{session_id}/choices/rest").json()
    assert ended["status"] == "ended"
    assert ended["choices"] == []

    restarted = client.post(f"/playtest/{session_id}/restart").json()
    assert restarted["status"] == "active"
    assert restarted["history"] == []
    assert client.get(f"/playtest/{session_id}").json()["scene"]["id"] == "start"


def test_playtest_from_stored_project_with_save_slot(
    client: TestClient, cave_project: Project
) -> None:
    client.put("/projects/cave-story", json=_payload(cave_project))
    session_id = client.post("/playtest", json={"projectId": "cave-story"}).json()["sessionId"]
    client.post(f"/playtest/{session_id}/choices/take-torch")
    assert client.post(f"/playtest/{session_id}/save").status_code == 204

    resumed = client.post("/playtest", json={"projectId": "cave-story", "resume": True}).json()
    assert resumed["variables"] == {"torch": 1}


def test_playtest_errors(client: TestClient, cave_project: Project) -> None:
    assert client.get("/playtest/unknown").status_code == 404
    assert client.post("/playtest", json={}).status_code == 400
    assert client.post("/playtest", json={"projectId": "missing"}).status_code == 404

    payload = _payload(cave_project)
    payload["startSceneId"] = "ghost"
    broken = client.post("/playtest", json={"project": payload})
    assert broken.status_code == 422


def test_file_storage_is_used_when_configured(tmp_path: Path, cave_project: Project) -> None:
    client = TestClient(create_app(settings=StudioSettings(storage_dir=tmp_path)))

    client.put("/projects/cave-story", json=_payload(cave_project))

    assert (tmp_path / "project.cave-story.json").exists()
