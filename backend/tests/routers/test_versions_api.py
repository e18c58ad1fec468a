"""Tests for the versions router."""


def test_unknown_content_has_empty_history(api_client):
    response = api_client.get("/api/content/missing/versions")

    assert response.status_code == 200
    assert response.json() == {"content_id": "missing", "versions": []}


def test_latest_for_unknown_content_is_404(api_client):
    response = api_client.get("/api/content/missing/versions/latest")
    assert response.status_code == 404


def test_record_revisions(api_client):
    first = api_client.post("/api/content/post-1/versions", json={"content": "hello world"})
    second = api_client.post(
        "/api/content/post-1/versions",
        json={"content": "hello brave world", "author": "reviewer", "overall_score": 91.5},
    )

    assert first.status_code == 201
    assert first.json()["version_number"] == 1
    assert first.json()["author"] == "editor"
    assert first.json()["change_summary"] == "Initial version (2 tokens)"

    assert second.status_code == 201
    assert second.json()["version_number"] == 2
    assert second.json()["change_summary"] == "+1 / -0 tokens"

    latest = api_client.get("/api/content/post-1/versions/latest").json()
    assert latest["version_id"] == second.json()["version_id"]
    assert latest["overall_score"] == 91.5

    history = api_client.get("/api/content/post-1/versions").json()["versions"]
    assert [v["version_number"] for v in history] == [1, 2]
    assert history[0]["content"] == "hello world"


def test_invalid_score_rejected(api_client):
    response = api_client.post(
        "/api/content/post-1/versions", json={"content": "hello", "overall_score": 101}
    )
    assert response.status_code == 422
