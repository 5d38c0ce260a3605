"""Tests for analysis endpoints."""
from fastapi.testclient import TestClient

from conftest import OTHER_USER_ID, auth_headers


def test_health_check(client: TestClient):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_requires_bearer_token(client: TestClient):
    response = client.get("/api/v1/queues/stats")
    assert response.status_code in (401, 403)


def test_rejects_token_with_wrong_signature(client: TestClient):
    from jose import jwt

    token = jwt.encode({"sub": "user-1"}, "another-secret", algorithm="HS256")
    response = client.get("/api/v1/queues/stats", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_submit_and_poll_until_completed(client: TestClient, make_document, worker):
    document = make_document()

    response = client.post("/api/v1/analyses", json={"documentId": document.id}, headers=auth_headers())
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["jobId"]
    assert body["message"]
    tracker_id = body["trackerId"]

    status = client.get(f"/api/v1/analyses/status/{tracker_id}", headers=auth_headers()).json()
    assert status["status"] == "pending"
    assert status["progress"] == 0
    assert status["documentId"] == document.id
    assert status["completedAt"] is None

    worker.run_all()

    status = client.get(f"/api/v1/analyses/status/{tracker_id}", headers=auth_headers()).json()
    assert status["status"] == "completed"
    assert status["progress"] == 100
    assert status["completedAt"] is not None

    result = client.get(f"/api/v1/analyses/document/{document.id}", headers=auth_headers()).json()
    assert result["type"] == "full"
    assert result["documentId"] == document.id
    assert result["overview"]["riskLevel"] == "high"
    assert result["suggestions"]["recommendations"] == ["Ask for a break clause"]
    assert result["risks"][0]["clauseRef"] == "12.3"

    risks = client.get(f"/api/v1/analyses/document/{document.id}/risks", headers=auth_headers()).json()
    assert [risk["title"] for risk in risks] == ["Unilateral termination", "Uncapped service charge"]
    assert risks[1]["category"] == "other"

    history = client.get(f"/api/v1/analyses/document/{document.id}/history", headers=auth_headers()).json()
    assert [job["id"] for job in history] == [tracker_id]


def test_duplicate_submission_is_bad_request(client: TestClient, make_document):
    document = make_document()
    client.post("/api/v1/analyses", json={"documentId": document.id}, headers=auth_headers())

    response = client.post("/api/v1/analyses", json={"documentId": document.id}, headers=auth_headers())

    assert response.status_code == 400
    assert response.json() == {
        "detail": "An analysis is already in progress for this document",
        "code": "ANAL_5004",
    }


def test_empty_document_id_is_bad_request(client: TestClient):
    response = client.post("/api/v1/analyses", json={"documentId": ""}, headers=auth_headers())

    assert response.status_code == 400
    assert response.json()["code"] == "VAL_2001"


def test_missing_body_field_is_bad_request(client: TestClient):
    response = client.post("/api/v1/analyses", json={}, headers=auth_headers())

    assert response.status_code == 400
    assert response.json()["code"] == "VAL_2001"


def test_unknown_document_is_not_found(client: TestClient):
    response = client.post("/api/v1/analyses", json={"documentId": "missing"}, headers=auth_headers())

    assert response.status_code == 404
    assert response.json()["code"] == "RES_3001"


def test_foreign_document_is_forbidden(client: TestClient, make_document):
    document = make_document(user_id=OTHER_USER_ID)

    response = client.post("/api/v1/analyses", json={"documentId": document.id}, headers=auth_headers())
    assert response.status_code == 403
    assert response.json()["code"] == "AUTH_1005"

    response = client.get(f"/api/v1/analyses/document/{document.id}/risks", headers=auth_headers())
    assert response.status_code == 403


def test_status_of_foreign_tracker_is_forbidden(client: TestClient, make_document):
    document = make_document(user_id=OTHER_USER_ID)
    body = client.post(
        "/api/v1/analyses", json={"documentId": document.id}, headers=auth_headers(OTHER_USER_ID)
    ).json()

    response = client.get(f"/api/v1/analyses/status/{body['trackerId']}", headers=auth_headers())

    assert response.status_code == 403


def test_unknown_tracker_is_not_found(client: TestClient):
    response = client.get("/api/v1/analyses/status/missing", headers=auth_headers())

    assert response.status_code == 404


def test_document_without_result_returns_null(client: TestClient, make_document):
    document = make_document()

    response = client.get(f"/api/v1/analyses/document/{document.id}", headers=auth_headers())
    assert response.status_code == 200
    assert response.json() is None

    risks = client.get(f"/api/v1/analyses/document/{document.id}/risks", headers=auth_headers())
    assert risks.json() == []


def test_queue_stats(client: TestClient, make_document):
    document = make_document()
    client.post("/api/v1/analyses", json={"documentId": document.id}, headers=auth_headers())

    response = client.get("/api/v1/queues/stats", headers=auth_headers())

    assert response.status_code == 200
    assert response.json() == {
        "queueName": "analysis-queue",
        "waiting": 1,
        "active": 0,
        "completed": 0,
        "failed": 0,
        "delayed": 0,
        "total": 1,
    }
