"""
Integration Tests - Document API
================================
FastAPI endpoints over a real SQLite store (hosted services not involved).
"""

import pytest
from fastapi.testclient import TestClient

from portal.api import app, get_store


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def saved(store, make_record):
    complete = make_record(confidence=0.9)
    partial = make_record(fields={"applicantName": "S. Lakshmi"}, confidence=0.5, location="Vijayawada")
    store.save_document(complete)
    store.save_document(partial)
    return complete, partial


class TestHealth:

    @pytest.mark.integration
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["ok"] is True
        assert body["service"] == "spark-api"

    @pytest.mark.integration
    def test_checks(self, client):
        body = client.get("/checks/health").json()
        assert body["checks"]["db"] == "ok"
        assert body["checks"]["sync"] == "off"


class TestDocuments:

    @pytest.mark.integration
    def test_list(self, client, saved):
        body = client.get("/documents").json()
        assert body["count"] == 2
        assert all("document_data" not in d for d in body["documents"])

    @pytest.mark.integration
    def test_search_and_filters(self, client, saved):
        complete, partial = saved
        assert client.get("/documents", params={"q": "lakshmi"}).json()["documents"][0]["id"] == partial.id
        assert client.get("/documents", params={"location": "Vijayawada"}).json()["count"] == 1
        assert client.get("/documents", params={"min_confidence": 0.8}).json()["count"] == 1

    @pytest.mark.integration
    def test_invalid_status_filter(self, client, saved):
        resp = client.get("/documents", params={"status": "archived"})
        assert resp.status_code == 422
        assert resp.json()["error_type"] == "DocumentValidationError"

    @pytest.mark.integration
    def test_get_one(self, client, saved):
        complete, _ = saved
        body = client.get(f"/documents/{complete.id}").json()
        assert body["fields"]["applicantName"] == "K. Ramesh"
        assert body["status"] == "pending"

    @pytest.mark.integration
    def test_get_missing(self, client):
        assert client.get("/documents/doc_0_missing").status_code == 404


class TestFinalize:

    @pytest.mark.integration
    def test_finalize(self, client, saved):
        complete, _ = saved
        resp = client.post(f"/documents/{complete.id}/finalize", params={"user_id": "si7"})
        assert resp.status_code == 200
        doc = resp.json()["document"]
        assert doc["status"] == "finalized"
        assert doc["finalized_by"] == "si7"

    @pytest.mark.integration
    def test_finalize_incomplete(self, client, saved):
        _, partial = saved
        resp = client.post(f"/documents/{partial.id}/finalize")
        assert resp.status_code == 422
        body = resp.json()
        assert "Reason for Leave" in body["context"]["missing_fields"]
        assert "Applicant Name" not in body["context"]["missing_fields"]

    @pytest.mark.integration
    def test_finalize_missing(self, client):
        resp = client.post("/documents/doc_0_missing/finalize")
        assert resp.status_code == 404
        assert resp.json()["error_type"] == "DocumentNotFoundError"


class TestTemplatesAndStats:

    @pytest.mark.integration
    def test_templates(self, client):
        assert len(client.get("/templates").json()["templates"]) == 5
        leave = client.get("/templates", params={"category": "Leave"}).json()["templates"]
        assert {t["id"] for t in leave} == {"earned_leave", "medical_leave"}

    @pytest.mark.integration
    def test_stats(self, client, saved):
        body = client.get("/stats").json()
        assert body["documents"]["total_documents"] == 2
        assert body["documents"]["documents_by_status"] == {"pending": 2}
        assert body["templates"]["total_templates"] == 5
