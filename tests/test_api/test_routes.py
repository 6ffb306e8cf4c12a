"""
API tests: FastAPI TestClient with the repository and pipeline overridden.
"""

import csv
import io
import uuid

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from app.config import settings
from app.dependencies import get_pipeline, get_repository
from app.main import create_app
from app.pipeline.orchestrator import UploadPipeline
from app.schemas.shipments import EXPORT_COLUMNS


@pytest.fixture
def client(repository, stub_recovery, disabled_reconciler):
    app = create_app()
    pipeline = UploadPipeline(repository, recovery=stub_recovery, reconciler=disabled_reconciler)
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    return TestClient(app)


def _upload(client, content, content_type="application/pdf"):
    return client.post("/api/upload", files={"file": ("notification.pdf", content, content_type)})


@pytest.fixture
def draft_id(client, sample_pdf_bytes):
    response = _upload(client, sample_pdf_bytes)
    assert response.status_code == 200
    return response.json()["draft_id"]


class TestHealth:

    def test_health_always_200(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["reconciliation_enabled"] is False
        assert body["engines"] == {
            "stub_embedded-text": True,
            "stub_layout-text": True,
            "stub_ocr-text": True,
        }


class TestUpload:

    def test_upload_returns_record_and_draft(self, client, sample_pdf_bytes):
        response = _upload(client, sample_pdf_bytes)
        assert response.status_code == 200
        body = response.json()
        assert body["shipment_no"] == "1234567"
        assert body["total_net_kg"] == 10000.0
        assert body["total_pkgs"] == 400
        assert body["total_gross_kg"] == 10340.0
        assert len(body["items"]) == 1
        assert body["version_no"] == 1
        assert body["status"] == "draft"
        assert body["confidence"] == 79
        assert body["warnings"] == []

    def test_empty_upload(self, client):
        response = _upload(client, b"")
        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "ERR_NO_INPUT"

    def test_not_a_pdf(self, client):
        response = _upload(client, b"hello world")
        assert response.status_code == 415
        assert response.json()["detail"]["error_code"] == "ERR_UNSUPPORTED_FORMAT"

    def test_wrong_mime_type(self, client, sample_pdf_bytes):
        response = _upload(client, sample_pdf_bytes, content_type="image/png")
        assert response.status_code == 415

    def test_debug_text(self, client, sample_pdf_bytes, sample_text):
        response = client.post("/api/debug-text", files={"file": ("n.pdf", sample_pdf_bytes, "application/pdf")})
        assert response.status_code == 200
        assert response.json()["source"] == "embedded-text"
        assert response.json()["text"] == sample_text


class TestDraftRoutes:

    def test_get_draft(self, client, draft_id):
        response = client.get(f"/api/draft/{draft_id}")
        assert response.status_code == 200
        body = response.json()
        assert body["draft"]["data"]["shipment_no"] == "1234567"
        assert body["comments"] == []

    def test_unknown_draft(self, client):
        response = client.get(f"/api/draft/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["detail"]["error_code"] == "ERR_DRAFT_NOT_FOUND"

    def test_malformed_id(self, client):
        assert client.get("/api/draft/not-a-uuid").status_code == 400

    def test_save(self, client, draft_id):
        data = client.get(f"/api/draft/{draft_id}").json()["draft"]["data"]
        data["shipment_no"] = "7654321"
        data["total_net_kg"] = "9.500,50"

        response = client.post(f"/api/draft/{draft_id}/save", json={"data": data})
        assert response.status_code == 200
        assert response.json() == {"ok": True}

        saved = client.get(f"/api/draft/{draft_id}").json()["draft"]["data"]
        assert saved["shipment_no"] == "7654321"
        assert saved["total_net_kg"] == 9500.5

    def test_comment(self, client, draft_id):
        response = client.post(
            f"/api/draft/{draft_id}/comment",
            json={"field_name": "po_no", "message": "check", "author": "ops"},
        )
        assert response.status_code == 200
        comments = client.get(f"/api/draft/{draft_id}").json()["comments"]
        assert [c["message"] for c in comments] == ["check"]

    def test_blank_comment(self, client, draft_id):
        response = client.post(f"/api/draft/{draft_id}/comment", json={"field_name": "po_no", "message": " "})
        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "ERR_NO_INPUT"

    def test_freeze_then_conflicts(self, client, draft_id):
        response = client.post(f"/api/draft/{draft_id}/freeze")
        assert response.status_code == 200
        shipment_id = response.json()["shipment_id"]

        again = client.post(f"/api/draft/{draft_id}/freeze")
        assert again.status_code == 409
        assert again.json()["detail"]["error_code"] == "ERR_ALREADY_FROZEN"

        data = client.get(f"/api/draft/{draft_id}").json()["draft"]["data"]
        save = client.post(f"/api/draft/{draft_id}/save", json={"data": data})
        assert save.status_code == 409
        assert save.json()["detail"]["error_code"] == "ERR_DRAFT_FROZEN"

        shipment = client.get(f"/api/shipment/{shipment_id}").json()
        assert shipment["shipment_no"] == "1234567"
        assert len(shipment["items"]) == 1


class TestShipmentRoutes:

    def test_list(self, client, draft_id):
        client.post(f"/api/draft/{draft_id}/freeze")
        shipments = client.get("/api/shipments").json()
        assert len(shipments) == 1
        assert shipments[0]["item_count"] == 1

    def test_unknown_shipment(self, client):
        response = client.get(f"/api/shipment/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["detail"]["error_code"] == "ERR_SHIPMENT_NOT_FOUND"

    def test_csv_export(self, client, draft_id):
        client.post(f"/api/draft/{draft_id}/freeze")
        response = client.get("/api/shipments.csv")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]

        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == list(EXPORT_COLUMNS)
        assert rows[1][2:] == ["1234567", "4500123456", "100200", "PO-7788", "10000.0", "10340.0", "400"]
        assert response.text.splitlines()[0].startswith('"created_at"')

    def test_xlsx_export(self, client, draft_id):
        client.post(f"/api/draft/{draft_id}/freeze")
        response = client.get("/api/shipments.xlsx")
        assert response.status_code == 200

        ws = load_workbook(io.BytesIO(response.content)).active
        assert [c.value for c in ws[1]] == list(EXPORT_COLUMNS)
        assert ws.cell(row=2, column=3).value == "1234567"
        assert ws.cell(row=2, column=9).value == 400


class TestApiKey:

    def test_key_required_when_configured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "API_KEY", "secret")
        assert client.get("/api/shipments").status_code == 401
        assert client.get("/api/shipments", headers={"X-API-Key": "secret"}).status_code == 200
        assert client.get("/api/health").status_code == 200
