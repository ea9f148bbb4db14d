"""
HTTP-level tests for the ingestion and audit routes.
The background pipeline is patched out; its behaviour is covered in test_ingestion_agent.
"""
import logging
import os
import uuid
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from menufacts.config import settings
from menufacts.dao.ingestion_job_dao import find_stale_jobs
from menufacts.main import _stale_job_sweep, app
from menufacts.models.ingestion_job import IngestionJob, IngestionJobStatus

ADMIN = {"X-Admin-Id": "admin-42"}
PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def pipeline():
    with patch("menufacts.routes.ingestion_routes.run_ingestion_pipeline") as mock_run:
        yield mock_run


def _upload(client, restaurant_id, payload=PDF_BYTES, content_type="application/pdf", headers=ADMIN):
    return client.post(
        "/admin/ingestion/upload",
        data={"restaurant_id": restaurant_id},
        files={"file": ("menu.pdf", payload, content_type)},
        headers=headers,
    )


# ── Upload ────────────────────────────────────────────────────────────────────

def test_upload_creates_pending_job_and_queues_pipeline(client, db, restaurant, pipeline):
    resp = _upload(client, restaurant.id)

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "pending"
    assert body["poll_url"] == f"/admin/ingestion/{body['job_id']}"
    pipeline.assert_called_once_with(body["job_id"])

    job = db.get(IngestionJob, body["job_id"])
    assert job.admin_id == "admin-42"
    assert job.restaurant_id == restaurant.id
    with open(os.path.join(settings.upload_dir, job.pdf_url), "rb") as f:
        assert f.read() == PDF_BYTES


def test_upload_rejects_bad_restaurant_id(client, pipeline):
    resp = _upload(client, "not-a-uuid")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "restaurant_id must be a valid UUID"
    pipeline.assert_not_called()


def test_upload_unknown_restaurant(client, pipeline):
    resp = _upload(client, str(uuid.uuid4()))

    assert resp.status_code == 404
    assert resp.json()["detail"] == "Restaurant not found"


def test_upload_too_large(client, restaurant, pipeline, monkeypatch):
    monkeypatch.setattr(settings, "max_upload_bytes", 10)
    resp = _upload(client, restaurant.id)

    assert resp.status_code == 400
    assert "exceeds" in resp.json()["detail"]
    pipeline.assert_not_called()


def test_upload_wrong_content_type(client, restaurant, pipeline):
    resp = _upload(client, restaurant.id, content_type="image/png")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "File must be a PDF"


def test_upload_without_pdf_magic(client, restaurant, pipeline):
    resp = _upload(client, restaurant.id, payload=b"<html>not a pdf</html>")

    assert resp.status_code == 400
    assert resp.json()["detail"] == "File does not appear to be a valid PDF"


def test_upload_requires_admin(client, restaurant, pipeline):
    resp = _upload(client, restaurant.id, headers={})

    assert resp.status_code == 401
    pipeline.assert_not_called()


# ── Polling ───────────────────────────────────────────────────────────────────

def test_get_job_returns_review_data(client, make_item, make_review_job):
    job = make_review_job([make_item("Whopper"), make_item("Fries")])

    resp = client.get(f"/admin/ingestion/{job.id}")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "review"
    assert [i["name"] for i in body["structured_data"]] == ["Whopper", "Fries"]
    assert len(body["validation_report"]) == 2
    assert body["approved_indexes"] == []
    assert body["is_stale"] is False


@pytest.mark.parametrize("status", [IngestionJobStatus.PENDING, IngestionJobStatus.PROCESSING])
def test_get_job_flags_stale_unfinished_job(client, db, restaurant, status):
    job = IngestionJob(
        restaurant_id=restaurant.id,
        admin_id="admin-1",
        pdf_url="menu.pdf",
        status=status,
        approved_indexes=[],
        created_at=datetime.utcnow() - timedelta(minutes=settings.stale_job_minutes + 5),
    )
    db.add(job)
    db.commit()

    assert client.get(f"/admin/ingestion/{job.id}").json()["is_stale"] is True


def test_stale_sweep_reports_pending_job_that_never_started(db, restaurant, caplog):
    old = datetime.utcnow() - timedelta(minutes=settings.stale_job_minutes + 5)
    stuck = IngestionJob(restaurant_id=restaurant.id, admin_id="admin-1", pdf_url="a.pdf",
                         status=IngestionJobStatus.PENDING, approved_indexes=[], created_at=old)
    done = IngestionJob(restaurant_id=restaurant.id, admin_id="admin-1", pdf_url="b.pdf",
                        status=IngestionJobStatus.FAILED, approved_indexes=[], created_at=old)
    fresh = IngestionJob(restaurant_id=restaurant.id, admin_id="admin-1", pdf_url="c.pdf",
                         status=IngestionJobStatus.PENDING, approved_indexes=[])
    db.add_all([stuck, done, fresh])
    db.commit()

    assert [j.id for j in find_stale_jobs(db, datetime.utcnow() - timedelta(minutes=1))] == [stuck.id]

    with caplog.at_level(logging.WARNING, logger="menufacts.main"):
        _stale_job_sweep()
    warnings = [r.getMessage() for r in caplog.records if "[Scheduler]" in r.getMessage()]
    assert len(warnings) == 1
    assert stuck.id in warnings[0]
    assert "has been pending" in warnings[0]


def test_get_unknown_job(client):
    assert client.get("/admin/ingestion/missing").status_code == 404


def test_list_jobs_includes_restaurant_name(client, make_item, make_review_job):
    job = make_review_job([make_item()])

    resp = client.get("/admin/ingestion/jobs")

    assert resp.status_code == 200
    [row] = resp.json()
    assert row["id"] == job.id
    assert row["restaurant_name"] == "Burger Palace"
    assert row["items_extracted"] == 1


# ── Review ────────────────────────────────────────────────────────────────────

def test_approve_route(client, make_item, make_review_job):
    job = make_review_job([make_item("A"), make_item("B")])

    resp = client.post(f"/admin/ingestion/{job.id}/approve", json={"item_indexes": [0, 1]}, headers=ADMIN)

    assert resp.status_code == 200
    body = resp.json()
    assert body["approved"] == 2
    assert body["status"] == "approved"
    assert len(body["created_item_ids"]) == 2


def test_approve_route_reports_error_indexes(client, make_item, make_review_job):
    job = make_review_job([make_item("A"), make_item("B", category=None)])

    resp = client.post(f"/admin/ingestion/{job.id}/approve", json={"item_indexes": [0, 1]}, headers=ADMIN)

    assert resp.status_code == 400
    assert resp.json()["detail"] == {
        "error": "Cannot approve items with validation errors",
        "details": {"error_indexes": [1]},
    }


def test_approve_route_unknown_job(client):
    resp = client.post("/admin/ingestion/missing/approve", json={"item_indexes": [0]}, headers=ADMIN)
    assert resp.status_code == 404


def test_approve_route_requires_admin(client, make_item, make_review_job):
    job = make_review_job([make_item()])
    resp = client.post(f"/admin/ingestion/{job.id}/approve", json={"item_indexes": [0]})
    assert resp.status_code == 401


def test_edit_route_returns_item_and_validation(client, make_item, make_review_job):
    job = make_review_job([make_item("A", category=None)])

    resp = client.put(f"/admin/ingestion/{job.id}/items/0", json={"category": "Burgers"}, headers=ADMIN)

    assert resp.status_code == 200
    body = resp.json()
    assert body["item"]["category"] == "Burgers"
    assert body["validation"]["status"] == "pass"
    assert body["validation"]["item_index"] == 0


def test_edit_route_out_of_range(client, make_item, make_review_job):
    job = make_review_job([make_item()])
    resp = client.put(f"/admin/ingestion/{job.id}/items/5", json={"calories": 100}, headers=ADMIN)
    assert resp.status_code == 400


def test_edit_route_rejects_mistyped_field_with_400(client, db, make_item, make_review_job):
    job = make_review_job([make_item("A", calories=400)])

    resp = client.put(f"/admin/ingestion/{job.id}/items/0", json={"calories": "abc"}, headers=ADMIN)

    assert resp.status_code == 400
    assert resp.json()["detail"] == {"error": "Invalid item fields", "details": {"fields": ["calories"]}}
    db.expire_all()
    assert db.get(IngestionJob, job.id).structured_data[0]["calories"] == 400


def test_edit_route_accepts_camel_case_keys(client, make_item, make_review_job):
    job = make_review_job([make_item("A")])

    resp = client.put(f"/admin/ingestion/{job.id}/items/0", json={"sodiumMg": 1200}, headers=ADMIN)

    assert resp.status_code == 200
    assert resp.json()["item"]["sodium_mg"] == 1200


# ── Audit ─────────────────────────────────────────────────────────────────────

def test_audit_logs_after_approval(client, make_item, make_review_job):
    job = make_review_job([make_item("A")])
    client.post(f"/admin/ingestion/{job.id}/approve", json={"item_indexes": [0]}, headers=ADMIN)

    resp = client.get("/audit-logs", params={"entity_type": "ingestion_job", "entity_id": job.id})

    assert resp.status_code == 200
    [entry] = resp.json()
    assert entry["action"] == "approve"
    assert entry["actor"] == "admin-42"
    assert entry["after_data"]["approved_indexes"] == [0]

    all_logs = client.get("/audit-logs").json()
    assert {e["action"] for e in all_logs} == {"create", "approve"}
