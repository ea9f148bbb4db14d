"""
Tests for approving and editing extracted items while a job is in review.
"""
from decimal import Decimal

import pytest

from menufacts.errors import JobNotFoundError, ReviewRejectedError
from menufacts.models.audit_log import AuditAction, AuditLog
from menufacts.models.ingestion_job import IngestionJob, IngestionJobStatus
from menufacts.models.menu_item import MenuItem
from menufacts.models.restaurant import Restaurant, RestaurantStatus
from menufacts.services.review_service import approve_items, update_item
from menufacts.states.state import CheckStatus, ExtractedItemUpdate


def _menu_items(db):
    return db.query(MenuItem).all()


def test_approve_all_items(db, restaurant, make_item, make_review_job):
    job = make_review_job([make_item("Whopper"), make_item("Fries"), make_item("Shake")])

    result = approve_items(db, job.id, [0, 1, 2], actor="admin-1")

    assert result.approved == 3
    assert result.total_approved == 3
    assert result.status == "approved"
    assert len(result.created_item_ids) == 3

    db.expire_all()
    r = db.get(Restaurant, restaurant.id)
    assert r.item_count == 3
    assert r.status == RestaurantStatus.ACTIVE
    assert r.last_ingestion_at is not None

    j = db.get(IngestionJob, job.id)
    assert j.status == IngestionJobStatus.APPROVED
    assert j.items_approved == 3
    assert j.approved_indexes == [0, 1, 2]
    assert j.completed_at is not None

    names = sorted(m.name for m in _menu_items(db))
    assert names == ["Fries", "Shake", "Whopper"]
    stored = _menu_items(db)[0]
    assert stored.ingestion_id == job.id
    assert stored.source_pdf_url == "menu.pdf"
    assert stored.total_fat_g == Decimal("22.00")


def test_partial_approvals_accumulate(db, restaurant, make_item, make_review_job):
    job = make_review_job([make_item(f"Item {n}") for n in range(5)])

    first = approve_items(db, job.id, [0, 1], actor="admin-1")
    assert first.status == "review"
    assert first.total_approved == 2

    second = approve_items(db, job.id, [2, 3, 4], actor="admin-1")
    assert second.status == "approved"
    assert second.total_approved == 5

    db.expire_all()
    assert db.get(Restaurant, restaurant.id).item_count == 5
    assert len(_menu_items(db)) == 5


def test_item_with_errors_blocks_the_whole_request(db, restaurant, make_item, make_review_job):
    items = [make_item("A"), make_item("B"), make_item("C", calories=-10), make_item("D")]
    job = make_review_job(items)

    with pytest.raises(ReviewRejectedError) as exc:
        approve_items(db, job.id, [0, 1, 2, 3], actor="admin-1")

    assert exc.value.message == "Cannot approve items with validation errors"
    assert exc.value.details == {"error_indexes": [2]}
    db.expire_all()
    assert _menu_items(db) == []
    assert db.get(Restaurant, restaurant.id).item_count == 0
    assert db.get(IngestionJob, job.id).status == IngestionJobStatus.REVIEW
    assert db.query(AuditLog).count() == 0


def test_items_with_warnings_can_be_approved(db, make_item, make_review_job):
    job = make_review_job([make_item("Low", confidence="low", notes="blurry")])
    assert job.validation_report[0]["status"] == CheckStatus.WARNING.value

    assert approve_items(db, job.id, [0], actor="admin-1").approved == 1


@pytest.mark.parametrize("indexes, message", [
    ([], "item_indexes must be a non-empty list"),
    ([0, 7], "Item index 7 is out of range"),
    ([-1], "Item index -1 is out of range"),
    ([1, 1], "item_indexes contains duplicates"),
])
def test_bad_index_lists_are_rejected(db, make_item, make_review_job, indexes, message):
    job = make_review_job([make_item("A"), make_item("B")])

    with pytest.raises(ReviewRejectedError, match=message):
        approve_items(db, job.id, indexes, actor="admin-1")
    assert _menu_items(db) == []


def test_already_approved_indexes_are_rejected(db, make_item, make_review_job):
    job = make_review_job([make_item("A"), make_item("B"), make_item("C")])
    approve_items(db, job.id, [0], actor="admin-1")

    with pytest.raises(ReviewRejectedError) as exc:
        approve_items(db, job.id, [0, 1], actor="admin-1")

    assert exc.value.details == {"approved_indexes": [0]}
    assert len(_menu_items(db)) == 1


def test_approve_requires_review_status(db, make_item, make_review_job):
    job = make_review_job([make_item("A")])
    job.status = IngestionJobStatus.PROCESSING
    db.commit()

    with pytest.raises(ReviewRejectedError, match="expected 'review'"):
        approve_items(db, job.id, [0], actor="admin-1")


def test_approve_unknown_job(db):
    with pytest.raises(JobNotFoundError) as exc:
        approve_items(db, "missing", [0], actor="admin-1")
    assert exc.value.status_code == 404


def test_approval_is_audited(db, make_item, make_review_job):
    job = make_review_job([make_item("A"), make_item("B")])
    result = approve_items(db, job.id, [0, 1], actor="admin-7")

    logs = db.query(AuditLog).all()
    creates = [l for l in logs if l.action == AuditAction.CREATE]
    approvals = [l for l in logs if l.action == AuditAction.APPROVE]

    assert sorted(l.entity_id for l in creates) == sorted(result.created_item_ids)
    assert all(l.entity_type == "menu_item" and l.actor == "admin-7" for l in creates)
    [approval] = approvals
    assert approval.entity_id == job.id
    assert approval.after_data["approved_count"] == 2


def test_edit_revalidates_item(db, make_item, make_review_job):
    job = make_review_job([make_item("A", calories=-10), make_item("B")])
    assert job.validation_report[0]["status"] == "error"

    item, validation = update_item(db, job.id, 0, ExtractedItemUpdate(calories=500), actor="admin-1")

    assert item.calories == 500
    assert item.name == "A"
    assert validation.status == CheckStatus.PASS
    db.expire_all()
    stored = db.get(IngestionJob, job.id)
    assert stored.structured_data[0]["calories"] == 500
    assert stored.validation_report[0]["status"] == "pass"
    assert stored.validation_report[1]["item_name"] == "B"

    # Fixed item is now approvable
    assert approve_items(db, job.id, [0], actor="admin-1").approved == 1


def test_edit_only_touches_sent_fields(db, make_item, make_review_job):
    job = make_review_job([make_item("A", notes="check sodium")])

    item, _ = update_item(db, job.id, 0, ExtractedItemUpdate.model_validate({"sodiumMg": 1200}), actor="admin-1")

    assert item.sodium_mg == 1200
    assert item.notes == "check sodium"
    assert item.protein_g == 25


def test_edit_can_create_duplicate_warning(db, make_item, make_review_job):
    job = make_review_job([make_item("A"), make_item("B")])

    _, validation = update_item(db, job.id, 1, ExtractedItemUpdate(name="A"), actor="admin-1")

    dup = next(c for c in validation.checks if c.name == "duplicate_name")
    assert dup.status == CheckStatus.WARNING


def test_edit_outside_review_is_rejected(db, make_item, make_review_job):
    job = make_review_job([make_item("A")])
    approve_items(db, job.id, [0], actor="admin-1")

    with pytest.raises(ReviewRejectedError):
        update_item(db, job.id, 0, ExtractedItemUpdate(calories=10), actor="admin-1")


def test_edit_approved_item_is_rejected(db, make_item, make_review_job):
    job = make_review_job([make_item("A"), make_item("B")])
    approve_items(db, job.id, [0], actor="admin-1")

    with pytest.raises(ReviewRejectedError, match="already approved"):
        update_item(db, job.id, 0, ExtractedItemUpdate(calories=10), actor="admin-1")


def test_edit_out_of_range(db, make_item, make_review_job):
    job = make_review_job([make_item("A")])
    with pytest.raises(ReviewRejectedError, match="out of range"):
        update_item(db, job.id, 3, ExtractedItemUpdate(calories=10), actor="admin-1")


def test_edit_is_audited_with_before_and_after(db, make_item, make_review_job):
    job = make_review_job([make_item("A", calories=400)])
    update_item(db, job.id, 0, ExtractedItemUpdate(calories=450), actor="admin-2")

    [entry] = db.query(AuditLog).filter_by(action=AuditAction.UPDATE).all()
    assert entry.actor == "admin-2"
    assert entry.before_data["item"]["calories"] == 400
    assert entry.after_data["item"]["calories"] == 450


def test_values_too_large_to_store_block_approval(db, restaurant, make_item, make_review_job):
    # Sodium far over the ceiling is only a warning, but it does not fit NUMERIC(7, 2)
    job = make_review_job([make_item("A"), make_item("Salt Lick", sodium_mg=150000)])
    assert job.validation_report[1]["status"] == "warning"

    with pytest.raises(ReviewRejectedError) as exc:
        approve_items(db, job.id, [0, 1], actor="admin-1")

    assert exc.value.details == {"unstorable_indexes": [1]}
    db.expire_all()
    assert _menu_items(db) == []
    assert db.get(Restaurant, restaurant.id).item_count == 0


def test_blank_name_cannot_be_approved(db, make_item, make_review_job):
    job = make_review_job([make_item("   ")])
    assert job.validation_report[0]["status"] == "error"

    with pytest.raises(ReviewRejectedError, match="validation errors"):
        approve_items(db, job.id, [0], actor="admin-1")
