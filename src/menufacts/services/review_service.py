"""
Review / approval of extracted items.

Both operations read the job row with a lock, check every precondition before
writing anything, and commit once, so a rejected request leaves no trace.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.orm import Session

from menufacts.dao.ingestion_job_dao import get_job
from menufacts.dao.menu_item_dao import STORAGE_MAX, create_menu_item, unstorable_fields
from menufacts.dao.restaurant_dao import activate_if_draft, increment_item_count, set_last_ingestion_at
from menufacts.errors import JobNotFoundError, ReviewRejectedError
from menufacts.models.audit_log import AuditAction
from menufacts.models.ingestion_job import IngestionJob, IngestionJobStatus
from menufacts.services.audit_service import log_event
from menufacts.services.validation_service import validate_single_item
from menufacts.states.state import CheckStatus, ExtractedItem, ExtractedItemUpdate, ValidationResult

logger = logging.getLogger(__name__)


@dataclass
class ApprovalResult:
    approved: int
    total_approved: int
    total_items: int
    status: str
    created_item_ids: list[str] = field(default_factory=list)


def _load_reviewable_job(db: Session, job_id: str) -> tuple[IngestionJob, list[ExtractedItem], list[ValidationResult]]:
    job = get_job(db, job_id, for_update=True)
    if not job:
        raise JobNotFoundError("Ingestion job not found")
    if job.status != IngestionJobStatus.REVIEW:
        raise ReviewRejectedError(f"Job is '{job.status.value}', expected 'review'")
    if job.structured_data is None or job.validation_report is None:
        raise ReviewRejectedError("Job has no structured data or validation report")

    items = [ExtractedItem.model_validate(d) for d in job.structured_data]
    report = [ValidationResult.model_validate(r) for r in job.validation_report]
    return job, items, report


def approve_items(db: Session, job_id: str, item_indexes: list[int], actor: str) -> ApprovalResult:
    """
    Materialize menu items for the given indexes.
    All-or-nothing: any bad index or any index whose validation status is error
    rejects the whole request before a single record is created.
    """
    try:
        job, items, report = _load_reviewable_job(db, job_id)

        if not item_indexes:
            raise ReviewRejectedError("item_indexes must be a non-empty list")
        for idx in item_indexes:
            if idx < 0 or idx >= len(items):
                raise ReviewRejectedError(f"Item index {idx} is out of range")
        if len(set(item_indexes)) != len(item_indexes):
            raise ReviewRejectedError("item_indexes contains duplicates")

        already = sorted(set(item_indexes) & set(job.approved_indexes or []))
        if already:
            raise ReviewRejectedError(
                "Some items are already approved",
                details={"approved_indexes": already},
            )

        error_indexes = [idx for idx in item_indexes if report[idx].status == CheckStatus.ERROR]
        if error_indexes:
            raise ReviewRejectedError(
                "Cannot approve items with validation errors",
                details={"error_indexes": error_indexes},
            )

        unstorable = [idx for idx in item_indexes if unstorable_fields(items[idx])]
        if unstorable:
            raise ReviewRejectedError(
                f"Values exceed the storable maximum of {STORAGE_MAX}",
                details={"unstorable_indexes": unstorable},
            )
    except (JobNotFoundError, ReviewRejectedError):
        db.rollback()
        raise

    # ── All checks passed: create records in one transaction ──────────────────
    now = datetime.utcnow()
    created_ids = []
    for idx in item_indexes:
        item = items[idx]
        menu_item = create_menu_item(
            db, job.restaurant_id, item,
            source_pdf_url=job.pdf_url,
            ingestion_id=job.id,
        )
        created_ids.append(menu_item.id)
        log_event(db, actor, "menu_item", menu_item.id, AuditAction.CREATE,
                  after=item.model_dump(), commit=False)

    increment_item_count(db, job.restaurant_id, len(item_indexes))
    set_last_ingestion_at(db, job.restaurant_id, now)
    if activate_if_draft(db, job.restaurant_id):
        logger.info("Restaurant %s activated by first approval", job.restaurant_id)

    approved_indexes = sorted((job.approved_indexes or []) + list(item_indexes))
    all_approved = len(approved_indexes) >= len(items)

    job.approved_indexes = approved_indexes
    job.items_approved = len(approved_indexes)
    if all_approved:
        job.status = IngestionJobStatus.APPROVED
        job.completed_at = now

    log_event(db, actor, "ingestion_job", job.id, AuditAction.APPROVE,
              after={
                  "approved_indexes": list(item_indexes),
                  "approved_count": len(item_indexes),
                  "total_approved": job.items_approved,
              },
              commit=False)
    db.commit()

    logger.info(
        "Approved %d items for job %s (%d/%d) status=%s",
        len(item_indexes), job.id, job.items_approved, len(items), job.status.value,
    )
    return ApprovalResult(
        approved=len(item_indexes),
        total_approved=job.items_approved,
        total_items=len(items),
        status=job.status.value,
        created_item_ids=created_ids,
    )


def update_item(
    db: Session,
    job_id: str,
    item_index: int,
    update: ExtractedItemUpdate,
    actor: str,
) -> tuple[ExtractedItem, ValidationResult]:
    """Merge a partial edit into one item and re-validate just that index."""
    try:
        job, items, report = _load_reviewable_job(db, job_id)
        if item_index < 0 or item_index >= len(items):
            raise ReviewRejectedError("Item index out of range")
        if item_index in (job.approved_indexes or []):
            raise ReviewRejectedError(f"Item {item_index} is already approved and can no longer be edited")
    except (JobNotFoundError, ReviewRejectedError):
        db.rollback()
        raise

    before = items[item_index]
    changes = update.model_dump(exclude_unset=True)
    updated = ExtractedItem.model_validate({**before.model_dump(), **changes})

    items[item_index] = updated
    report[item_index] = validate_single_item(updated, item_index, items)

    # Both arrays are replaced together so they stay index-aligned
    job.structured_data = [i.model_dump() for i in items]
    job.validation_report = [r.model_dump(mode="json") for r in report]
    log_event(db, actor, "ingestion_job", job.id, AuditAction.UPDATE,
              before={"item_index": item_index, "item": before.model_dump()},
              after={"item_index": item_index, "item": updated.model_dump()},
              commit=False)
    db.commit()

    logger.info("Edited item %d of job %s (%s), validation=%s",
                item_index, job.id, ", ".join(changes) or "no fields", report[item_index].status.value)
    return updated, report[item_index]
