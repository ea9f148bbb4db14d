"""
Nutrition PDF ingestion routes.
POST /admin/ingestion/upload                       upload a PDF, queue the pipeline
GET  /admin/ingestion/jobs                         recent jobs
GET  /admin/ingestion/{job_id}                     poll job status / review data
POST /admin/ingestion/{job_id}/approve             approve a subset of extracted items
PUT  /admin/ingestion/{job_id}/items/{item_index}  edit one extracted item
"""
import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, UploadFile, File, Form, Header, HTTPException, BackgroundTasks, Query
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from menufacts.agents.ingestion_agent import run_ingestion_pipeline
from menufacts.config import settings
from menufacts.dao.ingestion_job_dao import UNFINISHED_STATUSES, create_job, get_job, list_recent_jobs
from menufacts.database import get_db
from menufacts.errors import ReviewError, UploadRejectedError
from menufacts.models.ingestion_job import IngestionJob
from menufacts.services.review_service import approve_items, update_item
from menufacts.services.upload_service import store_upload, validate_upload
from menufacts.states.state import ExtractedItemUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/ingestion", tags=["Ingestion"])


class ApproveRequest(BaseModel):
    item_indexes: list[int]


def get_current_admin(x_admin_id: str | None = Header(None)) -> str:
    """Authentication happens upstream; this only reads the acting admin's id for audit attribution."""
    if not x_admin_id:
        raise HTTPException(status_code=401, detail="Missing X-Admin-Id header")
    return x_admin_id


def _review_http_error(e: ReviewError) -> HTTPException:
    if e.details:
        return HTTPException(status_code=e.status_code, detail={"error": e.message, "details": e.details})
    return HTTPException(status_code=e.status_code, detail=e.message)


def _is_stale(job: IngestionJob) -> bool:
    """Unfinished for longer than expected. Informational only; the job is never cancelled."""
    if job.status not in UNFINISHED_STATUSES or not job.created_at:
        return False
    return job.created_at < datetime.utcnow() - timedelta(minutes=settings.stale_job_minutes)


# ── POST /admin/ingestion/upload ──────────────────────────────────────────────

@router.post("/upload", status_code=201)
async def upload_nutrition_pdf(
    background_tasks: BackgroundTasks,
    restaurant_id: str = Form(...),
    file: UploadFile = File(...),
    admin_id: str = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Upload a nutrition PDF and queue the ingestion pipeline."""
    # One byte over the limit is enough to reject without buffering a huge upload
    payload = await file.read(settings.max_upload_bytes + 1)
    try:
        validate_upload(db, restaurant_id, file.content_type, payload)
    except UploadRejectedError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    pdf_url = store_upload(payload)

    # ── Create job record BEFORE queuing, frontend can poll immediately ───────
    job = create_job(db, restaurant_id, admin_id, pdf_url)

    # ── Queue background ingestion; it opens its own DB session ───────────────
    background_tasks.add_task(run_ingestion_pipeline, job.id)
    logger.info("Queued ingestion job %s for restaurant %s (%s)", job.id, restaurant_id, file.filename)

    return {
        "job_id"  : job.id,
        "status"  : job.status.value,
        "poll_url": f"/admin/ingestion/{job.id}",
    }


# ── GET /admin/ingestion/jobs ─────────────────────────────────────────────────

@router.get("/jobs")
def list_jobs(
    limit: int = Query(20, ge=1, le=200),
    restaurant_id: str | None = Query(None),
    db: Session = Depends(get_db),
):
    return [
        {
            "id"             : job.id,
            "restaurant_id"  : job.restaurant_id,
            "restaurant_name": restaurant_name,
            "status"         : job.status.value,
            "items_extracted": job.items_extracted,
            "items_approved" : job.items_approved,
            "error_log"      : job.error_log,
            "created_at"     : job.created_at.isoformat() if job.created_at else None,
        }
        for job, restaurant_name in list_recent_jobs(db, limit=limit, restaurant_id=restaurant_id)
    ]


# ── GET /admin/ingestion/{job_id}: job status polling ─────────────────────────

@router.get("/{job_id}")
def get_job_status(job_id: str, db: Session = Depends(get_db)):
    """Poll ingestion progress and fetch review data. Frontend calls this every few seconds."""
    job = get_job(db, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Ingestion job not found")

    return {
        "id"                 : job.id,
        "restaurant_id"      : job.restaurant_id,
        "admin_id"           : job.admin_id,
        "pdf_url"            : job.pdf_url,
        "status"             : job.status.value,
        "processing_progress": job.processing_progress,
        "is_stale"           : _is_stale(job),
        "raw_text"           : job.raw_text,
        "structured_data"    : job.structured_data,
        "validation_report"  : job.validation_report,
        "approved_indexes"   : job.approved_indexes or [],
        "items_extracted"    : job.items_extracted,
        "items_approved"     : job.items_approved,
        "error_log"          : job.error_log,
        "created_at"         : job.created_at.isoformat() if job.created_at else None,
        "completed_at"       : job.completed_at.isoformat() if job.completed_at else None,
    }


# ── POST /admin/ingestion/{job_id}/approve ────────────────────────────────────

@router.post("/{job_id}/approve")
def approve_job_items(
    job_id: str,
    req: ApproveRequest,
    admin_id: str = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Approve extracted items → permanent menu items. Items with validation errors are rejected."""
    try:
        result = approve_items(db, job_id, req.item_indexes, admin_id)
    except ReviewError as e:
        raise _review_http_error(e)

    return {
        "approved"        : result.approved,
        "total_approved"  : result.total_approved,
        "total_items"     : result.total_items,
        "status"          : result.status,
        "created_item_ids": result.created_item_ids,
    }


# ── PUT /admin/ingestion/{job_id}/items/{item_index} ──────────────────────────

@router.put("/{job_id}/items/{item_index}")
def edit_job_item(
    job_id: str,
    item_index: int,
    body: dict,
    admin_id: str = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    """Edit one extracted item; its validation result is recomputed immediately."""
    # Mistyped fields are a 400, not FastAPI's 422
    try:
        update = ExtractedItemUpdate.model_validate(body)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={
            "error"  : "Invalid item fields",
            "details": {"fields": sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})},
        })

    try:
        item, validation = update_item(db, job_id, item_index, update, admin_id)
    except ReviewError as e:
        raise _review_http_error(e)

    return {
        "item"      : item.model_dump(),
        "validation": validation.model_dump(mode="json"),
    }
