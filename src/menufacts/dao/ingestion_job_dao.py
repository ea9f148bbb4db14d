from datetime import datetime

from sqlalchemy import desc
from sqlalchemy.orm import Session
from menufacts.models.ingestion_job import IngestionJob, IngestionJobStatus
from menufacts.models.restaurant import Restaurant
import logging

logger = logging.getLogger(__name__)


def get_job(db: Session, job_id: str, for_update: bool = False) -> IngestionJob | None:
    """for_update=True takes a row lock so concurrent review actions on one job serialize."""
    q = db.query(IngestionJob).filter_by(id = job_id)
    if for_update:
        q = q.with_for_update()
    return q.first()


def create_job(db: Session, restaurant_id: str, admin_id: str, pdf_url: str) -> IngestionJob:
    job = IngestionJob(
        restaurant_id = restaurant_id,
        admin_id      = admin_id,
        pdf_url       = pdf_url,
        status        = IngestionJobStatus.PENDING,
        approved_indexes = [],
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def update_job(db: Session, job_id: str, **fields) -> IngestionJob | None:
    """Partial update of any job columns, committed immediately."""
    job = get_job(db, job_id)
    if not job:
        logger.error("update_job: job %s not found", job_id)
        return None
    for key, value in fields.items():
        if not hasattr(IngestionJob, key):
            raise AttributeError(f"IngestionJob has no column '{key}'")
        setattr(job, key, value)
    db.commit()
    return job


def list_recent_jobs(db: Session, limit: int = 20, restaurant_id: str | None = None) -> list[tuple[IngestionJob, str | None]]:
    q = (
        db.query(IngestionJob, Restaurant.name)
        .outerjoin(Restaurant, IngestionJob.restaurant_id == Restaurant.id)
    )
    if restaurant_id:
        q = q.filter(IngestionJob.restaurant_id == restaurant_id)
    return q.order_by(desc(IngestionJob.created_at)).limit(limit).all()


# A pending job whose background task was lost (e.g. process restart) never starts
UNFINISHED_STATUSES = (IngestionJobStatus.PENDING, IngestionJobStatus.PROCESSING)


def find_stale_jobs(db: Session, started_before: datetime) -> list[IngestionJob]:
    return (
        db.query(IngestionJob)
        .filter(IngestionJob.status.in_(UNFINISHED_STATUSES))
        .filter(IngestionJob.created_at < started_before)
        .all()
    )
