import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from fastapi import FastAPI
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.orm import Session
from menufacts.database import engine, SessionLocal, Base, install_audit_log_immutability
from menufacts.models import audit_log, ingestion_job, menu_item, restaurant  # noqa: F401  ensure tables registered
from menufacts.config import settings
from menufacts.dao.ingestion_job_dao import find_stale_jobs
from menufacts.routes.ingestion_routes import router as ingestion_router
from menufacts.routes.audit_routes import router as audit_router
import uvicorn

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def _stale_job_sweep():
    """Log jobs stuck in pending or processing. Operators decide what to do; nothing is cancelled here."""
    db: Session = SessionLocal()
    try:
        cutoff = datetime.utcnow() - timedelta(minutes=settings.stale_job_minutes)
        for job in find_stale_jobs(db, cutoff):
            logger.warning(
                "[Scheduler] Job %s has been %s since %s (progress=%s)",
                job.id, job.status.value, job.created_at, job.processing_progress,
            )
    except Exception as e:
        logger.error("[Scheduler] Stale job sweep failed: %s", e)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")
    if engine.dialect.name == "mysql":
        raw = engine.raw_connection()
        try:
            install_audit_log_immutability(raw)
        finally:
            raw.close()
        logger.info("Audit log immutability triggers installed")
    scheduler.add_job(
        _stale_job_sweep,
        trigger="interval",
        minutes=settings.stale_job_sweep_minutes,
        id="stale_job_sweep",
        name="Stale ingestion job sweep",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("APScheduler started, %d jobs registered", len(scheduler.get_jobs()))
    yield
    # Shutdown
    scheduler.shutdown(wait=False)
    logger.info("APScheduler stopped")


app = FastAPI(
    title="MenuFacts",
    description="Restaurant nutrition PDF ingestion: FastAPI + LangGraph + SQLAlchemy",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(ingestion_router)
app.include_router(audit_router)


@app.get("/health")
def health():
    return {"status": "ok", "scheduler_jobs": len(scheduler.get_jobs())}


def start():
    """Entry point for the `menufacts` console script"""
    uvicorn.run("menufacts.main:app", host=settings.app_host, port=settings.app_port, reload=settings.debug)
