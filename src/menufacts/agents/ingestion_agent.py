"""
Nutrition PDF ingestion pipeline, LangGraph StateGraph.
Nodes: load_job → split_document → extract_items → validate_items → mark_review
Every node persists what it produced before the next one starts, so a crash
leaves the job record describing exactly how far it got.
"""
import logging
from datetime import datetime
from pathlib import Path

from langgraph.graph import StateGraph, START, END
from sqlalchemy.orm import Session, sessionmaker

from menufacts.agents.parallel_extraction import run_parallel_extraction
from menufacts.config import settings
from menufacts.dao.ingestion_job_dao import get_job, update_job
from menufacts.dao.restaurant_dao import get_restaurant
from menufacts.database import SessionLocal
from menufacts.models.ingestion_job import IngestionJobStatus
from menufacts.services.validation_service import run_validation
from menufacts.states.state import IngestionState, PipelineProgress
from menufacts.tools.extraction_tools import ExtractionOracle, build_default_oracle
from menufacts.tools.pdf_tools import split_document

logger = logging.getLogger(__name__)

RUNNABLE_STATUSES = (IngestionJobStatus.PENDING, IngestionJobStatus.PROCESSING)


def resolve_pdf_path(pdf_url: str) -> Path:
    path = Path(pdf_url)
    return path if path.is_absolute() else Path(settings.upload_dir) / path


def _save_progress(db: Session, job_id: str, progress: PipelineProgress) -> None:
    update_job(db, job_id, processing_progress=progress.model_dump())


def extraction_summary(total_units: int, failed_units: list[int]) -> str:
    if failed_units:
        return (
            f"Extraction complete for {total_units} units. "
            f"Failed units: {', '.join(str(n) for n in failed_units)}"
        )
    return f"Extraction complete for {total_units} units. All units processed successfully."


def node_load_job(state: IngestionState, db: Session) -> dict:
    """Load job + restaurant; a missing record is a data-integrity error, never retried."""
    job = get_job(db, state["job_id"])
    if not job:
        raise LookupError(f"Ingestion job {state['job_id']} not found")
    restaurant = get_restaurant(db, job.restaurant_id)
    if not restaurant:
        raise LookupError(f"Restaurant {job.restaurant_id} not found")

    update_job(db, job.id, status=IngestionJobStatus.PROCESSING)
    return {"restaurant_name": restaurant.name, "pdf_path": str(resolve_pdf_path(job.pdf_url))}


def node_split_document(state: IngestionState, db: Session) -> dict:
    _save_progress(db, state["job_id"], PipelineProgress(status="splitting"))
    units = split_document(state["pdf_path"], settings.split_strategy, settings.text_chunk_size)
    return {"units": units}


def node_extract_items(state: IngestionState, db: Session, oracle: ExtractionOracle | None) -> dict:
    """Fan out extraction, then persist items BEFORE validation so they survive a validator crash."""
    job_id = state["job_id"]
    run = run_parallel_extraction(
        state["units"],
        state["restaurant_name"],
        oracle or build_default_oracle(),
        on_progress=lambda progress: _save_progress(db, job_id, progress),
    )
    update_job(
        db, job_id,
        raw_text=extraction_summary(len(state["units"]), run.failed_units),
        structured_data=[item.model_dump() for item in run.items],
        items_extracted=len(run.items),
    )
    return {"items": run.items, "failed_units": run.failed_units}


def node_validate_items(state: IngestionState, db: Session) -> dict:
    _save_progress(db, state["job_id"], PipelineProgress(status="validating"))
    report = run_validation(state["items"])
    update_job(db, state["job_id"], validation_report=[r.model_dump(mode="json") for r in report])
    return {"validation_report": report}


def node_mark_review(state: IngestionState, db: Session) -> dict:
    units = len(state["units"])
    _save_progress(db, state["job_id"], PipelineProgress(
        total_units=units, completed_units=units, status="complete",
    ))
    update_job(db, state["job_id"], status=IngestionJobStatus.REVIEW)
    return {}


def build_ingestion_graph(db: Session, oracle: ExtractionOracle | None = None):
    """Build and compile the ingestion StateGraph with DB session and oracle injected."""
    graph = StateGraph(IngestionState)

    graph.add_node("load_job", lambda state: node_load_job(state, db))
    graph.add_node("split_document", lambda state: node_split_document(state, db))
    graph.add_node("extract_items", lambda state: node_extract_items(state, db, oracle))
    graph.add_node("validate_items", lambda state: node_validate_items(state, db))
    graph.add_node("mark_review", lambda state: node_mark_review(state, db))

    graph.add_edge(START, "load_job")
    graph.add_edge("load_job", "split_document")
    graph.add_edge("split_document", "extract_items")
    graph.add_edge("extract_items", "validate_items")
    graph.add_edge("validate_items", "mark_review")
    graph.add_edge("mark_review", END)

    return graph.compile()


def run_ingestion_pipeline(
    job_id: str,
    session_factory: sessionmaker = SessionLocal,
    oracle: ExtractionOracle | None = None,
) -> None:
    """
    Background entry point. Opens its own session and never raises: every run
    ends with the job in review or failed, or with an operator-visible log entry.
    """
    db: Session = session_factory()
    try:
        job = get_job(db, job_id)
        if not job:
            logger.error("[Pipeline] Job %s not found in DB, aborting ingestion", job_id)
            return
        if job.status not in RUNNABLE_STATUSES:
            logger.warning("[Pipeline] Job %s is '%s', not runnable, skipping", job_id, job.status.value)
            return

        graph = build_ingestion_graph(db, oracle)
        result = graph.invoke({
            "job_id": job_id,
            "restaurant_name": "",
            "pdf_path": "",
            "units": [],
            "items": [],
            "failed_units": [],
            "validation_report": [],
        })
        logger.info(
            "[Pipeline] Ingestion complete: job=%s items=%d failed_units=%s",
            job_id, len(result.get("items", [])), result.get("failed_units", []),
        )

    except Exception as e:
        logger.exception("[Pipeline] Ingestion crashed for job %s: %s", job_id, e)
        try:
            db.rollback()
            update_job(
                db, job_id,
                status=IngestionJobStatus.FAILED,
                error_log=str(e) or type(e).__name__,
                completed_at=datetime.utcnow(),
            )
        except Exception:
            logger.exception("[Pipeline] Could not record failure for job %s", job_id)
    finally:
        db.close()
