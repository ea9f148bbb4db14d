import os
import tempfile

# Settings are read at import time, so point them at a throwaway SQLite DB first
_TMP_DIR = tempfile.mkdtemp(prefix="menufacts-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'menufacts.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(_TMP_DIR, "uploads")
os.environ.pop("GOOGLE_API_KEY", None)
os.environ.pop("OPENAI_API_KEY", None)

import pymupdf
import pytest

from menufacts.database import Base, SessionLocal, engine
from menufacts.models import audit_log, ingestion_job, menu_item, restaurant  # noqa: F401
from menufacts.models.ingestion_job import IngestionJob, IngestionJobStatus
from menufacts.models.restaurant import Restaurant, RestaurantStatus
from menufacts.services.validation_service import run_validation
from menufacts.states.state import ExtractedItem


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def restaurant(db):
    r = Restaurant(name="Burger Palace", slug="burger-palace", status=RestaurantStatus.DRAFT)
    db.add(r)
    db.commit()
    db.refresh(r)
    return r


@pytest.fixture
def make_item():
    """Build an item that passes every validation check unless overridden."""
    def _make(name="Classic Burger", **overrides):
        fields = {
            "name": name,
            "category": "Burgers",
            "serving_size": "1 burger (220g)",
            "calories": 500,
            "total_fat_g": 22,
            "saturated_fat_g": 8,
            "trans_fat_g": 0,
            "cholesterol_mg": 70,
            "sodium_mg": 900,
            "total_carbs_g": 50,
            "dietary_fiber_g": 3,
            "sugars_g": 9,
            "protein_g": 25,
            "confidence": "high",
            "notes": None,
        }
        fields.update(overrides)
        return ExtractedItem(**fields)
    return _make


@pytest.fixture
def make_review_job(db, restaurant):
    """Create a job already sitting in review with the given items and their validation report."""
    def _make(items: list[ExtractedItem]) -> IngestionJob:
        job = IngestionJob(
            restaurant_id=restaurant.id,
            admin_id="admin-1",
            pdf_url="menu.pdf",
            status=IngestionJobStatus.REVIEW,
            structured_data=[i.model_dump() for i in items],
            validation_report=[r.model_dump(mode="json") for r in run_validation(items)],
            approved_indexes=[],
            items_extracted=len(items),
        )
        db.add(job)
        db.commit()
        db.refresh(job)
        return job
    return _make


@pytest.fixture
def make_pdf(tmp_path):
    """Write a text PDF with one page per string and return its path."""
    def _make(pages: list[str], name: str = "menu.pdf"):
        doc = pymupdf.open()
        for text in pages:
            page = doc.new_page()
            if text:
                page.insert_text((72, 72), text, fontsize=10)
        path = tmp_path / name
        doc.save(str(path))
        doc.close()
        return path
    return _make
