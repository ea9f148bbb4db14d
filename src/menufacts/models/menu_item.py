import uuid
from sqlalchemy import Column, String, Integer, Numeric, Boolean, DateTime, ForeignKey, func
from menufacts.database import Base


class MenuItem(Base):
    """Permanent menu record. Only created when an admin approves an extracted item."""
    __tablename__ = "menu_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    restaurant_id = Column(String(36), ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(500), nullable=False)
    category = Column(String(255), nullable=False, index=True)
    serving_size = Column(String(255), nullable=True)
    calories = Column(Integer, nullable=False, index=True)
    total_fat_g = Column(Numeric(7, 2), nullable=True)
    saturated_fat_g = Column(Numeric(7, 2), nullable=True)
    trans_fat_g = Column(Numeric(7, 2), nullable=True)
    cholesterol_mg = Column(Numeric(7, 2), nullable=True)
    sodium_mg = Column(Numeric(7, 2), nullable=True)
    total_carbs_g = Column(Numeric(7, 2), nullable=True)
    dietary_fiber_g = Column(Numeric(7, 2), nullable=True)
    sugars_g = Column(Numeric(7, 2), nullable=True)
    protein_g = Column(Numeric(7, 2), nullable=True)
    is_available = Column(Boolean, nullable=False, default=True)
    source_pdf_url = Column(String(512), nullable=True)
    ingestion_id = Column(String(36), ForeignKey("ingestion_jobs.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
