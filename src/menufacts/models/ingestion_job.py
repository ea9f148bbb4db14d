# menufacts/models/ingestion_job.py
import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, Text, DateTime, Enum, JSON, ForeignKey
from menufacts.database import Base

class IngestionJobStatus(str, enum.Enum):
    PENDING    = "pending"
    PROCESSING = "processing"
    REVIEW     = "review"
    APPROVED   = "approved"
    FAILED     = "failed"

class IngestionJob(Base):
    __tablename__ = "ingestion_jobs"

    id                  = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    restaurant_id       = Column(String(36), ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)
    admin_id            = Column(String(128), nullable=False)
    pdf_url             = Column(String(512), nullable=False)
    status              = Column(Enum(IngestionJobStatus), nullable=False, default=IngestionJobStatus.PENDING)
    processing_progress = Column(JSON, nullable=True)     # PipelineProgress dict
    raw_text            = Column(Text, nullable=True)     # extraction summary, diagnostic only
    structured_data     = Column(JSON, nullable=True)     # [ExtractedItem dict]
    validation_report   = Column(JSON, nullable=True)     # [ValidationResult dict], index-aligned with structured_data
    approved_indexes    = Column(JSON, nullable=False, default=list)
    items_extracted     = Column(Integer, nullable=False, default=0)
    items_approved      = Column(Integer, nullable=False, default=0)
    error_log           = Column(Text, nullable=True)
    created_at          = Column(DateTime, default=datetime.utcnow)
    completed_at        = Column(DateTime, nullable=True)
