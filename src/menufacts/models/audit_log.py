import enum
from sqlalchemy import Column, Integer, String, DateTime, JSON, Enum, func
from menufacts.database import Base


class AuditAction(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    APPROVE = "approve"


class AuditLog(Base):
    """
    INSERT-only table. On MySQL a DB-level trigger installed at startup
    prevents any UPDATE or DELETE at the engine level.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor = Column(String(128), nullable=False)              # admin id or "system"
    entity_type = Column(String(50), nullable=False)         # restaurant | menu_item | ingestion_job
    entity_id = Column(String(128), nullable=False)
    action = Column(Enum(AuditAction), nullable=False)
    before_data = Column(JSON, nullable=True)
    after_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)
