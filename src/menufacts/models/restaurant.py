import enum
import uuid
from sqlalchemy import Column, String, Integer, Enum, DateTime, func
from menufacts.database import Base


class RestaurantStatus(str, enum.Enum):
    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"


class Restaurant(Base):
    __tablename__ = "restaurants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False)
    status = Column(Enum(RestaurantStatus), nullable=False, default=RestaurantStatus.DRAFT)
    item_count = Column(Integer, nullable=False, default=0)
    last_ingestion_at = Column(DateTime, nullable=True)     # stamped on every approval
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
