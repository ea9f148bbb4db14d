"""
Upload intake guard: nothing reaches the splitter unless it is a plausible PDF
for a restaurant that exists.
"""
import logging
import os
import uuid

from sqlalchemy.orm import Session

from menufacts.config import settings
from menufacts.dao.restaurant_dao import get_restaurant
from menufacts.errors import UploadRejectedError
from menufacts.models.restaurant import Restaurant

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"
PDF_CONTENT_TYPE = "application/pdf"


def validate_upload(db: Session, restaurant_id: str, content_type: str | None, payload: bytes) -> Restaurant:
    """Raise UploadRejectedError (400, or 404 for an unknown restaurant) on the first failed check."""
    try:
        uuid.UUID(restaurant_id)
    except (ValueError, TypeError, AttributeError):
        raise UploadRejectedError("restaurant_id must be a valid UUID")

    restaurant = get_restaurant(db, restaurant_id)
    if not restaurant:
        raise UploadRejectedError("Restaurant not found", status_code=404)

    if len(payload) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes // (1024 * 1024)
        raise UploadRejectedError(f"File size exceeds {limit_mb}MB limit")

    if (content_type or "").split(";")[0].strip().lower() != PDF_CONTENT_TYPE:
        raise UploadRejectedError("File must be a PDF")

    if len(payload) < len(PDF_MAGIC) or not payload.startswith(PDF_MAGIC):
        raise UploadRejectedError("File does not appear to be a valid PDF")

    return restaurant


def store_upload(payload: bytes) -> str:
    """Write the PDF under UPLOAD_DIR with a random name; returns the path relative to UPLOAD_DIR."""
    os.makedirs(settings.upload_dir, exist_ok=True)
    file_name = f"{uuid.uuid4()}.pdf"
    with open(os.path.join(settings.upload_dir, file_name), "wb") as f:
        f.write(payload)
    logger.info("Stored upload %s (%d bytes)", file_name, len(payload))
    return file_name
