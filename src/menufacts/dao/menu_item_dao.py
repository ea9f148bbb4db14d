from decimal import Decimal

from sqlalchemy.orm import Session
from menufacts.models.menu_item import MenuItem
from menufacts.states.state import ExtractedItem, NUTRITION_FIELDS

_TWO_PLACES = Decimal("0.01")

# Largest magnitude a NUMERIC(7, 2) column holds
STORAGE_MAX = 99999.99


def to_storage_decimal(value: float | None) -> Decimal | None:
    """Nutrition values are stored as NUMERIC(7, 2); convert through str to avoid float noise."""
    if value is None:
        return None
    return Decimal(str(value)).quantize(_TWO_PLACES)


def unstorable_fields(item: ExtractedItem) -> list[str]:
    return [
        f for f in NUTRITION_FIELDS
        if getattr(item, f) is not None and abs(round(getattr(item, f), 2)) > STORAGE_MAX
    ]


def create_menu_item(
    db: Session,
    restaurant_id: str,
    item: ExtractedItem,
    source_pdf_url: str | None = None,
    ingestion_id: str | None = None,
) -> MenuItem:
    """Stage a new menu item and flush to get its id. Caller commits."""
    menu_item = MenuItem(
        restaurant_id=restaurant_id,
        name=item.name,
        category=item.category,
        serving_size=item.serving_size,
        calories=item.calories,
        is_available=True,
        source_pdf_url=source_pdf_url,
        ingestion_id=ingestion_id,
        **{f: to_storage_decimal(getattr(item, f)) for f in NUTRITION_FIELDS},
    )
    db.add(menu_item)
    db.flush()
    return menu_item
