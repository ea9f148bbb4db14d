from datetime import datetime

from sqlalchemy.orm import Session
from menufacts.models.restaurant import Restaurant, RestaurantStatus

# These helpers only stage changes; the caller owns the transaction and commits.


def get_restaurant(db: Session, restaurant_id: str) -> Restaurant | None:
    return db.query(Restaurant).filter_by(id = restaurant_id).first()


def increment_item_count(db: Session, restaurant_id: str, delta: int) -> None:
    db.query(Restaurant).filter_by(id = restaurant_id).update(
        {Restaurant.item_count: Restaurant.item_count + delta},
        synchronize_session=False,
    )


def set_last_ingestion_at(db: Session, restaurant_id: str, ts: datetime) -> None:
    db.query(Restaurant).filter_by(id = restaurant_id).update(
        {Restaurant.last_ingestion_at: ts},
        synchronize_session=False,
    )


def activate_if_draft(db: Session, restaurant_id: str) -> bool:
    """First successful ingestion activates a draft restaurant. Returns True if it was promoted."""
    updated = (
        db.query(Restaurant)
        .filter_by(id = restaurant_id, status = RestaurantStatus.DRAFT)
        .update({Restaurant.status: RestaurantStatus.ACTIVE}, synchronize_session=False)
    )
    return updated > 0
