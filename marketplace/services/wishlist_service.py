"""Wishlist and recently-viewed bookkeeping shared by the property and wishlist routes"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from ..models import Property, RecentlyViewed

logger = logging.getLogger(__name__)


def property_snapshot(prop: Property) -> dict:
    """Denormalized listing fields stored on wishlist and recently-viewed rows"""
    images = prop.images or []
    location = ", ".join(p for p in (prop.area, prop.city, prop.emirate) if p)
    return {
        "property_title": prop.title,
        "property_image": images[0] if images else None,
        "property_price": prop.base_price if prop.rental_type != "LONG_TERM" else (prop.monthly_price or prop.base_price),
        "property_location": location or None,
        "property_type": prop.type,
    }


def record_recent_view(db: Session, user_id: str, prop: Property) -> RecentlyViewed:
    """Insert or bump the user's recently-viewed row for a property"""
    entry = (
        db.query(RecentlyViewed)
        .filter(RecentlyViewed.user_id == user_id, RecentlyViewed.property_id == prop.id)
        .first()
    )
    if entry:
        entry.view_count = (entry.view_count or 0) + 1
        entry.viewed_at = datetime.utcnow()
        for field, value in property_snapshot(prop).items():
            setattr(entry, field, value)
    else:
        entry = RecentlyViewed(user_id=user_id, property_id=prop.id, view_count=1, **property_snapshot(prop))
        entry.viewed_at = datetime.utcnow()
        db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.debug(f"👀 Recently viewed {prop.id} by {user_id} ({entry.view_count}x)")
    return entry
