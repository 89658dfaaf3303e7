"""
Wishlist Routes
Saved properties and the recently-viewed history
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import Property, RecentlyViewed, User, WishlistItem
from ..services.wishlist_service import property_snapshot, record_recent_view
from ..utils.serializers import iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wishlist", tags=["Wishlist"])


class WishlistAdd(BaseModel):
    propertyId: str
    notes: Optional[str] = Field(None, max_length=1000)


class NotesUpdate(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class RecentlyViewedAdd(BaseModel):
    propertyId: str


def serialize_wishlist_item(item: WishlistItem) -> dict:
    return {
        "id": item.id,
        "propertyId": item.property_id,
        "propertyTitle": item.property_title,
        "propertyImage": item.property_image,
        "propertyPrice": item.property_price,
        "propertyLocation": item.property_location,
        "propertyType": item.property_type,
        "notes": item.notes,
        "addedAt": iso(item.added_at),
    }


def serialize_recent(entry: RecentlyViewed) -> dict:
    return {
        "id": entry.id,
        "propertyId": entry.property_id,
        "propertyTitle": entry.property_title,
        "propertyImage": entry.property_image,
        "propertyPrice": entry.property_price,
        "propertyLocation": entry.property_location,
        "propertyType": entry.property_type,
        "viewCount": entry.view_count,
        "viewedAt": iso(entry.viewed_at),
    }


def get_listed_property(db: Session, property_id: str) -> Property:
    prop = db.query(Property).filter(Property.id == property_id, Property.is_active.is_(True)).first()
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")
    return prop


def get_wishlist_item(db: Session, user_id: str, property_id: str) -> Optional[WishlistItem]:
    return (
        db.query(WishlistItem)
        .filter(WishlistItem.user_id == user_id, WishlistItem.property_id == property_id)
        .first()
    )


# ============================================================================
# RECENTLY VIEWED
# ============================================================================


@router.get("/recently-viewed")
async def list_recently_viewed(
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    entries = (
        db.query(RecentlyViewed)
        .filter(RecentlyViewed.user_id == current_user.id)
        .order_by(RecentlyViewed.viewed_at.desc())
        .limit(limit)
        .all()
    )
    return {"success": True, "data": [serialize_recent(e) for e in entries], "count": len(entries)}


@router.post("/recently-viewed")
async def add_recently_viewed(
    data: RecentlyViewedAdd,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    prop = get_listed_property(db, data.propertyId)
    entry = record_recent_view(db, current_user.id, prop)
    return {"success": True, "data": serialize_recent(entry)}


@router.delete("/recently-viewed/{property_id}")
async def remove_recently_viewed(
    property_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    deleted = (
        db.query(RecentlyViewed)
        .filter(RecentlyViewed.user_id == current_user.id, RecentlyViewed.property_id == property_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return {"success": True, "message": "Removed from recently viewed", "data": {"removed": deleted}}


# ============================================================================
# WISHLIST
# ============================================================================


@router.get("")
async def list_wishlist(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    items = (
        db.query(WishlistItem)
        .filter(WishlistItem.user_id == current_user.id)
        .order_by(WishlistItem.added_at.desc())
        .all()
    )
    return {"success": True, "data": [serialize_wishlist_item(i) for i in items], "count": len(items)}


@router.post("", status_code=201)
async def add_to_wishlist(
    data: WishlistAdd,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if get_wishlist_item(db, current_user.id, data.propertyId):
        raise HTTPException(status_code=409, detail="Property already in wishlist")

    prop = get_listed_property(db, data.propertyId)
    item = WishlistItem(user_id=current_user.id, property_id=prop.id, notes=data.notes, **property_snapshot(prop))
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info(f"❤️ Property {prop.id} added to wishlist of {current_user.id}")
    return {"success": True, "message": "Property added to wishlist", "data": serialize_wishlist_item(item)}


@router.delete("/{property_id}")
async def remove_from_wishlist(
    property_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    item = get_wishlist_item(db, current_user.id, property_id)
    if not item:
        raise HTTPException(status_code=404, detail="Property not in wishlist")
    db.delete(item)
    db.commit()
    return {"success": True, "message": "Property removed from wishlist"}


@router.put("/{property_id}/notes")
async def update_wishlist_notes(
    property_id: str,
    data: NotesUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    item = get_wishlist_item(db, current_user.id, property_id)
    if not item:
        raise HTTPException(status_code=404, detail="Property not in wishlist")
    item.notes = data.notes
    db.commit()
    db.refresh(item)
    return {"success": True, "message": "Notes updated", "data": serialize_wishlist_item(item)}
