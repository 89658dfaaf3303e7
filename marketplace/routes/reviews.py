"""
Review Routes
Guest reviews of completed stays, host responses and host rating statistics
"""

import logging
import math
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, joinedload

from ..auth import get_current_user, get_optional_user
from ..cache import HOST_REVIEW_STATS_TTL, cache, host_review_stats_key, invalidate_host_review_stats
from ..database import get_db
from ..models import Booking, Property, Review, User
from ..security_utils import sanitize_text
from ..services.notification_service import NotificationService
from ..utils.serializers import iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["Reviews"])

# Response key -> column
CATEGORY_COLUMNS = {
    "cleanliness": "cleanliness_rating",
    "accuracy": "accuracy_rating",
    "checkIn": "checkin_rating",
    "communication": "communication_rating",
    "location": "location_rating",
    "value": "value_rating",
}


class ReviewCreate(BaseModel):
    bookingId: str
    overallRating: int = Field(..., ge=1, le=5)
    cleanlinessRating: Optional[int] = Field(None, ge=1, le=5)
    accuracyRating: Optional[int] = Field(None, ge=1, le=5)
    checkInRating: Optional[int] = Field(None, ge=1, le=5)
    communicationRating: Optional[int] = Field(None, ge=1, le=5)
    locationRating: Optional[int] = Field(None, ge=1, le=5)
    valueRating: Optional[int] = Field(None, ge=1, le=5)
    title: Optional[str] = Field(None, max_length=100)
    comment: str = Field(..., min_length=10, max_length=1000)


class ReviewResponseCreate(BaseModel):
    response: str = Field(..., min_length=1, max_length=500)


def round1(value: float) -> float:
    """Round half up to one decimal"""
    return math.floor(value * 10 + 0.5) / 10


def serialize_review(review: Review) -> dict:
    guest = review.guest
    prop = review.property
    return {
        "id": review.id,
        "bookingId": review.booking_id,
        "propertyId": review.property_id,
        "guestId": review.guest_id,
        "hostId": review.host_id,
        "overallRating": review.overall_rating,
        "cleanlinessRating": review.cleanliness_rating,
        "accuracyRating": review.accuracy_rating,
        "checkInRating": review.checkin_rating,
        "communicationRating": review.communication_rating,
        "locationRating": review.location_rating,
        "valueRating": review.value_rating,
        "title": review.title,
        "comment": review.comment,
        "hostResponse": review.host_response,
        "hostResponseAt": iso(review.host_response_at),
        "createdAt": iso(review.created_at),
        "guest": (
            {"id": guest.id, "firstName": guest.first_name, "lastName": guest.last_name, "avatar": guest.avatar}
            if guest
            else None
        ),
        "property": {"id": prop.id, "title": prop.title} if prop else None,
    }


def refresh_property_rating(db: Session, property_id: str) -> None:
    ratings = [r for (r,) in db.query(Review.overall_rating).filter(Review.property_id == property_id)]
    prop = db.query(Property).filter(Property.id == property_id).first()
    if not prop:
        return
    prop.review_count = len(ratings)
    prop.rating = round1(sum(ratings) / len(ratings)) if ratings else 0
    logger.info(f"⭐ Property {property_id} rating now {prop.rating} ({prop.review_count} reviews)")


def compute_host_stats(reviews: list[Review]) -> dict:
    total = len(reviews)
    if not total:
        return {
            "averageRating": 0,
            "totalReviews": 0,
            "responseRate": 0,
            "categoryAverages": {key: 0 for key in CATEGORY_COLUMNS},
            "ratingDistribution": {str(i): 0 for i in range(1, 6)},
        }

    category_averages = {}
    for key, column in CATEGORY_COLUMNS.items():
        values = [getattr(r, column) for r in reviews if getattr(r, column) is not None]
        category_averages[key] = round1(sum(values) / len(values)) if values else 0

    distribution = {str(i): 0 for i in range(1, 6)}
    for r in reviews:
        distribution[str(r.overall_rating)] += 1

    responded = sum(1 for r in reviews if r.host_response)
    return {
        "averageRating": round1(sum(r.overall_rating for r in reviews) / total),
        "totalReviews": total,
        "responseRate": math.floor(responded / total * 100 + 0.5),
        "categoryAverages": category_averages,
        "ratingDistribution": distribution,
    }


@router.get("")
async def list_reviews(
    propertyId: Optional[str] = Query(None),
    rating: Optional[int] = Query(None, ge=1, le=5),
    type: Literal["all", "received", "written"] = Query("all"),
    sortBy: Literal["newest", "oldest", "highest", "lowest"] = Query("newest"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    query = db.query(Review).options(joinedload(Review.guest), joinedload(Review.property))

    if type != "all":
        if not current_user:
            raise HTTPException(status_code=401, detail="Authentication required")
        if type == "received":
            query = query.filter(Review.host_id == current_user.id)
        else:
            query = query.filter(Review.guest_id == current_user.id)

    if propertyId:
        query = query.filter(Review.property_id == propertyId)
    if rating:
        query = query.filter(Review.overall_rating == rating)

    order = {
        "newest": Review.created_at.desc(),
        "oldest": Review.created_at.asc(),
        "highest": Review.overall_rating.desc(),
        "lowest": Review.overall_rating.asc(),
    }[sortBy]

    total = query.count()
    reviews = query.order_by(order, Review.id).offset(offset).limit(limit).all()
    return {
        "success": True,
        "reviews": [serialize_review(r) for r in reviews],
        "pagination": {"total": total, "limit": limit, "offset": offset, "hasMore": offset + len(reviews) < total},
    }


@router.get("/stats/{host_id}")
async def host_review_stats(host_id: str, db: Session = Depends(get_db)):
    cached = cache.get(host_review_stats_key(host_id))
    if cached is not None:
        return {"success": True, "data": cached}

    stats = compute_host_stats(db.query(Review).filter(Review.host_id == host_id).all())
    cache.set(host_review_stats_key(host_id), stats, ttl=HOST_REVIEW_STATS_TTL)
    return {"success": True, "data": stats}


@router.get("/{review_id}")
async def get_review(review_id: str, db: Session = Depends(get_db)):
    review = db.query(Review).filter(Review.id == review_id).first()
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")
    return {"success": True, "data": serialize_review(review)}


@router.post("", status_code=201)
async def create_review(
    data: ReviewCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if db.query(Review).filter(Review.booking_id == data.bookingId).first():
        raise HTTPException(status_code=400, detail="Review already exists for this booking")

    booking = (
        db.query(Booking)
        .filter(
            Booking.id == data.bookingId,
            Booking.guest_id == current_user.id,
            Booking.status == "COMPLETED",
        )
        .first()
    )
    if not booking:
        raise HTTPException(status_code=400, detail="Can only review completed bookings")

    review = Review(
        booking_id=booking.id,
        property_id=booking.property_id,
        guest_id=current_user.id,
        host_id=booking.host_id,
        overall_rating=data.overallRating,
        cleanliness_rating=data.cleanlinessRating,
        accuracy_rating=data.accuracyRating,
        checkin_rating=data.checkInRating,
        communication_rating=data.communicationRating,
        location_rating=data.locationRating,
        value_rating=data.valueRating,
        title=sanitize_text(data.title),
        comment=sanitize_text(data.comment),
    )
    db.add(review)
    db.flush()
    refresh_property_rating(db, booking.property_id)
    db.commit()
    db.refresh(review)
    invalidate_host_review_stats(booking.host_id)

    await NotificationService(db).new_review(booking.host_id, review.id, booking.property_id, review.overall_rating)
    return {"success": True, "message": "Review created successfully", "data": serialize_review(review)}


@router.post("/{review_id}/response")
async def respond_to_review(
    review_id: str,
    data: ReviewResponseCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    review = db.query(Review).filter(Review.id == review_id).first()
    if not review:
        raise HTTPException(status_code=404, detail="Review not found")
    if review.host_id != current_user.id:
        raise HTTPException(status_code=403, detail="Only the host can respond to this review")
    if review.host_response:
        raise HTTPException(status_code=400, detail="Host response already exists")

    review.host_response = sanitize_text(data.response)
    review.host_response_at = datetime.utcnow()
    db.commit()
    db.refresh(review)
    invalidate_host_review_stats(review.host_id)

    title = review.property.title if review.property else "your stay"
    await NotificationService(db).review_response(review.guest_id, review.id, title)
    return {"success": True, "message": "Response added successfully", "data": serialize_review(review)}
