"""
Property Routes
Public listing search (filters, map bounds, radius, autocomplete, nearby) and host listing management
"""

import logging
import math
from datetime import datetime
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy import func, or_
from sqlalchemy.orm import Query as SAQuery
from sqlalchemy.orm import Session, joinedload

from ..auth import get_current_user, get_optional_user, require_host
from ..cache import POPULAR_SEARCHES_TTL, cache, popular_searches_key
from ..database import get_db
from ..models import AnalyticsEvent, Property, User
from ..rate_limiter import get_client_ip
from ..security_utils import sanitize_text
from ..services.storage_service import upload_property_images
from ..services.wishlist_service import record_recent_view
from ..shared.validators import validate_time_hhmm
from ..utils.serializers import transform_property

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/properties", tags=["Properties"])

PropertyType = Literal["APARTMENT", "VILLA", "STUDIO", "PENTHOUSE", "TOWNHOUSE"]
RentalType = Literal["SHORT_TERM", "LONG_TERM", "BOTH"]

KM_PER_DEGREE = 111
EARTH_RADIUS_KM = 6371
TRENDING_SEARCHES = ["Dubai Marina", "Downtown Dubai", "Business Bay", "JBR", "Palm Jumeirah"]


def check_rental_pricing(
    rental_type: str,
    base_price: Optional[float],
    monthly_price: Optional[float],
    yearly_price: Optional[float],
    contract_min: Optional[int],
    contract_max: Optional[int],
) -> None:
    """Pricing rules per rental type; raises ValueError on the first violation"""
    if rental_type in ("SHORT_TERM", "BOTH") and not (base_price and base_price > 0):
        raise ValueError("Base price is required for short-term rentals")
    if rental_type in ("LONG_TERM", "BOTH"):
        if not (monthly_price and monthly_price > 0 and yearly_price and yearly_price > 0):
            raise ValueError("Monthly and yearly prices are required for long-term rentals")
        if not (contract_min and contract_max and contract_min < contract_max):
            raise ValueError("Contract max duration must be greater than min duration for long-term rentals")


class PropertyBase(BaseModel):
    description: Optional[str] = Field(None, max_length=5000)
    category: Optional[str] = None
    area: Optional[str] = None
    address: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    sizeSqft: Optional[float] = Field(None, gt=0)
    basePrice: Optional[float] = Field(None, ge=0)
    cleaningFee: Optional[float] = Field(None, ge=0)
    securityDeposit: Optional[float] = Field(None, ge=0)
    monthlyPrice: Optional[float] = Field(None, ge=0)
    yearlyPrice: Optional[float] = Field(None, ge=0)
    contractMinDuration: Optional[int] = Field(None, ge=1)
    contractMaxDuration: Optional[int] = Field(None, ge=1)
    maximumStay: Optional[int] = Field(None, ge=1)

    @field_validator("checkInTime", "checkOutTime", check_fields=False)
    @classmethod
    def validate_times(cls, v):
        if v is None:
            return v
        return validate_time_hhmm(v)


class PropertyCreate(PropertyBase):
    """Schema for listing a new property"""

    title: str = Field(..., min_length=3, max_length=255)
    type: PropertyType
    rentalType: RentalType = "SHORT_TERM"
    emirate: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    bedrooms: int = Field(0, ge=0)
    bathrooms: int = Field(1, ge=0)
    maxGuests: int = Field(1, ge=1)
    amenities: list[str] = []
    images: list[str] = []
    houseRules: list[str] = []
    checkInTime: str = "15:00"
    checkOutTime: str = "11:00"
    minimumStay: int = Field(1, ge=1)
    isInstantBook: bool = False

    @model_validator(mode="after")
    def check_pricing(self):
        check_rental_pricing(
            self.rentalType,
            self.basePrice,
            self.monthlyPrice,
            self.yearlyPrice,
            self.contractMinDuration,
            self.contractMaxDuration,
        )
        return self


class PropertyUpdate(PropertyBase):
    """Partial update; the merged result is re-checked against the pricing rules"""

    title: Optional[str] = Field(None, min_length=3, max_length=255)
    type: Optional[PropertyType] = None
    rentalType: Optional[RentalType] = None
    emirate: Optional[str] = None
    city: Optional[str] = None
    bedrooms: Optional[int] = Field(None, ge=0)
    bathrooms: Optional[int] = Field(None, ge=0)
    maxGuests: Optional[int] = Field(None, ge=1)
    amenities: Optional[list[str]] = None
    images: Optional[list[str]] = None
    houseRules: Optional[list[str]] = None
    checkInTime: Optional[str] = None
    checkOutTime: Optional[str] = None
    minimumStay: Optional[int] = Field(None, ge=1)
    isInstantBook: Optional[bool] = None


class SearchAnalyticsRequest(BaseModel):
    query: Optional[str] = None
    filters: dict[str, Any] = {}
    resultsCount: Optional[int] = None
    sessionId: Optional[str] = None


# Request field -> column
PROPERTY_FIELDS = {
    "title": "title",
    "description": "description",
    "type": "type",
    "category": "category",
    "rentalType": "rental_type",
    "emirate": "emirate",
    "city": "city",
    "area": "area",
    "address": "address",
    "country": "country",
    "latitude": "latitude",
    "longitude": "longitude",
    "bedrooms": "bedrooms",
    "bathrooms": "bathrooms",
    "maxGuests": "max_guests",
    "sizeSqft": "size_sqft",
    "basePrice": "base_price",
    "cleaningFee": "cleaning_fee",
    "securityDeposit": "security_deposit",
    "monthlyPrice": "monthly_price",
    "yearlyPrice": "yearly_price",
    "contractMinDuration": "contract_min_duration",
    "contractMaxDuration": "contract_max_duration",
    "amenities": "amenities",
    "images": "images",
    "houseRules": "house_rules",
    "checkInTime": "check_in_time",
    "checkOutTime": "check_out_time",
    "minimumStay": "minimum_stay",
    "maximumStay": "maximum_stay",
    "isInstantBook": "is_instant_book",
}

# Columns a partial update may not set to null
REQUIRED_PROPERTY_COLUMNS = {column.name for column in Property.__table__.columns if not column.nullable}


class PropertyFilters:
    """Query-string filters shared by the listing and search endpoints"""

    def __init__(
        self,
        emirate: Optional[str] = Query(None),
        city: Optional[str] = Query(None),
        area: Optional[str] = Query(None),
        propertyType: Optional[str] = Query(None),
        rentalType: Optional[str] = Query(None),
        minPrice: Optional[float] = Query(None, ge=0),
        maxPrice: Optional[float] = Query(None, ge=0),
        bedrooms: Optional[int] = Query(None, ge=0),
        bathrooms: Optional[int] = Query(None, ge=0),
        maxGuests: Optional[int] = Query(None, ge=1),
        amenities: Optional[str] = Query(None, description="Comma-separated, all required"),
        instantBook: Optional[bool] = Query(None),
        bounds: Optional[str] = Query(None, description="sw_lat,sw_lng,ne_lat,ne_lng"),
        lat: Optional[float] = Query(None, ge=-90, le=90),
        lng: Optional[float] = Query(None, ge=-180, le=180),
        radius: Optional[float] = Query(None, gt=0, description="km"),
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
    ):
        self.emirate = emirate
        self.city = city
        self.area = area
        self.property_type = propertyType
        self.rental_type = rentalType
        self.min_price = minPrice
        self.max_price = maxPrice
        self.bedrooms = bedrooms
        self.bathrooms = bathrooms
        self.max_guests = maxGuests
        self.amenities = [a.strip() for a in amenities.split(",") if a.strip()] if amenities else []
        self.instant_book = instantBook
        self.bounds = bounds
        self.lat = lat
        self.lng = lng
        self.radius = radius
        self.page = page
        self.limit = limit


def bounding_box(lat: float, lng: float, radius_km: float) -> tuple[float, float, float, float]:
    lat_delta = radius_km / KM_PER_DEGREE
    lng_delta = radius_km / (KM_PER_DEGREE * max(math.cos(math.radians(lat)), 1e-6))
    return lat - lat_delta, lng - lng_delta, lat + lat_delta, lng + lng_delta


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def apply_filters(query: SAQuery, f: PropertyFilters) -> SAQuery:
    if f.emirate:
        query = query.filter(Property.emirate.ilike(f"%{f.emirate}%"))
    if f.city:
        query = query.filter(Property.city.ilike(f"%{f.city}%"))
    if f.area:
        query = query.filter(Property.area.ilike(f"%{f.area}%"))
    if f.property_type:
        query = query.filter(Property.type == f.property_type.upper())
    if f.rental_type:
        query = query.filter(Property.rental_type == f.rental_type.upper())
    if f.min_price is not None:
        query = query.filter(Property.base_price >= f.min_price)
    if f.max_price is not None:
        query = query.filter(Property.base_price <= f.max_price)
    if f.bedrooms is not None:
        query = query.filter(Property.bedrooms >= f.bedrooms)
    if f.bathrooms is not None:
        query = query.filter(Property.bathrooms >= f.bathrooms)
    if f.max_guests is not None:
        query = query.filter(Property.max_guests >= f.max_guests)
    if f.instant_book is not None:
        query = query.filter(Property.is_instant_book.is_(f.instant_book))

    if f.bounds:
        try:
            sw_lat, sw_lng, ne_lat, ne_lng = (float(x) for x in f.bounds.split(","))
        except ValueError as e:
            raise HTTPException(status_code=400, detail="bounds must be sw_lat,sw_lng,ne_lat,ne_lng") from e
        query = query.filter(
            Property.latitude.between(sw_lat, ne_lat),
            Property.longitude.between(sw_lng, ne_lng),
        )
    elif f.lat is not None and f.lng is not None and f.radius:
        min_lat, min_lng, max_lat, max_lng = bounding_box(f.lat, f.lng, f.radius)
        query = query.filter(
            Property.latitude.between(min_lat, max_lat),
            Property.longitude.between(min_lng, max_lng),
        )
    return query


def paginate(query: SAQuery, f: PropertyFilters) -> dict:
    """Page through the query. Amenity matching runs in Python over the JSON column"""
    if f.amenities:
        wanted = {a.lower() for a in f.amenities}
        rows = [p for p in query.all() if wanted <= {str(a).lower() for a in (p.amenities or [])}]
        total = len(rows)
        rows = rows[(f.page - 1) * f.limit : f.page * f.limit]
    else:
        total = query.count()
        rows = query.offset((f.page - 1) * f.limit).limit(f.limit).all()

    total_pages = math.ceil(total / f.limit) if total else 0
    return {
        "success": True,
        "properties": [transform_property(p) for p in rows],
        "totalCount": total,
        "currentPage": f.page,
        "totalPages": total_pages,
        "hasNext": f.page < total_pages,
        "hasPrev": f.page > 1,
    }


def active_properties(db: Session) -> SAQuery:
    return db.query(Property).options(joinedload(Property.host)).filter(Property.is_active.is_(True))


def get_owned_property(db: Session, property_id: str, user: User) -> Property:
    prop = db.query(Property).filter(Property.id == property_id).first()
    if not prop or prop.verification_status == "DELETED":
        raise HTTPException(status_code=404, detail="Property not found")
    if prop.host_id != user.id:
        raise HTTPException(status_code=403, detail="You can only manage your own properties")
    return prop


# ============================================================================
# PUBLIC SEARCH
# ============================================================================


@router.get("")
async def list_properties(filters: PropertyFilters = Depends(), db: Session = Depends(get_db)):
    query = apply_filters(active_properties(db), filters).order_by(Property.created_at.desc())
    return paginate(query, filters)


@router.get("/search")
async def search_properties(
    q: Optional[str] = Query(None),
    sortBy: Literal["price_low", "price_high", "newest", "rating"] = Query("newest"),
    filters: PropertyFilters = Depends(),
    db: Session = Depends(get_db),
):
    query = apply_filters(active_properties(db), filters)

    if q and q.strip():
        term = f"%{q.strip()}%"
        query = query.filter(
            or_(
                Property.title.ilike(term),
                Property.description.ilike(term),
                Property.city.ilike(term),
                Property.emirate.ilike(term),
                Property.type.ilike(term),
            )
        )

    order = {
        "price_low": Property.base_price.asc(),
        "price_high": Property.base_price.desc(),
        "rating": Property.rating.desc(),
        "newest": Property.created_at.desc(),
    }[sortBy]
    return paginate(query.order_by(order, Property.id), filters)


@router.get("/autocomplete")
async def autocomplete(
    q: Optional[str] = Query(None),
    limit: int = Query(10, ge=1, le=10),
    db: Session = Depends(get_db),
):
    if not q or len(q.strip()) < 2:
        return {"success": True, "data": {"suggestions": []}}

    term = f"%{q.strip()}%"
    base = db.query(Property).filter(Property.is_active.is_(True))
    suggestions: list[dict] = []

    seen_locations = set()
    locations = base.filter(
        or_(Property.emirate.ilike(term), Property.city.ilike(term), Property.area.ilike(term))
    ).limit(limit)
    needle = q.strip().lower()
    for prop in locations:
        for value, label, category in (
            (prop.emirate, prop.emirate, "Emirate"),
            (prop.city, f"{prop.city}, {prop.emirate}", "City"),
            (prop.area, f"{prop.area}, {prop.city}", "Area"),
        ):
            if value and needle in value.lower() and value not in seen_locations:
                seen_locations.add(value)
                suggestions.append({"type": "location", "value": value, "label": label, "category": category})

    types = base.with_entities(Property.type).filter(Property.type.ilike(term)).distinct().limit(5)
    for (property_type,) in types:
        suggestions.append(
            {"type": "property_type", "value": property_type, "label": property_type, "category": "Property Type"}
        )

    for prop in base.filter(Property.title.ilike(term)).limit(5):
        suggestions.append(
            {
                "type": "property",
                "value": prop.id,
                "label": prop.title,
                "sublabel": f"{prop.city}, {prop.emirate}",
                "category": "Property",
            }
        )

    return {"success": True, "data": {"suggestions": suggestions[:limit]}}


@router.get("/nearby")
async def nearby_properties(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius: float = Query(5, gt=0),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
):
    if lat is None or lng is None:
        raise HTTPException(status_code=400, detail="Latitude and longitude are required")

    min_lat, min_lng, max_lat, max_lng = bounding_box(lat, lng, radius)
    candidates = active_properties(db).filter(
        Property.latitude.between(min_lat, max_lat),
        Property.longitude.between(min_lng, max_lng),
    )

    results = []
    for prop in candidates:
        distance = haversine_km(lat, lng, prop.latitude, prop.longitude)
        if distance <= radius:
            results.append((distance, prop))
    results.sort(key=lambda r: r[0])

    return {
        "success": True,
        "data": [{**transform_property(p), "distance": round(d, 2)} for d, p in results[:limit]],
    }


@router.post("/search-analytics")
async def track_search(
    data: SearchAnalyticsRequest,
    request: Request,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    db.add(
        AnalyticsEvent(
            event_type="SEARCH",
            user_id=user.id if user else None,
            session_id=data.sessionId,
            data={"query": data.query, "filters": data.filters, "resultsCount": data.resultsCount},
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    )
    db.commit()
    return {"success": True, "message": "Search analytics recorded"}


@router.get("/popular-searches")
async def popular_searches(db: Session = Depends(get_db)):
    cached = cache.get(popular_searches_key())
    if cached is not None:
        return {"success": True, "data": cached}

    locations = (
        db.query(Property.emirate, func.count(Property.id))
        .filter(Property.is_active.is_(True))
        .group_by(Property.emirate)
        .order_by(func.count(Property.id).desc())
        .limit(10)
        .all()
    )
    types = (
        db.query(Property.type, func.count(Property.id))
        .filter(Property.is_active.is_(True))
        .group_by(Property.type)
        .order_by(func.count(Property.id).desc())
        .limit(5)
        .all()
    )
    data = {
        "popularLocations": [{"location": loc, "count": count} for loc, count in locations if loc],
        "popularTypes": [{"type": t, "count": count} for t, count in types if t],
        "trendingSearches": TRENDING_SEARCHES,
    }
    cache.set(popular_searches_key(), data, ttl=POPULAR_SEARCHES_TTL)
    return {"success": True, "data": data}


@router.get("/{property_id}")
async def get_property(
    property_id: str,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    prop = active_properties(db).filter(Property.id == property_id).first()
    if not prop:
        raise HTTPException(status_code=404, detail="Property not found")

    if user:
        record_recent_view(db, user.id, prop)

    return {"success": True, "data": transform_property(prop)}


# ============================================================================
# HOST LISTING MANAGEMENT
# ============================================================================


@router.post("", status_code=201)
async def create_property(
    data: PropertyCreate,
    current_user: User = Depends(require_host),
    db: Session = Depends(get_db),
):
    values = {PROPERTY_FIELDS[k]: v for k, v in data.model_dump().items() if k in PROPERTY_FIELDS}
    values["description"] = sanitize_text(values.get("description"))
    prop = Property(host_id=current_user.id, verification_status="PENDING", is_active=True, **values)
    if not prop.country:
        prop.country = "UAE"
    db.add(prop)
    db.commit()
    db.refresh(prop)
    logger.info(f"✅ Property {prop.id} listed by host {current_user.id}")

    return {"success": True, "message": "Property created successfully", "data": transform_property(prop)}


@router.put("/{property_id}")
async def update_property(
    property_id: str,
    data: PropertyUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    prop = get_owned_property(db, property_id, current_user)
    submitted = data.model_dump(exclude_unset=True)
    cleared = [k for k, v in submitted.items() if v is None and PROPERTY_FIELDS.get(k) in REQUIRED_PROPERTY_COLUMNS]
    if cleared:
        raise HTTPException(status_code=400, detail=f"{cleared[0]} cannot be null")
    updates = {PROPERTY_FIELDS[k]: v for k, v in submitted.items() if k in PROPERTY_FIELDS}

    merged = {
        col: updates.get(col, getattr(prop, col))
        for col in (
            "rental_type",
            "base_price",
            "monthly_price",
            "yearly_price",
            "contract_min_duration",
            "contract_max_duration",
        )
    }
    try:
        check_rental_pricing(*merged.values())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if "description" in updates:
        updates["description"] = sanitize_text(updates["description"])
    for field, value in updates.items():
        setattr(prop, field, value)
    db.commit()
    db.refresh(prop)

    return {"success": True, "message": "Property updated successfully", "data": transform_property(prop)}


@router.delete("/{property_id}")
async def delete_property(
    property_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    prop = get_owned_property(db, property_id, current_user)
    prop.is_active = False
    prop.deleted_at = datetime.utcnow()
    db.commit()
    logger.info(f"🗑️ Property {prop.id} deactivated by host {current_user.id}")
    return {"success": True, "message": "Property deleted successfully"}


@router.post("/{property_id}/images")
async def upload_images(
    property_id: str,
    images: list[UploadFile] = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    prop = get_owned_property(db, property_id, current_user)
    files = [
        {"filename": f.filename or "image", "content": await f.read(), "content_type": f.content_type or ""}
        for f in images
    ]
    uploaded, failed = await upload_property_images(db, prop, files)
    return {
        "success": True,
        "message": f"{len(uploaded)} images uploaded successfully",
        "data": {"uploadedImages": uploaded, "failedUploads": failed, "images": prop.images or []},
    }
