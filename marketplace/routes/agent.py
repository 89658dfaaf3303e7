"""
Agent Routes
Long-term listings managed by real-estate agents
"""

import json
import logging
from datetime import date
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import require_agent
from ..database import get_db
from ..models import Property, User
from ..models_viewing import PropertyView, ViewingRequest
from ..security_utils import sanitize_text
from ..utils.serializers import iso

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agent", tags=["Agent"])

DEFAULT_LEASE_MONTHS = 12

TYPE_MAPPING = {
    "apartment": "APARTMENT",
    "villa": "VILLA",
    "studio": "STUDIO",
    "townhouse": "TOWNHOUSE",
    "penthouse": "PENTHOUSE",
    "duplex": "APARTMENT",
}


class AgentPropertyCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    emirate: Optional[str] = None
    property_type: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    area: Optional[float] = None
    base_price: Optional[float] = None
    lease_duration_months: Optional[int] = None
    available_from: Optional[str] = None
    amenities: Union[list[str], str, None] = None


def parse_amenities(value: Union[list[str], str, None]) -> list[str]:
    """Amenities arrive as a list, a JSON array string or a comma string"""
    if not value:
        return []
    if isinstance(value, list):
        return [a.strip() for a in value if a and a.strip()]
    try:
        parsed = json.loads(value)
    except ValueError:
        parsed = value.split(",")
    if not isinstance(parsed, list):
        return []
    return [str(a).strip() for a in parsed if str(a).strip()]


def agent_shape(prop: Property, agent_id: str, views: int = 0, inquiries: int = 0, available_from=None) -> dict:
    return {
        "id": prop.id,
        "title": prop.title or "Untitled Property",
        "description": prop.description or "",
        "address": prop.address or "",
        "city": prop.city or "",
        "emirate": prop.emirate or "Dubai",
        "property_type": (prop.type or "apartment").lower(),
        "bedrooms": prop.bedrooms or 0,
        "bathrooms": prop.bathrooms or 0,
        "area": prop.size_sqft or 0,
        "base_price": prop.yearly_price or prop.base_price or 0,
        "monthly_price": prop.monthly_price,
        "images": prop.images or [],
        "is_active": prop.is_active is True,
        "created_at": iso(prop.created_at),
        "agent_id": agent_id,
        "is_long_term": True,
        "lease_duration_months": prop.contract_min_duration or DEFAULT_LEASE_MONTHS,
        "available_from": available_from or date.today().isoformat(),
        "amenities": prop.amenities or [],
        "views_count": views,
        "inquiries_count": inquiries,
    }


@router.get("/properties")
async def list_agent_properties(current_user: User = Depends(require_agent), db: Session = Depends(get_db)):
    properties = (
        db.query(Property)
        .filter(Property.host_id == current_user.id, Property.rental_type == "LONG_TERM")
        .order_by(Property.created_at.desc())
        .all()
    )
    ids = [p.id for p in properties]
    views = dict(
        db.query(PropertyView.property_id, func.count(PropertyView.id))
        .filter(PropertyView.property_id.in_(ids))
        .group_by(PropertyView.property_id)
        .all()
    )
    inquiries = dict(
        db.query(ViewingRequest.property_id, func.count(ViewingRequest.id))
        .filter(ViewingRequest.property_id.in_(ids))
        .group_by(ViewingRequest.property_id)
        .all()
    )

    data = [agent_shape(p, current_user.id, views.get(p.id, 0), inquiries.get(p.id, 0)) for p in properties]
    return {"success": True, "data": data, "count": len(data)}


@router.post("/properties", status_code=201)
async def create_agent_property(
    data: AgentPropertyCreate,
    current_user: User = Depends(require_agent),
    db: Session = Depends(get_db),
):
    if not data.title or not data.description or not data.address or not data.base_price or data.base_price <= 0:
        raise HTTPException(status_code=400, detail="Missing required fields: title, description, address, base_price")

    lease_months = data.lease_duration_months or DEFAULT_LEASE_MONTHS
    yearly = round(data.base_price)
    bedrooms = data.bedrooms or 1

    prop = Property(
        host_id=current_user.id,
        title=data.title.strip(),
        description=sanitize_text(data.description),
        address=data.address.strip(),
        city=(data.city or "").strip() or "Dubai",
        emirate=data.emirate or "Dubai",
        type=TYPE_MAPPING.get((data.property_type or "").lower(), "APARTMENT"),
        category="ENTIRE_PLACE",
        rental_type="LONG_TERM",
        bedrooms=bedrooms,
        bathrooms=data.bathrooms or 1,
        max_guests=max(bedrooms, 2),
        size_sqft=data.area or None,
        base_price=yearly,
        monthly_price=round(yearly / 12),
        yearly_price=yearly,
        contract_min_duration=lease_months,
        contract_max_duration=max(lease_months * 2, 24),
        security_deposit=round(yearly * 0.1),
        amenities=parse_amenities(data.amenities),
        images=[],
        is_active=True,
        is_instant_book=False,
        verification_status="PENDING",
        minimum_stay=max(lease_months * 30, 365),
        maximum_stay=lease_months * 60,
        check_in_time="15:00",
        check_out_time="11:00",
    )
    db.add(prop)
    db.commit()
    db.refresh(prop)
    logger.info(f"🏢 Agent {current_user.id} listed long-term property {prop.id}")

    return {
        "success": True,
        "data": agent_shape(prop, current_user.id, available_from=data.available_from),
        "message": "Long-term listing created successfully! It will now appear in property searches for guests.",
    }
