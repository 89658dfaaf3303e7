"""
Viewing Models
Property view tracking, agent availability and in-person viewing appointments
"""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_uuid


class PropertyView(Base):
    """A single visit to a property listing"""

    __tablename__ = "property_views"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    viewer_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    agent_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    view_type = Column(String(30), default="listing_view")
    duration_seconds = Column(Integer, default=0)
    device_info = Column(String(500), nullable=True)
    referrer_source = Column(String(255), nullable=True)
    ip_address = Column(String(64), nullable=True)
    page_views = Column(Integer, default=1)
    images_viewed = Column(Integer, default=0)
    contact_form_opened = Column(Boolean, default=False, nullable=False)
    phone_number_revealed = Column(Boolean, default=False, nullable=False)
    view_date = Column(DateTime, server_default=func.now())


class AgentAvailabilitySlot(Base):
    __tablename__ = "agent_availability"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    agent_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    is_booked = Column(Boolean, default=False, nullable=False)
    booking_id = Column(String(36), nullable=True)  # Viewing occupying the slot
    notes = Column(Text, nullable=True)


class Viewing(Base):
    """In-person or virtual property viewing scheduled with an agent"""

    __tablename__ = "property_viewings"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    agent_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    scheduled_date = Column(Date, nullable=False)
    scheduled_time = Column(String(5), nullable=False)
    duration_minutes = Column(Integer, default=30)
    viewing_type = Column(String(20), default="in_person")  # in_person, virtual, self_guided
    client_name = Column(String(255), nullable=True)
    client_phone = Column(String(50), nullable=True)
    client_email = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    special_requirements = Column(Text, nullable=True)
    # scheduled, confirmed, in_progress, completed, cancelled, no_show, rescheduled
    status = Column(String(20), default="scheduled", nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    property = relationship("Property")
    feedback = relationship("ViewingFeedback", back_populates="viewing", uselist=False)


class ViewingFeedback(Base):
    __tablename__ = "viewing_feedback"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    viewing_id = Column(String(36), ForeignKey("property_viewings.id"), nullable=False, index=True)
    client_rating = Column(Integer, nullable=True)
    client_feedback = Column(Text, nullable=True)
    client_interest_level = Column(String(20), nullable=True)  # low, medium, high
    agent_notes = Column(Text, nullable=True)
    property_condition_notes = Column(Text, nullable=True)
    follow_up_required = Column(Boolean, default=False, nullable=False)
    follow_up_date = Column(Date, nullable=True)
    next_action = Column(String(255), nullable=True)
    booking_likelihood = Column(Integer, nullable=True)  # 0-100
    created_at = Column(DateTime, server_default=func.now())

    viewing = relationship("Viewing", back_populates="feedback")


class ViewingRequest(Base):
    """Public request for a viewing, answered by the listing agent"""

    __tablename__ = "viewing_requests"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    property_title = Column(String(255), nullable=True)
    guest_name = Column(String(255), nullable=False)
    guest_email = Column(String(255), nullable=False)
    guest_phone = Column(String(50), nullable=False)
    requested_date = Column(Date, nullable=False)
    requested_time = Column(String(5), nullable=False)
    message = Column(Text, nullable=True)
    agent_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), default="pending", nullable=False)  # pending, confirmed, rejected
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    property = relationship("Property")
