import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_uuid():
    """Generate a string UUID primary key"""
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=True)  # Null for Google-only accounts
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(50), nullable=True)
    avatar = Column(String(500), nullable=True)
    # Roles
    is_host = Column(Boolean, default=False, nullable=False)
    is_agent = Column(Boolean, default=False, nullable=False)
    # Account state
    is_verified = Column(Boolean, default=False, nullable=False)  # Email verification status
    is_active = Column(Boolean, default=True, nullable=False)
    is_suspended = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), default="active", nullable=False)  # active, suspended, deleted
    verification_level = Column(String(30), default="unverified", nullable=False)
    kyc_status = Column(String(20), nullable=True)  # pending, approved, rejected
    emirates_id = Column(String(500), nullable=True)  # Document URL
    passport_number = Column(String(500), nullable=True)  # Document URL
    # Agent details
    company_name = Column(String(255), nullable=True)
    license_number = Column(String(100), nullable=True)
    # Profile
    nationality = Column(String(100), nullable=True)
    date_of_birth = Column(String(20), nullable=True)
    gender = Column(String(20), nullable=True)
    occupation = Column(String(100), nullable=True)
    bio = Column(Text, nullable=True)
    language = Column(String(10), default="en")
    emirate = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    google_id = Column(String(255), unique=True, nullable=True)
    accepted_terms_at = Column(DateTime, nullable=True)
    last_login_at = Column(DateTime, nullable=True)
    # Moderation
    suspension_reason = Column(Text, nullable=True)
    suspension_date = Column(DateTime, nullable=True)
    suspension_until = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    deletion_reason = Column(Text, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    verified_by = Column(String(36), nullable=True)
    created_by_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    properties = relationship("Property", back_populates="host", foreign_keys="Property.host_id")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return bool(self.is_agent and self.email and "admin" in self.email)


class Property(Base):
    __tablename__ = "properties"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    host_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(20), nullable=False)  # APARTMENT, VILLA, STUDIO, PENTHOUSE, TOWNHOUSE
    category = Column(String(50), nullable=True)
    rental_type = Column(String(20), default="SHORT_TERM", nullable=False)  # SHORT_TERM, LONG_TERM, BOTH
    # Location
    emirate = Column(String(100), nullable=False, index=True)
    city = Column(String(100), nullable=True, index=True)
    area = Column(String(100), nullable=True)
    address = Column(String(500), nullable=True)
    country = Column(String(100), default="UAE")
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    # Capacity
    bedrooms = Column(Integer, default=0)
    bathrooms = Column(Integer, default=0)
    max_guests = Column(Integer, default=1)
    size_sqft = Column(Float, nullable=True)
    # Pricing (AED)
    base_price = Column(Float, nullable=True)  # Per night
    cleaning_fee = Column(Float, nullable=True)
    security_deposit = Column(Float, nullable=True)
    monthly_price = Column(Float, nullable=True)
    yearly_price = Column(Float, nullable=True)
    contract_min_duration = Column(Integer, nullable=True)  # Months
    contract_max_duration = Column(Integer, nullable=True)  # Months
    # Details
    amenities = Column(JSON, default=list)
    images = Column(JSON, default=list)  # List of public URLs
    house_rules = Column(JSON, default=list)
    check_in_time = Column(String(5), default="15:00")
    check_out_time = Column(String(5), default="11:00")
    minimum_stay = Column(Integer, default=1)
    maximum_stay = Column(Integer, nullable=True)
    is_instant_book = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    verification_status = Column(String(20), default="PENDING", nullable=False)  # PENDING, VERIFIED, REJECTED, DELETED
    status_reason = Column(Text, nullable=True)
    status_updated_by = Column(String(36), nullable=True)
    # Denormalized from reviews
    rating = Column(Float, default=0)
    review_count = Column(Integer, default=0)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    host = relationship("User", back_populates="properties", foreign_keys=[host_id])
    bookings = relationship("Booking", back_populates="property")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    guest_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    host_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    check_in = Column(DateTime, nullable=False)
    check_out = Column(DateTime, nullable=False)
    guests = Column(Integer, nullable=False)
    nights = Column(Integer, nullable=False)
    base_amount = Column(Float, nullable=False)
    cleaning_fee = Column(Float, default=0)
    service_fee = Column(Float, default=0)
    total_amount = Column(Float, nullable=False)
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, CONFIRMED, CANCELLED, COMPLETED, DISPUTED
    guest_info = Column(JSON, nullable=True)
    special_requests = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(36), nullable=True)
    dispute_reason = Column(Text, nullable=True)
    disputed_at = Column(DateTime, nullable=True)
    emergency_notes = Column(JSON, default=list)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    property = relationship("Property", back_populates="bookings")
    guest = relationship("User", foreign_keys=[guest_id])
    host = relationship("User", foreign_keys=[host_id])
    payments = relationship("Payment", back_populates="booking")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), default="AED", nullable=False)
    type = Column(String(30), nullable=False)  # BOOKING_PAYMENT, SECURITY_DEPOSIT, REFUND
    method = Column(String(30), default="STRIPE", nullable=False)  # STRIPE, CHECK, BANK_TRANSFER
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, PROCESSING, COMPLETED, FAILED, CANCELLED, REFUNDED
    due_date = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    platform_fee = Column(Float, default=0)
    # Stripe
    stripe_payment_id = Column(String(255), nullable=True, index=True)  # Checkout session ID
    stripe_payment_url = Column(Text, nullable=True)
    stripe_payment_intent = Column(String(255), nullable=True)
    # Check payments
    check_number = Column(String(50), nullable=True)
    check_bank = Column(String(100), nullable=True)
    check_date = Column(String(20), nullable=True)
    # Refunds and admin review
    refunded_amount = Column(Float, default=0)
    refund_reason = Column(Text, nullable=True)
    related_payment_id = Column(String(36), nullable=True)
    reviewed_by = Column(String(36), nullable=True)
    review_note = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    booking = relationship("Booking", back_populates="payments")
    user = relationship("User")


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)  # card, bank_transfer
    last4 = Column(String(4), nullable=False)  # Never store full numbers
    brand = Column(String(30), nullable=True)
    expiry_month = Column(Integer, nullable=True)
    expiry_year = Column(Integer, nullable=True)
    holder_name = Column(String(255), nullable=True)
    bank_name = Column(String(255), nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Review(Base):
    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, unique=True)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    guest_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    host_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    overall_rating = Column(Integer, nullable=False)
    cleanliness_rating = Column(Integer, nullable=True)
    accuracy_rating = Column(Integer, nullable=True)
    communication_rating = Column(Integer, nullable=True)
    location_rating = Column(Integer, nullable=True)
    checkin_rating = Column(Integer, nullable=True)
    value_rating = Column(Integer, nullable=True)
    title = Column(String(100), nullable=True)
    comment = Column(Text, nullable=False)
    host_response = Column(Text, nullable=True)
    host_response_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    property = relationship("Property")
    guest = relationship("User", foreign_keys=[guest_id])
    booking = relationship("Booking")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(20), nullable=False)  # BOOKING, PAYMENT, REVIEW, SYSTEM, PROMOTION, MESSAGE, PROPERTY, KYC, ADMIN
    data = Column(JSON, default=dict)
    action_url = Column(String(500), nullable=True)
    action_text = Column(String(100), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)
    # Delivery tracking
    email_sent = Column(Boolean, default=False, nullable=False)
    email_sent_at = Column(DateTime, nullable=True)
    sms_sent = Column(Boolean, default=False, nullable=False)
    sms_sent_at = Column(DateTime, nullable=True)
    push_sent = Column(Boolean, default=False, nullable=False)
    push_sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User")


class WishlistItem(Base):
    __tablename__ = "user_wishlists"
    __table_args__ = (UniqueConstraint("user_id", "property_id", name="uq_wishlist_user_property"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    property_id = Column(String(36), nullable=False)
    property_title = Column(String(255), nullable=False)
    property_image = Column(String(500), nullable=True)
    property_price = Column(Float, nullable=True)
    property_location = Column(String(255), nullable=True)
    property_type = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    added_at = Column(DateTime, server_default=func.now())


class RecentlyViewed(Base):
    __tablename__ = "recently_viewed_properties"
    __table_args__ = (UniqueConstraint("user_id", "property_id", name="uq_recently_viewed_user_property"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    property_id = Column(String(36), nullable=False)
    property_title = Column(String(255), nullable=False)
    property_image = Column(String(500), nullable=True)
    property_price = Column(Float, nullable=True)
    property_location = Column(String(255), nullable=True)
    property_type = Column(String(100), nullable=True)
    view_count = Column(Integer, default=1, nullable=False)
    viewed_at = Column(DateTime, server_default=func.now())


class CalendarBlock(Base):
    """Dates a host has manually closed for booking"""

    __tablename__ = "calendar_blocks"
    __table_args__ = (UniqueConstraint("property_id", "date", name="uq_calendar_block_date"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    reason = Column(String(255), nullable=True)
    type = Column(String(20), default="BLOCKED", nullable=False)  # BLOCKED, MAINTENANCE, PERSONAL
    created_at = Column(DateTime, server_default=func.now())


class CalendarPrice(Base):
    """Per-date nightly price override"""

    __tablename__ = "calendar_prices"
    __table_args__ = (UniqueConstraint("property_id", "date", name="uq_calendar_price_date"),)

    id = Column(String(36), primary_key=True, default=generate_uuid)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    price = Column(Float, nullable=False)


class Payout(Base):
    __tablename__ = "payouts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    host_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), default="AED", nullable=False)
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, PROCESSING, COMPLETED, CANCELLED, FAILED
    payout_method = Column(String(30), default="BANK_TRANSFER", nullable=False)
    notes = Column(Text, nullable=True)
    processed_by = Column(String(36), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    expected_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    host = relationship("User")
    booking = relationship("Booking")


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    event_type = Column(String(50), nullable=False, index=True)  # SEARCH, PAGE_VIEW, ...
    user_id = Column(String(36), nullable=True)
    session_id = Column(String(100), nullable=True)
    data = Column(JSON, default=dict)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class AdminAction(Base):
    """Audit trail for super-admin operations"""

    __tablename__ = "admin_actions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    admin_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    action_type = Column(String(50), nullable=False)
    target_id = Column(String(36), nullable=True)
    details = Column(JSON, default=dict)
    timestamp = Column(DateTime, server_default=func.now())
