"""
Response shaping shared by several routers
Rows are rendered in the camelCase layout the web client consumes
"""

from datetime import date, datetime
from typing import Any, Optional, Union

from ..models import Booking, Payment, Property, User
from ..schemas import UserProfileResponse, UserResponse


def iso(value: Optional[Union[datetime, date]]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_user(user: User) -> dict:
    return UserResponse.model_validate(user).model_dump(mode="json")


def serialize_profile(user: User) -> dict:
    return UserProfileResponse.model_validate(user).model_dump(mode="json")


def user_summary(user: Optional[User]) -> Optional[dict]:
    if not user:
        return None
    return {
        "id": user.id,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "avatar": user.avatar,
        "phone": user.phone,
        "email": user.email,
    }


def property_status(prop: Property) -> str:
    if prop.verification_status == "VERIFIED":
        return "ACTIVE"
    if prop.verification_status == "PENDING":
        return "PENDING_REVIEW"
    return "INACTIVE"


def transform_property(prop: Property) -> dict[str, Any]:
    """Full listing payload used by the public property endpoints"""
    host = prop.host
    return {
        "id": prop.id,
        "title": prop.title,
        "description": prop.description,
        "type": prop.type,
        "category": prop.category,
        "rentalType": prop.rental_type,
        "status": property_status(prop),
        "verificationStatus": prop.verification_status,
        "bedrooms": prop.bedrooms,
        "bathrooms": prop.bathrooms,
        "maxGuests": prop.max_guests,
        "sizeSqft": prop.size_sqft,
        "amenities": prop.amenities or [],
        "houseRules": prop.house_rules or [],
        "images": [
            {"id": f"{prop.id}-img-{i}", "url": url, "caption": "", "order": i}
            for i, url in enumerate(prop.images or [])
        ],
        "pricing": {
            "basePrice": prop.base_price,
            "cleaningFee": prop.cleaning_fee,
            "securityDeposit": prop.security_deposit,
            "monthlyRate": prop.monthly_price,
            "yearlyRate": prop.yearly_price,
            "priceUnit": "MONTH" if prop.rental_type == "LONG_TERM" else "NIGHT",
        },
        "location": {
            "emirate": prop.emirate,
            "city": prop.city,
            "area": prop.area,
            "address": prop.address,
            "country": prop.country or "UAE",
            "coordinates": {"latitude": prop.latitude, "longitude": prop.longitude},
        },
        "contractMinDuration": prop.contract_min_duration,
        "contractMaxDuration": prop.contract_max_duration,
        "checkInTime": prop.check_in_time,
        "checkOutTime": prop.check_out_time,
        "minimumStay": prop.minimum_stay,
        "maximumStay": prop.maximum_stay,
        "isInstantBook": prop.is_instant_book,
        "isActive": prop.is_active,
        "isFeatured": prop.is_featured,
        "host": (
            {
                "id": host.id,
                "firstName": host.first_name,
                "lastName": host.last_name,
                "avatar": host.avatar,
                "isVerified": host.is_verified,
            }
            if host
            else None
        ),
        "rating": prop.rating or 0,
        "reviewCount": prop.review_count or 0,
        "createdAt": iso(prop.created_at),
        "updatedAt": iso(prop.updated_at),
    }


def property_summary(prop: Optional[Property]) -> Optional[dict]:
    if not prop:
        return None
    return {
        "id": prop.id,
        "title": prop.title,
        "city": prop.city,
        "emirate": prop.emirate,
        "address": prop.address,
        "images": prop.images or [],
        "basePrice": prop.base_price,
        "hostId": prop.host_id,
    }


def serialize_booking(booking: Booking) -> dict[str, Any]:
    return {
        "id": booking.id,
        "propertyId": booking.property_id,
        "guestId": booking.guest_id,
        "hostId": booking.host_id,
        "checkIn": iso(booking.check_in),
        "checkOut": iso(booking.check_out),
        "guests": booking.guests,
        "nights": booking.nights,
        "baseAmount": booking.base_amount,
        "cleaningFee": booking.cleaning_fee,
        "serviceFee": booking.service_fee,
        "totalAmount": booking.total_amount,
        "status": booking.status,
        "guestInfo": booking.guest_info,
        "specialRequests": booking.special_requests,
        "cancellationReason": booking.cancellation_reason,
        "cancelledAt": iso(booking.cancelled_at),
        "cancelledBy": booking.cancelled_by,
        "createdAt": iso(booking.created_at),
        "updatedAt": iso(booking.updated_at),
        "property": property_summary(booking.property),
        "guest": user_summary(booking.guest),
    }


def serialize_payment(payment: Payment, include_booking: bool = True) -> dict[str, Any]:
    data = {
        "id": payment.id,
        "bookingId": payment.booking_id,
        "userId": payment.user_id,
        "amount": payment.amount,
        "currency": payment.currency,
        "type": payment.type,
        "method": payment.method,
        "status": payment.status,
        "dueDate": iso(payment.due_date),
        "paidAt": iso(payment.paid_at),
        "stripePaymentId": payment.stripe_payment_id,
        "stripePaymentUrl": payment.stripe_payment_url,
        "checkNumber": payment.check_number,
        "checkBank": payment.check_bank,
        "checkDate": payment.check_date,
        "refundedAmount": payment.refunded_amount or 0,
        "refundReason": payment.refund_reason,
        "createdAt": iso(payment.created_at),
        "updatedAt": iso(payment.updated_at),
    }
    if include_booking:
        booking = payment.booking
        data["booking"] = (
            {
                "id": booking.id,
                "checkIn": iso(booking.check_in),
                "checkOut": iso(booking.check_out),
                "status": booking.status,
                "property": property_summary(booking.property),
            }
            if booking
            else None
        )
    return data
