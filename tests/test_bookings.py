from __future__ import annotations

from datetime import datetime, timedelta

from marketplace.models import Notification, Payment
from support import auth_headers, make_booking, make_property, make_user

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def stay(days_ahead: int = 14, nights: int = 3) -> tuple[str, str]:
    check_in = datetime.utcnow().replace(hour=15, minute=0, second=0, microsecond=0) + timedelta(days=days_ahead)
    return check_in.isoformat(), (check_in + timedelta(days=nights)).isoformat()


def booking_payload(property_id: str, **overrides) -> dict:
    check_in, check_out = stay()
    payload = {
        "propertyId": property_id,
        "checkIn": check_in,
        "checkOut": check_out,
        "guests": 2,
        "guestInfo": {
            "firstName": "Gina",
            "lastName": "Guest",
            "email": "guest@example.com",
            "phone": "+971501112233",
        },
        "specialRequests": "Late arrival",
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# Creation and pricing
# ---------------------------------------------------------------------------


def test_create_booking_prices_stay_and_creates_payment(client, db, guest, host, listing, emitted) -> None:
    response = client.post("/api/bookings", headers=auth_headers(guest), json=booking_payload(listing.id))

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "PENDING"
    assert data["nights"] == 3
    assert data["baseAmount"] == 1500
    assert data["cleaningFee"] == 100
    assert data["serviceFee"] == 225
    assert data["totalAmount"] == 1825

    payment = db.query(Payment).filter(Payment.booking_id == data["id"]).one()
    assert payment.type == "BOOKING_PAYMENT"
    assert payment.status == "PENDING"
    assert payment.amount == 1825

    host_note = db.query(Notification).filter(Notification.user_id == host.id).one()
    assert host_note.title == "New Booking Request"
    assert any(event == "booking_status_update" for event, _, _ in emitted)


def test_instant_book_confirms_and_adds_deposit(client, db, guest, host) -> None:
    prop = make_property(db, host, is_instant_book=True, security_deposit=1000)

    response = client.post("/api/bookings", headers=auth_headers(guest), json=booking_payload(prop.id))

    assert response.status_code == 201
    assert response.json()["data"]["status"] == "CONFIRMED"
    types = sorted(p.type for p in db.query(Payment).all())
    assert types == ["BOOKING_PAYMENT", "SECURITY_DEPOSIT"]
    assert db.query(Notification).filter(Notification.user_id == guest.id).count() == 1


def test_create_booking_rejects_overlap(client, db, guest, listing) -> None:
    first = client.post("/api/bookings", headers=auth_headers(guest), json=booking_payload(listing.id))
    assert first.status_code == 201

    other = make_user(db, "second.guest@example.com")
    check_in, _ = stay(days_ahead=15)
    _, check_out = stay(days_ahead=16)
    clash = client.post(
        "/api/bookings",
        headers=auth_headers(other),
        json=booking_payload(listing.id, checkIn=check_in, checkOut=check_out),
    )

    assert clash.status_code == 400
    assert clash.json()["error"] == "Property is not available for selected dates"


def test_back_to_back_stays_do_not_conflict(client, db, guest, listing) -> None:
    make_booking(db, listing, guest, days_ahead=14, nights=3, status="CONFIRMED")
    check_in = (datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=17)).isoformat()
    check_out = (datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=19)).isoformat()

    response = client.post(
        "/api/bookings",
        headers=auth_headers(guest),
        json=booking_payload(listing.id, checkIn=check_in, checkOut=check_out),
    )

    assert response.status_code == 201


def test_create_booking_validation(client, guest, listing) -> None:
    past_in = (datetime.utcnow() - timedelta(days=2)).isoformat()
    past_out = (datetime.utcnow() - timedelta(days=1)).isoformat()
    past = client.post(
        "/api/bookings",
        headers=auth_headers(guest),
        json=booking_payload(listing.id, checkIn=past_in, checkOut=past_out),
    )
    assert past.status_code == 400
    assert past.json()["error"] == "Check-in date must be in the future"

    check_in, check_out = stay()
    reversed_dates = client.post(
        "/api/bookings",
        headers=auth_headers(guest),
        json=booking_payload(listing.id, checkIn=check_out, checkOut=check_in),
    )
    assert reversed_dates.status_code == 400

    crowded = client.post("/api/bookings", headers=auth_headers(guest), json=booking_payload(listing.id, guests=10))
    assert crowded.status_code == 400
    assert crowded.json()["error"] == "Number of guests exceeds property limit"

    missing = client.post("/api/bookings", headers=auth_headers(guest), json=booking_payload("no-such-property"))
    assert missing.status_code == 404


def test_availability_endpoint(client, db, guest, listing) -> None:
    booking = make_booking(db, listing, guest, days_ahead=20, nights=2, status="CONFIRMED")

    busy = client.get(
        f"/api/bookings/availability/{listing.id}",
        params={"checkIn": booking.check_in.isoformat(), "checkOut": booking.check_out.isoformat()},
    ).json()["data"]
    assert busy["available"] is False
    assert busy["conflictingBookings"][0]["status"] == "CONFIRMED"

    free = client.get(
        f"/api/bookings/availability/{listing.id}",
        params={
            "checkIn": (booking.check_out + timedelta(days=1)).isoformat(),
            "checkOut": (booking.check_out + timedelta(days=3)).isoformat(),
        },
    ).json()["data"]
    assert free == {"available": True, "conflictingBookings": []}


# ---------------------------------------------------------------------------
# Listing and access control
# ---------------------------------------------------------------------------


def test_list_bookings_for_guest_and_host(client, db, guest, host, listing) -> None:
    make_booking(db, listing, guest, status="PENDING")
    make_booking(db, listing, guest, days_ahead=30, status="CONFIRMED")

    as_guest = client.get("/api/bookings", headers=auth_headers(guest)).json()
    assert as_guest["pagination"]["total"] == 2

    confirmed = client.get("/api/bookings", headers=auth_headers(host), params={"status": "CONFIRMED"}).json()
    assert [b["status"] for b in confirmed["data"]] == ["CONFIRMED"]

    stranger = make_user(db, "stranger@example.com")
    assert client.get("/api/bookings", headers=auth_headers(stranger)).json()["data"] == []


def test_get_booking_access(client, db, guest, host, listing) -> None:
    booking = make_booking(db, listing, guest)
    stranger = make_user(db, "stranger@example.com")

    assert client.get(f"/api/bookings/{booking.id}", headers=auth_headers(host)).status_code == 200
    forbidden = client.get(f"/api/bookings/{booking.id}", headers=auth_headers(stranger))
    assert forbidden.status_code == 403
    assert client.get("/api/bookings/missing", headers=auth_headers(guest)).status_code == 404


# ---------------------------------------------------------------------------
# Updates and cancellation
# ---------------------------------------------------------------------------


def test_host_confirms_booking(client, db, guest, host, listing) -> None:
    booking = make_booking(db, listing, guest)

    response = client.put(f"/api/bookings/{booking.id}", headers=auth_headers(host), json={"status": "CONFIRMED"})

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "CONFIRMED"
    note = db.query(Notification).filter(Notification.user_id == guest.id).one()
    assert note.title == "Booking Approved!"


def test_guest_cannot_confirm_own_booking(client, db, guest, listing) -> None:
    booking = make_booking(db, listing, guest)

    response = client.put(f"/api/bookings/{booking.id}", headers=auth_headers(guest), json={"status": "CONFIRMED"})

    assert response.status_code == 403


def test_update_dates_reprices(client, db, guest, listing) -> None:
    booking = make_booking(db, listing, guest, nights=3)
    new_out = (booking.check_in + timedelta(days=5)).isoformat()

    response = client.put(f"/api/bookings/{booking.id}", headers=auth_headers(guest), json={"checkOut": new_out})

    data = response.json()["data"]
    assert data["nights"] == 5
    assert data["baseAmount"] == 2500
    assert data["totalAmount"] == 2500 + 100 + 375


def test_cancel_booking_cancels_pending_payments(client, db, guest, host, listing) -> None:
    created = client.post("/api/bookings", headers=auth_headers(guest), json=booking_payload(listing.id)).json()
    booking_id = created["data"]["id"]

    response = client.request(
        "DELETE", f"/api/bookings/{booking_id}", headers=auth_headers(guest), json={"reason": "Change of plans"}
    )

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "CANCELLED"
    assert response.json()["data"]["cancellationReason"] == "Change of plans"
    payment = db.query(Payment).filter(Payment.booking_id == booking_id).one()
    assert payment.status == "CANCELLED"
    titles = [n.title for n in db.query(Notification).filter(Notification.user_id == host.id)]
    assert "Booking Cancelled" in titles


def test_cancel_twice_is_rejected(client, db, guest, listing) -> None:
    booking = make_booking(db, listing, guest, status="CANCELLED")

    response = client.delete(f"/api/bookings/{booking.id}", headers=auth_headers(guest))

    assert response.status_code == 400
    assert response.json()["error"] == "Booking cannot be cancelled"
    db.refresh(booking)
    assert booking.status == "CANCELLED"
