from __future__ import annotations

from marketplace.models import Notification, Review
from support import auth_headers, make_booking, make_user

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def review_payload(booking_id: str, **overrides) -> dict:
    payload = {
        "bookingId": booking_id,
        "overallRating": 5,
        "cleanlinessRating": 4,
        "title": "Lovely stay",
        "comment": "Spotless apartment and a very responsive host.",
    }
    payload.update(overrides)
    return payload


def add_review(db, booking, rating: int, **overrides) -> Review:
    fields = {
        "booking_id": booking.id,
        "property_id": booking.property_id,
        "guest_id": booking.guest_id,
        "host_id": booking.host_id,
        "overall_rating": rating,
        "comment": "A perfectly fine place to stay.",
    }
    fields.update(overrides)
    review = Review(**fields)
    db.add(review)
    db.commit()
    db.refresh(review)
    return review


# ---------------------------------------------------------------------------
# Creating reviews
# ---------------------------------------------------------------------------


def test_guest_reviews_completed_booking(client, db, guest, host, listing) -> None:
    booking = make_booking(db, listing, guest, status="COMPLETED")

    response = client.post("/api/reviews", headers=auth_headers(guest), json=review_payload(booking.id))

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["overallRating"] == 5
    assert data["guest"]["firstName"] == "Gina"

    db.refresh(listing)
    assert listing.rating == 5
    assert listing.review_count == 1
    note = db.query(Notification).filter(Notification.user_id == host.id).one()
    assert note.type == "REVIEW"


def test_review_requires_completed_own_booking(client, db, guest, listing) -> None:
    pending = make_booking(db, listing, guest, status="CONFIRMED")
    response = client.post("/api/reviews", headers=auth_headers(guest), json=review_payload(pending.id))
    assert response.status_code == 400
    assert response.json()["error"] == "Can only review completed bookings"

    completed = make_booking(db, listing, guest, days_ahead=40, status="COMPLETED")
    stranger = make_user(db, "stranger@example.com")
    response = client.post("/api/reviews", headers=auth_headers(stranger), json=review_payload(completed.id))
    assert response.status_code == 400


def test_one_review_per_booking(client, db, guest, listing) -> None:
    booking = make_booking(db, listing, guest, status="COMPLETED")
    add_review(db, booking, 4)

    response = client.post("/api/reviews", headers=auth_headers(guest), json=review_payload(booking.id))

    assert response.status_code == 400
    assert response.json()["error"] == "Review already exists for this booking"


def test_review_validation(client, db, guest, listing) -> None:
    booking = make_booking(db, listing, guest, status="COMPLETED")

    too_high = client.post("/api/reviews", headers=auth_headers(guest), json=review_payload(booking.id, overallRating=6))
    assert too_high.status_code == 400

    too_short = client.post("/api/reviews", headers=auth_headers(guest), json=review_payload(booking.id, comment="meh"))
    assert too_short.status_code == 400


def test_property_rating_rounds_to_one_decimal(client, db, guest, listing) -> None:
    add_review(db, make_booking(db, listing, guest, days_ahead=1, status="COMPLETED"), 5)
    add_review(db, make_booking(db, listing, guest, days_ahead=5, status="COMPLETED"), 4)
    third = make_booking(db, listing, guest, days_ahead=9, status="COMPLETED")

    client.post("/api/reviews", headers=auth_headers(guest), json=review_payload(third.id, overallRating=4))

    db.refresh(listing)
    assert listing.review_count == 3
    assert listing.rating == 4.3


# ---------------------------------------------------------------------------
# Listing and stats
# ---------------------------------------------------------------------------


def test_list_reviews_filters_and_sorts(client, db, guest, host, listing) -> None:
    add_review(db, make_booking(db, listing, guest, days_ahead=1, status="COMPLETED"), 2)
    add_review(db, make_booking(db, listing, guest, days_ahead=5, status="COMPLETED"), 5)

    lowest = client.get("/api/reviews", params={"propertyId": listing.id, "sortBy": "lowest"}).json()
    assert [r["overallRating"] for r in lowest["reviews"]] == [2, 5]

    fives = client.get("/api/reviews", params={"rating": 5}).json()
    assert fives["pagination"]["total"] == 1

    received = client.get("/api/reviews", headers=auth_headers(host), params={"type": "received"}).json()
    assert received["pagination"]["total"] == 2
    written = client.get("/api/reviews", headers=auth_headers(host), params={"type": "written"}).json()
    assert written["pagination"]["total"] == 0


def test_list_received_reviews_requires_auth(client) -> None:
    response = client.get("/api/reviews", params={"type": "received"})

    assert response.status_code == 401
    assert response.json()["error"] == "Authentication required"


def test_host_review_stats(client, db, guest, host, listing) -> None:
    empty = client.get(f"/api/reviews/stats/{host.id}").json()["data"]
    assert empty["totalReviews"] == 0
    assert empty["ratingDistribution"] == {"1": 0, "2": 0, "3": 0, "4": 0, "5": 0}

    add_review(
        db,
        make_booking(db, listing, guest, days_ahead=1, status="COMPLETED"),
        5,
        cleanliness_rating=5,
        host_response="Thank you!",
    )
    add_review(db, make_booking(db, listing, guest, days_ahead=5, status="COMPLETED"), 3, cleanliness_rating=4)

    stats = client.get(f"/api/reviews/stats/{host.id}").json()["data"]
    assert stats["averageRating"] == 4.0
    assert stats["totalReviews"] == 2
    assert stats["responseRate"] == 50
    assert stats["categoryAverages"]["cleanliness"] == 4.5
    assert stats["categoryAverages"]["value"] == 0
    assert stats["ratingDistribution"]["5"] == 1
    assert stats["ratingDistribution"]["3"] == 1


def test_get_review(client, db, guest, listing) -> None:
    review = add_review(db, make_booking(db, listing, guest, status="COMPLETED"), 4)

    assert client.get(f"/api/reviews/{review.id}").json()["data"]["id"] == review.id
    assert client.get("/api/reviews/missing").status_code == 404


# ---------------------------------------------------------------------------
# Host responses
# ---------------------------------------------------------------------------


def test_host_responds_once(client, db, guest, host, listing) -> None:
    review = add_review(db, make_booking(db, listing, guest, status="COMPLETED"), 4)

    first = client.post(
        f"/api/reviews/{review.id}/response", headers=auth_headers(host), json={"response": "Thanks for staying!"}
    )
    assert first.status_code == 200
    assert first.json()["data"]["hostResponse"] == "Thanks for staying!"
    assert first.json()["data"]["hostResponseAt"] is not None
    assert db.query(Notification).filter(Notification.user_id == guest.id).count() == 1

    second = client.post(f"/api/reviews/{review.id}/response", headers=auth_headers(host), json={"response": "Again"})
    assert second.status_code == 400
    assert second.json()["error"] == "Host response already exists"


def test_only_host_can_respond(client, db, guest, listing) -> None:
    review = add_review(db, make_booking(db, listing, guest, status="COMPLETED"), 4)

    response = client.post(f"/api/reviews/{review.id}/response", headers=auth_headers(guest), json={"response": "Hi"})

    assert response.status_code == 403
