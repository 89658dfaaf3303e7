from __future__ import annotations

from datetime import datetime

from marketplace.models import CalendarBlock, CalendarPrice, WishlistItem
from support import auth_headers, make_booking, make_property, make_user

# ---------------------------------------------------------------------------
# Wishlist
# ---------------------------------------------------------------------------


def test_add_and_list_wishlist_snapshot(client, db, guest, listing) -> None:
    response = client.post(
        "/api/wishlist", headers=auth_headers(guest), json={"propertyId": listing.id, "notes": "For NYE"}
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["propertyTitle"] == listing.title
    assert data["propertyPrice"] == 500
    assert data["propertyLocation"] == "Marina, Dubai Marina, Dubai"

    listed = client.get("/api/wishlist", headers=auth_headers(guest)).json()
    assert listed["count"] == 1
    assert listed["data"][0]["notes"] == "For NYE"


def test_long_term_snapshot_uses_monthly_price(client, db, guest, host) -> None:
    prop = make_property(db, host, rental_type="LONG_TERM", base_price=None, monthly_price=12000)

    data = client.post("/api/wishlist", headers=auth_headers(guest), json={"propertyId": prop.id}).json()["data"]

    assert data["propertyPrice"] == 12000


def test_wishlist_duplicates_and_missing_property(client, guest, listing) -> None:
    client.post("/api/wishlist", headers=auth_headers(guest), json={"propertyId": listing.id})

    duplicate = client.post("/api/wishlist", headers=auth_headers(guest), json={"propertyId": listing.id})
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "Property already in wishlist"

    missing = client.post("/api/wishlist", headers=auth_headers(guest), json={"propertyId": "nope"})
    assert missing.status_code == 404


def test_update_notes_and_remove(client, db, guest, listing) -> None:
    client.post("/api/wishlist", headers=auth_headers(guest), json={"propertyId": listing.id})

    notes = client.put(f"/api/wishlist/{listing.id}/notes", headers=auth_headers(guest), json={"notes": "Ask for crib"})
    assert notes.json()["data"]["notes"] == "Ask for crib"

    removed = client.delete(f"/api/wishlist/{listing.id}", headers=auth_headers(guest))
    assert removed.status_code == 200
    assert db.query(WishlistItem).count() == 0

    again = client.delete(f"/api/wishlist/{listing.id}", headers=auth_headers(guest))
    assert again.status_code == 404
    assert again.json()["error"] == "Property not in wishlist"


def test_recently_viewed_counts_and_removal(client, db, guest, listing) -> None:
    client.post("/api/wishlist/recently-viewed", headers=auth_headers(guest), json={"propertyId": listing.id})
    second = client.post("/api/wishlist/recently-viewed", headers=auth_headers(guest), json={"propertyId": listing.id})
    assert second.json()["data"]["viewCount"] == 2

    listed = client.get("/api/wishlist/recently-viewed", headers=auth_headers(guest)).json()
    assert listed["count"] == 1

    removed = client.delete(f"/api/wishlist/recently-viewed/{listing.id}", headers=auth_headers(guest))
    assert removed.json()["data"] == {"removed": 1}


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


def january_2030_booking(db, listing, guest):
    return make_booking(
        db,
        listing,
        guest,
        check_in=datetime(2030, 1, 10),
        check_out=datetime(2030, 1, 13),
        nights=3,
        total_amount=1600,
        status="CONFIRMED",
    )


def test_month_grid_marks_bookings_blocks_and_prices(client, db, host, guest, listing) -> None:
    january_2030_booking(db, listing, guest)
    db.add(CalendarBlock(property_id=listing.id, date=datetime(2030, 1, 20).date(), reason="Maintenance"))
    db.add(CalendarPrice(property_id=listing.id, date=datetime(2030, 1, 25).date(), price=900))
    db.commit()

    response = client.get(
        f"/api/calendar/property/{listing.id}", headers=auth_headers(host), params={"year": 2030, "month": 0}
    )

    assert response.status_code == 200
    data = response.json()["data"]
    cells = {c["date"]: c for c in data["calendar"]}
    assert len(data["calendar"]) == 42
    assert data["calendar"][0]["date"] == "2029-12-30"
    assert cells["2029-12-31"]["isCurrentMonth"] is False

    arrival = cells["2030-01-10"]
    assert arrival["status"] == "confirmed"
    assert arrival["checkIn"] is True
    assert arrival["guestName"] == "Gina Guest"
    assert arrival["isAvailable"] is False

    departure = cells["2030-01-13"]
    assert departure["checkOut"] is True
    assert departure["status"] is None
    assert departure["isAvailable"] is True

    assert cells["2030-01-20"]["status"] == "blocked"
    assert cells["2030-01-20"]["blockReason"] == "Maintenance"
    assert cells["2030-01-25"]["price"] == 900
    assert cells["2030-01-26"]["price"] == 500


def test_block_skips_booked_and_already_blocked_dates(client, db, host, guest, listing) -> None:
    january_2030_booking(db, listing, guest)
    url = f"/api/calendar/property/{listing.id}/block"

    first = client.post(url, headers=auth_headers(host), json={"dates": ["2030-01-11", "2030-01-20", "2030-01-21"]})
    assert first.json()["data"] == {"blocked": 2, "skipped": 1, "dates": ["2030-01-20", "2030-01-21"]}

    second = client.post(url, headers=auth_headers(host), json={"dates": ["2030-01-20"]})
    assert second.json()["data"]["blocked"] == 0

    unblocked = client.request("DELETE", url, headers=auth_headers(host), json={"dates": ["2030-01-20"]})
    assert unblocked.json()["data"] == {"unblocked": 1}
    assert db.query(CalendarBlock).count() == 1


def test_block_requires_dates(client, host, listing) -> None:
    response = client.post(f"/api/calendar/property/{listing.id}/block", headers=auth_headers(host), json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Dates array is required"


def test_custom_pricing_upserts(client, db, host, listing) -> None:
    url = f"/api/calendar/property/{listing.id}/pricing"

    client.post(url, headers=auth_headers(host), json={"dates": ["2030-02-14"], "price": 800})
    response = client.post(url, headers=auth_headers(host), json={"dates": ["2030-02-14", "2030-02-15"], "price": 950})

    assert response.status_code == 200
    prices = {p.date.isoformat(): p.price for p in db.query(CalendarPrice).all()}
    assert prices == {"2030-02-14": 950, "2030-02-15": 950}

    invalid = client.post(url, headers=auth_headers(host), json={"dates": ["2030-02-14"], "price": 0})
    assert invalid.status_code == 400
    assert invalid.json()["error"] == "Valid price is required"


def test_monthly_stats(client, db, host, guest, listing) -> None:
    january_2030_booking(db, listing, guest)

    response = client.get(
        f"/api/calendar/property/{listing.id}/stats", headers=auth_headers(host), params={"year": 2030, "month": 0}
    )

    assert response.json()["data"] == {
        "month": 0,
        "year": 2030,
        "totalEarnings": 1600,
        "totalBookings": 1,
        "occupancyRate": 10,
        "bookedDays": 3,
        "daysInMonth": 31,
    }


def test_calendar_is_limited_to_own_properties(client, db, listing) -> None:
    other_host = make_user(db, "other.host@example.com", is_host=True)

    response = client.get(f"/api/calendar/property/{listing.id}", headers=auth_headers(other_host))

    assert response.status_code == 403
    assert response.json()["error"] == "Property not found or access denied"
