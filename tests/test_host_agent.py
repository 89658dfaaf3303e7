from __future__ import annotations

from marketplace.models import Payout, Property
from marketplace.models_viewing import PropertyView
from support import auth_headers, make_booking, make_property

# ---------------------------------------------------------------------------
# Host payouts
# ---------------------------------------------------------------------------


def test_payouts_for_host_without_properties(client, host) -> None:
    data = client.get("/api/host/payouts", headers=auth_headers(host)).json()["data"]

    assert data["financial_summary"]["total_earnings"] == 0
    assert data["payout_history"] == []
    assert data["bank_details"] is None


def test_payout_summary_nets_platform_fee(client, db, host, guest, listing) -> None:
    completed = make_booking(db, listing, guest, days_ahead=-10, status="COMPLETED", total_amount=1000)
    make_booking(db, listing, guest, days_ahead=20, status="CONFIRMED", total_amount=2000)
    make_booking(db, listing, guest, days_ahead=40, status="CANCELLED", total_amount=5000)
    db.add(Payout(host_id=host.id, booking_id=completed.id, amount=500, status="COMPLETED"))
    db.commit()

    data = client.get("/api/host/payouts", headers=auth_headers(host)).json()["data"]

    summary = data["financial_summary"]
    assert summary["available_balance"] == 400
    assert summary["pending_payout"] == 1800
    assert summary["total_paid_out"] == 500
    assert summary["platform_fees"] == 300
    assert summary["total_earnings"] == 2700
    assert summary["total_bookings"] == 3
    assert summary["confirmed_bookings"] == 1
    assert summary["completed_bookings"] == 1

    statuses = sorted(entry["status"] for entry in data["payout_history"])
    assert statuses == ["COMPLETED", "PROCESSING"]
    pending = next(e for e in data["payout_history"] if e["status"] == "PROCESSING")
    assert pending["amount"] == 1800
    assert pending["expected_date"] is not None


def test_completed_booking_without_payout_is_derived(client, db, host, guest, listing) -> None:
    booking = make_booking(db, listing, guest, days_ahead=-10, status="COMPLETED", total_amount=1000)

    history = client.get("/api/host/payouts", headers=auth_headers(host)).json()["data"]["payout_history"]

    assert len(history) == 1
    assert history[0]["id"] == f"payout-{booking.id}"
    assert history[0]["amount"] == 900
    assert history[0]["property_title"] == listing.title


# ---------------------------------------------------------------------------
# Agent listings
# ---------------------------------------------------------------------------


def test_agent_creates_long_term_listing(client, db, agent) -> None:
    response = client.post(
        "/api/agent/properties",
        headers=auth_headers(agent),
        json={
            "title": "  Family Villa  ",
            "description": "Five bedroom villa near the park",
            "address": "Street 12, Arabian Ranches",
            "property_type": "duplex",
            "bedrooms": 5,
            "area": 4200,
            "base_price": 240000,
            "amenities": '["garden", "maid room"]',
            "available_from": "2030-03-01",
        },
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["title"] == "Family Villa"
    assert data["property_type"] == "apartment"
    assert data["base_price"] == 240000
    assert data["monthly_price"] == 20000
    assert data["area"] == 4200
    assert data["amenities"] == ["garden", "maid room"]
    assert data["available_from"] == "2030-03-01"
    assert data["lease_duration_months"] == 12

    prop = db.query(Property).filter(Property.id == data["id"]).one()
    assert prop.rental_type == "LONG_TERM"
    assert prop.security_deposit == 24000
    assert prop.contract_max_duration == 24
    assert prop.verification_status == "PENDING"
    assert prop.max_guests == 5


def test_agent_listing_requires_core_fields(client, agent) -> None:
    response = client.post("/api/agent/properties", headers=auth_headers(agent), json={"title": "Only a title"})

    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields: title, description, address, base_price"


def test_agent_routes_reject_non_agents(client, host) -> None:
    response = client.get("/api/agent/properties", headers=auth_headers(host))

    assert response.status_code == 403
    assert response.json()["error"] == "Agent access required"


def test_agent_lists_long_term_listings_with_counts(client, db, agent) -> None:
    long_term = make_property(
        db, agent, title="Office Tower Flat", rental_type="LONG_TERM", yearly_price=90000, monthly_price=7500
    )
    make_property(db, agent, title="Holiday Home", rental_type="SHORT_TERM")
    db.add_all([PropertyView(property_id=long_term.id), PropertyView(property_id=long_term.id)])
    db.commit()

    body = client.get("/api/agent/properties", headers=auth_headers(agent)).json()

    assert body["count"] == 1
    listing = body["data"][0]
    assert listing["title"] == "Office Tower Flat"
    assert listing["base_price"] == 90000
    assert listing["views_count"] == 2
    assert listing["inquiries_count"] == 0
    assert listing["agent_id"] == agent.id
