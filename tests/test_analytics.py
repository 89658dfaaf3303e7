from __future__ import annotations

from datetime import datetime, timedelta

from marketplace.models import AnalyticsEvent, Review
from support import auth_headers, make_booking, make_payment, make_property

BASE = "/api/analytics"


def completed_payment(db, booking, paid_at=None, **overrides):
    return make_payment(
        db,
        booking,
        status="COMPLETED",
        paid_at=paid_at or datetime.utcnow() - timedelta(days=1),
        **overrides,
    )


# ---------------------------------------------------------------------------
# Access and parameters
# ---------------------------------------------------------------------------


def test_admin_metrics_require_admin(client, guest, agent) -> None:
    assert client.get(f"{BASE}/dashboard", headers=auth_headers(guest)).status_code == 403
    response = client.get(f"{BASE}/revenue", headers=auth_headers(agent))
    assert response.status_code == 403
    assert response.json()["error"] == "Admin access required"


def test_date_range_must_be_ordered(client, admin) -> None:
    response = client.get(
        f"{BASE}/bookings", headers=auth_headers(admin), params={"startDate": "2030-02-01", "endDate": "2030-01-01"}
    )

    assert response.status_code == 400
    assert response.json()["error"] == "startDate must be before endDate"


def test_revenue_chart_period_is_restricted(client, admin) -> None:
    response = client.get(f"{BASE}/revenue-chart", headers=auth_headers(admin), params={"period": "hourly"})

    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"


# ---------------------------------------------------------------------------
# Platform metrics
# ---------------------------------------------------------------------------


def test_dashboard_aggregates_platform(client, db, admin, guest, host, listing) -> None:
    completed = make_booking(db, listing, guest, days_ahead=-10, status="COMPLETED", total_amount=1825, nights=3)
    make_booking(db, listing, guest, days_ahead=20, status="CANCELLED")
    make_booking(db, listing, guest, days_ahead=40, status="PENDING")
    payment = make_payment(db, completed, status="PROCESSING")
    approved = client.post(f"/api/super-admin/transactions/{payment.id}/approve", headers=auth_headers(admin))
    assert approved.status_code == 200

    response = client.get(f"{BASE}/dashboard", headers=auth_headers(admin))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["revenue"]["totalRevenue"] == 1825
    assert data["revenue"]["platformFee"] == 182.5
    assert data["revenue"]["averageBookingValue"] == 1825
    assert data["revenue"]["revenueGrowth"] == 0

    bookings = data["bookings"]
    assert bookings["totalBookings"] == 3
    assert bookings["completedBookings"] == 1
    assert bookings["cancelledBookings"] == 1
    assert bookings["pendingBookings"] == 1
    assert bookings["conversionRate"] == 33.33
    assert bookings["averageStayDuration"] == 3

    users = data["users"]
    assert users["totalUsers"] == 3
    assert users["hostCount"] == 1
    assert users["activeUsers"] == 1

    assert data["properties"]["activeListings"] == 1
    assert data["payments"]["successfulPayments"] == 1
    assert data["regional"][0]["emirate"] == "Dubai"
    assert "startDate" in data["dateRange"]


def test_payment_method_breakdown(client, db, admin, guest, listing) -> None:
    booking = make_booking(db, listing, guest)
    completed_payment(db, booking, method="STRIPE")
    make_payment(db, booking, method="CHECK", status="FAILED")
    make_payment(db, booking, method="CHECK", status="PENDING", refunded_amount=0)

    data = client.get(f"{BASE}/payments", headers=auth_headers(admin)).json()["data"]

    assert data["successfulPayments"] == 1
    assert data["failedPayments"] == 1
    assert data["pendingPayments"] == 1
    assert data["successRate"] == 33.33
    breakdown = {row["method"]: row for row in data["paymentMethodBreakdown"]}
    assert breakdown["CHECK"]["count"] == 2
    assert breakdown["CHECK"]["percentage"] == 66.67


def test_regional_metrics_group_by_emirate(client, db, admin, guest, host, listing) -> None:
    abu_dhabi = make_property(db, host, emirate="Abu Dhabi", city="Saadiyat")
    make_booking(db, abu_dhabi, guest, days_ahead=-10, status="COMPLETED", total_amount=4000)
    make_booking(db, listing, guest, days_ahead=-20, status="COMPLETED", total_amount=1000)

    regions = client.get(f"{BASE}/regional", headers=auth_headers(admin)).json()["data"]

    assert [r["emirate"] for r in regions] == ["Abu Dhabi", "Dubai"]
    assert regions[0]["revenue"] == 4000
    assert regions[0]["bookings"] == 1
    assert regions[0]["properties"] == 1


def test_top_properties_rank_by_revenue(client, db, admin, guest, host, listing) -> None:
    villa = make_property(db, host, title="Palm Villa", type="VILLA")
    make_booking(db, villa, guest, days_ahead=-10, status="COMPLETED", total_amount=9000)
    make_booking(db, listing, guest, days_ahead=-20, status="COMPLETED", total_amount=1500)
    make_booking(db, listing, guest, days_ahead=-30, status="COMPLETED", total_amount=1500)

    data = client.get(f"{BASE}/top-properties", headers=auth_headers(admin), params={"limit": 5}).json()["data"]

    assert [p["title"] for p in data] == ["Palm Villa", "Marina View Apartment"]
    assert data[1]["bookings"] == 2
    assert data[1]["revenue"] == 3000


def test_revenue_chart_buckets_days(client, db, admin, guest, listing) -> None:
    booking = make_booking(db, listing, guest)
    completed_payment(db, booking, paid_at=datetime(2030, 1, 2, 10, 0), amount=700)

    data = client.get(
        f"{BASE}/revenue-chart",
        headers=auth_headers(admin),
        params={"startDate": "2030-01-01", "endDate": "2030-01-03", "period": "daily"},
    ).json()["data"]

    assert [row["date"] for row in data] == ["2030-01-01", "2030-01-02", "2030-01-03"]
    assert data[1]["revenue"] == 700
    assert data[0]["revenue"] == 0


def test_revenue_chart_monthly(client, db, admin, guest, listing) -> None:
    booking = make_booking(db, listing, guest)
    completed_payment(db, booking, paid_at=datetime(2030, 2, 10), amount=300)
    completed_payment(db, booking, paid_at=datetime(2030, 2, 20), amount=200)

    data = client.get(
        f"{BASE}/revenue-chart",
        headers=auth_headers(admin),
        params={"startDate": "2030-01-15", "endDate": "2030-03-05", "period": "monthly"},
    ).json()["data"]

    assert data == [
        {"date": "2030-01", "revenue": 0, "bookings": 0},
        {"date": "2030-02", "revenue": 500, "bookings": 0},
        {"date": "2030-03", "revenue": 0, "bookings": 0},
    ]


# ---------------------------------------------------------------------------
# Event tracking
# ---------------------------------------------------------------------------


def test_track_event_requires_type(client) -> None:
    response = client.post(f"{BASE}/track", json={"data": {"page": "/"}})

    assert response.status_code == 400
    assert response.json()["error"] == "Event type is required"


def test_track_event_records_user_when_signed_in(client, db, guest) -> None:
    anonymous = client.post(f"{BASE}/track", json={"eventType": "PAGE_VIEW", "sessionId": "s-1"})
    signed_in = client.post(
        f"{BASE}/track", headers=auth_headers(guest), json={"eventType": "SEARCH", "data": {"query": "villa"}}
    )

    assert anonymous.json()["data"]["eventType"] == "PAGE_VIEW"
    assert signed_in.status_code == 200
    events = {e.event_type: e for e in db.query(AnalyticsEvent).all()}
    assert events["PAGE_VIEW"].user_id is None
    assert events["PAGE_VIEW"].session_id == "s-1"
    assert events["SEARCH"].user_id == guest.id
    assert events["SEARCH"].data == {"query": "villa"}


# ---------------------------------------------------------------------------
# Host dashboard
# ---------------------------------------------------------------------------


def test_host_dashboard(client, db, guest, host, listing) -> None:
    stay = make_booking(db, listing, guest, days_ahead=-10, nights=3, status="COMPLETED", total_amount=1000)
    make_booking(db, listing, guest, days_ahead=15, status="PENDING")
    db.add(
        Review(
            booking_id=stay.id,
            property_id=listing.id,
            guest_id=guest.id,
            host_id=host.id,
            overall_rating=4,
            comment="Great view from the balcony.",
            host_response="Thanks!",
        )
    )
    db.commit()

    data = client.get(f"{BASE}/host", headers=auth_headers(host)).json()["data"]

    overview = data["overview"]
    assert overview["totalProperties"] == 1
    assert overview["totalBookings"] == 2
    assert overview["totalEarnings"] == 1000
    assert overview["averageRating"] == 4
    assert overview["responseRate"] == 100
    assert overview["occupancyRate"] == 10

    assert data["bookings"]["pending"] == 1
    assert len(data["bookings"]["monthlyTrend"]) == 6
    assert sum(m["amount"] for m in data["revenue"]["monthlyChart"]) == 1000
    assert data["guests"]["totalGuests"] == 1
    assert data["guests"]["repeatGuests"] == 1
    assert data["guests"]["recentReviews"][0]["guestName"] == "Gina Guest"
    assert data["properties"]["topPerforming"][0]["revenue"] == 1000


def test_host_dashboard_without_properties(client, guest) -> None:
    data = client.get(f"{BASE}/host", headers=auth_headers(guest)).json()["data"]

    assert data["overview"]["totalProperties"] == 0
    assert data["overview"]["occupancyRate"] == 0
    assert data["properties"]["recentViews"] == []
