from __future__ import annotations

from datetime import date, datetime, timedelta

from marketplace.models import AdminAction, Booking, Notification, Payment, Payout, Property, User
from marketplace.models_viewing import Viewing
from support import auth_headers, make_booking, make_payment, make_property, make_user

BASE = "/api/super-admin"


def audit_types(db) -> list[str]:
    return sorted(a.action_type for a in db.query(AdminAction).all())


# ---------------------------------------------------------------------------
# Overview
# ---------------------------------------------------------------------------


def test_super_admin_requires_admin(client, host) -> None:
    response = client.get(f"{BASE}/stats", headers=auth_headers(host))

    assert response.status_code == 403
    assert response.json()["error"] == "Admin access required"


def test_platform_stats(client, db, admin, guest, host, agent, listing) -> None:
    make_property(db, host, title="Awaiting Review", verification_status="PENDING")
    make_booking(db, listing, guest, status="CONFIRMED", total_amount=1600)
    make_booking(db, listing, guest, days_ahead=30, status="PENDING")

    data = client.get(f"{BASE}/stats", headers=auth_headers(admin), params={"dateRange": "30d"}).json()["data"]

    assert data["users"]["total"] == 4
    assert data["users"]["guests"] == 1
    assert data["users"]["hosts"] == 1
    assert data["users"]["agents"] == 2
    assert data["properties"]["active"] == 1
    assert data["properties"]["pending"] == 1
    assert data["bookings"]["confirmed"] == 1
    assert data["bookings"]["pending"] == 1
    assert data["bookings"]["revenue"] == 1600


def test_recent_activity_feed(client, db, admin, guest, listing) -> None:
    make_booking(db, listing, guest, total_amount=8000)

    data = client.get(f"{BASE}/activity", headers=auth_headers(admin)).json()["data"]

    by_type = {a["type"]: a for a in data}
    assert by_type["booking_created"]["severity"] == "medium"
    assert by_type["booking_created"]["description"] == "New booking by Gina Guest"
    assert by_type["property_listed"]["description"] == "New property listed: Marina View Apartment"
    assert "user_registered" in by_type


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def test_approve_pending_transaction(client, db, admin, guest, listing) -> None:
    payment = make_payment(db, make_booking(db, listing, guest))

    response = client.post(
        f"{BASE}/transactions/{payment.id}/approve", headers=auth_headers(admin), json={"reason": "Cheque cleared"}
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "COMPLETED"
    assert data["reviewedBy"] == admin.id
    assert data["reviewNote"] == "Cheque cleared"
    assert data["paidAt"] is not None
    assert data["platformFee"] == 160
    assert audit_types(db) == ["transaction_approval"]

    again = client.post(f"{BASE}/transactions/{payment.id}/approve", headers=auth_headers(admin))
    assert again.status_code == 400
    assert again.json()["error"] == "Cannot approve a completed transaction"


def test_reject_transaction(client, db, admin, guest, listing) -> None:
    payment = make_payment(db, make_booking(db, listing, guest), status="PROCESSING")

    response = client.post(f"{BASE}/transactions/{payment.id}/reject", headers=auth_headers(admin))

    assert response.json()["data"]["status"] == "FAILED"
    note = db.query(Notification).filter(Notification.user_id == guest.id).one()
    assert note.title == "Payment Failed"
    assert note.data["paymentId"] == payment.id
    assert client.post(f"{BASE}/transactions/missing/reject", headers=auth_headers(admin)).status_code == 404


def test_partial_then_full_refund(client, db, admin, guest, listing) -> None:
    payment = make_payment(
        db, make_booking(db, listing, guest), amount=1000.0, status="COMPLETED", paid_at=datetime.utcnow()
    )
    url = f"{BASE}/transactions/{payment.id}/refund"

    partial = client.post(url, headers=auth_headers(admin), json={"amount": 400, "reason": "Late check-in"})
    assert partial.status_code == 200
    body = partial.json()["data"]
    assert body["original"]["refundedAmount"] == 400
    assert body["original"]["status"] == "COMPLETED"
    assert body["refund"]["type"] == "REFUND"
    assert body["refund"]["relatedPaymentId"] == payment.id

    too_much = client.post(url, headers=auth_headers(admin), json={"amount": 700})
    assert too_much.status_code == 400
    assert too_much.json()["error"] == "Refund amount must be between 0 and 600.0"

    remainder = client.post(url, headers=auth_headers(admin))
    assert remainder.json()["data"]["refund"]["amount"] == 600
    assert remainder.json()["data"]["original"]["status"] == "REFUNDED"
    assert db.query(Payment).filter(Payment.type == "REFUND").count() == 2


def test_refund_requires_completed_payment(client, db, admin, guest, listing) -> None:
    payment = make_payment(db, make_booking(db, listing, guest))

    response = client.post(f"{BASE}/transactions/{payment.id}/refund", headers=auth_headers(admin))

    assert response.status_code == 400
    assert response.json()["error"] == "Only completed payments can be refunded"


def test_financial_overview(client, db, admin, guest, listing) -> None:
    booking = make_booking(db, listing, guest)
    settled = make_payment(db, booking, amount=1000.0, status="PROCESSING")
    assert client.post(f"{BASE}/transactions/{settled.id}/approve", headers=auth_headers(admin)).status_code == 200
    make_payment(db, booking, amount=200.0, method="CHECK")
    db.add(Payout(host_id=listing.host_id, amount=300, status="PENDING"))
    db.commit()

    data = client.get(f"{BASE}/financial", headers=auth_headers(admin)).json()["data"]

    stats = data["stats"]
    assert stats["totalRevenue"] == 1000
    assert stats["platformFees"] == 100
    assert stats["pendingPayouts"] == 300
    assert stats["transactionCount"] == 2
    assert stats["topPaymentMethods"] == [{"method": "STRIPE", "count": 1, "amount": 1000}]
    assert data["pagination"]["total"] == 2
    assert data["transactions"][0]["user"]["email"] == guest.email

    checks = client.get(f"{BASE}/financial", headers=auth_headers(admin), params={"search": "gina"}).json()["data"]
    assert checks["pagination"]["total"] == 2


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------


def test_generate_payouts_once_per_completed_booking(client, db, admin, guest, listing) -> None:
    make_booking(db, listing, guest, days_ahead=-10, status="COMPLETED", total_amount=1000)
    make_booking(db, listing, guest, days_ahead=20, status="CONFIRMED")

    first = client.post(f"{BASE}/payouts/generate", headers=auth_headers(admin)).json()
    assert first["data"]["generated"] == 1
    assert first["data"]["payouts"][0]["amount"] == 900
    assert first["data"]["payouts"][0]["expectedDate"] is not None

    second = client.post(f"{BASE}/payouts/generate", headers=auth_headers(admin)).json()
    assert second["message"] == "0 payouts generated"


def test_payout_transitions(client, db, admin, host) -> None:
    payout = Payout(host_id=host.id, amount=450, status="PENDING")
    db.add(payout)
    db.commit()
    url = f"{BASE}/payouts/{payout.id}"

    processed = client.post(f"{url}/process", headers=auth_headers(admin), json={"notes": "Wire 778"})
    assert processed.json()["data"]["status"] == "COMPLETED"
    assert processed.json()["data"]["processedBy"] == admin.id
    assert processed.json()["data"]["notes"] == "Wire 778"

    stuck = client.post(f"{url}/cancel", headers=auth_headers(admin))
    assert stuck.status_code == 400
    assert stuck.json()["error"] == "Cannot move a completed payout to cancelled"


def test_cancel_and_retry_payout(client, db, admin, host) -> None:
    payout = Payout(host_id=host.id, amount=450, status="PENDING")
    db.add(payout)
    db.commit()
    url = f"{BASE}/payouts/{payout.id}"

    cancelled = client.post(f"{url}/cancel", headers=auth_headers(admin), json={"reason": "Wrong IBAN"})
    assert cancelled.json()["data"]["status"] == "CANCELLED"

    retried = client.post(f"{url}/retry", headers=auth_headers(admin))
    assert retried.json()["data"]["status"] == "PENDING"
    assert retried.json()["message"] == "Payout queued for retry"
    assert audit_types(db) == ["payout_cancelled", "payout_retried"]

    assert client.post(f"{BASE}/payouts/missing/retry", headers=auth_headers(admin)).status_code == 404


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------


def test_alerts_cover_operational_issues(client, db, admin, guest, host, listing) -> None:
    booking = make_booking(db, listing, guest, status="DISPUTED")
    make_payment(db, booking, due_date=datetime.utcnow() - timedelta(days=2))
    make_property(db, host, verification_status="PENDING", created_at=datetime.utcnow() - timedelta(days=3))
    db.add(Payout(host_id=host.id, amount=120, status="FAILED"))
    db.commit()

    alerts = client.get(f"{BASE}/alerts", headers=auth_headers(admin)).json()["data"]

    by_id = {a["id"]: a for a in alerts}
    assert set(by_id) == {"overdue-payments", "stale-property-reviews", "disputed-bookings", "failed-payouts"}
    assert by_id["disputed-bookings"]["targetIds"] == [booking.id]
    assert by_id["failed-payouts"]["amount"] == 120
    assert all(a["resolved"] is False for a in alerts)


def test_no_alerts_on_quiet_platform(client, admin, listing) -> None:
    assert client.get(f"{BASE}/alerts", headers=auth_headers(admin)).json()["data"] == []


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def test_list_users_with_role_filter(client, admin, guest, host, agent) -> None:
    data = client.get(f"{BASE}/users", headers=auth_headers(admin), params={"role": "host"}).json()["data"]

    assert [u["id"] for u in data["users"]] == [host.id]
    assert data["stats"]["total"] == 4
    assert data["stats"]["agents"] == 2
    assert data["stats"]["guests"] == 1


def test_create_user(client, db, admin) -> None:
    response = client.post(
        f"{BASE}/users",
        headers=auth_headers(admin),
        json={
            "email": "New.Host@Example.com",
            "password": "Password123!",
            "first_name": " Nadia ",
            "last_name": "Host",
            "is_host": True,
            "verification_level": "Verified",
        },
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["email"] == "new.host@example.com"
    assert data["firstName"] == "Nadia"
    assert data["verificationLevel"] == "verified"
    assert data["createdByAdmin"] is True
    assert audit_types(db) == ["user_creation"]

    duplicate = client.post(
        f"{BASE}/users",
        headers=auth_headers(admin),
        json={"email": "new.host@example.com", "password": "x", "first_name": "A", "last_name": "B"},
    )
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "User with this email already exists"


def test_create_user_requires_fields(client, admin) -> None:
    response = client.post(f"{BASE}/users", headers=auth_headers(admin), json={"email": "a@example.com"})

    assert response.status_code == 400
    assert response.json()["error"] == "Email, password, first name, and last name are required"


def test_get_and_update_user(client, db, admin, host, listing) -> None:
    detail = client.get(f"{BASE}/users/{host.id}", headers=auth_headers(admin)).json()["data"]
    assert detail["counts"]["properties"] == 1

    updated = client.put(
        f"{BASE}/users/{host.id}", headers=auth_headers(admin), json={"first_name": "Hamid", "status": "suspended"}
    )
    assert updated.json()["data"]["firstName"] == "Hamid"
    assert updated.json()["data"]["isSuspended"] is True

    assert client.get(f"{BASE}/users/missing", headers=auth_headers(admin)).status_code == 404


def test_suspend_blocks_login_until_unsuspended(client, db, admin, guest) -> None:
    suspended = client.post(
        f"{BASE}/users/{guest.id}/suspend", headers=auth_headers(admin), json={"reason": "Chargebacks", "duration": 7}
    )
    assert suspended.json()["data"]["suspensionReason"] == "Chargebacks"
    assert suspended.json()["data"]["suspensionUntil"] is not None

    blocked = client.get("/api/auth/me", headers=auth_headers(guest))
    assert blocked.status_code == 401
    assert blocked.json()["error"] == "Account suspended"

    client.post(f"{BASE}/users/{guest.id}/unsuspend", headers=auth_headers(admin))
    assert client.get("/api/auth/me", headers=auth_headers(guest)).status_code == 200


def test_admin_cannot_suspend_or_delete_self(client, admin) -> None:
    suspend = client.post(f"{BASE}/users/{admin.id}/suspend", headers=auth_headers(admin))
    assert suspend.status_code == 400
    assert suspend.json()["error"] == "You cannot suspend your own account"

    delete = client.delete(f"{BASE}/users/{admin.id}", headers=auth_headers(admin))
    assert delete.json()["error"] == "You cannot delete your own account"


def test_delete_user_is_soft(client, db, admin, guest) -> None:
    response = client.request(
        "DELETE", f"{BASE}/users/{guest.id}", headers=auth_headers(admin), json={"reason": "Requested closure"}
    )

    assert response.status_code == 200
    db.expire_all()
    user = db.get(User, guest.id)
    assert user.status == "deleted"
    assert user.is_active is False
    assert user.deletion_reason == "Requested closure"


def test_verify_user_notifies(client, db, admin, guest) -> None:
    response = client.post(f"{BASE}/users/{guest.id}/verify", headers=auth_headers(admin))

    data = response.json()["data"]
    assert data["verificationLevel"] == "verified"
    assert data["kycStatus"] == "approved"
    note = db.query(Notification).filter(Notification.user_id == guest.id).one()
    assert note.type == "KYC"


def test_reject_user_verification(client, db, admin, guest) -> None:
    response = client.post(
        f"{BASE}/users/{guest.id}/verify",
        headers=auth_headers(admin),
        json={"approved": False, "reason": "Passport photo is blurry"},
    )

    assert response.json()["data"]["kycStatus"] == "rejected"
    assert audit_types(db) == ["user_verification_rejection"]
    note = db.query(Notification).filter(Notification.user_id == guest.id).one()
    assert note.title == "Identity Verification Requires Updates"
    assert "blurry" in note.message


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


def property_payload(host, **overrides) -> dict:
    payload = {
        "title": "Creek Harbour Flat",
        "description": "One bedroom with creek views",
        "property_type": "apartment",
        "listing_type": "LONG_TERM",
        "price_per_month": 9000,
        "city": "Dubai Creek Harbour",
        "emirate": "Dubai",
        "host_id": host.id,
    }
    payload.update(overrides)
    return payload


def test_admin_creates_property_for_host(client, db, admin, host) -> None:
    response = client.post(f"{BASE}/properties", headers=auth_headers(admin), json=property_payload(host))

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["type"] == "APARTMENT"
    assert data["pricing"]["monthlyRate"] == 9000
    assert data["pricing"]["yearlyRate"] == 108000
    assert data["verificationStatus"] == "PENDING"
    assert data["owner"]["id"] == host.id


def test_admin_property_validation(client, admin, guest, host) -> None:
    missing = client.post(f"{BASE}/properties", headers=auth_headers(admin), json={"title": "Only title"})
    assert missing.status_code == 400

    not_host = client.post(f"{BASE}/properties", headers=auth_headers(admin), json=property_payload(guest))
    assert not_host.json()["error"] == "User is not registered as a host"

    no_price = client.post(
        f"{BASE}/properties",
        headers=auth_headers(admin),
        json=property_payload(host, listing_type="SHORT_TERM", price_per_month=None),
    )
    assert no_price.json()["error"] == "Price per night is required for short-term listings"


def test_property_status_notifies_host(client, db, admin, host) -> None:
    prop = make_property(db, host, verification_status="PENDING")

    response = client.put(f"{BASE}/properties/{prop.id}/status", headers=auth_headers(admin), json={"status": "VERIFIED"})

    assert response.json()["data"]["status"] == "ACTIVE"
    note = db.query(Notification).filter(Notification.user_id == host.id).one()
    assert note.title == "Property Approved"


def test_list_properties_with_stats(client, db, admin, host, listing) -> None:
    make_property(db, host, title="Desert Villa", type="VILLA", rental_type="LONG_TERM", verification_status="PENDING")

    data = client.get(f"{BASE}/properties", headers=auth_headers(admin), params={"type": "villa"}).json()["data"]

    assert [p["title"] for p in data["properties"]] == ["Desert Villa"]
    assert data["properties"][0]["owner"]["id"] == host.id
    assert data["stats"]["total"] == 2
    assert data["stats"]["longTerm"] == 1
    assert data["stats"]["villas"] == 1


def test_delete_property_requires_no_active_bookings(client, db, admin, guest, listing) -> None:
    booking = make_booking(db, listing, guest, status="CONFIRMED")

    blocked = client.delete(f"{BASE}/properties/{listing.id}", headers=auth_headers(admin))
    assert blocked.status_code == 400

    booking.status = "COMPLETED"
    db.commit()
    response = client.delete(f"{BASE}/properties/{listing.id}", headers=auth_headers(admin))
    assert response.status_code == 200
    db.expire_all()
    prop = db.get(Property, listing.id)
    assert prop.verification_status == "DELETED"
    assert prop.is_active is False


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------


def test_admin_cancels_booking(client, db, admin, guest, listing, emitted) -> None:
    booking = make_booking(db, listing, guest, status="CONFIRMED")

    response = client.put(
        f"{BASE}/bookings/{booking.id}/status", headers=auth_headers(admin), json={"status": "CANCELLED"}
    )

    assert response.status_code == 200
    db.expire_all()
    stored = db.get(Booking, booking.id)
    assert stored.cancellation_reason == "Cancelled by admin"
    assert stored.cancelled_by == admin.id
    assert ("booking_status_update", f"user_{guest.id}") in [(e, room) for e, _, room in emitted]


def test_booking_status_must_be_known(client, db, admin, guest, listing) -> None:
    booking = make_booking(db, listing, guest)

    response = client.put(f"{BASE}/bookings/{booking.id}/status", headers=auth_headers(admin), json={"status": "LOST"})

    assert response.status_code == 400


def test_dispute_and_emergency_queues(client, db, admin, guest, listing) -> None:
    disputed = make_booking(db, listing, guest, status="CONFIRMED")
    urgent = make_booking(db, listing, guest, days_ahead=30, status="CONFIRMED")

    client.post(f"{BASE}/bookings/{disputed.id}/dispute", headers=auth_headers(admin), json={"reason": "Damage claim"})
    emergency = client.post(
        f"{BASE}/bookings/{urgent.id}/emergency",
        headers=auth_headers(admin),
        json={"type": "water_leak", "description": "Leak in the kitchen"},
    )
    assert emergency.json()["data"]["emergencyNotes"][0]["priority"] == "high"

    disputes = client.get(f"{BASE}/bookings/disputes/active", headers=auth_headers(admin)).json()["data"]
    assert [b["id"] for b in disputes] == [disputed.id]
    assert disputes[0]["disputeReason"] == "Damage claim"

    emergencies = client.get(f"{BASE}/bookings/emergencies/active", headers=auth_headers(admin)).json()["data"]
    assert [b["id"] for b in emergencies] == [urgent.id]


def test_booking_detail_includes_payments(client, db, admin, guest, listing) -> None:
    booking = make_booking(db, listing, guest)
    make_payment(db, booking)

    data = client.get(f"{BASE}/bookings/{booking.id}", headers=auth_headers(admin)).json()["data"]

    assert len(data["payments"]) == 1
    assert data["review"] is None
    assert data["host"]["id"] == listing.host_id


def test_list_bookings_search(client, db, admin, guest, listing) -> None:
    make_booking(db, listing, guest)
    other_guest = make_user(db, "zed@example.com", first_name="Zed")
    make_booking(db, listing, other_guest, days_ahead=30)

    data = client.get(f"{BASE}/bookings", headers=auth_headers(admin), params={"search": "zed"}).json()["data"]

    assert data["pagination"]["total"] == 1
    assert data["stats"]["total"] == 2
    assert data["stats"]["pending"] == 2
    assert data["stats"]["shortTerm"] == 2


# ---------------------------------------------------------------------------
# Viewings
# ---------------------------------------------------------------------------


def test_admin_viewing_management(client, db, admin, agent, guest) -> None:
    prop = make_property(db, agent, rental_type="LONG_TERM")
    viewing = Viewing(
        property_id=prop.id, agent_id=agent.id, client_id=guest.id, scheduled_date=date(2030, 3, 1), scheduled_time="10:00"
    )
    db.add(viewing)
    db.commit()

    listed = client.get(f"{BASE}/viewings", headers=auth_headers(admin), params={"agentId": agent.id}).json()["data"]
    assert listed["stats"] == {"total": 1, "scheduled": 1, "completed": 0, "cancelled": 0, "noShow": 0}

    updated = client.put(f"{BASE}/viewings/{viewing.id}/status", headers=auth_headers(admin), json={"status": "no_show"})
    assert updated.json()["data"]["status"] == "no_show"

    invalid = client.put(f"{BASE}/viewings/{viewing.id}/status", headers=auth_headers(admin), json={"status": "gone"})
    assert invalid.status_code == 400
