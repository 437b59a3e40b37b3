from decimal import Decimal

from coursestore.constants.order_status import OrderStatus
from coursestore.models.enrollment import Enrollment
from coursestore.models.order import Order
from coursestore.notifications import dispatcher


def test_health(client):
    response = client.get("/health/check")

    assert response.status_code == 200
    assert response.json()["database"] == "ok"


def test_checkout_requires_login(client):
    response = client.post("/checkout/session", json={})

    assert response.status_code == 401


def test_empty_cart_checkout(client, users, auth_headers):
    response = client.post("/checkout/session", json={}, headers=auth_headers(users["student"]))

    assert response.status_code == 400
    assert response.json()["detail"] == "Cart is empty"


def test_full_purchase_through_the_api(client, users, courses, add_to_cart, auth_headers, db_rows):
    student = users["student"]
    headers = auth_headers(student)
    add_to_cart(student, courses["python"])

    created = client.post("/checkout/session", json={}, headers=headers)
    assert created.status_code == 200
    session_id = created.json()["session_id"]
    assert created.json()["total_amount"] == "50.00"

    status = client.get(f"/checkout/status/{session_id}", headers=headers)
    assert status.json()["order_status"] == OrderStatus.awaiting_payment.value

    paid = client.post(f"/dev/simulated/{session_id}/complete", headers=headers)
    assert paid.status_code == 200
    assert paid.json()["outcome"] == "applied"

    status = client.get(f"/checkout/status/{session_id}", headers=headers)
    assert status.json()["order_status"] == OrderStatus.paid.value
    assert status.json()["payment_status"] == "completed"

    enrollments = client.get("/enrollments/", headers=headers).json()
    assert [e["course_id"] for e in enrollments] == [courses["python"].id]

    orders = client.get("/orders/", headers=headers).json()
    assert orders[0]["status"] == OrderStatus.paid.value
    assert orders[0]["items"][0]["course_title"] == "Python Basics"


def test_direct_course_checkout(client, users, courses, auth_headers):
    response = client.post(
        "/checkout/session",
        json={"course_id": courses["sql"].id},
        headers=auth_headers(users["student"]),
    )

    assert response.status_code == 200
    assert response.json()["total_amount"] == "30.00"


def test_checkout_of_owned_course_conflicts(client, services, users, courses, auth_headers):
    services.enrollments.grant_manual(users["student"].id, courses["sql"].id)

    response = client.post(
        "/checkout/session",
        json={"course_id": courses["sql"].id},
        headers=auth_headers(users["student"]),
    )

    assert response.status_code == 409


def test_provider_outage_returns_502(client, provider, users, courses, auth_headers, db_rows):
    provider.fail_next_create()

    response = client.post(
        "/checkout/session",
        json={"course_id": courses["sql"].id},
        headers=auth_headers(users["student"]),
    )

    assert response.status_code == 502
    order_id = response.json()["order_id"]
    assert db_rows(Order, id=order_id)[0].status == OrderStatus.failed.value


def test_webhook_endpoint(client, services, provider, users, courses, db_rows):
    snapshot = services.snapshots.snapshot_courses(users["student"].id, [courses["python"].id])
    checkout = services.sessions.create_session(snapshot, "http://ok", "http://no")
    body, signature = provider.build_webhook(provider.complete(checkout.session_id))

    rejected = client.post(
        "/webhooks/payments", content=body, headers={"X-Signature": "f" * 64}
    )
    assert rejected.status_code == 400
    assert db_rows(Enrollment) == []

    accepted = client.post(
        "/webhooks/payments", content=body, headers={"X-Signature": signature}
    )
    assert accepted.status_code == 200
    assert accepted.json()["outcome"] == "applied"

    replayed = client.post(
        "/webhooks/payments", content=body, headers={"X-Signature": signature}
    )
    assert replayed.json()["outcome"] == "noop"
    assert len(db_rows(Enrollment)) == 1


def test_malformed_webhook_payload(client, provider):
    body = b"not json"

    response = client.post(
        "/webhooks/payments", content=body, headers={"X-Signature": provider.sign(body)}
    )

    assert response.status_code == 400


def test_force_reconcile(client, services, provider, users, courses, auth_headers):
    student = users["student"]
    snapshot = services.snapshots.snapshot_courses(student.id, [courses["python"].id])
    checkout = services.sessions.create_session(snapshot, "http://ok", "http://no")

    pending = client.post(
        "/checkout/force-reconcile",
        json={"session_id": checkout.session_id},
        headers=auth_headers(student),
    )
    assert pending.status_code == 400

    stranger = client.post(
        "/checkout/force-reconcile",
        json={"session_id": checkout.session_id},
        headers=auth_headers(users["other"]),
    )
    assert stranger.status_code == 404

    provider.complete(checkout.session_id)
    confirmed = client.post(
        "/checkout/force-reconcile",
        json={"session_id": checkout.session_id},
        headers=auth_headers(users["admin"]),
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["order_status"] == OrderStatus.paid.value


def test_order_poll_is_owner_only(client, services, provider, users, courses, auth_headers):
    snapshot = services.snapshots.snapshot_courses(users["student"].id, [courses["python"].id])
    checkout = services.sessions.create_session(snapshot, "http://ok", "http://no")
    provider.complete(checkout.session_id)

    stranger = client.post(
        f"/checkout/orders/{checkout.order_id}/poll", headers=auth_headers(users["other"])
    )
    assert stranger.status_code == 404

    owner = client.post(
        f"/checkout/orders/{checkout.order_id}/poll", headers=auth_headers(users["student"])
    )
    assert owner.json()["status"] == OrderStatus.paid.value


def test_progress_endpoints(client, services, users, courses, auth_headers):
    headers = auth_headers(users["student"])
    course_id = courses["python"].id
    services.enrollments.grant_manual(users["student"].id, course_id)

    updated = client.put(
        f"/enrollments/{course_id}/progress", json={"progress_percentage": 100}, headers=headers
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "completed"

    invalid = client.put(
        f"/enrollments/{course_id}/progress", json={"progress_percentage": 120}, headers=headers
    )
    assert invalid.status_code == 400

    missing = client.get(f"/enrollments/{courses['sql'].id}/progress", headers=headers)
    assert missing.status_code == 404


def test_admin_routes_require_admin(client, users, courses, auth_headers):
    payload = {"user_id": users["other"].id, "course_id": courses["sql"].id}

    denied = client.post("/admin/enrollments", json=payload, headers=auth_headers(users["student"]))
    assert denied.status_code == 403

    granted = client.post("/admin/enrollments", json=payload, headers=auth_headers(users["admin"]))
    assert granted.status_code == 200
    assert granted.json()["action"] == "created"

    expired = client.post("/admin/orders/expire", headers=auth_headers(users["admin"]))
    assert expired.json() == {"cancelled": 0, "resolved": 0, "skipped": 0}


def test_status_and_poll_report_order_after_amount_mismatch(
    client, services, provider, users, courses, auth_headers
):
    headers = auth_headers(users["student"])
    snapshot = services.snapshots.snapshot_courses(users["student"].id, [courses["python"].id])
    checkout = services.sessions.create_session(snapshot, "http://ok", "http://no")
    provider.complete(checkout.session_id, amount=Decimal("40.00"))

    status = client.get(f"/checkout/status/{checkout.session_id}", headers=headers)
    assert status.status_code == 200
    assert status.json()["order_status"] == OrderStatus.awaiting_payment.value

    polled = client.post(f"/checkout/orders/{checkout.order_id}/poll", headers=headers)
    assert polled.status_code == 200
    assert polled.json()["status"] == OrderStatus.awaiting_payment.value


def test_webhook_sends_payment_email_in_background(
    client, services, provider, users, courses, monkeypatch
):
    sent = []
    monkeypatch.setattr(
        dispatcher, "send_user_email", lambda **kwargs: sent.append(kwargs["user"].email)
    )
    snapshot = services.snapshots.snapshot_courses(users["student"].id, [courses["python"].id])
    checkout = services.sessions.create_session(snapshot, "http://ok", "http://no")
    body, signature = provider.build_webhook(provider.complete(checkout.session_id))

    response = client.post("/webhooks/payments", content=body, headers={"X-Signature": signature})

    assert response.json()["outcome"] == "applied"
    assert sent == ["asha@example.com"]


def test_mock_payment_page_is_buyer_only(
    client, services, provider, users, courses, auth_headers, db_rows
):
    snapshot = services.snapshots.snapshot_courses(users["student"].id, [courses["python"].id])
    checkout = services.sessions.create_session(snapshot, "http://ok", "http://no")

    stranger = client.post(
        f"/dev/simulated/{checkout.session_id}/complete",
        headers=auth_headers(users["other"]),
    )

    assert stranger.status_code == 404
    assert provider.fetch_session_status(checkout.session_id).status.value == "pending"
    assert db_rows(Order, id=checkout.order_id)[0].status == OrderStatus.awaiting_payment.value

    admin = client.post(
        f"/dev/simulated/{checkout.session_id}/cancel",
        headers=auth_headers(users["admin"]),
    )
    assert admin.json()["order_status"] == OrderStatus.cancelled.value
