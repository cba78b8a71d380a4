"""
Test the Stripe checkout webhook
"""

import hashlib
import hmac
import json
import time

from app.core.config import settings
from app.models.course_enrollment import Enrollment
from app.models.user import User
from conftest import make_profile


def signed(payload, secret=None, timestamp=None):
    """Build a body and Stripe-Signature header the way Stripe signs webhooks."""
    body = json.dumps(payload)
    timestamp = timestamp or int(time.time())
    secret = secret or settings.stripe_webhook_secret
    digest = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{body}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return body, {"Stripe-Signature": f"t={timestamp},v1={digest}"}


def checkout_event(course_id, email, session_id="cs_test_123", **metadata):
    return {
        "id": "evt_test_1",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "payment_intent": "pi_test_1",
                "customer_email": email,
                "metadata": {"courseId": course_id, "format": "hardcopy", **metadata},
            }
        },
    }


def post(client, payload, **kwargs):
    body, headers = signed(payload, **kwargs)
    return client.post(
        "/webhook/stripe",
        content=body,
        headers={**headers, "Content-Type": "application/json"},
    )


def test_checkout_completed_enrolls_customer(client, db, learner, course):
    response = post(client, checkout_event(course.id, "A@example.com"))

    assert response.status_code == 200
    data = response.json()
    assert data["received"] is True
    assert data["is_new"] is True

    db.expire_all()
    enrollment = db.query(Enrollment).one()
    assert enrollment.user_id == learner.id
    assert enrollment.enrollment_type == "self"
    assert enrollment.status == "active"
    assert enrollment.enrollment_notes == "Paid for hardcopy format via Stripe (cs_test_123)"
    assert enrollment.payment_id == "pi_test_1"


def test_redelivery_is_acknowledged(client, db, learner, course):
    first = post(client, checkout_event(course.id, learner.email))
    second = post(client, checkout_event(course.id, learner.email))

    assert second.status_code == 200
    assert second.json()["is_new"] is False
    assert second.json()["enrollment_id"] == first.json()["enrollment_id"]
    assert db.query(Enrollment).count() == 1


def test_email_from_customer_details(client, db, learner, course):
    event = checkout_event(course.id, None)
    event["data"]["object"]["customer_details"] = {"email": learner.email}

    assert post(client, event).status_code == 200


def test_profile_only_customer_is_resolved(client, db, course):
    profile = make_profile(db, "legacy@example.com")
    db.add(User(id=profile.id, email=None))
    db.commit()

    response = post(client, checkout_event(course.id, "legacy@example.com"))
    assert response.status_code == 200


def test_invalid_signature(client, course, learner):
    response = post(client, checkout_event(course.id, learner.email), secret="whsec_wrong")

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid signature"


def test_stale_timestamp_is_rejected(client, course, learner):
    response = post(
        client,
        checkout_event(course.id, learner.email),
        timestamp=int(time.time()) - 3600,
    )
    assert response.status_code == 400


def test_missing_signature_header(client, course, learner):
    response = client.post("/webhook/stripe", content=json.dumps({"type": "x"}))
    assert response.status_code == 400


def test_missing_metadata(client, course, learner):
    event = checkout_event(course.id, learner.email)
    event["data"]["object"]["metadata"] = {}

    response = post(client, event)
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required metadata"


def test_unknown_customer(client, course):
    response = post(client, checkout_event(course.id, "stranger@example.com"))
    assert response.status_code == 404


def test_other_events_are_acknowledged(client):
    response = post(client, {"id": "evt_2", "type": "invoice.paid", "data": {"object": {}}})

    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_non_utf8_body_is_rejected(client):
    response = client.post(
        "/webhook/stripe",
        content=b"\xff\xfe\x00garbage",
        headers={"Stripe-Signature": "t=1,v1=deadbeef"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid payload"
