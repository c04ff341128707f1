import time

import pytest

from artmarket.core.errors import WebhookSignatureError
from artmarket.models import Artwork, Order
from artmarket.services.notifier import NotificationKind
from artmarket.services.payments import CHECKOUT_COMPLETED, CHECKOUT_EXPIRED, compute_signature


def deliver(client, body, header):
    return client.post(
        "/api/orders/webhook",
        content=body,
        headers={"Stripe-Signature": header, "Content-Type": "application/json"},
    )


@pytest.fixture
def pending(db, make_user, make_artwork, make_order):
    buyer = make_user(name="Buyer", email="buyer@example.com")
    artwork = make_artwork(make_user("artist"), title="Harbour", price="100.00")
    order = make_order(buyer, artwork, "cs_pending")
    return order, artwork


def reload(db, order, artwork):
    db.expire_all()
    return (
        db.query(Order).filter(Order.id == order.id).one(),
        db.query(Artwork).filter(Artwork.id == artwork.id).one(),
    )


def test_completed_event_marks_order_paid_and_artwork_sold(client, db, pending, notifier, signed_event):
    order, artwork = pending

    response = deliver(client, *signed_event(CHECKOUT_COMPLETED, "cs_pending"))

    assert response.status_code == 200
    assert response.json() == {"received": True, "outcome": "fulfilled"}
    order, artwork = reload(db, order, artwork)
    assert (order.status, order.payment_status) == ("processing", "succeeded")
    assert order.paid_at is not None
    assert artwork.status == "sold"
    confirmations = notifier.of_kind(NotificationKind.ORDER_CONFIRMATION)
    assert [entry[0] for entry in confirmations] == ["buyer@example.com"]


def test_redelivery_is_harmless(client, db, pending, notifier, signed_event):
    order, artwork = pending
    body, header = signed_event(CHECKOUT_COMPLETED, "cs_pending")

    deliver(client, body, header)
    response = deliver(client, body, header)

    assert response.json()["outcome"] == "already_processed"
    order, artwork = reload(db, order, artwork)
    assert order.payment_status == "succeeded"
    assert artwork.status == "sold"
    assert len(notifier.of_kind(NotificationKind.ORDER_CONFIRMATION)) == 1


@pytest.mark.parametrize("mangle", [
    lambda body, header: (body, header.replace("v1=", "v1=00")),
    lambda body, header: (body + b" ", header),
    lambda body, header: (body, header.replace("v1=", "v1=" + "0" * 64 + ",v0=")),
    lambda body, header: (body, "garbage"),
])
def test_bad_signature_is_rejected_without_state_change(client, db, pending, signed_event, mangle):
    order, artwork = pending
    body, header = mangle(*signed_event(CHECKOUT_COMPLETED, "cs_pending"))

    response = deliver(client, body, header)

    assert response.status_code == 400
    assert response.json()["status"] == "fail"
    order, artwork = reload(db, order, artwork)
    assert order.payment_status == "pending"
    assert artwork.status == "available"


def test_missing_signature_header(client, pending, signed_event):
    body, _ = signed_event(CHECKOUT_COMPLETED, "cs_pending")

    response = client.post("/api/orders/webhook", content=body)

    assert response.status_code == 400


def test_stale_timestamp_is_rejected(client, pending, signed_event):
    response = deliver(client, *signed_event(CHECKOUT_COMPLETED, "cs_pending", timestamp=int(time.time()) - 3600))

    assert response.status_code == 400


def test_expired_event_cancels_pending_order(client, db, pending, signed_event):
    order, artwork = pending

    response = deliver(client, *signed_event(CHECKOUT_EXPIRED, "cs_pending", payment_status="unpaid"))

    assert response.json()["outcome"] == "expired"
    order, artwork = reload(db, order, artwork)
    assert (order.status, order.payment_status) == ("cancelled", "failed")
    assert artwork.status == "available"


def test_expired_after_payment_does_not_cancel(client, db, pending, signed_event):
    order, artwork = pending
    deliver(client, *signed_event(CHECKOUT_COMPLETED, "cs_pending"))

    response = deliver(client, *signed_event(CHECKOUT_EXPIRED, "cs_pending"))

    assert response.json()["outcome"] == "already_processed"
    order, _ = reload(db, order, artwork)
    assert order.payment_status == "succeeded"


def test_unpaid_completion_waits(client, db, pending, signed_event):
    order, artwork = pending

    response = deliver(client, *signed_event(CHECKOUT_COMPLETED, "cs_pending", payment_status="unpaid"))

    assert response.json()["outcome"] == "ignored"
    order, _ = reload(db, order, artwork)
    assert order.payment_status == "pending"


def test_unknown_session_and_other_events_are_acknowledged(client, pending, signed_event):
    unknown = deliver(client, *signed_event(CHECKOUT_COMPLETED, "cs_missing"))
    other = deliver(client, *signed_event("payment_intent.created", "cs_pending"))

    assert unknown.status_code == 200
    assert unknown.json()["outcome"] == "order_not_found"
    assert other.json()["outcome"] == "ignored"


def test_verification_rejects_non_event_payload(provider, signed_event):
    body = b"[1, 2, 3]"
    _, header = signed_event(CHECKOUT_COMPLETED, "x")
    timestamp = int(header.split(",")[0][2:])
    header = f"t={timestamp},v1={compute_signature(provider.webhook_secret, timestamp, body)}"

    with pytest.raises(WebhookSignatureError):
        provider.verify_and_parse_event(body, header)


def test_verification_accepts_any_matching_v1(provider, signed_event):
    body, header = signed_event(CHECKOUT_COMPLETED, "cs_1")
    timestamp, signature = header.split(",")

    event = provider.verify_and_parse_event(body, f"{timestamp},v1=deadbeef,{signature}")

    assert event["data"]["object"]["id"] == "cs_1"
