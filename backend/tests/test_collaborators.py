from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from artmarket.core.errors import ExternalServiceError
from artmarket.services.notifier import NotificationKind, SmtpNotifier
from artmarket.services.payments import StripePaymentProvider, encode_params, to_minor_units


def test_to_minor_units_rounds_half_up():
    assert to_minor_units(Decimal("100.00")) == 10000
    assert to_minor_units("19.995") == 2000
    assert to_minor_units(0) == 0


def test_encode_params_uses_bracket_notation():
    pairs = encode_params({
        "mode": "payment",
        "skip": None,
        "line_items": [{"quantity": 1, "price_data": {"unit_amount": 500}}],
        "payment_method_types": ["card"],
    })

    assert pairs == [
        ("mode", "payment"),
        ("line_items[0][quantity]", "1"),
        ("line_items[0][price_data][unit_amount]", "500"),
        ("payment_method_types[0]", "card"),
    ]


def make_provider():
    return StripePaymentProvider("sk_test", "whsec", "https://stripe.test/v1", "usd", timeout=2.5)


def test_provider_maps_timeouts_and_api_errors():
    provider = make_provider()

    with patch("artmarket.services.payments.requests.request", side_effect=requests.Timeout()):
        with pytest.raises(ExternalServiceError):
            provider.retrieve_session("cs_1")

    error_response = MagicMock(status_code=402, reason="Payment Required")
    error_response.json.return_value = {"error": {"message": "Card declined"}}
    with patch("artmarket.services.payments.requests.request", return_value=error_response):
        with pytest.raises(ExternalServiceError) as exc_info:
            provider.retrieve_session("cs_1")
    assert "Card declined" in exc_info.value.message


def test_provider_sends_bounded_authenticated_request():
    provider = make_provider()
    ok = MagicMock(status_code=200)
    ok.json.return_value = {"id": "cs_9", "payment_status": "paid", "status": "complete"}

    with patch("artmarket.services.payments.requests.request", return_value=ok) as request:
        session = provider.retrieve_session("cs_9")

    assert session.is_paid
    args, kwargs = request.call_args
    assert args == ("GET", "https://stripe.test/v1/checkout/sessions/cs_9")
    assert kwargs["timeout"] == 2.5
    assert kwargs["auth"] == ("sk_test", "")


def test_notifier_renders_templates():
    subject, body = SmtpNotifier.render(NotificationKind.ORDER_CONFIRMATION, {
        "order_id": 7,
        "name": "Ada",
        "items": [{"title": "Harbour", "price": Decimal("100.00")}],
        "total_amount": Decimal("100.00"),
        "currency": "usd",
    })

    assert subject == "Order #7 confirmed"
    assert "- Harbour: 100.00 USD" in body
    assert "Total: 100.00 USD" in body


def test_notifier_without_host_reports_failure():
    notifier = SmtpNotifier("", 587, "", "", True, "Gallery", "noreply@example.com")

    assert notifier.send("ada@example.com", NotificationKind.WELCOME, {"name": "Ada"}) is False


def test_notifier_reports_smtp_errors():
    notifier = SmtpNotifier("smtp.test", 587, "user", "pw", True, "Gallery", "noreply@example.com")

    with patch("artmarket.services.notifier.smtplib.SMTP", side_effect=OSError("refused")):
        assert notifier.send("ada@example.com", NotificationKind.WELCOME, {"name": "Ada"}) is False
