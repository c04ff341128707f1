"""
Stripe client for hosted checkout sessions and webhook verification.

Talks to the Stripe REST API directly with `requests`; every call is bounded
by PAYMENT_TIMEOUT_SECONDS and any transport or API failure surfaces as
ExternalServiceError. Webhook payloads are verified with Stripe's scheme:
the `Stripe-Signature` header carries `t=<unix ts>` and one or more
`v1=<hex hmac-sha256>` values computed over "<t>." + raw request body.
"""

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

import requests

from artmarket.core.config import settings
from artmarket.core.errors import ExternalServiceError, WebhookSignatureError

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"


@dataclass(frozen=True)
class LineItem:
    name: str
    unit_amount: int  # minor currency units
    quantity: int = 1
    description: Optional[str] = None
    image_url: Optional[str] = None


@dataclass(frozen=True)
class Redirects:
    success_url: str
    cancel_url: str


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


def to_minor_units(amount) -> int:
    """Convert a decimal amount (e.g. 100.00) to minor units (10000)"""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def encode_params(params: Dict[str, Any], prefix: str = "") -> List[tuple[str, str]]:
    """Flatten nested params into Stripe's bracketed form encoding"""
    pairs = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_params(value, name))
        elif isinstance(value, (list, tuple)):
            for index, element in enumerate(value):
                if isinstance(element, dict):
                    pairs.extend(encode_params(element, f"{name}[{index}]"))
                else:
                    pairs.append((f"{name}[{index}]", str(element)))
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        else:
            pairs.append((name, str(value)))
    return pairs


def compute_signature(secret: str, timestamp: int, payload: bytes) -> str:
    signed_payload = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()


def _parse_signature_header(header: str) -> tuple[Optional[int], List[str]]:
    timestamp = None
    signatures = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


class StripePaymentProvider:
    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        api_base: str,
        currency: str,
        timeout: float,
        tolerance: int = 300,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.api_base = api_base.rstrip("/")
        self.currency = currency
        self.timeout = timeout
        self.tolerance = tolerance

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Perform one Stripe API call and return the decoded JSON body"""
        try:
            response = requests.request(
                method,
                f"{self.api_base}{path}",
                data=encode_params(params or {}),
                auth=(self.secret_key, ""),
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.error(f"Stripe {method} {path} timed out after {self.timeout}s")
            raise ExternalServiceError("Payment provider timed out. Please try again.")
        except requests.RequestException as e:
            logger.error(f"Stripe {method} {path} failed: {str(e)}")
            raise ExternalServiceError("Payment provider is unavailable. Please try again.")

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            message = body.get("error", {}).get("message", response.reason)
            logger.error(f"Stripe {method} {path} returned {response.status_code}: {message}")
            raise ExternalServiceError(f"Payment provider error: {message}")

        return body

    @staticmethod
    def _to_session(body: Dict[str, Any]) -> CheckoutSession:
        return CheckoutSession(
            id=body["id"],
            url=body.get("url"),
            status=body.get("status"),
            payment_status=body.get("payment_status"),
        )

    def create_session(
        self,
        line_items: List[LineItem],
        redirects: Redirects,
        customer_email: Optional[str] = None,
        client_reference_id: Optional[str] = None,
    ) -> CheckoutSession:
        """Open a hosted checkout session for the given line items"""
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "success_url": redirects.success_url,
            "cancel_url": redirects.cancel_url,
            "customer_email": customer_email,
            "client_reference_id": client_reference_id,
            "line_items": [
                {
                    "quantity": item.quantity,
                    "price_data": {
                        "currency": self.currency,
                        "unit_amount": item.unit_amount,
                        "product_data": {
                            "name": item.name,
                            "description": item.description,
                            "images": [item.image_url] if item.image_url else None,
                        },
                    },
                }
                for item in line_items
            ],
        }
        session = self._to_session(self._request("POST", "/checkout/sessions", params))
        logger.info(f"Created checkout session {session.id}")
        return session

    def retrieve_session(self, session_id: str) -> CheckoutSession:
        return self._to_session(self._request("GET", f"/checkout/sessions/{session_id}"))

    def expire_session(self, session_id: str) -> None:
        self._request("POST", f"/checkout/sessions/{session_id}/expire")
        logger.info(f"Expired checkout session {session_id}")

    def verify_and_parse_event(self, raw_body: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
        """
        Verify a webhook delivery and return the decoded event.

        Fails closed: a missing header, stale timestamp, signature mismatch or
        undecodable body all raise WebhookSignatureError.
        """
        if not signature_header:
            raise WebhookSignatureError("Missing webhook signature")

        timestamp, signatures = _parse_signature_header(signature_header)
        if timestamp is None or not signatures:
            raise WebhookSignatureError("Malformed webhook signature")

        if abs(time.time() - timestamp) > self.tolerance:
            raise WebhookSignatureError("Webhook timestamp outside the tolerance zone")

        expected = compute_signature(self.webhook_secret, timestamp, raw_body)
        if not any(hmac.compare_digest(expected, signature) for signature in signatures):
            raise WebhookSignatureError("Webhook signature verification failed")

        try:
            event = json.loads(raw_body)
        except ValueError:
            raise WebhookSignatureError("Webhook payload is not valid JSON")
        if not isinstance(event, dict) or "type" not in event:
            raise WebhookSignatureError("Webhook payload is not an event")
        return event


payment_provider = StripePaymentProvider(
    secret_key=settings.STRIPE_SECRET_KEY,
    webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
    api_base=settings.STRIPE_API_BASE,
    currency=settings.CURRENCY,
    timeout=settings.PAYMENT_TIMEOUT_SECONDS,
    tolerance=settings.WEBHOOK_TOLERANCE_SECONDS,
)
