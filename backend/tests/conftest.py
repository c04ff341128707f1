import json
import os
import tempfile
import time
from decimal import Decimal

# Settings are read at import time, so the environment is prepared first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SMTP_HOST"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["IMAGE_DIR"] = tempfile.mkdtemp(prefix="artmarket-images-")

import pytest
from fastapi.testclient import TestClient

from artmarket.core.database import Base, SessionLocal, engine
from artmarket.core.errors import ExternalServiceError
from artmarket.core.security import create_access_token, get_password_hash
from artmarket.main import app
from artmarket.api.dependencies import get_image_store, get_notifier, get_payment_provider
from artmarket.models import Artwork, Order, OrderItem, User
from artmarket.services.payments import StripePaymentProvider, compute_signature
from artmarket.storage.image_store import LocalImageStore

WEBHOOK_SECRET = "whsec_test_secret"
PASSWORD = "password123"


class FakeStripeProvider(StripePaymentProvider):
    """Real provider logic with the HTTP call replaced by canned Stripe responses"""

    def __init__(self):
        super().__init__(
            secret_key="sk_test",
            webhook_secret=WEBHOOK_SECRET,
            api_base="https://stripe.test/v1",
            currency="usd",
            timeout=1.0,
        )
        self.calls = []
        self.payment_statuses = {}
        self.fail_paths = set()
        self._counter = 0

    def _request(self, method, path, params=None):
        self.calls.append((method, path, params))
        if any(path.startswith(prefix) for prefix in self.fail_paths):
            raise ExternalServiceError("Payment provider is unavailable. Please try again.")

        if method == "POST" and path == "/checkout/sessions":
            self._counter += 1
            session_id = f"cs_test_{self._counter}"
            self.payment_statuses.setdefault(session_id, "unpaid")
            return {
                "id": session_id,
                "url": f"https://checkout.stripe.test/pay/{session_id}",
                "status": "open",
                "payment_status": "unpaid",
            }

        session_id = path.split("/")[3]
        if path.endswith("/expire"):
            return {"id": session_id, "status": "expired", "payment_status": "unpaid"}
        return {
            "id": session_id,
            "status": "complete" if self.payment_statuses.get(session_id) == "paid" else "open",
            "payment_status": self.payment_statuses.get(session_id, "unpaid"),
        }

    def created_sessions(self):
        return [call for call in self.calls if call[:2] == ("POST", "/checkout/sessions")]

    def expired_sessions(self):
        return [call[1].split("/")[3] for call in self.calls if call[1].endswith("/expire")]


class RecordingNotifier:
    def __init__(self, deliver=True):
        self.deliver = deliver
        self.sent = []

    def send(self, recipient, kind, data):
        self.sent.append((recipient, kind, data))
        return self.deliver

    def of_kind(self, kind):
        return [entry for entry in self.sent if entry[1] == kind]


def sign_event(event_type, session_id, payment_status="paid", secret=WEBHOOK_SECRET, timestamp=None):
    """Body and Stripe-Signature header for a checkout session event"""
    body = json.dumps({
        "id": f"evt_{session_id}_{event_type}",
        "type": event_type,
        "data": {"object": {"id": session_id, "payment_status": payment_status}},
    }).encode("utf-8")
    timestamp = int(time.time()) if timestamp is None else timestamp
    header = f"t={timestamp},v1={compute_signature(secret, timestamp, body)}"
    return body, header


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def provider():
    return FakeStripeProvider()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store(tmp_path):
    return LocalImageStore(str(tmp_path / "images"), "/static/images", 1024 * 1024)


@pytest.fixture
def client(db, provider, notifier, store):
    app.dependency_overrides[get_payment_provider] = lambda: provider
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_image_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(role="viewer", name=None, email=None, password=PASSWORD, is_active=True):
        counter["n"] += 1
        user = User(
            name=name or f"{role.title()} {counter['n']}",
            email=email or f"{role}{counter['n']}@example.com",
            hashed_password=get_password_hash(password),
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_artwork(db):
    def _make_artwork(artist, title="Untitled", price="100.00", status="available", **extra):
        artwork = Artwork(
            title=title,
            description=extra.pop("description", f"{title} by {artist.name}"),
            artist_id=artist.id,
            year=extra.pop("year", 2020),
            medium=extra.pop("medium", "oil"),
            tags=extra.pop("tags", []),
            price=Decimal(price),
            status=status,
            **extra,
        )
        db.add(artwork)
        db.commit()
        db.refresh(artwork)
        return artwork

    return _make_artwork


@pytest.fixture
def make_order(db):
    def _make_order(user, artwork, session_id, **extra):
        order = Order(
            user_id=user.id,
            total_amount=artwork.price,
            currency="usd",
            status=extra.pop("status", "pending"),
            payment_status=extra.pop("payment_status", "pending"),
            stripe_session_id=session_id,
            **extra,
        )
        order.items.append(OrderItem(
            artwork_id=artwork.id,
            artist_id=artwork.artist_id,
            title=artwork.title,
            price=artwork.price,
        ))
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make_order


def auth_headers(user):
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers():
    return auth_headers


@pytest.fixture
def signed_event():
    return sign_event
