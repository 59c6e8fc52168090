import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone

import jwt
import pytest
import stripe

from app import create_app
from config import TestConfig
from models import db, User, License, AccessLink, AccessToken, RouteSettings

WEBHOOK_SECRET = TestConfig.STRIPE_WEBHOOK_SECRET
ADMIN_USER_ID = "admin-user"


def get_current_utc():
    """Helper to get current UTC time consistently"""
    return datetime.now(timezone.utc)


def make_timezone_aware(dt):
    """SQLite hands back naive datetimes, everything is stored in UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_iso(value):
    return make_timezone_aware(datetime.fromisoformat(value))


def auth_headers(user_id, secret=TestConfig.JWT_SECRET, expires_in=timedelta(days=1)):
    token = jwt.encode({"user_id": user_id, "exp": get_current_utc() + expires_in}, secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def create_user(email="driver@example.com", username="driver"):
    user = User(email=email, username=username, password_hash="not-a-real-hash")
    db.session.add(user)
    db.session.commit()
    return user.id


def create_license_row(user_id, expires_at, payment_reference="pi_existing", is_active=True):
    license_row = License(user_id=user_id, payment_reference=payment_reference, purchase_kind="bundle",
                          expires_at=expires_at, is_active=is_active)
    db.session.add(license_row)
    db.session.commit()
    return license_row.id


def sign_payload(payload, secret=WEBHOOK_SECRET, timestamp=None):
    timestamp = timestamp or int(time.time())
    signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def create_payment_intent_event(event_id, payment_intent_id, user_id, amount=1399, purchase_type=None):
    metadata = {}
    if user_id:
        metadata["user_id"] = user_id
    if purchase_type:
        metadata["purchase_type"] = purchase_type

    return json.dumps({
        "id": event_id,
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": payment_intent_id,
                "object": "payment_intent",
                "amount": amount,
                "status": "succeeded",
                "metadata": metadata,
            }
        }
    })


def create_checkout_session_event(event_id, session_id, user_id, payment_intent_id=None):
    return json.dumps({
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "client_reference_id": user_id,
                "payment_intent": payment_intent_id,
                "metadata": {},
            }
        }
    })


def post_webhook(client, payload, signature=None):
    headers = {"Stripe-Signature": signature if signature is not None else sign_payload(payload)}
    return client.post("/routes/webhook", data=payload, headers=headers, content_type="application/json")


def stripe_payment_intent(payment_intent_id="pi_123", user_id=None, status="succeeded", amount=1399,
                          client_secret="pi_123_secret_abc", purchase_type="bundle"):
    metadata = {"purchase_type": purchase_type}
    if user_id:
        metadata["user_id"] = user_id
    return stripe.PaymentIntent.construct_from({
        "id": payment_intent_id,
        "object": "payment_intent",
        "amount": amount,
        "currency": "eur",
        "status": status,
        "client_secret": client_secret,
        "metadata": metadata,
    }, TestConfig.STRIPE_SECRET_KEY)


@pytest.fixture
def app():
    return create_app(TestConfig)


@pytest.fixture
def client(app):
    """
    Create the test client for the app.
    """
    with app.test_client() as client:
        with app.app_context():
            yield client
            db.session.remove()
            db.drop_all()


@pytest.fixture
def user_id(client):
    return create_user()


@pytest.fixture
def licensed_user_id(user_id):
    create_license_row(user_id, get_current_utc() + timedelta(days=60))
    return user_id
