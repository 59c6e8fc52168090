"""
Configuration settings for the app
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _split_ids(raw):
    return frozenset(part.strip() for part in (raw or "").split(",") if part.strip())


class Config:
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    JWT_SECRET = os.environ.get("JWT_SECRET")
    JWT_EXPIRY_DAYS = 7

    STRIPE_SECRET_KEY = (os.environ.get("STRIPE_SECRET_KEY") or "").strip() or None
    STRIPE_PUBLISHABLE_KEY = (os.environ.get("STRIPE_PUBLISHABLE_KEY") or "").strip() or None
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET")
    STRIPE_CURRENCY = "eur"

    # prices are in cents
    ROUTES_LICENSE_PRICE = int(os.environ.get("ROUTES_LICENSE_PRICE", "1399"))
    BUNDLE_PRICE_THRESHOLD = int(os.environ.get("BUNDLE_PRICE_THRESHOLD", "1399"))

    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")
    ADMIN_USER_IDS = _split_ids(os.environ.get("ADMIN_USER_IDS"))

    ROUTE_DATA_DIR = os.environ.get("ROUTE_DATA_DIR",
                                    os.path.join(os.path.dirname(os.path.abspath(__file__)), "data"))
    DEFAULT_ROUTE_DATASET = "naas"

    DEFAULT_LINK_EXPIRY_HOURS = 12
    ACCESS_TOKEN_TTL_MINUTES = 30

    PORT = int(os.environ.get("PORT", "3000"))
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"  # in-memory, one per app
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET = "test-jwt-secret-0123456789abcdefghij"
    STRIPE_SECRET_KEY = "sk_test_123"
    STRIPE_PUBLISHABLE_KEY = "pk_test_123"
    STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
    FRONTEND_URL = "example.com/"
    ADMIN_USER_IDS = frozenset({"admin-user"})
    ROUTES_LICENSE_PRICE = 1399
    BUNDLE_PRICE_THRESHOLD = 1399
