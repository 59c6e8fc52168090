"""
Database models for the app
"""
import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _new_id():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    username = db.Column(db.String(100), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)


class License(db.Model):
    __tablename__ = "route_licenses"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # PaymentIntent id, or the Checkout Session id when the session has no intent
    payment_reference = db.Column(db.String(255), unique=True, nullable=False)
    stripe_checkout_session_id = db.Column(db.String(255), unique=True, nullable=True)
    purchase_kind = db.Column(db.String(20), nullable=False, default="bundle")
    purchased_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, server_default=db.text("true"))


class AccessLink(db.Model):
    __tablename__ = "route_links"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    centre_name = db.Column(db.String(255), nullable=False)
    route_number = db.Column(db.Integer, nullable=False)
    link_token = db.Column(db.String(255), unique=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    is_used = db.Column(db.Boolean, nullable=False, server_default=db.text("false"))
    last_accessed_at = db.Column(db.DateTime(timezone=True), nullable=True)


class AccessToken(db.Model):
    __tablename__ = "route_access_tokens"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    access_token = db.Column(db.String(255), unique=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    is_used = db.Column(db.Boolean, nullable=False, server_default=db.text("false"))
    last_accessed_at = db.Column(db.DateTime(timezone=True), nullable=True)


class RouteSettings(db.Model):
    __tablename__ = "route_settings"
    __table_args__ = (db.CheckConstraint("id = 1", name="single_row"),)

    id = db.Column(db.Integer, primary_key=True, default=1)
    link_expiry_hours = db.Column(db.Integer, default=12)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
