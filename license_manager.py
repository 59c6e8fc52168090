"""
Route license handling: who currently has paid access, and granting licenses on confirmed payments.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from flask import current_app
from sqlalchemy import inspect, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from helpers import DateTimeNaiveHelper
from models import db, License

logger = logging.getLogger(__name__)

PERMANENT_EXPIRY = datetime(2099, 12, 31, 23, 59, 59, tzinfo=timezone.utc)
BUNDLE_LICENSE_MONTHS = 3
SINGLE_LICENSE_DAYS = 30

_INSERTS_BY_DIALECT = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


class PurchaseKind(Enum):
    BUNDLE = "bundle"
    SINGLE = "single"


@dataclass(frozen=True)
class LicenseGrant:
    expires_at: datetime
    is_permanent: bool = False


class AdminAllowListPolicy:
    """Users listed in ADMIN_USER_IDS always have access."""

    def grant(self, user_id):
        if str(user_id) in current_app.config["ADMIN_USER_IDS"]:
            logger.info("Admin user %s granted permanent access", user_id)
            return LicenseGrant(expires_at=PERMANENT_EXPIRY, is_permanent=True)
        return None


class LicenseRowPolicy:
    """Access from the newest unexpired license row."""

    def grant(self, user_id):
        query = (
            select(License.expires_at)
            .where(License.user_id == str(user_id), License.expires_at > DateTimeNaiveHelper.now())
            .order_by(License.expires_at.desc())
            .limit(1)
        )
        if LicenseSchema.has_is_active():
            query = query.where(License.is_active.is_(True))

        expires_at = db.session.execute(query).scalar_one_or_none()
        if expires_at is None:
            return None
        return LicenseGrant(expires_at=DateTimeNaiveHelper.make_timezone_aware(expires_at))


DEFAULT_POLICIES = (AdminAllowListPolicy(), LicenseRowPolicy())


class LicenseSchema:
    """
    Deployments created before route_licenses.is_active existed are still supported. The table is
    inspected once at startup instead of retrying failed queries.
    """

    EXTENSION_KEY = "license_schema"

    @staticmethod
    def detect(app):
        columns = {column["name"] for column in inspect(db.engine).get_columns(License.__tablename__)}
        has_is_active = "is_active" in columns
        if not has_is_active:
            logger.warning("route_licenses.is_active column not found, license checks ignore it")
        app.extensions[LicenseSchema.EXTENSION_KEY] = {"has_is_active": has_is_active}

    @staticmethod
    def has_is_active():
        return current_app.extensions.get(LicenseSchema.EXTENSION_KEY, {}).get("has_is_active", True)


class LicenseManager:

    @staticmethod
    def has_active_license(user_id, policies=DEFAULT_POLICIES):
        """
        Run the access policies in order and return the first grant, or None when the user has no access.
        Store errors count as no access.
        """
        try:
            for policy in policies:
                grant = policy.grant(user_id)
                if grant is not None:
                    return grant
        except SQLAlchemyError:
            logger.exception("Error checking license for user %s", user_id)
            db.session.rollback()
        return None

    @staticmethod
    def purchase_kind_for_amount(amount):
        if amount is None or amount >= current_app.config["BUNDLE_PRICE_THRESHOLD"]:
            return PurchaseKind.BUNDLE
        return PurchaseKind.SINGLE

    @staticmethod
    def license_expiry(kind, now=None):
        now = now or DateTimeNaiveHelper.now()
        if kind == PurchaseKind.BUNDLE:
            return DateTimeNaiveHelper.add_months(now, BUNDLE_LICENSE_MONTHS)
        return now + timedelta(days=SINGLE_LICENSE_DAYS)

    @staticmethod
    def license_exists(payment_reference):
        return db.session.execute(
            select(License.id).where(License.payment_reference == payment_reference)
        ).first() is not None

    @staticmethod
    def create_license(user_id, payment_reference, kind=PurchaseKind.BUNDLE, session_reference=None):
        """
        Insert a license for a payment unless one already exists for the same payment reference.
        Both the confirm endpoint and the webhook call this for the same purchase, so the unique constraint
        on payment_reference decides the winner. Returns (created, expires_at); created is False for duplicates.
        """
        expires_at = LicenseManager.license_expiry(kind)
        values = {
            "user_id": str(user_id),
            "payment_reference": payment_reference,
            "stripe_checkout_session_id": session_reference,
            "purchase_kind": kind.value,
            "expires_at": expires_at,
        }

        dialect = db.session.get_bind().dialect.name
        try:
            insert = _INSERTS_BY_DIALECT[dialect]
        except KeyError:
            raise RuntimeError(f"Idempotent license insert is not supported for {dialect}")

        statement = insert(License.__table__).values(**values).on_conflict_do_nothing(index_elements=["payment_reference"])
        try:
            result = db.session.execute(statement)
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise

        created = result.rowcount == 1
        if created:
            logger.info("License created for user %s from payment %s (%s)", user_id, payment_reference, kind.value)
        else:
            logger.info("License already exists for payment %s", payment_reference)
        return created, expires_at
