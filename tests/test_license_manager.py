import threading
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from app import create_app
from config import TestConfig
from helpers import DateTimeNaiveHelper
from license_manager import (
    AdminAllowListPolicy, LicenseManager, LicenseRowPolicy, LicenseSchema, PurchaseKind, PERMANENT_EXPIRY,
)
from models import db, License, RouteSettings
from settings_store import SettingsStore
from tests.conftest import ADMIN_USER_ID, create_license_row, get_current_utc, make_timezone_aware


class TestHasActiveLicense:
    def test_no_license_returns_none(self, user_id):
        assert LicenseManager.has_active_license(user_id) is None

    def test_active_license_returned(self, user_id):
        expires_at = get_current_utc() + timedelta(days=10)
        create_license_row(user_id, expires_at)

        grant = LicenseManager.has_active_license(user_id)
        assert grant is not None
        assert not grant.is_permanent
        assert abs(grant.expires_at - expires_at) < timedelta(seconds=1)

    def test_expired_license_is_same_as_no_license(self, user_id):
        create_license_row(user_id, get_current_utc() - timedelta(seconds=1))
        assert LicenseManager.has_active_license(user_id) is None

    def test_inactive_license_ignored(self, user_id):
        create_license_row(user_id, get_current_utc() + timedelta(days=10), is_active=False)
        assert LicenseManager.has_active_license(user_id) is None

    def test_latest_expiry_wins(self, user_id):
        later = get_current_utc() + timedelta(days=80)
        create_license_row(user_id, get_current_utc() + timedelta(days=5), payment_reference="pi_1")
        create_license_row(user_id, later, payment_reference="pi_2")

        grant = LicenseManager.has_active_license(user_id)
        assert abs(grant.expires_at - later) < timedelta(seconds=1)

    def test_other_users_license_does_not_count(self, user_id):
        create_license_row("someone-else", get_current_utc() + timedelta(days=10))
        assert LicenseManager.has_active_license(user_id) is None

    def test_admin_gets_permanent_license(self, client):
        grant = LicenseManager.has_active_license(ADMIN_USER_ID)
        assert grant.is_permanent
        assert grant.expires_at == PERMANENT_EXPIRY

    def test_policies_are_evaluated_in_order(self, user_id):
        create_license_row(user_id, get_current_utc() + timedelta(days=10))

        assert LicenseManager.has_active_license(user_id, policies=[AdminAllowListPolicy()]) is None
        assert LicenseManager.has_active_license(user_id, policies=[LicenseRowPolicy()]) is not None

    def test_license_without_is_active_column(self, app, user_id):
        db.session.execute(text("DROP TABLE route_licenses"))
        db.session.execute(text(
            "CREATE TABLE route_licenses ("
            "id VARCHAR(36) PRIMARY KEY, user_id VARCHAR(36) NOT NULL, "
            "payment_reference VARCHAR(255) NOT NULL UNIQUE, stripe_checkout_session_id VARCHAR(255) UNIQUE, "
            "purchase_kind VARCHAR(20) NOT NULL, purchased_at DATETIME, expires_at DATETIME NOT NULL)"
        ))
        db.session.commit()

        LicenseSchema.detect(app)
        assert not LicenseSchema.has_is_active()

        created, _ = LicenseManager.create_license(user_id, "pi_legacy", PurchaseKind.BUNDLE)
        assert created
        assert LicenseManager.has_active_license(user_id) is not None


class TestCreateLicense:
    def test_bundle_license_lasts_three_months(self, user_id):
        created, expires_at = LicenseManager.create_license(user_id, "pi_bundle", PurchaseKind.BUNDLE)

        assert created
        expected = DateTimeNaiveHelper.add_months(get_current_utc(), 3)
        assert abs(expires_at - expected) < timedelta(minutes=1)

        license_row = License.query.filter_by(payment_reference="pi_bundle").one()
        assert license_row.user_id == user_id
        assert license_row.purchase_kind == "bundle"
        assert license_row.is_active

    def test_single_license_lasts_thirty_days(self, user_id):
        _, expires_at = LicenseManager.create_license(user_id, "pi_single", PurchaseKind.SINGLE)
        assert abs(expires_at - (get_current_utc() + timedelta(days=30))) < timedelta(minutes=1)

    def test_same_payment_reference_creates_one_row(self, user_id):
        results = [LicenseManager.create_license(user_id, "pi_dup", PurchaseKind.BUNDLE)[0] for _ in range(10)]

        assert results.count(True) == 1
        assert License.query.filter_by(payment_reference="pi_dup").count() == 1

    def test_concurrent_calls_create_one_row(self, tmp_path):
        class FileDatabaseConfig(TestConfig):
            SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'licenses.db'}"

        app = create_app(FileDatabaseConfig)
        workers = 8
        barrier = threading.Barrier(workers)
        results = []
        errors = []

        def confirm():
            with app.app_context():
                try:
                    barrier.wait()
                    results.append(LicenseManager.create_license("user-1", "pi_race", PurchaseKind.BUNDLE)[0])
                except Exception as e:
                    errors.append(e)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=confirm) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert results.count(True) == 1
        assert len(results) == workers
        with app.app_context():
            assert License.query.filter_by(payment_reference="pi_race").count() == 1
            db.engine.dispose()

    def test_existing_row_is_not_overwritten(self, user_id):
        original_expiry = get_current_utc() + timedelta(days=1)
        create_license_row(user_id, original_expiry, payment_reference="pi_dup")

        created, _ = LicenseManager.create_license(user_id, "pi_dup", PurchaseKind.BUNDLE)

        assert not created
        db.session.expire_all()
        license_row = License.query.filter_by(payment_reference="pi_dup").one()
        assert abs(make_timezone_aware(license_row.expires_at) - original_expiry) < timedelta(seconds=1)

    def test_license_exists(self, user_id):
        assert not LicenseManager.license_exists("pi_new")
        LicenseManager.create_license(user_id, "pi_new", PurchaseKind.SINGLE)
        assert LicenseManager.license_exists("pi_new")

    def test_purchase_kind_for_amount(self, client):
        assert LicenseManager.purchase_kind_for_amount(None) == PurchaseKind.BUNDLE
        assert LicenseManager.purchase_kind_for_amount(1399) == PurchaseKind.BUNDLE
        assert LicenseManager.purchase_kind_for_amount(2000) == PurchaseKind.BUNDLE
        assert LicenseManager.purchase_kind_for_amount(299) == PurchaseKind.SINGLE


class TestAddMonths:
    def test_end_of_month_is_clamped(self):
        start = datetime(2025, 11, 30, 12, 0, tzinfo=timezone.utc)
        assert DateTimeNaiveHelper.add_months(start, 3) == datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc)

    def test_year_rollover(self):
        start = datetime(2025, 10, 15, tzinfo=timezone.utc)
        assert DateTimeNaiveHelper.add_months(start, 3) == datetime(2026, 1, 15, tzinfo=timezone.utc)


class TestSettingsStore:
    def test_default_row_is_seeded(self, client):
        assert SettingsStore.get_link_expiry_hours() == 12

    def test_configured_value_is_used(self, client):
        SettingsStore.set_link_expiry_hours(48)
        assert SettingsStore.get_link_expiry_hours() == 48

    def test_missing_row_falls_back_to_default(self, client):
        RouteSettings.query.delete()
        db.session.commit()
        assert SettingsStore.get_link_expiry_hours() == 12

    def test_database_error_falls_back_to_default(self, client):
        db.session.execute(text("DROP TABLE route_settings"))
        db.session.commit()
        assert SettingsStore.get_link_expiry_hours() == 12

    def test_out_of_range_row_falls_back_to_default(self, client):
        db.session.execute(text("UPDATE route_settings SET link_expiry_hours = 100000000 WHERE id = 1"))
        db.session.commit()
        assert SettingsStore.get_link_expiry_hours() == 12

        db.session.execute(text("UPDATE route_settings SET link_expiry_hours = -5 WHERE id = 1"))
        db.session.commit()
        assert SettingsStore.get_link_expiry_hours() == 12
