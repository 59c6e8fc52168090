"""
User Access Handler for the app.
"""
from flask import current_app

from helpers import ResponseHelper, DateTimeNaiveHelper
from license_manager import LicenseManager
from settings_store import SettingsStore, MAX_LINK_EXPIRY_HOURS


class UserAccessHandler:
    @staticmethod
    def get_license_status(user_id):
        """
        Get user license status
        """
        license_grant = LicenseManager.has_active_license(user_id)

        access_status = {
            "hasLicense": license_grant is not None,
            "expiresAt": DateTimeNaiveHelper.isoformat(license_grant.expires_at) if license_grant else None,
            "isPermanent": license_grant.is_permanent if license_grant else False,
        }

        return ResponseHelper.success(access_status)

    @staticmethod
    def get_settings():
        return ResponseHelper.success({"linkExpiryHours": SettingsStore.get_link_expiry_hours()})

    @staticmethod
    def update_settings(user_id, body):
        """
        Change link expiry hours, admin users only.
        """
        if str(user_id) not in current_app.config["ADMIN_USER_IDS"]:
            return ResponseHelper.error("Admin access required", 403)

        hours = body.get("linkExpiryHours")
        if isinstance(hours, bool) or not isinstance(hours, int) or not 0 < hours <= MAX_LINK_EXPIRY_HOURS:
            return ResponseHelper.error(f"linkExpiryHours must be an integer between 1 and {MAX_LINK_EXPIRY_HOURS}")

        return ResponseHelper.success({"linkExpiryHours": SettingsStore.set_link_expiry_hours(hours)})
