"""
Single-row route settings (link expiry hours).
"""
import logging

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from models import db, RouteSettings

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1
MAX_LINK_EXPIRY_HOURS = 24 * 365


class SettingsStore:

    @staticmethod
    def get_link_expiry_hours() -> int:
        """
        Read link_expiry_hours from the settings row. Any failure falls back to the configured default,
        a broken settings row must never block link generation.
        """
        default = current_app.config["DEFAULT_LINK_EXPIRY_HOURS"]
        try:
            hours = db.session.execute(
                select(RouteSettings.link_expiry_hours).where(RouteSettings.id == SETTINGS_ROW_ID)
            ).scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception("Error reading link expiry hours, using default of %s", default)
            db.session.rollback()
            return default

        if hours is None or not 0 < hours <= MAX_LINK_EXPIRY_HOURS:
            return default
        return hours

    @staticmethod
    def set_link_expiry_hours(hours: int) -> int:
        settings = db.session.get(RouteSettings, SETTINGS_ROW_ID)
        if settings is None:
            settings = RouteSettings(id=SETTINGS_ROW_ID)
            db.session.add(settings)

        settings.link_expiry_hours = hours
        db.session.commit()
        logger.info("Link expiry hours set to %s", hours)
        return hours

    @staticmethod
    def ensure_defaults():
        """Seed the settings row on startup if it is missing."""
        if db.session.get(RouteSettings, SETTINGS_ROW_ID) is None:
            db.session.add(RouteSettings(id=SETTINGS_ROW_ID,
                                         link_expiry_hours=current_app.config["DEFAULT_LINK_EXPIRY_HOURS"]))
            db.session.commit()
