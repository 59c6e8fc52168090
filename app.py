"""
Route access backend: licenses bought through Stripe, time-limited route links and route access tokens.
"""
import logging

from flask import Flask
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from config import Config
from helpers import ResponseHelper, DateTimeNaiveHelper
from license_manager import LicenseSchema
from models import db
from routes import api_bp, auth_bp
from settings_store import SettingsStore

logger = logging.getLogger(__name__)


def configure_logging(level):
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    configure_logging(app.config["LOG_LEVEL"])

    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        raise RuntimeError("DATABASE_URL is not set")
    if not app.config.get("STRIPE_SECRET_KEY"):
        logger.warning("STRIPE_SECRET_KEY not set, payment endpoints will answer 500")

    db.init_app(app)
    app.register_blueprint(auth_bp)
    app.register_blueprint(api_bp)
    register_error_handlers(app)

    @app.route("/health", methods=["GET"])
    def health():
        try:
            db.session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Health check failed: %s", e)
            return ResponseHelper.error("Database disconnected", 500, status="unhealthy")
        return ResponseHelper.success({
            "status": "healthy",
            "database": "connected",
            "timestamp": DateTimeNaiveHelper.now().isoformat(),
        })

    with app.app_context():
        db.create_all()
        SettingsStore.ensure_defaults()
        LicenseSchema.detect(app)

    return app


def register_error_handlers(app):
    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return ResponseHelper.error(e.description, e.code)

    @app.errorhandler(Exception)
    def handle_unexpected_exception(e):
        logger.exception("Unhandled error")
        db.session.rollback()
        return ResponseHelper.error("Internal server error", 500)


if __name__ == "__main__":
    application = create_app()
    application.run(host="0.0.0.0", port=application.config["PORT"])
