"""
Time-limited route links and route access tokens.

Two authorization models live here:
- route links are bound to the user who minted them and are only validated for that user's session;
- access tokens are bearer capabilities, whoever holds one can follow route redirects until it expires.
"""
import logging
import secrets
from datetime import timedelta

from flask import current_app, redirect
from sqlalchemy import select, update

from helpers import ResponseHelper, DateTimeNaiveHelper
from license_manager import LicenseManager
from models import db, AccessLink, AccessToken
from route_datasets import RouteDatasets, DatasetNotFound, DatasetLoadError
from settings_store import SettingsStore

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
NO_LICENSE_MESSAGE = "No active license. Please purchase access."


def new_token():
    return secrets.token_urlsafe(TOKEN_BYTES)


def is_expired(expires_at, now=None):
    now = now or DateTimeNaiveHelper.now()
    return DateTimeNaiveHelper.make_timezone_aware(expires_at) <= now


def parse_route_number(raw):
    if isinstance(raw, bool) or raw in (None, ""):
        return None
    if isinstance(raw, float) and not raw.is_integer():
        return None
    try:
        number = int(raw)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


class LinkIssuer:

    @staticmethod
    def generate_link(user_id, centre_name, raw_route_number):
        route_number = parse_route_number(raw_route_number)
        if not isinstance(centre_name, str) or not centre_name.strip() or route_number is None:
            return ResponseHelper.error("Centre name and route number required")
        centre_name = centre_name.strip()

        if not LicenseManager.has_active_license(user_id):
            return ResponseHelper.error(NO_LICENSE_MESSAGE, 403)

        expiry_hours = SettingsStore.get_link_expiry_hours()
        link = AccessLink(
            user_id=str(user_id),
            centre_name=centre_name,
            route_number=route_number,
            link_token=new_token(),
            expires_at=DateTimeNaiveHelper.now() + timedelta(hours=expiry_hours),
        )
        db.session.add(link)
        db.session.commit()

        logger.info("Route link generated for user %s: %s route %s", user_id, centre_name, route_number)
        return ResponseHelper.success({
            "linkToken": link.link_token,
            "expiresAt": DateTimeNaiveHelper.isoformat(link.expires_at),
        })

    @staticmethod
    def validate_link(user_id, token):
        """
        Validate a route link for its owner. This is not a pure read: a valid link gets is_used and
        last_accessed_at updated, and keeps validating until it expires.
        """
        link = db.session.execute(
            select(AccessLink).where(AccessLink.link_token == token, AccessLink.user_id == str(user_id))
        ).scalar_one_or_none()

        if link is None:
            return ResponseHelper.success({"valid": False, "error": "Link not found"})

        now = DateTimeNaiveHelper.now()
        if is_expired(link.expires_at, now):
            return ResponseHelper.success({"valid": False, "error": "Link has expired"})

        link.is_used = True
        link.last_accessed_at = now
        db.session.commit()

        return ResponseHelper.success({
            "valid": True,
            "centreName": link.centre_name,
            "routeNumber": link.route_number,
        })

    @staticmethod
    def list_active_links(user_id):
        links = db.session.execute(
            select(AccessLink)
            .where(AccessLink.user_id == str(user_id), AccessLink.expires_at > DateTimeNaiveHelper.now())
            .order_by(AccessLink.created_at.desc())
        ).scalars().all()

        return ResponseHelper.success({"links": [
            {
                "linkToken": link.link_token,
                "centreName": link.centre_name,
                "routeNumber": link.route_number,
                "createdAt": DateTimeNaiveHelper.isoformat(link.created_at),
                "expiresAt": DateTimeNaiveHelper.isoformat(link.expires_at),
            }
            for link in links
        ]})

    @staticmethod
    def list_centres(user_id):
        return ResponseHelper.success({
            "hasLicense": LicenseManager.has_active_license(user_id) is not None,
            "centres": RouteDatasets.centres(),
        })

    @staticmethod
    def generate_access_token(user_id):
        if not LicenseManager.has_active_license(user_id):
            return ResponseHelper.error(NO_LICENSE_MESSAGE, 403)

        ttl = timedelta(minutes=current_app.config["ACCESS_TOKEN_TTL_MINUTES"])
        access_token = AccessToken(
            user_id=str(user_id),
            access_token=new_token(),
            expires_at=DateTimeNaiveHelper.now() + ttl,
        )
        db.session.add(access_token)
        db.session.commit()

        logger.info("Access token generated for user %s, expires at %s", user_id, access_token.expires_at)
        return ResponseHelper.success({
            "accessToken": access_token.access_token,
            "expiresAt": DateTimeNaiveHelper.isoformat(access_token.expires_at),
        })

    @staticmethod
    def _find_access_token(token):
        return db.session.execute(
            select(AccessToken).where(AccessToken.access_token == token)
        ).scalar_one_or_none()

    @staticmethod
    def _mark_token_used(token):
        db.session.execute(
            update(AccessToken)
            .where(AccessToken.access_token == token)
            .values(is_used=True, last_accessed_at=DateTimeNaiveHelper.now())
        )
        db.session.commit()

    @staticmethod
    def _load_dataset(dataset):
        """Returns (data, error_response)."""
        try:
            return RouteDatasets.load(dataset), None
        except DatasetNotFound:
            return None, ResponseHelper.error("Route dataset not found", 404)
        except DatasetLoadError:
            return None, ResponseHelper.error("Failed to load route data", 500)

    @staticmethod
    def get_dataset(user_id, dataset, token):
        """
        List a dataset's routes (ids and names only) for the owner of an access token.
        """
        access_token = LinkIssuer._find_access_token(token)
        if access_token is None:
            return ResponseHelper.error("Invalid access token", 404)
        if access_token.user_id != str(user_id):
            return ResponseHelper.error("Token does not belong to this user", 403)
        if is_expired(access_token.expires_at):
            return ResponseHelper.error("Access token has expired", 403)

        data, error = LinkIssuer._load_dataset(dataset)
        if error:
            return error

        expires_at = access_token.expires_at
        LinkIssuer._mark_token_used(token)

        return ResponseHelper.success({
            "location": data.get("location"),
            "routes": RouteDatasets.public_routes(data),
            "expiresAt": DateTimeNaiveHelper.isoformat(expires_at),
        })

    @staticmethod
    def redeem_access_token(token, dataset, route_id):
        """
        Redirect to a route's external link. The token itself is the credential, no session is needed,
        and the link never appears in a response body.
        """
        access_token = LinkIssuer._find_access_token(token)
        if access_token is None:
            return ResponseHelper.error("Invalid access token", 404)
        if is_expired(access_token.expires_at):
            return ResponseHelper.error("Access token has expired", 403)

        data, error = LinkIssuer._load_dataset(dataset or current_app.config["DEFAULT_ROUTE_DATASET"])
        if error:
            return error

        route = RouteDatasets.find_route(data, route_id)
        if route is None:
            return ResponseHelper.error("Route not found", 404)

        LinkIssuer._mark_token_used(token)
        return redirect(route["link"], code=302)
