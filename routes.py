"""
API routes for the app
"""
from flask import Blueprint, g, request

from auth_handler import AuthHandler, require_auth
from link_issuer import LinkIssuer
from payment_handler import PaymentHandler
from stripe_webhook_handler import StripeWebhookHandler
from user_access_handler import UserAccessHandler

api_bp = Blueprint("api", __name__, url_prefix="/routes")
auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _json_body():
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


@auth_bp.route("/signup", methods=["POST"])
def signup():
    return AuthHandler.signup(_json_body())


@auth_bp.route("/login", methods=["POST"])
def login():
    return AuthHandler.login(_json_body())


@api_bp.route("/publishable-key", methods=["GET"])
def publishable_key():
    return PaymentHandler.get_publishable_key()


@api_bp.route("/payment-intent", methods=["POST"])
@api_bp.route("/create-payment-intent", methods=["POST"])
@require_auth
def create_payment_intent():
    return PaymentHandler.create_payment_intent(g.user_id, _json_body().get("amount"))


@api_bp.route("/checkout-session", methods=["POST"])
@require_auth
def create_checkout_session():
    return PaymentHandler.create_checkout_session(g.user_id, _json_body().get("amount"))


@api_bp.route("/confirm-payment", methods=["POST"])
@require_auth
def confirm_payment():
    return PaymentHandler.confirm_payment(g.user_id, _json_body().get("paymentIntentId"))


@api_bp.route("/webhook", methods=["POST"])
def handle_stripe_webhook():
    """
    Stripe webhook endpoint, authenticated by the Stripe-Signature header over the raw body
    """
    return StripeWebhookHandler.process_webhook_event(request.get_data(), request.headers.get("Stripe-Signature"))


@api_bp.route("/license-status", methods=["GET"])
@require_auth
def license_status():
    return UserAccessHandler.get_license_status(g.user_id)


@api_bp.route("/settings", methods=["GET"])
@require_auth
def get_settings():
    return UserAccessHandler.get_settings()


@api_bp.route("/settings", methods=["PUT"])
@require_auth
def update_settings():
    return UserAccessHandler.update_settings(g.user_id, _json_body())


@api_bp.route("/centres", methods=["GET"])
@require_auth
def centres():
    return LinkIssuer.list_centres(g.user_id)


@api_bp.route("/generate-link", methods=["POST"])
@require_auth
def generate_link():
    body = _json_body()
    return LinkIssuer.generate_link(g.user_id, body.get("centreName"), body.get("routeNumber"))


@api_bp.route("/validate-link/<token>", methods=["GET"])
@require_auth
def validate_link(token):
    return LinkIssuer.validate_link(g.user_id, token)


@api_bp.route("/active-links", methods=["GET"])
@require_auth
def active_links():
    return LinkIssuer.list_active_links(g.user_id)


@api_bp.route("/generate-access-token", methods=["POST"])
@require_auth
def generate_access_token():
    return LinkIssuer.generate_access_token(g.user_id)


@api_bp.route("/<dataset>-data/<token>", methods=["GET"])
@require_auth
def dataset_routes(dataset, token):
    return LinkIssuer.get_dataset(g.user_id, dataset, token)


@api_bp.route("/route/<token>/<route_id>", methods=["GET"])
def redeem_route(token, route_id):
    """
    Public redirect endpoint, the access token in the URL is the credential
    """
    return LinkIssuer.redeem_access_token(token, None, route_id)


@api_bp.route("/<dataset>-route/<token>/<route_id>", methods=["GET"])
def redeem_dataset_route(dataset, token, route_id):
    return LinkIssuer.redeem_access_token(token, dataset, route_id)
