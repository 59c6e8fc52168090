"""
Stripe payment flows for route licenses: PaymentIntents, Checkout Sessions and payment confirmation.
"""
import logging

import stripe
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from helpers import ResponseHelper, DateTimeNaiveHelper
from license_manager import LicenseManager, PurchaseKind

logger = logging.getLogger(__name__)

BUNDLE_PRODUCT_NAME = "3-Month Route Access License (Full Bundle)"
SINGLE_PRODUCT_NAME = "Single Route Access"
PAYMENT_SUCCEEDED = "succeeded"


class InvalidAmountError(ValueError):
    pass


def parse_amount(raw_amount):
    """
    Parse a requested amount in cents. None means "use the default price".
    """
    if raw_amount is None or raw_amount == "":
        return None
    if isinstance(raw_amount, bool):
        raise InvalidAmountError(raw_amount)
    if isinstance(raw_amount, str):
        raw_amount = raw_amount.strip()
        if not raw_amount.isdigit():
            raise InvalidAmountError(raw_amount)
        raw_amount = int(raw_amount)
    if not isinstance(raw_amount, int) or raw_amount <= 0:
        raise InvalidAmountError(raw_amount)
    return raw_amount


def normalize_base_url(base_url):
    base_url = (base_url or "").strip()
    if not base_url.startswith(("http://", "https://")):
        base_url = f"https://{base_url}"
    return base_url.rstrip("/")


def key_mode(key):
    return "test" if "_test_" in key else "live"


class PaymentHandler:

    @staticmethod
    def _secret_key():
        secret_key = current_app.config.get("STRIPE_SECRET_KEY")
        if not secret_key:
            logger.error("Stripe not initialized - STRIPE_SECRET_KEY missing")
        return secret_key

    @staticmethod
    def _not_configured():
        return ResponseHelper.error("Payment system not configured. Please contact support.", 500,
                                    details="Stripe secret key not set")

    @staticmethod
    def _resolve_purchase(user_id, raw_amount):
        """
        Validate the requested amount and refuse a second bundle while a license is active.
        Returns (price, kind, error_response).
        """
        try:
            requested = parse_amount(raw_amount)
        except InvalidAmountError:
            return None, None, ResponseHelper.error("Invalid amount specified",
                                                    details="Amount must be a positive whole number of cents")

        price = requested or current_app.config["ROUTES_LICENSE_PRICE"]
        kind = LicenseManager.purchase_kind_for_amount(requested)

        if kind == PurchaseKind.BUNDLE:
            existing = LicenseManager.has_active_license(user_id)
            if existing:
                return None, None, ResponseHelper.error("You already have an active license",
                                                        expiresAt=DateTimeNaiveHelper.isoformat(existing.expires_at))
        return price, kind, None

    @staticmethod
    def _product_name(kind):
        return BUNDLE_PRODUCT_NAME if kind == PurchaseKind.BUNDLE else SINGLE_PRODUCT_NAME

    @staticmethod
    def create_payment_intent(user_id, raw_amount=None):
        secret_key = PaymentHandler._secret_key()
        if not secret_key:
            return PaymentHandler._not_configured()

        price, kind, error = PaymentHandler._resolve_purchase(user_id, raw_amount)
        if error:
            return error

        product_name = PaymentHandler._product_name(kind)
        logger.info("Creating PaymentIntent for user %s: %s cents (%s)", user_id, price, kind.value)

        try:
            payment_intent = stripe.PaymentIntent.create(
                api_key=secret_key,
                amount=price,
                currency=current_app.config["STRIPE_CURRENCY"],
                metadata={
                    "user_id": str(user_id),
                    "product": product_name,
                    "amount": str(price),
                    "purchase_type": kind.value,
                },
                automatic_payment_methods={"enabled": True},
                description=product_name,
            )
        except stripe.StripeError as e:
            logger.error("Stripe PaymentIntent error: %s", e)
            return ResponseHelper.error("Failed to create payment intent", 500, details=str(e))

        client_secret = payment_intent.client_secret
        if not client_secret or "_secret_" not in client_secret:
            logger.error("PaymentIntent %s returned without a usable client_secret", payment_intent.id)
            return ResponseHelper.error("Failed to create payment intent", 500,
                                        details="Payment provider returned an invalid client secret")

        logger.info("PaymentIntent created: %s", payment_intent.id)
        return ResponseHelper.success({
            "clientSecret": client_secret,
            "paymentIntentId": payment_intent.id,
        })

    @staticmethod
    def create_checkout_session(user_id, raw_amount=None):
        secret_key = PaymentHandler._secret_key()
        if not secret_key:
            return PaymentHandler._not_configured()

        price, kind, error = PaymentHandler._resolve_purchase(user_id, raw_amount)
        if error:
            return error

        base_url = normalize_base_url(current_app.config["FRONTEND_URL"])
        product_name = PaymentHandler._product_name(kind)

        try:
            session = stripe.checkout.Session.create(
                api_key=secret_key,
                mode="payment",
                line_items=[{
                    "price_data": {
                        "currency": current_app.config["STRIPE_CURRENCY"],
                        "product_data": {"name": product_name},
                        "unit_amount": price,
                    },
                    "quantity": 1,
                }],
                success_url=f"{base_url}/?payment=success",
                cancel_url=f"{base_url}/?payment=cancelled",
                client_reference_id=str(user_id),
                metadata={"user_id": str(user_id), "purchase_type": kind.value},
                payment_intent_data={"metadata": {"user_id": str(user_id), "purchase_type": kind.value}},
            )
        except stripe.StripeError as e:
            logger.error("Stripe Checkout Session error: %s", e)
            return ResponseHelper.error("Failed to create checkout session", 500, details=str(e))

        logger.info("Checkout Session %s created for user %s", session.id, user_id)
        return ResponseHelper.success({"sessionId": session.id, "url": session.url})

    @staticmethod
    def confirm_payment(user_id, payment_intent_id):
        """
        Re-check a PaymentIntent with Stripe and create the license for it. The webhook may have created
        the license already, in which case the confirmation is refused as a duplicate.
        """
        if not payment_intent_id:
            return ResponseHelper.error("Payment intent ID required")

        secret_key = PaymentHandler._secret_key()
        if not secret_key:
            return PaymentHandler._not_configured()

        try:
            payment_intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=secret_key)
        except stripe.InvalidRequestError as e:
            logger.warning("Unknown payment intent %s: %s", payment_intent_id, e)
            return ResponseHelper.error("Invalid payment intent ID")
        except stripe.StripeError as e:
            logger.error("Error retrieving payment intent %s: %s", payment_intent_id, e)
            return ResponseHelper.error("Failed to confirm payment", 500, details=str(e))

        metadata = payment_intent.metadata.to_dict() if payment_intent.metadata else {}
        if metadata.get("user_id") != str(user_id):
            logger.warning("User %s tried to confirm payment %s owned by someone else", user_id, payment_intent_id)
            return ResponseHelper.error("Payment does not belong to this user", 403)

        if payment_intent.status != PAYMENT_SUCCEEDED:
            return ResponseHelper.error("Payment not completed", status=payment_intent.status)

        try:
            if LicenseManager.license_exists(payment_intent.id):
                return ResponseHelper.error("License already created for this payment")

            kind = purchase_kind_from_intent(metadata.get("purchase_type"), payment_intent.amount)
            created, expires_at = LicenseManager.create_license(user_id, payment_intent.id, kind)
        except SQLAlchemyError:
            logger.exception("Error creating license for payment %s", payment_intent_id)
            return ResponseHelper.error("Failed to confirm payment", 500)

        if not created:
            # the webhook won the race
            return ResponseHelper.error("License already created for this payment")

        return ResponseHelper.success({
            "success": True,
            "message": "License activated successfully",
            "expiresAt": DateTimeNaiveHelper.isoformat(expires_at),
        })

    @staticmethod
    def get_publishable_key():
        publishable_key = current_app.config.get("STRIPE_PUBLISHABLE_KEY")
        if not publishable_key:
            logger.error("STRIPE_PUBLISHABLE_KEY not set")
            return ResponseHelper.error("Stripe publishable key not configured", 500,
                                        details="STRIPE_PUBLISHABLE_KEY environment variable is missing")

        if not publishable_key.startswith(("pk_test_", "pk_live_")):
            logger.error("Invalid publishable key format: %s...", publishable_key[:10])
            return ResponseHelper.error("Invalid Stripe publishable key format", 500,
                                        details="Key must start with pk_test_ or pk_live_")

        secret_key = current_app.config.get("STRIPE_SECRET_KEY")
        if secret_key and key_mode(secret_key) != key_mode(publishable_key):
            logger.error("Stripe key mismatch: secret key is %s, publishable key is %s",
                         key_mode(secret_key), key_mode(publishable_key))
            return ResponseHelper.error(
                "Stripe key mismatch", 500,
                details=f"Secret key is {key_mode(secret_key)} but publishable key is "
                        f"{key_mode(publishable_key)}. Both keys must be from the same environment.")

        return ResponseHelper.success({"publishableKey": publishable_key})


def purchase_kind_from_intent(purchase_type, amount):
    """A bundle is either marked as one in the metadata or paid at the bundle price."""
    if purchase_type == PurchaseKind.BUNDLE.value:
        return PurchaseKind.BUNDLE
    return LicenseManager.purchase_kind_for_amount(amount or 0)
