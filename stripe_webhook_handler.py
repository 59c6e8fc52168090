"""
Stripe webhook event handlers for the app
"""
import json
import logging
from enum import Enum

import stripe
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from helpers import ResponseHelper
from license_manager import LicenseManager, PurchaseKind
from payment_handler import purchase_kind_from_intent

logger = logging.getLogger(__name__)


class StripeEventType(Enum):
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"


RELEVANT_EVENTS = [event_type.value for event_type in StripeEventType]


class WebhookEventError(Exception):
    """Raised when a signed event is missing the data needed to grant a license."""


class StripeWebhookHandler:

    @staticmethod
    def process_webhook_event(payload, signature_header):
        """
        Verify the Stripe signature, then grant the license the event pays for. License creation is
        idempotent, so redeliveries and the confirm endpoint racing the webhook are harmless.
        """
        webhook_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
        if not webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET not configured")
            return ResponseHelper.error("Webhook secret not configured", 500)

        try:
            event_data = StripeWebhookHandler._verify_event(payload, signature_header, webhook_secret)
        except (stripe.SignatureVerificationError, ValueError) as e:
            logger.warning("Webhook signature verification failed: %s", e)
            return ResponseHelper.error(f"Webhook Error: {e}")

        event_type = event_data.get("type")
        if event_type not in RELEVANT_EVENTS:
            logger.debug("Ignoring webhook event %s", event_type)
            return ResponseHelper.success({"received": True})

        try:
            created = StripeWebhookHandler._handle_event_by_type(event_data)
        except WebhookEventError as e:
            logger.error("Webhook event %s rejected: %s", event_data.get("id"), e)
            return ResponseHelper.error(str(e))
        except SQLAlchemyError:
            # Stripe redelivers on 5xx
            logger.exception("Error creating license from webhook event %s", event_data.get("id"))
            return ResponseHelper.error("Failed to create license", 500)

        if not created:
            return ResponseHelper.success({"received": True, "message": "License already exists"})
        return ResponseHelper.success({"received": True})

    @staticmethod
    def _verify_event(payload, signature_header, webhook_secret):
        """
        Check the Stripe-Signature header against the raw body and return the decoded event.
        """
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        if not signature_header:
            raise stripe.SignatureVerificationError("No Stripe-Signature header", signature_header, payload)

        stripe.WebhookSignature.verify_header(payload, signature_header, webhook_secret,
                                              stripe.Webhook.DEFAULT_TOLERANCE)
        event_data = json.loads(payload)
        if not isinstance(event_data, dict):
            raise ValueError("Event payload is not an object")
        return event_data

    @staticmethod
    def _handle_event_by_type(event_data):
        """
        Route event to appropriate handler based on event type
        """
        event_type = event_data["type"]
        event_object = event_data.get("data", {}).get("object") or {}

        if event_type == StripeEventType.PAYMENT_INTENT_SUCCEEDED.value:
            return StripeWebhookHandler._handle_payment_intent_succeeded(event_object)
        elif event_type == StripeEventType.CHECKOUT_SESSION_COMPLETED.value:
            return StripeWebhookHandler._handle_checkout_session_completed(event_object)
        return False

    @staticmethod
    def _handle_payment_intent_succeeded(payment_intent):
        """
        Handle payment_intent.succeeded events from the onsite PaymentIntent flow
        """
        metadata = payment_intent.get("metadata") or {}
        user_id = metadata.get("user_id")
        if not user_id:
            raise WebhookEventError("No user_id in payment intent")

        payment_intent_id = payment_intent.get("id")
        if not payment_intent_id:
            raise WebhookEventError("No id in payment intent")

        kind = purchase_kind_from_intent(metadata.get("purchase_type"), payment_intent.get("amount"))
        created, _ = LicenseManager.create_license(user_id, payment_intent_id, kind)
        return created

    @staticmethod
    def _handle_checkout_session_completed(session):
        """
        Handle checkout.session.completed events from the older hosted Checkout flow
        """
        user_id = session.get("client_reference_id")
        if not user_id:
            raise WebhookEventError("No user_id in session")

        session_id = session.get("id")
        payment_reference = session.get("payment_intent") or session_id
        if not payment_reference:
            raise WebhookEventError("No id in session")

        metadata = session.get("metadata") or {}
        amount = session.get("amount_total")
        kind = purchase_kind_from_intent(metadata.get("purchase_type"), amount) if amount else PurchaseKind.BUNDLE
        created, _ = LicenseManager.create_license(user_id, payment_reference, kind, session_reference=session_id)
        return created
