"""
Stripe gateway for checkout, billing portal, and webhook verification.

Wraps the stripe SDK behind an explicitly constructed object so services can
be handed a fake in tests.
"""
import json
import logging
from typing import Dict, Optional

import stripe

from app.core import config
from app.core.errors import SignatureInvalid, UpstreamError

logger = logging.getLogger(__name__)


class StripeGateway:
    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.api_key = api_key if api_key is not None else config.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else config.STRIPE_WEBHOOK_SECRET
        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY not configured - Stripe features disabled")

    def _require_key(self):
        if not self.api_key:
            raise UpstreamError("Stripe not configured - STRIPE_SECRET_KEY required")

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict:
        """
        Verify and parse a Stripe webhook event.

        Raises:
            SignatureInvalid: if the secret is missing, the payload is not a
                valid event or the signature does not match
        """
        if not self.webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET not configured")
            raise SignatureInvalid()
        if not signature:
            raise SignatureInvalid()
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {e}")
            raise SignatureInvalid()
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise SignatureInvalid()
        logger.info(f"Verified webhook event: {event['type']}, id={event['id']}")
        # Plain dicts from here on, independent of the SDK's object model
        return json.loads(payload)

    def create_customer(self, user_id: str, email: str, name: str) -> str:
        self._require_key()
        try:
            customer = stripe.Customer.create(
                api_key=self.api_key,
                email=email,
                name=name,
                metadata={"user_id": user_id},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating customer: {e}")
            raise UpstreamError("Failed to create billing customer")
        logger.info(f"Created Stripe customer for user_id={user_id}, customer_id={customer.id}")
        return customer.id

    def create_subscription_checkout(
        self,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> str:
        """Create a subscription-mode Checkout session and return its URL."""
        self._require_key()
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                customer=customer_id,
                payment_method_types=["card"],
                mode="subscription",
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                allow_promotion_codes=True,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating checkout session: {e}")
            raise UpstreamError("Failed to create checkout session")
        logger.info(f"Created subscription checkout session: session_id={session.id}, customer_id={customer_id}")
        return session.url

    def create_payment_checkout(
        self,
        customer_id: str,
        price_id: str,
        quantity: int,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> str:
        """Create a one-time payment-mode Checkout session and return its URL."""
        self._require_key()
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                customer=customer_id,
                payment_method_types=["card"],
                mode="payment",
                line_items=[{"price": price_id, "quantity": quantity}],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment session: {e}")
            raise UpstreamError("Failed to create checkout session")
        logger.info(f"Created payment checkout session: session_id={session.id}, customer_id={customer_id}")
        return session.url

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        self._require_key()
        try:
            session = stripe.billing_portal.Session.create(
                api_key=self.api_key,
                customer=customer_id,
                return_url=return_url,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating portal session: {e}")
            raise UpstreamError("Failed to create portal session")
        logger.info(f"Created billing portal session for customer_id={customer_id}")
        return session.url
