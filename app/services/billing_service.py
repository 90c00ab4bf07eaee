"""
Billing service for Stripe integration.

Vendors buy recurring plans; candidates buy one-time visibility packages.
Checkout sessions are created here, and Stripe webhook events are reconciled
into Subscription and CandidatePayment rows.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core import config
from app.core.errors import Forbidden, NotFound, ValidationError
from app.core.logging_config import sanitize_log_data
from app.core.plans import (
    DOMAIN_SUBDOMAINS,
    get_candidate_package,
    get_plan_from_price_id,
    get_vendor_plan,
)
from app.db.models.user import User
from app.db.models.subscription import Subscription
from app.db.models.candidate_payment import CandidatePayment
from app.services.email_service import EmailNotifier
from app.services.stripe_service import StripeGateway
from app.services.visibility import parse_subdomains, refresh_user_visibility

logger = logging.getLogger(__name__)


def _timestamp_to_datetime(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _first_item(subscription_data: Dict) -> Dict:
    items = (subscription_data.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _display_name(user: User) -> str:
    return f"{user.first_name or ''} {user.last_name or ''}".strip() or user.email


class BillingService:
    def __init__(
        self,
        db: Session,
        gateway: StripeGateway,
        notifier: Optional[EmailNotifier] = None,
        dispatch: Optional[Callable[..., Any]] = None,
        client_url: Optional[str] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier
        self.dispatch = dispatch
        self.client_url = (client_url or config.CLIENT_URL).rstrip("/")

    def _notify(self, fn: Callable[..., Any], *args) -> None:
        if self.dispatch is not None:
            self.dispatch(fn, *args)
            return
        try:
            fn(*args)
        except Exception as e:
            logger.error(f"Notification failed: {e}", exc_info=True)

    def _get_user(self, user_id: str) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound("User not found")
        return user

    def _ensure_customer(self, user: User) -> str:
        """Return the user's Stripe customer id, creating customer and subscription row if needed."""
        subscription = user.subscription
        if subscription and subscription.stripe_customer_id:
            return subscription.stripe_customer_id

        customer_id = self.gateway.create_customer(user.id, user.email, _display_name(user))
        if not subscription:
            subscription = Subscription(user_id=user.id, plan_type="free", status="active")
            self.db.add(subscription)
        subscription.stripe_customer_id = customer_id
        self.db.commit()
        return customer_id

    # ----------------------------------------------------------------
    # reads
    # ----------------------------------------------------------------

    def get_subscription(self, user_id: str) -> Dict[str, Any]:
        sub = self.db.query(Subscription).filter(Subscription.user_id == user_id).first()
        if not sub:
            return {"plan": "free", "status": "active"}
        return {
            "plan": sub.plan_type,
            "status": sub.status,
            "stripe_customer_id": sub.stripe_customer_id,
            "stripe_subscription_id": sub.stripe_subscription_id,
            "stripe_price_id": sub.stripe_price_id,
            "current_period_end": sub.current_period_end.isoformat() if sub.current_period_end else None,
        }

    # ----------------------------------------------------------------
    # checkout
    # ----------------------------------------------------------------

    def create_vendor_checkout(self, user_id: str, plan_id: Optional[str]) -> str:
        """Start a recurring-plan checkout for a vendor and return the Checkout URL."""
        plan = get_vendor_plan(plan_id)
        if not plan or not plan["stripe_price_id"]:
            raise ValidationError("Invalid plan or free plan selected")

        user = self._get_user(user_id)
        if user.user_type != "vendor":
            raise Forbidden("Vendor account required for subscription plans")

        customer_id = self._ensure_customer(user)
        url = self.gateway.create_subscription_checkout(
            customer_id=customer_id,
            price_id=plan["stripe_price_id"],
            success_url=f"{self.client_url}/?success=true",
            cancel_url=f"{self.client_url}/?canceled=true",
            metadata={"user_id": user.id, "plan": plan["id"]},
        )
        logger.info(f"Vendor checkout created: user_id={user.id}, plan={plan['id']}")
        return url

    def _validate_candidate_selection(
        self,
        package_id: str,
        domain: Optional[str],
        subdomains: List[str],
    ) -> None:
        if domain and domain not in DOMAIN_SUBDOMAINS:
            raise ValidationError("Domain must be 'contract' or 'full_time'", details=[{"field": "domain"}])

        if package_id == "base":
            if not domain:
                raise ValidationError("Domain (contract or full_time) is required for the base package")
            if len(subdomains) != 1:
                raise ValidationError("Exactly one subdomain must be selected for the base package")
        elif package_id == "subdomain_addon":
            if not domain:
                raise ValidationError("Domain is required for subdomain add-ons")
            if not subdomains:
                raise ValidationError("At least one subdomain must be selected")
        elif package_id == "single_domain_bundle" and not domain:
            raise ValidationError("Domain (contract or full_time) is required for single domain bundle")

        if domain and subdomains:
            unknown = [s for s in subdomains if s not in DOMAIN_SUBDOMAINS[domain]]
            if unknown:
                raise ValidationError(
                    f"Unknown subdomain(s) for {domain}: {', '.join(unknown)}",
                    details=[{"field": "subdomains", "invalid": unknown}],
                )

    def create_candidate_checkout(
        self,
        user_id: str,
        package_id: Optional[str],
        domain: Optional[str] = None,
        subdomains: Optional[List[str]] = None,
    ) -> str:
        """Start a one-time visibility purchase for a candidate and return the Checkout URL."""
        if not package_id:
            raise ValidationError("packageId is required")
        package = get_candidate_package(package_id)
        if not package or not package["stripe_price_id"]:
            raise ValidationError("Invalid package ID or package not configured")

        # De-duplicate, keep the client's order
        selected = list(dict.fromkeys(subdomains or []))
        self._validate_candidate_selection(package_id, domain, selected)

        user = self._get_user(user_id)
        if user.user_type != "candidate":
            raise Forbidden("Candidate account required for visibility packages")

        customer_id = self._ensure_customer(user)

        # Add-ons are priced per subdomain
        quantity = len(selected) if package_id == "subdomain_addon" else 1
        url = self.gateway.create_payment_checkout(
            customer_id=customer_id,
            price_id=package["stripe_price_id"],
            quantity=quantity,
            success_url=f"{self.client_url}/?candidate_success=true",
            cancel_url=f"{self.client_url}/?canceled=true",
            metadata={
                "user_id": user.id,
                "package_id": package_id,
                "domain": domain or "",
                "subdomains": json.dumps(selected),
                "quantity": str(quantity),
            },
        )
        logger.info(f"Candidate checkout created: user_id={user.id}, package={package_id}, quantity={quantity}")
        return url

    def create_portal(self, user_id: str) -> str:
        sub = self.db.query(Subscription).filter(Subscription.user_id == user_id).first()
        if not sub or not sub.stripe_customer_id:
            raise ValidationError("No billing account found. Please subscribe first.")
        return self.gateway.create_portal_session(sub.stripe_customer_id, f"{self.client_url}/")

    # ----------------------------------------------------------------
    # webhooks
    # ----------------------------------------------------------------

    def handle_event(self, event: Dict) -> None:
        """Apply one verified Stripe event. Unknown event types are ignored."""
        event_type = event.get("type")
        data = event.get("data") or {}

        if event_type in ("customer.subscription.created", "customer.subscription.updated"):
            self.handle_subscription_upsert(data, created=event_type == "customer.subscription.created")
        elif event_type == "customer.subscription.deleted":
            self.handle_subscription_deleted(data)
        elif event_type == "checkout.session.completed":
            self.handle_checkout_session_completed(data)
        else:
            logger.debug(f"Ignoring webhook event type: {event_type}")

    def handle_subscription_upsert(self, event_data: Dict, created: bool = False) -> int:
        """
        Handle customer.subscription.created / updated.

        Returns:
            Number of subscription rows updated (matched on customer id)
        """
        subscription_data = event_data.get("object") or {}
        customer_id = subscription_data.get("customer")
        item = _first_item(subscription_data)
        price_id = (item.get("price") or {}).get("id") or ""
        plan = get_plan_from_price_id(price_id)
        status = subscription_data.get("status") or "active"
        # Newer API versions report the period end per item
        period_end = _timestamp_to_datetime(
            subscription_data.get("current_period_end") or item.get("current_period_end")
        )

        rows = self.db.query(Subscription).filter(Subscription.stripe_customer_id == customer_id).all()
        for row in rows:
            row.plan_type = plan
            row.status = status
            row.stripe_subscription_id = subscription_data.get("id")
            row.stripe_price_id = price_id
            row.current_period_end = period_end
        self.db.commit()

        if not rows:
            logger.warning(f"No subscription row for customer_id={customer_id}")
            return 0

        logger.info(f"Subscription synced: customer_id={customer_id}, plan={plan}, status={status}")

        if created and self.notifier is not None:
            user = self.db.query(User).filter(User.id == rows[0].user_id).first()
            if user:
                self._notify(
                    self.notifier.send_subscription_activated,
                    user.email, user.first_name or "there", plan, period_end,
                )
        return len(rows)

    def handle_subscription_deleted(self, event_data: Dict) -> int:
        """Handle customer.subscription.deleted: downgrade to free, keep the customer id."""
        subscription_data = event_data.get("object") or {}
        customer_id = subscription_data.get("customer")

        rows = self.db.query(Subscription).filter(Subscription.stripe_customer_id == customer_id).all()
        for row in rows:
            row.plan_type = "free"
            row.status = "canceled"
            row.stripe_subscription_id = None
            row.stripe_price_id = None
            row.current_period_end = None
        self.db.commit()

        logger.info(f"Subscription deleted: customer_id={customer_id}, rows={len(rows)}, downgraded to free")
        return len(rows)

    def handle_checkout_session_completed(self, event_data: Dict) -> bool:
        """
        Handle checkout.session.completed for one-time candidate purchases.

        Records the payment keyed by session id, then recomputes the user's
        visibility from the full payment history.

        Returns:
            True if a new payment was recorded, False for ignored or duplicate events
        """
        session = event_data.get("object") or {}
        session_id = session.get("id")

        # Subscription-mode sessions are covered by customer.subscription.* events
        if session.get("mode") != "payment":
            return False

        metadata = session.get("metadata") or {}
        user_id = metadata.get("user_id")
        package_id = metadata.get("package_id")
        if not user_id or not package_id or not session_id:
            logger.error(f"Missing metadata on payment session {session_id}: {sanitize_log_data(metadata)}")
            return False

        if not self.db.query(User).filter(User.id == user_id).first():
            logger.error(f"User not found for payment session: session_id={session_id}, user_id={user_id}")
            return False

        if self.db.query(CandidatePayment).filter(CandidatePayment.stripe_session_id == session_id).first():
            logger.info(f"Duplicate session event ignored: {session_id}")
            return False

        payment_intent = session.get("payment_intent")
        self.db.add(CandidatePayment(
            user_id=user_id,
            stripe_session_id=session_id,
            stripe_payment_intent_id=payment_intent if isinstance(payment_intent, str) else None,
            package_type=package_id,
            domain=metadata.get("domain") or None,
            subdomains=json.dumps(parse_subdomains(metadata.get("subdomains") or "[]")),
            amount_cents=session.get("amount_total") or 0,
            status="completed",
        ))
        try:
            self.db.flush()
        except IntegrityError:
            # A concurrent delivery of the same session won the insert
            self.db.rollback()
            logger.info(f"Duplicate session event ignored: {session_id}")
            return False

        refresh_user_visibility(self.db, user_id)
        self.db.commit()
        return True
