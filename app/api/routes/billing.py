"""
Billing endpoints: catalog, subscription status, Stripe Checkout and portal.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from app.core.auth_dependency import (
    AuthIdentity,
    get_current_identity,
    get_db,
    get_gateway,
    get_notifier,
    require_role,
)
from app.core.plans import CANDIDATE_PACKAGES, VENDOR_PLAN_DEFINITIONS, public_plans
from app.schemas.billing import (
    BillingErrorResponse,
    CandidateCheckoutRequest,
    CheckoutResponse,
    VendorCheckoutRequest,
)
from app.services.billing_service import BillingService
from app.services.email_service import EmailNotifier
from app.services.stripe_service import StripeGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Billing"])

ERROR_RESPONSES = {
    400: {"model": BillingErrorResponse},
    403: {"model": BillingErrorResponse},
    502: {"model": BillingErrorResponse},
}


def get_billing_service(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
    notifier: EmailNotifier = Depends(get_notifier),
) -> BillingService:
    return BillingService(db, gateway, notifier=notifier, dispatch=background_tasks.add_task)


@router.get("/plans")
def get_plans():
    return {"plans": public_plans(VENDOR_PLAN_DEFINITIONS)}


@router.get("/candidate-packages")
def get_candidate_packages():
    return {"packages": public_plans(CANDIDATE_PACKAGES)}


@router.get("/subscription")
def get_subscription(
    identity: AuthIdentity = Depends(get_current_identity),
    service: BillingService = Depends(get_billing_service),
):
    return {"subscription": service.get_subscription(identity.user_id)}


# ✅ VENDOR CHECKOUT (recurring subscription)
@router.post("/checkout", response_model=CheckoutResponse, responses=ERROR_RESPONSES)
def create_checkout(
    body: VendorCheckoutRequest,
    identity: AuthIdentity = Depends(require_role("vendor", "Vendor account required for subscription plans")),
    service: BillingService = Depends(get_billing_service),
):
    return {"url": service.create_vendor_checkout(identity.user_id, body.plan_id)}


# ✅ CANDIDATE CHECKOUT (one-time payment)
@router.post("/candidate-checkout", response_model=CheckoutResponse, responses=ERROR_RESPONSES)
def create_candidate_checkout(
    body: CandidateCheckoutRequest,
    identity: AuthIdentity = Depends(require_role("candidate", "Candidate account required for visibility packages")),
    service: BillingService = Depends(get_billing_service),
):
    url = service.create_candidate_checkout(
        identity.user_id,
        body.package_id,
        domain=body.domain,
        subdomains=body.subdomains,
    )
    return {"url": url}


# ✅ BILLING PORTAL
@router.post("/portal", response_model=CheckoutResponse, responses=ERROR_RESPONSES)
def create_portal(
    identity: AuthIdentity = Depends(get_current_identity),
    service: BillingService = Depends(get_billing_service),
):
    return {"url": service.create_portal(identity.user_id)}
