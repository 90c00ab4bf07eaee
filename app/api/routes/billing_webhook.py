import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_db, get_gateway, get_notifier
from app.core.errors import SignatureInvalid
from app.services.billing_service import BillingService
from app.services.email_service import EmailNotifier
from app.services.stripe_service import StripeGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Billing Webhook"])


async def raw_body(request: Request) -> bytes:
    """Signature is computed over the exact bytes Stripe sent."""
    return await request.body()


# ✅ STRIPE WEBHOOK
# Sync handler: FastAPI runs it in the threadpool, off the event loop
@router.post("/webhook")
def stripe_webhook(
    background_tasks: BackgroundTasks,
    payload: bytes = Depends(raw_body),
    stripe_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_gateway),
    notifier: EmailNotifier = Depends(get_notifier),
):
    try:
        event = gateway.construct_event(payload, stripe_signature)
    except SignatureInvalid:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid signature"})

    service = BillingService(db, gateway, notifier=notifier, dispatch=background_tasks.add_task)
    try:
        service.handle_event(event)
    except Exception as e:
        db.rollback()
        logger.error(f"Webhook handler error for {event.get('type')} ({event.get('id')}): {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook processing failed"},
        )

    return {"received": True}
