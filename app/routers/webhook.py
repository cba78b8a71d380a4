# app/routers/webhook.py

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.limiter import limiter
from app.services.payment import PaymentService

router = APIRouter(
    prefix="/webhook",
    tags=["Webhooks"],
)


@router.post("/stripe")
@limiter.limit(settings.webhook_rate_limit)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
):
    """
    Stripe webhook: a completed checkout enrolls the paying customer.
    Redelivery of an already processed checkout is acknowledged.
    """
    payload = await request.body()
    service = PaymentService(db)
    return service.handle_webhook(payload, stripe_signature)
