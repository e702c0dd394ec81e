"""Stripe webhook endpoint."""
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.api.deps import get_db, get_webhook_dispatcher
from creditflow.exceptions import InvalidSignature, MalformedEvent
from creditflow.schemas.webhook_event import WebhookAck
from creditflow.services.webhook_dispatcher import WebhookDispatcher

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/stripe", tags=["webhooks"])


@router.post("/webhook", response_model=WebhookAck)
async def handle_stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> WebhookAck:
    """
    Receive a Stripe event.

    The provider only looks at the status code:
    - 200: processed, duplicate of an already-processed event, or an
      event type this service does not handle
    - 400: missing or invalid signature, or malformed payload
    - 500: a handler failed; Stripe will redeliver the event
    - 503: payments are not configured (raised by the dependency)

    Args:
        request: Request carrying the raw body and Stripe-Signature header
        db: Database session
        dispatcher: Webhook dispatcher

    Returns:
        Acknowledgement with the dispatch outcome
    """
    body = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        logger.warning("stripe_webhook_missing_signature")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing Stripe signature")

    try:
        outcome = await dispatcher.dispatch(db, body, signature)
    except (InvalidSignature, MalformedEvent) as e:
        logger.warning("stripe_webhook_rejected", error_code=e.code, error=e.message)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except Exception:
        # Already logged and recorded as FAILED by the dispatcher
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        )

    return WebhookAck(outcome=outcome.value)
