"""Payment gateway callback endpoints.

The body is parsed by the services after the x-callback-token check, so an
unauthenticated caller learns nothing about payload validation.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from rentflow.api.deps import get_notification_dispatcher, get_payout_gateway
from rentflow.schemas.payment import WebhookAck
from rentflow.services.db import get_db
from rentflow.services.notification_service import NotificationDispatcher
from rentflow.services.payment_service import PaymentService
from rentflow.services.payout_gateway import PayoutGateway
from rentflow.services.payout_service import PayoutService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhook/gateway", tags=["webhook"])


async def _read_json(request: Request) -> Any:
    body = await request.body()
    try:
        return json.loads(body) if body else None
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return None


@router.post("/invoice", response_model=WebhookAck)
async def invoice_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_callback_token: str | None = Header(None, alias="x-callback-token"),
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> WebhookAck:
    """
    Invoice status callback.

    Returns:
        200: processed (PAID, or FAILED/EXPIRED/CANCELLED), or ignored (other
             statuses, duplicate delivery)
        400: bad_request (unparseable payload, unknown external_id)
        401: unauthorized (wrong token)
    """
    payload = await _read_json(request)
    result = await run_in_threadpool(
        PaymentService(db).process_invoice_webhook, x_callback_token, payload
    )
    if result.status == "processed":
        background_tasks.add_task(dispatcher.drain)
    return WebhookAck(**result._asdict())


@router.post("/payout", response_model=WebhookAck)
async def payout_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_callback_token: str | None = Header(None, alias="x-callback-token"),
    db: Session = Depends(get_db),
    gateway: PayoutGateway = Depends(get_payout_gateway),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> WebhookAck:
    """Payout status callback (SUCCEEDED / FAILED)."""
    payload = await _read_json(request)
    result = await run_in_threadpool(
        PayoutService(db, gateway).apply_payout_callback, x_callback_token, payload
    )
    if result.status == "processed":
        background_tasks.add_task(dispatcher.drain)
    return WebhookAck(**result._asdict())
