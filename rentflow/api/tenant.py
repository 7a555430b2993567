"""Tenant API routes."""

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from rentflow.api.deps import get_notification_dispatcher
from rentflow.schemas.payment import PaymentResponse, ProofOfPaymentPayload
from rentflow.services.db import get_db
from rentflow.services.notification_service import NotificationDispatcher
from rentflow.services.payment_service import PaymentService

router = APIRouter(prefix="/api/tenant", tags=["tenant"])


@router.post(
    "/payments/proof",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_proof_of_payment(
    payload: ProofOfPaymentPayload,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> PaymentResponse:
    """
    Record a proof of payment awaiting landlord review.

    Returns:
        201: Pending payment created
        400: validation_error
        404: Lease not found
        409: receipt_reference already recorded
    """
    payment = PaymentService(db).submit_proof_of_payment(
        agreement_id=payload.agreement_id,
        payment_type=payload.payment_type,
        amount=payload.amount,
        payment_method=payload.payment_method,
        billing_id=payload.billing_id,
        proof_url=payload.proof_url,
        receipt_reference=payload.receipt_reference,
        actor_id=payload.actor_id,
    )
    background_tasks.add_task(dispatcher.drain)
    return PaymentResponse.model_validate(payment)
