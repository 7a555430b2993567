"""System admin payout routes."""

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from rentflow.api.deps import get_notification_dispatcher, get_payout_gateway
from rentflow.schemas.payout import (
    DisbursementResponse,
    DisbursePayload,
    EligiblePayoutResponse,
    PayoutBatchResponse,
)
from rentflow.services.db import get_db
from rentflow.services.notification_service import NotificationDispatcher
from rentflow.services.payout_gateway import PayoutGateway
from rentflow.services.payout_service import PayoutService

router = APIRouter(prefix="/api/systemadmin/payouts", tags=["payouts"])


@router.get("/eligible", response_model=list[EligiblePayoutResponse])
def list_eligible_payouts(
    db: Session = Depends(get_db),
    gateway: PayoutGateway = Depends(get_payout_gateway),
) -> list[EligiblePayoutResponse]:
    """Confirmed payments not yet disbursed, grouped per landlord."""
    groups = PayoutService(db, gateway).list_eligible_payments()
    return [
        EligiblePayoutResponse(
            landlord_id=group.landlord_id,
            channel_code=group.account.channel_code,
            account_name=group.account.account_name,
            account_number=group.account.account_number,
            total_amount=group.total_amount,
            payment_ids=[p.id for p in group.payments],
        )
        for group in groups
    ]


@router.post("/disburse", response_model=DisbursementResponse)
def disburse_payouts(
    payload: DisbursePayload,
    background_tasks: BackgroundTasks,
    actor_id: int | None = None,
    db: Session = Depends(get_db),
    gateway: PayoutGateway = Depends(get_payout_gateway),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> DisbursementResponse:
    """
    Disburse the selected payments, one gateway payout per landlord.

    Returns:
        200: Batches accepted by the gateway
        400: validation_error, no_eligible_payments, below_minimum_payout
        500: external_gateway_error (earlier batches listed under "completed")
    """
    result = PayoutService(db, gateway).disburse(payload.payment_ids, actor_id=actor_id)
    background_tasks.add_task(dispatcher.drain)
    return DisbursementResponse(
        results=[PayoutBatchResponse(**batch._asdict()) for batch in result.batches]
    )
