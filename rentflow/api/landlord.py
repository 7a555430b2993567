"""Landlord API routes: billing, charges, post-dated checks and payment review."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from sqlalchemy.orm import Session

from rentflow.api.deps import get_notification_dispatcher
from rentflow.schemas.billing import (
    AddChargePayload,
    BillBreakdownResponse,
    BillingResponse,
    BillPreviewPayload,
    ChargeResponse,
    SubmeteredBillingPayload,
)
from rentflow.schemas.payment import PaymentResponse, PdcResponse, PdcStatusPayload
from rentflow.services.billing_service import BillingService
from rentflow.services.db import get_db
from rentflow.services.notification_service import NotificationDispatcher
from rentflow.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/landlord", tags=["landlord"])


@router.api_route(
    "/billing/submetered",
    methods=["POST", "PUT"],
    response_model=BillingResponse,
    status_code=status.HTTP_200_OK,
)
def upsert_submetered_billing(
    payload: SubmeteredBillingPayload,
    response: Response,
    db: Session = Depends(get_db),
) -> BillingResponse:
    """
    Create or update the unit's bill for the period.

    Returns:
        201: Billing created
        200: Existing billing updated in place
        400: validation_error (bad readings/charges, bill already paid)
        404: Unit, property or lease not found
    """
    result = BillingService(db).upsert_billing(
        unit_id=payload.unit_id,
        reading_date=payload.reading_date,
        due_date=payload.due_date,
        water_prev=payload.water_prev,
        water_curr=payload.water_curr,
        elec_prev=payload.elec_prev,
        elec_curr=payload.elec_curr,
        charges=[charge.model_dump() for charge in payload.charges],
        billing_period=payload.billing_period,
        actor_id=payload.actor_id,
    )
    response.status_code = status.HTTP_201_CREATED if result.created else status.HTTP_200_OK
    return BillingResponse.model_validate(result.billing)


@router.post("/billing/preview", response_model=BillBreakdownResponse)
def preview_billing(payload: BillPreviewPayload) -> BillBreakdownResponse:
    """Compute a bill from the form values without touching storage."""
    pdc = None
    if payload.pdc_amount is not None:
        pdc = {"status": payload.pdc_status, "amount": payload.pdc_amount}
    breakdown = BillingService.preview_bill(
        water_prev=payload.water_prev,
        water_curr=payload.water_curr,
        elec_prev=payload.elec_prev,
        elec_curr=payload.elec_curr,
        water_rate=payload.water_rate,
        elec_rate=payload.elec_rate,
        rent_amount=payload.rent_amount,
        assoc_dues=payload.assoc_dues,
        charges=payload.charges,
        pdc=pdc,
    )
    return BillBreakdownResponse(**breakdown._asdict())


@router.get("/billing/{billing_id}", response_model=BillingResponse)
def get_billing(billing_id: int, db: Session = Depends(get_db)) -> BillingResponse:
    """Read one billing record with its charges."""
    return BillingResponse.model_validate(BillingService(db).get_billing(billing_id))


@router.post(
    "/billing/{billing_id}/charges",
    response_model=ChargeResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_charge(
    billing_id: int, payload: AddChargePayload, db: Session = Depends(get_db)
) -> ChargeResponse:
    """Attach an additional charge or discount to an unpaid bill."""
    charge = BillingService(db).add_charge(
        billing_id,
        charge_category=payload.charge_category.value,
        charge_type=payload.charge_type,
        amount=payload.amount,
        actor_id=payload.actor_id,
    )
    return ChargeResponse.model_validate(charge)


@router.delete("/billing/charges/{charge_id}", response_model=BillingResponse)
def remove_charge(
    charge_id: int, actor_id: int | None = None, db: Session = Depends(get_db)
) -> BillingResponse:
    """Delete a charge or discount; returns the bill with adjusted totals."""
    billing = BillingService(db).remove_charge(charge_id, actor_id=actor_id)
    return BillingResponse.model_validate(billing)


@router.put("/pdc/{pdc_id}/status", response_model=PdcResponse)
def update_pdc_status(
    pdc_id: int,
    payload: PdcStatusPayload,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> PdcResponse:
    """Mark a post-dated check pending, cleared, bounced or replaced."""
    pdc = PaymentService(db).update_pdc_status(pdc_id, payload.status, actor_id=payload.actor_id)
    background_tasks.add_task(dispatcher.drain)
    return PdcResponse.model_validate(pdc)


@router.post("/payments/{payment_id}/{action}", response_model=PaymentResponse)
def review_payment(
    payment_id: int,
    action: str,
    background_tasks: BackgroundTasks,
    actor_id: int | None = None,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> PaymentResponse:
    """Approve or reject a tenant-submitted payment."""
    payment = PaymentService(db).review_payment(payment_id, action, actor_id=actor_id)
    background_tasks.add_task(dispatcher.drain)
    return PaymentResponse.model_validate(payment)
