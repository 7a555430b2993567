"""Pydantic schemas for payments, PDCs and gateway webhooks."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from rentflow.models.lease import PdcStatus
from rentflow.models.payment import PaymentStatus, PaymentType, PayoutStatus


class ProofOfPaymentPayload(BaseModel):
    """Request payload for POST /api/tenant/payments/proof."""

    agreement_id: int
    payment_type: str = Field(..., description="billing, security_deposit or advance_rent")
    amount: Decimal
    payment_method: str = Field("UNKNOWN", description="e.g. GCASH, BANK_TRANSFER")
    billing_id: int | None = None
    proof_url: str | None = Field(None, description="Uploaded proof location")
    receipt_reference: str | None = Field(None, description="Client idempotency key")
    actor_id: int | None = None


class PaymentResponse(BaseModel):
    """Response schema for a payment."""

    id: int
    agreement_id: int
    billing_id: int | None = None
    payment_type: PaymentType
    payment_method: str
    amount_paid: Decimal
    gross_amount: Decimal
    gateway_fee: Decimal
    net_amount: Decimal
    payment_status: PaymentStatus
    payout_status: PayoutStatus
    receipt_reference: str
    proof_of_payment_url: str | None = None
    payment_date: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PdcStatusPayload(BaseModel):
    """Request payload for PUT /api/landlord/pdc/{pdc_id}/status."""

    status: str
    actor_id: int | None = None


class PdcResponse(BaseModel):
    """Response schema for a post-dated check."""

    id: int
    lease_id: int
    billing_id: int | None = None
    check_number: str | None = None
    amount: Decimal
    due_date: date
    status: PdcStatus
    cleared_at: datetime | None = None
    bounced_at: datetime | None = None
    replaced_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceFee(BaseModel):
    """One fee line reported by the payment gateway."""

    type: str | None = None
    value: Decimal = Decimal("0")


class InvoiceWebhookPayload(BaseModel):
    """Invoice callback body of the payment gateway.

    Only ``status`` is mandatory at parse time; a non-PAID callback is
    acknowledged and ignored whatever else it carries.
    """

    id: str | None = Field(None, description="Gateway invoice id (receipt reference)")
    external_id: str | None = Field(None, description="billing-{id} or init-{kind}-{agreement}")
    status: str
    amount: Decimal | None = None
    paid_amount: Decimal | None = None
    payment_method: str | None = None
    payment_channel: str | None = None
    paid_at: datetime | None = None
    fees: list[InvoiceFee] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


class WebhookAck(BaseModel):
    """Response body of the webhook endpoints."""

    status: str
    reason: str | None = None
    payment_id: int | None = None
    detail: dict[str, Any] | None = None
