"""Pydantic schemas for payout administration and payout callbacks."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class DisbursePayload(BaseModel):
    """Request payload for POST /api/systemadmin/payouts/disburse."""

    payment_ids: list[int] = Field(..., description="Payments to disburse")


class PayoutBatchResponse(BaseModel):
    """One landlord batch accepted by the payout gateway."""

    landlord_id: int
    amount: Decimal
    external_id: str
    payment_ids: list[int]
    history_id: int


class DisbursementResponse(BaseModel):
    """Response schema of a disbursement run."""

    success: bool = True
    results: list[PayoutBatchResponse]


class EligiblePayoutResponse(BaseModel):
    """A landlord's confirmed, not yet disbursed payments."""

    landlord_id: int
    channel_code: str
    account_name: str
    account_number: str
    total_amount: Decimal
    payment_ids: list[int]


class PayoutCallbackPayload(BaseModel):
    """Payout status callback of the payout gateway."""

    id: str | None = Field(None, description="Gateway payout id")
    reference_id: str = Field(..., description="Our external_id")
    status: str
    failure_code: str | None = None

    model_config = ConfigDict(extra="allow")
