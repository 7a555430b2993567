"""Pydantic schemas for landlord billing endpoints."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from rentflow.models.billing import BillingStatus, ChargeCategory


class ChargeLine(BaseModel):
    """Additional charge or discount line of the billing form."""

    charge_id: int | None = Field(None, description="Existing charge to keep/update")
    charge_category: ChargeCategory = Field(
        ChargeCategory.ADDITIONAL, description="'additional' or 'discount'"
    )
    charge_type: str = Field(..., description="Label, e.g. 'Parking'")
    amount: Decimal = Field(..., description="Non-negative amount")


class SubmeteredBillingPayload(BaseModel):
    """Request payload for POST/PUT /api/landlord/billing/submetered.

    Readings stay loosely typed so non-numeric input is reported by the
    service as a validation_error on the offending field.
    """

    unit_id: int = Field(..., description="Billed unit")
    reading_date: date = Field(..., description="Date the meters were read")
    due_date: date | None = Field(None, description="Payment due date")
    billing_period: date | None = Field(None, description="Any day of the billed month")
    water_prev: str | float | None = None
    water_curr: str | float | None = None
    elec_prev: str | float | None = None
    elec_curr: str | float | None = None
    charges: list[ChargeLine] = Field(default_factory=list)
    actor_id: int | None = Field(None, description="Landlord user id (audit)")


class BillPreviewPayload(BaseModel):
    """Request payload for POST /api/landlord/billing/preview."""

    water_prev: str | float | None = None
    water_curr: str | float | None = None
    elec_prev: str | float | None = None
    elec_curr: str | float | None = None
    water_rate: str | float | None = None
    elec_rate: str | float | None = None
    rent_amount: str | float | None = None
    assoc_dues: str | float | None = None
    charges: list[ChargeLine] = Field(default_factory=list)
    pdc_amount: str | float | None = None
    pdc_status: str | None = None


class BillBreakdownResponse(BaseModel):
    """Computed bill without storage."""

    water_usage: Decimal
    elec_usage: Decimal
    water_cost: Decimal
    elec_cost: Decimal
    rent_amount: Decimal
    assoc_dues: Decimal
    total_extra_charges: Decimal
    total_discounts: Decimal
    pdc_credit: Decimal
    total_amount_due: Decimal


class AddChargePayload(BaseModel):
    """Request payload for POST /api/landlord/billing/{billing_id}/charges."""

    charge_category: ChargeCategory = ChargeCategory.ADDITIONAL
    charge_type: str
    amount: Decimal
    actor_id: int | None = None


class ChargeResponse(BaseModel):
    """Stored charge line."""

    id: int
    billing_id: int
    charge_category: ChargeCategory
    charge_type: str
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class BillingResponse(BaseModel):
    """Response schema for a billing record."""

    id: int
    lease_id: int
    unit_id: int
    billing_period: date
    reading_date: date | None = None
    due_date: date | None = None
    water_prev: Decimal | None = None
    water_curr: Decimal | None = None
    elec_prev: Decimal | None = None
    elec_curr: Decimal | None = None
    water_rate: Decimal
    electricity_rate: Decimal
    total_water_amount: Decimal
    total_electricity_amount: Decimal
    rent_amount: Decimal
    assoc_dues: Decimal
    total_extra_charges: Decimal
    total_discounts: Decimal
    pdc_credit: Decimal
    total_amount_due: Decimal
    status: BillingStatus
    paid_at: datetime | None = None
    charges: list[ChargeResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
