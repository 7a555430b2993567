"""Billing, billing charge and meter reading ORM models."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, DateTime, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentflow.models import Base, BaseModel
from rentflow.models.property import UtilityType


class BillingStatus(str, Enum):
    """Settlement status of a billing record."""

    UNPAID = "unpaid"
    PAID = "paid"


class ChargeCategory(str, Enum):
    """Line item category: additional charges add, discounts subtract."""

    ADDITIONAL = "additional"
    DISCOUNT = "discount"


class Billing(Base, BaseModel):
    """
    The current bill of a unit for one billing period.

    Exactly one row exists per (unit_id, billing_period); re-submitting readings
    or charges before settlement updates this row in place. The totals always
    satisfy:

        total_amount_due = rent_amount - pdc_credit + assoc_dues
                           + total_water_amount + total_electricity_amount
                           + total_extra_charges - total_discounts
    """

    __tablename__ = "billings"

    lease_id: Mapped[int] = mapped_column(
        ForeignKey("lease_agreements.id"),
        nullable=False,
        index=True,
    )
    unit_id: Mapped[int] = mapped_column(ForeignKey("units.id"), nullable=False, index=True)
    billing_period: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="First day of the billed month",
    )
    reading_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Readings snapshot used for this bill
    water_prev: Mapped[Decimal | None] = mapped_column(Numeric(12, 3), nullable=True)
    water_curr: Mapped[Decimal | None] = mapped_column(Numeric(12, 3), nullable=True)
    elec_prev: Mapped[Decimal | None] = mapped_column(Numeric(12, 3), nullable=True)
    elec_curr: Mapped[Decimal | None] = mapped_column(Numeric(12, 3), nullable=True)
    water_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=Decimal("0"))
    electricity_rate: Mapped[Decimal] = mapped_column(
        Numeric(12, 4), nullable=False, default=Decimal("0")
    )

    # Computed sub-totals
    total_water_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    total_electricity_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    rent_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    assoc_dues: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_extra_charges: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    total_discounts: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    pdc_credit: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_amount_due: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )

    status: Mapped[BillingStatus] = mapped_column(
        SQLEnum(BillingStatus),
        nullable=False,
        default=BillingStatus.UNPAID,
        index=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    lease: Mapped["LeaseAgreement"] = relationship("LeaseAgreement")  # noqa: F821
    charges: Mapped[list["BillingCharge"]] = relationship(
        "BillingCharge",
        back_populates="billing",
        cascade="all, delete-orphan",
        order_by="BillingCharge.id",
    )

    __table_args__ = (
        UniqueConstraint("unit_id", "billing_period", name="uq_billing_unit_period"),
        Index("idx_billing_lease_status", "lease_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Billing(id={self.id}, unit_id={self.unit_id}, period={self.billing_period}, "
            f"total_amount_due={self.total_amount_due}, status={self.status})>"
        )


class BillingCharge(Base, BaseModel):
    """Named additional charge or discount attached to one billing record."""

    __tablename__ = "billing_charges"

    billing_id: Mapped[int] = mapped_column(
        ForeignKey("billings.id"),
        nullable=False,
        index=True,
    )
    charge_category: Mapped[ChargeCategory] = mapped_column(
        SQLEnum(ChargeCategory),
        nullable=False,
    )
    charge_type: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
        comment="Free-text label, e.g. 'Parking' or 'Loyalty discount'",
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    billing: Mapped["Billing"] = relationship("Billing", back_populates="charges")

    def __repr__(self) -> str:
        return (
            f"<BillingCharge(id={self.id}, billing_id={self.billing_id}, "
            f"category={self.charge_category}, amount={self.amount})>"
        )


class MeterReading(Base, BaseModel):
    """Previous/current meter values of one unit utility for a billing period."""

    __tablename__ = "meter_readings"

    unit_id: Mapped[int] = mapped_column(ForeignKey("units.id"), nullable=False, index=True)
    utility_type: Mapped[UtilityType] = mapped_column(SQLEnum(UtilityType), nullable=False)
    billing_period: Mapped[date] = mapped_column(Date, nullable=False)
    reading_date: Mapped[date] = mapped_column(Date, nullable=False)
    previous_reading: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    current_reading: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "unit_id", "utility_type", "billing_period", name="uq_meter_reading_unit_type_period"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<MeterReading(id={self.id}, unit_id={self.unit_id}, type={self.utility_type}, "
            f"prev={self.previous_reading}, curr={self.current_reading})>"
        )


__all__ = ["Billing", "BillingCharge", "BillingStatus", "ChargeCategory", "MeterReading"]
