"""Lease agreement and post-dated check ORM models."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentflow.models import Base, BaseModel


class LeaseStatus(str, Enum):
    """Lifecycle status of a lease agreement."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PdcStatus(str, Enum):
    """Status of a post-dated check.

    Only CLEARED checks are credited against a bill.
    """

    PENDING = "pending"
    CLEARED = "cleared"
    BOUNCED = "bounced"
    REPLACED = "replaced"


class LeaseAgreement(Base, BaseModel):
    """Lease between a tenant and a unit; owns billing records and payments."""

    __tablename__ = "lease_agreements"

    unit_id: Mapped[int] = mapped_column(ForeignKey("units.id"), nullable=False, index=True)
    tenant_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    status: Mapped[LeaseStatus] = mapped_column(
        SQLEnum(LeaseStatus),
        nullable=False,
        default=LeaseStatus.ACTIVE,
        index=True,
    )
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_security_deposit_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_advance_payment_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    unit: Mapped["Unit"] = relationship("Unit")  # noqa: F821
    tenant: Mapped["User"] = relationship("User", foreign_keys=[tenant_user_id])  # noqa: F821
    pdcs: Mapped[list["PostDatedCheck"]] = relationship("PostDatedCheck", back_populates="lease")

    def __repr__(self) -> str:
        return f"<LeaseAgreement(id={self.id}, unit_id={self.unit_id}, status={self.status})>"


class PostDatedCheck(Base, BaseModel):
    """Check issued by the tenant in advance for a future rent."""

    __tablename__ = "post_dated_checks"

    lease_id: Mapped[int] = mapped_column(
        ForeignKey("lease_agreements.id"),
        nullable=False,
        index=True,
    )
    billing_id: Mapped[int | None] = mapped_column(
        ForeignKey("billings.id"),
        nullable=True,
        index=True,
        comment="Billing this check is applied to, when linked explicitly",
    )
    check_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[PdcStatus] = mapped_column(
        SQLEnum(PdcStatus),
        nullable=False,
        default=PdcStatus.PENDING,
    )
    cleared_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    bounced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    replaced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    lease: Mapped["LeaseAgreement"] = relationship("LeaseAgreement", back_populates="pdcs")

    def __repr__(self) -> str:
        return (
            f"<PostDatedCheck(id={self.id}, lease_id={self.lease_id}, "
            f"amount={self.amount}, status={self.status})>"
        )


__all__ = ["LeaseAgreement", "LeaseStatus", "PostDatedCheck", "PdcStatus"]
