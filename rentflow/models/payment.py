"""Payment ORM model for tenant payments and their payout bookkeeping."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentflow.models import Base, BaseModel


class PaymentType(str, Enum):
    """What a payment settles."""

    BILLING = "billing"
    """Tenant-submitted proof for a monthly bill"""

    MONTHLY_BILLING = "monthly_billing"
    """Gateway-confirmed monthly bill"""

    SECURITY_DEPOSIT = "security_deposit"
    ADVANCE_RENT = "advance_rent"
    ADVANCE_PAYMENT = "advance_payment"


INITIAL_PAYMENT_TYPES = frozenset(
    {PaymentType.SECURITY_DEPOSIT, PaymentType.ADVANCE_RENT, PaymentType.ADVANCE_PAYMENT}
)


class PaymentStatus(str, Enum):
    """Payment confirmation state: pending -> confirmed | failed."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PayoutStatus(str, Enum):
    """Landlord disbursement state: unpaid -> in_payout -> paid."""

    UNPAID = "unpaid"
    IN_PAYOUT = "in_payout"
    PAID = "paid"


class Payment(Base, BaseModel):
    """Model representing a tenant payment against a lease.

    receipt_reference is globally unique and doubles as the idempotency key for
    webhook redelivery and client retries. net_amount = gross_amount - gateway_fee.
    """

    __tablename__ = "payments"

    agreement_id: Mapped[int] = mapped_column(
        ForeignKey("lease_agreements.id"),
        nullable=False,
        index=True,
    )
    billing_id: Mapped[int | None] = mapped_column(
        ForeignKey("billings.id"),
        nullable=True,
        index=True,
    )
    payment_type: Mapped[PaymentType] = mapped_column(SQLEnum(PaymentType), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(64), nullable=False, default="UNKNOWN")

    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    gateway_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    net_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    payout_status: Mapped[PayoutStatus] = mapped_column(
        SQLEnum(PayoutStatus),
        nullable=False,
        default=PayoutStatus.UNPAID,
    )

    receipt_reference: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        unique=True,
        comment="Idempotency key (gateway invoice id or client reference)",
    )
    proof_of_payment_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    raw_gateway_payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    lease: Mapped["LeaseAgreement"] = relationship("LeaseAgreement")  # noqa: F821
    billing: Mapped["Billing | None"] = relationship("Billing")  # noqa: F821

    __table_args__ = (
        Index("idx_payment_status_payout", "payment_status", "payout_status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, agreement_id={self.agreement_id}, type={self.payment_type}, "
            f"net_amount={self.net_amount}, status={self.payment_status}, payout={self.payout_status})>"
        )


__all__ = ["Payment", "PaymentType", "PaymentStatus", "PayoutStatus", "INITIAL_PAYMENT_TYPES"]
