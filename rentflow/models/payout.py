"""Payout channel, landlord payout account and payout history ORM models."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, Boolean, ForeignKey, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from rentflow.models import Base, BaseModel


class PayoutHistoryStatus(str, Enum):
    """Gateway-side status of a disbursement batch."""

    ACCEPTED = "ACCEPTED"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class PayoutChannel(Base, BaseModel):
    """Disbursement channel offered by the payout gateway (bank or e-wallet)."""

    __tablename__ = "payout_channels"

    channel_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    channel_type: Mapped[str] = mapped_column(String(16), nullable=False, comment="BANK or EWALLET")
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<PayoutChannel(code={self.channel_code}, type={self.channel_type})>"


class LandlordPayoutAccount(Base, BaseModel):
    """Destination account a landlord receives payouts into."""

    __tablename__ = "landlord_payout_accounts"

    landlord_id: Mapped[int] = mapped_column(
        ForeignKey("landlords.id"),
        nullable=False,
        index=True,
    )
    channel_code: Mapped[str] = mapped_column(
        ForeignKey("payout_channels.channel_code"),
        nullable=False,
    )
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_number: Mapped[str] = mapped_column(String(64), nullable=False)
    bank_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<LandlordPayoutAccount(id={self.id}, landlord_id={self.landlord_id}, "
            f"channel={self.channel_code}, active={self.is_active})>"
        )


class LandlordPayoutHistory(Base, BaseModel):
    """One disbursement batch accepted by the payout gateway."""

    __tablename__ = "landlord_payout_history"

    landlord_id: Mapped[int] = mapped_column(
        ForeignKey("landlords.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    included_payments: Mapped[list[int]] = mapped_column(JSON, nullable=False)
    payout_method: Mapped[str] = mapped_column(String(16), nullable=False)
    channel_code: Mapped[str] = mapped_column(String(64), nullable=False)
    account_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_number: Mapped[str] = mapped_column(String(64), nullable=False)
    bank_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[PayoutHistoryStatus] = mapped_column(
        SQLEnum(PayoutHistoryStatus),
        nullable=False,
        default=PayoutHistoryStatus.ACCEPTED,
    )
    external_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        unique=True,
        comment="Idempotency key sent to the payout gateway",
    )
    gateway_payout_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<LandlordPayoutHistory(id={self.id}, landlord_id={self.landlord_id}, "
            f"amount={self.amount}, status={self.status}, external_id={self.external_id})>"
        )


__all__ = ["PayoutChannel", "LandlordPayoutAccount", "LandlordPayoutHistory", "PayoutHistoryStatus"]
