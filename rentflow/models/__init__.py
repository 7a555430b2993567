"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from rentflow.models.user import Landlord, User  # noqa: E402
from rentflow.models.property import Property, Unit, UtilityStatement, UtilityType  # noqa: E402
from rentflow.models.lease import LeaseAgreement, LeaseStatus, PdcStatus, PostDatedCheck  # noqa: E402
from rentflow.models.billing import (  # noqa: E402
    Billing,
    BillingCharge,
    BillingStatus,
    ChargeCategory,
    MeterReading,
)
from rentflow.models.payment import Payment, PaymentStatus, PaymentType, PayoutStatus  # noqa: E402
from rentflow.models.payout import (  # noqa: E402
    LandlordPayoutAccount,
    LandlordPayoutHistory,
    PayoutChannel,
    PayoutHistoryStatus,
)
from rentflow.models.notification import NotificationOutbox, OutboxStatus  # noqa: E402
from rentflow.models.audit_log import AuditLog  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "User",
    "Landlord",
    "Property",
    "Unit",
    "UtilityStatement",
    "UtilityType",
    "LeaseAgreement",
    "LeaseStatus",
    "PostDatedCheck",
    "PdcStatus",
    "Billing",
    "BillingCharge",
    "BillingStatus",
    "ChargeCategory",
    "MeterReading",
    "Payment",
    "PaymentStatus",
    "PaymentType",
    "PayoutStatus",
    "PayoutChannel",
    "LandlordPayoutAccount",
    "LandlordPayoutHistory",
    "PayoutHistoryStatus",
    "NotificationOutbox",
    "OutboxStatus",
    "AuditLog",
]
