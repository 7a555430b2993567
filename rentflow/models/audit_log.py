"""Append-only trail of money-relevant changes."""

from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from rentflow.models import Base, BaseModel


class AuditLog(Base, BaseModel):
    """One change to a billing, payment, check or payout batch.

    Rows are written in the same transaction as the change they describe, so
    a rolled-back operation leaves no entry.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_entity", "entity_type", "entity_id"),)

    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    """billing, payment, pdc or payout"""

    entity_id: Mapped[int] = mapped_column(nullable=False)

    action: Mapped[str] = mapped_column(String(64), nullable=False)
    """e.g. create, update, gateway_confirm, gateway_fail, disburse, callback_succeeded"""

    actor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    """Acting landlord, tenant or admin; None for gateway callbacks."""

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    """Amounts are stored as strings: {"amount": "1500.00", "payment_ids": [101, 102]}."""

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, {self.entity_type}:{self.entity_id} "
            f"action={self.action}, actor_id={self.actor_id})>"
        )


__all__ = ["AuditLog"]
