"""Audit trail writes and reads for billing, payment and payout changes."""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from rentflow.models.audit_log import AuditLog


def _jsonable(value: Any) -> Any:
    """Money and dates become strings so the JSON column round-trips them exactly."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


class AuditService:
    """Audit entries ride on the caller's session and are never committed here."""

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: int,
        action: str,
        actor_id: int | None = None,
        changes: dict | None = None,
    ) -> AuditLog:
        """Stage an entry describing a change made in the current transaction.

        Args:
            db: Session holding the change
            entity_type: billing, payment, pdc or payout
            entity_id: Id of the changed row
            action: What happened, e.g. "update" or "gateway_confirm"
            actor_id: Acting user; None for gateway callbacks
            changes: Changed values; Decimals, dates and enums are stored as strings

        Returns:
            The pending AuditLog row
        """
        entry = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            changes=_jsonable(changes) if changes is not None else None,
        )
        db.add(entry)
        return entry

    @staticmethod
    def history(db: Session, entity_type: str, entity_id: int) -> list[AuditLog]:
        """Entries of one entity, oldest first."""
        return list(
            db.execute(
                select(AuditLog)
                .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
                .order_by(AuditLog.id)
            ).scalars()
        )


__all__ = ["AuditService"]
