"""Landlord payout aggregation and disbursement.

Confirmed tenant payments are grouped per landlord, checked against the
payout floor and sent to the payout gateway. A batch is recorded in
LandlordPayoutHistory only after the gateway accepted it.
"""

import logging
import time
from decimal import Decimal
from typing import Any, Iterable, Mapping, NamedTuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from rentflow.config import get_settings
from rentflow.errors import (
    BadRequest,
    BelowMinimumPayout,
    ExternalGatewayError,
    NoEligiblePayments,
    ValidationError,
)
from rentflow.models.lease import LeaseAgreement
from rentflow.models.payment import Payment, PaymentStatus, PayoutStatus
from rentflow.models.payout import (
    LandlordPayoutAccount,
    LandlordPayoutHistory,
    PayoutChannel,
    PayoutHistoryStatus,
)
from rentflow.models.property import Property, Unit
from rentflow.models.user import Landlord
from rentflow.schemas.payout import PayoutCallbackPayload
from rentflow.services.audit_service import AuditService
from rentflow.services.billing_calculator import round2
from rentflow.services.notification_service import NotificationService
from rentflow.services.payment_service import WebhookResult, verify_callback_token
from rentflow.services.payout_gateway import PayoutGateway

logger = logging.getLogger(__name__)

PAYOUT_DESCRIPTION = "Rental payout"


class PayoutGroup(NamedTuple):
    """Eligible payments of one landlord with the account they are paid into."""

    landlord_id: int
    account: LandlordPayoutAccount
    channel: PayoutChannel
    payments: list[Payment]
    total_amount: Decimal


class PayoutBatch(NamedTuple):
    """A batch accepted by the gateway and recorded in payout history."""

    landlord_id: int
    amount: Decimal
    external_id: str
    payment_ids: list[int]
    history_id: int


class DisbursementResult(NamedTuple):
    batches: list[PayoutBatch]


def make_external_id(landlord_id: int) -> str:
    """Gateway reference of a batch: payout-{epoch_ms}-{landlord_id}."""
    return f"payout-{int(time.time() * 1000)}-{landlord_id}"


def parse_payment_ids(payment_ids: Any) -> list[int]:
    """Validate the requested id list, dropping duplicates but keeping order."""
    if not isinstance(payment_ids, (list, tuple)) or not payment_ids:
        raise ValidationError("payment_ids must be a non-empty list", field="payment_ids")
    ids: list[int] = []
    for value in payment_ids:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(
                "payment_ids must contain positive integers", field="payment_ids"
            )
        if value not in ids:
            ids.append(value)
    return ids


class PayoutService:
    """Service for landlord disbursements."""

    def __init__(
        self,
        db: Session,
        gateway: PayoutGateway,
        minimum_payout: Decimal | None = None,
        currency: str | None = None,
        webhook_token: str | None = None,
    ):
        """Initialize payout service.

        Args:
            db: SQLAlchemy database session
            gateway: Payout gateway client
            minimum_payout: Per-landlord floor (defaults to settings)
            currency: Disbursement currency (defaults to settings)
            webhook_token: Expected payout callback token (defaults to settings)
        """
        settings = get_settings()
        self.db = db
        self.gateway = gateway
        self.minimum_payout = (
            minimum_payout if minimum_payout is not None else settings.minimum_payout
        )
        self.currency = currency or settings.payout_currency
        self.webhook_token = (
            webhook_token if webhook_token is not None else settings.payout_webhook_token
        )
        self.notifications = NotificationService(db)

    def _eligible_query(self, payment_ids: Iterable[int] | None = None):
        stmt = (
            select(Payment, Property.landlord_id, LandlordPayoutAccount, PayoutChannel)
            .join(LeaseAgreement, Payment.agreement_id == LeaseAgreement.id)
            .join(Unit, LeaseAgreement.unit_id == Unit.id)
            .join(Property, Unit.property_id == Property.id)
            .join(
                LandlordPayoutAccount,
                and_(
                    LandlordPayoutAccount.landlord_id == Property.landlord_id,
                    LandlordPayoutAccount.is_active.is_(True),
                ),
            )
            .join(
                PayoutChannel,
                and_(
                    PayoutChannel.channel_code == LandlordPayoutAccount.channel_code,
                    PayoutChannel.is_available.is_(True),
                ),
            )
            .where(
                Payment.payment_status == PaymentStatus.CONFIRMED,
                Payment.payout_status == PayoutStatus.UNPAID,
            )
            .order_by(Property.landlord_id, LandlordPayoutAccount.id, Payment.id)
        )
        if payment_ids is not None:
            stmt = stmt.where(Payment.id.in_(list(payment_ids)))
        return stmt

    def collect_groups(
        self, payment_ids: Iterable[int] | None = None, lock: bool = False
    ) -> list[PayoutGroup]:
        """Group eligible payments by landlord.

        Payments without an active account on an available channel are
        excluded. A landlord with several active accounts is paid into the
        oldest one.
        """
        stmt = self._eligible_query(payment_ids)
        if lock:
            stmt = stmt.with_for_update(of=Payment)

        grouped: dict[int, dict[str, Any]] = {}
        for payment, landlord_id, account, channel in self.db.execute(stmt).all():
            group = grouped.setdefault(
                landlord_id, {"account": account, "channel": channel, "payments": {}}
            )
            group["payments"].setdefault(payment.id, payment)

        groups = []
        for landlord_id, group in grouped.items():
            payments = list(group["payments"].values())
            total = round2(sum((p.net_amount for p in payments), Decimal("0")))
            groups.append(
                PayoutGroup(
                    landlord_id=landlord_id,
                    account=group["account"],
                    channel=group["channel"],
                    payments=payments,
                    total_amount=total,
                )
            )
        return groups

    def list_eligible_payments(self) -> list[PayoutGroup]:
        """Payouts currently owed, per landlord (admin listing)."""
        return self.collect_groups()

    def disburse(self, payment_ids: Any, actor_id: int | None = None) -> DisbursementResult:
        """Disburse the requested payments to their landlords.

        Args:
            payment_ids: Payments to include; ineligible ones are skipped
            actor_id: Admin user performing the run (audit)

        Returns:
            DisbursementResult with one batch per landlord

        Raises:
            ValidationError: Empty or malformed id list
            NoEligiblePayments: None of the ids can be disbursed
            BelowMinimumPayout: A landlord total is under the floor (nothing sent)
            ExternalGatewayError: The gateway failed; earlier batches stay committed
        """
        ids = parse_payment_ids(payment_ids)

        try:
            groups = self.collect_groups(ids, lock=True)
            if not groups:
                raise NoEligiblePayments()
            for group in groups:
                if group.total_amount < self.minimum_payout:
                    logger.warning(
                        "Payout for landlord %d below minimum: %s < %s",
                        group.landlord_id,
                        group.total_amount,
                        self.minimum_payout,
                    )
                    raise BelowMinimumPayout(
                        group.landlord_id, group.total_amount, self.minimum_payout
                    )
        except Exception:
            self.db.rollback()
            raise

        batches: list[PayoutBatch] = []
        for index, group in enumerate(groups):
            if index > 0:
                # Locks were released by the previous batch's commit
                relocked = self.collect_groups([p.id for p in group.payments], lock=True)
                if not relocked:
                    logger.warning(
                        "Payments of landlord %d were disbursed concurrently, skipping",
                        group.landlord_id,
                    )
                    continue
                group = relocked[0]
                if group.total_amount < self.minimum_payout:
                    self.db.rollback()
                    logger.warning(
                        "Payout for landlord %d fell below minimum after relock, skipping",
                        group.landlord_id,
                    )
                    continue
            batches.append(self._disburse_group(group, actor_id, [b.external_id for b in batches]))

        return DisbursementResult(batches=batches)

    def _disburse_group(
        self, group: PayoutGroup, actor_id: int | None, completed: list[str]
    ) -> PayoutBatch:
        external_id = make_external_id(group.landlord_id)
        payment_ids = [p.id for p in group.payments]
        account = group.account

        try:
            response = self.gateway.create_payout(
                reference_id=external_id,
                channel_code=account.channel_code,
                channel_properties={
                    "account_number": account.account_number,
                    "account_holder_name": account.account_name,
                },
                amount=group.total_amount,
                currency=self.currency,
                description=PAYOUT_DESCRIPTION,
                metadata={"landlord_id": group.landlord_id, "payment_ids": payment_ids},
            )
        except ExternalGatewayError as e:
            self.db.rollback()
            logger.error(
                "Disbursement %s for landlord %d failed; payments %s stay unpaid",
                external_id,
                group.landlord_id,
                payment_ids,
            )
            raise ExternalGatewayError(e.message, upstream=e.upstream, completed=completed) from e

        try:
            history = LandlordPayoutHistory(
                landlord_id=group.landlord_id,
                amount=group.total_amount,
                included_payments=payment_ids,
                payout_method=group.channel.channel_type,
                channel_code=account.channel_code,
                account_name=account.account_name,
                account_number=account.account_number,
                bank_name=account.bank_name,
                status=PayoutHistoryStatus.ACCEPTED,
                external_id=external_id,
                gateway_payout_id=response.get("id"),
            )
            self.db.add(history)
            for payment in group.payments:
                payment.payout_status = PayoutStatus.IN_PAYOUT
            self.db.flush()

            landlord = self.db.get(Landlord, group.landlord_id)
            self.notifications.enqueue(
                landlord.user_id if landlord else None,
                "Payout on the way",
                f"A payout of ₱{group.total_amount} was sent to {account.channel_code} "
                f"account ending {account.account_number[-4:]}.",
            )
            AuditService.log(
                db=self.db,
                entity_type="payout",
                entity_id=history.id,
                action="disburse",
                actor_id=actor_id,
                changes={
                    "external_id": external_id,
                    "amount": str(group.total_amount),
                    "payment_ids": payment_ids,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.critical(
                "Payout %s accepted by gateway but could not be recorded", external_id, exc_info=True
            )
            raise

        logger.info(
            "Payout %s accepted for landlord %d: %s (%d payments)",
            external_id,
            group.landlord_id,
            group.total_amount,
            len(payment_ids),
        )
        return PayoutBatch(
            landlord_id=group.landlord_id,
            amount=group.total_amount,
            external_id=external_id,
            payment_ids=payment_ids,
            history_id=history.id,
        )

    def apply_payout_callback(
        self, token: str | None, payload: Mapping[str, Any] | PayoutCallbackPayload
    ) -> WebhookResult:
        """Apply the gateway's final status of a payout batch.

        SUCCEEDED moves the batch's payments to paid. FAILED marks the history
        row failed and leaves the payments in_payout for manual correction.

        Raises:
            Unauthorized: Wrong or missing callback token
            BadRequest: Unparseable payload
        """
        verify_callback_token(token, self.webhook_token)

        if isinstance(payload, PayoutCallbackPayload):
            event = payload
        else:
            try:
                event = PayoutCallbackPayload.model_validate(payload)
            except PydanticValidationError as e:
                raise BadRequest(f"Invalid payout payload: {e.error_count()} error(s)") from e

        try:
            history = self.db.execute(
                select(LandlordPayoutHistory)
                .where(LandlordPayoutHistory.external_id == event.reference_id)
                .with_for_update()
            ).scalar_one_or_none()
            if history is None:
                logger.warning("Payout callback for unknown reference %s", event.reference_id)
                return WebhookResult(status="ignored", reason="unknown_reference")
            if history.status != PayoutHistoryStatus.ACCEPTED:
                logger.info(
                    "Payout callback for %s ignored, already %s",
                    event.reference_id,
                    history.status.value,
                )
                return WebhookResult(status="ignored", reason="duplicate")

            if event.status == PayoutHistoryStatus.SUCCEEDED.value:
                history.status = PayoutHistoryStatus.SUCCEEDED
                payments = (
                    self.db.execute(
                        select(Payment).where(
                            Payment.id.in_(history.included_payments),
                            Payment.payout_status == PayoutStatus.IN_PAYOUT,
                        )
                    )
                    .scalars()
                    .all()
                )
                for payment in payments:
                    payment.payout_status = PayoutStatus.PAID
                title = "Payout completed"
                body = f"Your payout of ₱{history.amount} has been credited."
            elif event.status == PayoutHistoryStatus.FAILED.value:
                history.status = PayoutHistoryStatus.FAILED
                title = "Payout failed"
                body = (
                    f"Your payout of ₱{history.amount} failed"
                    f"{f' ({event.failure_code})' if event.failure_code else ''}. "
                    "Our team will follow up."
                )
            else:
                return WebhookResult(status="ignored", reason="status_not_final")

            if event.id and not history.gateway_payout_id:
                history.gateway_payout_id = event.id

            landlord = self.db.get(Landlord, history.landlord_id)
            self.notifications.enqueue(landlord.user_id if landlord else None, title, body)
            AuditService.log(
                db=self.db,
                entity_type="payout",
                entity_id=history.id,
                action=f"callback_{event.status.lower()}",
                changes={"failure_code": event.failure_code},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Payout %s marked %s", event.reference_id, history.status.value)
        return WebhookResult(status="processed")


__all__ = [
    "DisbursementResult",
    "PayoutBatch",
    "PayoutGroup",
    "PayoutService",
    "make_external_id",
    "parse_payment_ids",
]
