"""Payment intake and status machine.

Provides methods for:
- Recording tenant-submitted proofs of payment (pending until reviewed)
- Processing payment gateway invoice callbacks idempotently
- Landlord approval/rejection of pending payments
- Post-dated check status updates
"""

import hmac
import logging
import re
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, NamedTuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rentflow.config import get_settings
from rentflow.errors import BadRequest, DuplicateError, NotFound, Unauthorized, ValidationError
from rentflow.models.billing import Billing, BillingStatus
from rentflow.models.lease import LeaseAgreement, PdcStatus, PostDatedCheck
from rentflow.models.payment import (
    INITIAL_PAYMENT_TYPES,
    Payment,
    PaymentStatus,
    PaymentType,
    PayoutStatus,
)
from rentflow.schemas.payment import InvoiceWebhookPayload
from rentflow.services.audit_service import AuditService
from rentflow.services.billing_calculator import round2, to_decimal
from rentflow.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

PROOF_PAYMENT_TYPES = frozenset(
    {PaymentType.BILLING, PaymentType.SECURITY_DEPOSIT, PaymentType.ADVANCE_RENT}
)
REVIEW_ACTIONS = ("approve", "reject")

BILLING_EXTERNAL_ID = re.compile(r"^billing-(\d+)$")
INITIAL_EXTERNAL_ID = re.compile(r"^init-(advance|deposit)-(\d+)(?:-.*)?$")
INVOICE_FAILURE_STATUSES = frozenset({"FAILED", "EXPIRED", "CANCELLED"})


class WebhookResult(NamedTuple):
    """Outcome of a gateway callback: processed or ignored (with reason)."""

    status: str
    reason: str | None = None
    payment_id: int | None = None


def verify_callback_token(received: str | None, expected: str | None) -> None:
    """Constant-time shared-secret check; an unconfigured secret rejects everything.

    Raises:
        Unauthorized: token missing or wrong
    """
    if not expected or not received:
        raise Unauthorized()
    if not hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8")):
        raise Unauthorized()


def generate_receipt_reference(agreement_id: int, payment_type: PaymentType) -> str:
    """Collision-free receipt reference for a tenant-submitted payment."""
    return f"PAY-{agreement_id}-{payment_type.value.upper()}-{uuid.uuid4().hex[:12].upper()}"


def landlord_user_id(lease: LeaseAgreement) -> int | None:
    """User account of the landlord owning the leased unit."""
    unit = lease.unit
    if unit is None or unit.rental_property is None or unit.rental_property.landlord is None:
        return None
    return unit.rental_property.landlord.user_id


class PaymentService:
    """Service for payment intake and review."""

    def __init__(self, db: Session, webhook_token: str | None = None):
        """Initialize payment service.

        Args:
            db: SQLAlchemy database session
            webhook_token: Expected invoice callback token (defaults to settings)
        """
        self.db = db
        self.webhook_token = (
            webhook_token if webhook_token is not None else get_settings().gateway_webhook_token
        )
        self.notifications = NotificationService(db)

    def get_payment(self, payment_id: int) -> Payment:
        payment = self.db.get(Payment, payment_id)
        if payment is None:
            raise NotFound(f"Payment {payment_id} not found")
        return payment

    def get_by_receipt_reference(self, receipt_reference: str) -> Payment | None:
        return self.db.execute(
            select(Payment).where(Payment.receipt_reference == receipt_reference)
        ).scalar_one_or_none()

    def submit_proof_of_payment(
        self,
        agreement_id: int,
        payment_type: str,
        amount: Any,
        payment_method: str = "UNKNOWN",
        billing_id: int | None = None,
        proof_url: str | None = None,
        receipt_reference: str | None = None,
        actor_id: int | None = None,
    ) -> Payment:
        """Record a tenant-submitted payment awaiting landlord review.

        Args:
            agreement_id: Lease the payment belongs to
            payment_type: billing, security_deposit or advance_rent
            amount: Paid amount (> 0)
            payment_method: Free-form method label
            billing_id: Bill being settled (required for billing payments)
            proof_url: Location of the uploaded proof
            receipt_reference: Client idempotency key (generated when omitted)
            actor_id: Submitting user (audit)

        Returns:
            Created Payment (status pending)

        Raises:
            ValidationError: Bad type, amount or billing
            NotFound: Lease does not exist
            DuplicateError: receipt_reference already recorded
        """
        try:
            kind = PaymentType(payment_type)
        except ValueError:
            kind = None
        if kind not in PROOF_PAYMENT_TYPES:
            raise ValidationError(
                "payment_type must be one of billing, security_deposit, advance_rent",
                field="payment_type",
            )

        paid = to_decimal(amount)
        if paid is None or paid <= 0:
            raise ValidationError("amount must be greater than 0", field="amount")
        paid = round2(paid)

        if kind == PaymentType.BILLING and billing_id is None:
            raise ValidationError("billing_id is required for billing payments", field="billing_id")

        lease = self.db.get(LeaseAgreement, agreement_id)
        if lease is None:
            raise NotFound(f"Lease agreement {agreement_id} not found")

        billing = None
        if billing_id is not None:
            billing = self.db.get(Billing, billing_id)
            if billing is None or billing.lease_id != lease.id:
                raise ValidationError(
                    f"Billing {billing_id} does not belong to lease {agreement_id}",
                    field="billing_id",
                )

        if receipt_reference:
            if self.get_by_receipt_reference(receipt_reference) is not None:
                logger.info("Duplicate proof of payment rejected: %s", receipt_reference)
                raise DuplicateError(
                    "Payment already recorded", receipt_reference=receipt_reference
                )
        else:
            receipt_reference = generate_receipt_reference(agreement_id, kind)

        try:
            payment = Payment(
                agreement_id=lease.id,
                billing_id=billing.id if billing else None,
                payment_type=kind,
                payment_method=payment_method or "UNKNOWN",
                amount_paid=paid,
                gross_amount=paid,
                gateway_fee=Decimal("0"),
                net_amount=paid,
                payment_status=PaymentStatus.PENDING,
                payout_status=PayoutStatus.UNPAID,
                receipt_reference=receipt_reference,
                proof_of_payment_url=proof_url,
                payment_date=datetime.now(timezone.utc),
            )
            self.db.add(payment)

            if billing is not None:
                # Stays unpaid until the landlord confirms the proof
                billing.status = BillingStatus.UNPAID
                billing.paid_at = None

            self.db.flush()

            self.notifications.enqueue(
                landlord_user_id(lease),
                "Payment proof submitted",
                f"A tenant submitted {kind.value.replace('_', ' ')} proof of ₱{paid}.",
                url=f"/landlord/payments/{payment.id}",
            )
            AuditService.log(
                db=self.db,
                entity_type="payment",
                entity_id=payment.id,
                action="submit_proof",
                actor_id=actor_id,
                changes={"receipt_reference": receipt_reference, "amount": str(paid)},
            )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.info("Concurrent duplicate proof of payment %s: %s", receipt_reference, e.orig)
            raise DuplicateError(
                "Payment already recorded", receipt_reference=receipt_reference
            ) from e
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(payment)
        logger.info(
            "Recorded pending %s payment %d for lease %d (%s)",
            kind.value,
            payment.id,
            agreement_id,
            receipt_reference,
        )
        return payment

    def process_invoice_webhook(
        self, token: str | None, payload: Mapping[str, Any] | InvoiceWebhookPayload
    ) -> WebhookResult:
        """Apply a gateway invoice callback exactly once.

        PAID records a confirmed payment; FAILED, EXPIRED and CANCELLED fail the
        invoice's pending payment. Any other status is acknowledged and ignored.

        Raises:
            Unauthorized: Wrong or missing callback token (nothing written)
            BadRequest: Unparseable payload, unknown external_id format or bad fees
            NotFound: Referenced billing or lease does not exist
        """
        verify_callback_token(token, self.webhook_token)

        if isinstance(payload, InvoiceWebhookPayload):
            event = payload
        else:
            try:
                event = InvoiceWebhookPayload.model_validate(payload)
            except PydanticValidationError as e:
                raise BadRequest(f"Invalid invoice payload: {e.error_count()} error(s)") from e

        if event.status in INVOICE_FAILURE_STATUSES:
            return self._apply_invoice_failure(event)
        if event.status != "PAID":
            logger.info("Ignoring invoice callback %s with status %s", event.id, event.status)
            return WebhookResult(status="ignored", reason="status_not_paid")

        if not event.id or not event.external_id:
            raise BadRequest("Invoice payload requires id and external_id")

        gross = to_decimal(event.paid_amount if event.paid_amount is not None else event.amount)
        if gross is None or gross <= 0:
            raise BadRequest("Invoice payload requires a positive amount")
        gross = round2(gross)

        existing = self.get_by_receipt_reference(event.id)
        if existing is not None:
            logger.info("Duplicate invoice callback %s ignored (payment %d)", event.id, existing.id)
            return WebhookResult(status="ignored", reason="duplicate", payment_id=existing.id)

        fees = [to_decimal(f.value) or Decimal("0") for f in event.fees]
        if any(value < 0 for value in fees):
            raise BadRequest("Invoice fees cannot be negative")
        fee = round2(sum(fees, Decimal("0")))
        if fee > gross:
            raise BadRequest("Invoice fees exceed the paid amount")
        paid_at = event.paid_at or datetime.now(timezone.utc)

        try:
            billing_match = BILLING_EXTERNAL_ID.match(event.external_id)
            initial_match = INITIAL_EXTERNAL_ID.match(event.external_id)

            billing = None
            if billing_match:
                billing = self.db.get(Billing, int(billing_match.group(1)))
                if billing is None:
                    raise NotFound(f"Billing {billing_match.group(1)} not found")
                lease = billing.lease
                kind = PaymentType.MONTHLY_BILLING
                billing.status = BillingStatus.PAID
                billing.paid_at = paid_at
            elif initial_match:
                lease = self.db.get(LeaseAgreement, int(initial_match.group(2)))
                if lease is None:
                    raise NotFound(f"Lease agreement {initial_match.group(2)} not found")
                if initial_match.group(1) == "advance":
                    kind = PaymentType.ADVANCE_PAYMENT
                    lease.is_advance_payment_paid = True
                else:
                    kind = PaymentType.SECURITY_DEPOSIT
                    lease.is_security_deposit_paid = True
            else:
                raise BadRequest(f"Unknown external_id format: {event.external_id}")

            payment = Payment(
                agreement_id=lease.id,
                billing_id=billing.id if billing else None,
                payment_type=kind,
                payment_method=event.payment_method or event.payment_channel or "UNKNOWN",
                amount_paid=gross,
                gross_amount=gross,
                gateway_fee=fee,
                net_amount=round2(gross - fee),
                payment_status=PaymentStatus.CONFIRMED,
                payout_status=PayoutStatus.UNPAID,
                receipt_reference=event.id,
                payment_date=paid_at,
                raw_gateway_payload=event.model_dump(mode="json"),
            )
            self.db.add(payment)
            self.db.flush()

            label = "Billing" if billing else kind.value.replace("_", " ").capitalize()
            self.notifications.enqueue(
                landlord_user_id(lease),
                "Payment received",
                f"{label} payment of ₱{gross} received (net ₱{payment.net_amount}).",
                url=f"/landlord/payments/{payment.id}",
            )
            self.notifications.enqueue(
                lease.tenant_user_id,
                "Payment confirmed",
                f"Your payment of ₱{gross} has been confirmed.",
                url=f"/tenant/payments/{payment.id}",
            )
            AuditService.log(
                db=self.db,
                entity_type="payment",
                entity_id=payment.id,
                action="gateway_confirm",
                changes={
                    "receipt_reference": event.id,
                    "external_id": event.external_id,
                    "gross_amount": str(gross),
                    "gateway_fee": str(fee),
                },
            )
            self.db.commit()
        except IntegrityError as e:
            # Redelivery raced with us on receipt_reference
            self.db.rollback()
            logger.info("Concurrent duplicate invoice callback %s ignored: %s", event.id, e.orig)
            return WebhookResult(status="ignored", reason="duplicate")
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Invoice %s (%s) recorded as payment %d: gross=%s fee=%s",
            event.id,
            event.external_id,
            payment.id,
            gross,
            fee,
        )
        return WebhookResult(status="processed", payment_id=payment.id)

    def _apply_invoice_failure(self, event: InvoiceWebhookPayload) -> WebhookResult:
        """Mark the invoice's pending payment failed after a FAILED, EXPIRED or CANCELLED callback.

        A billing invoice leaves its bill unpaid; a bill already settled by
        another payment is not reopened. Lease flags of initial payments are
        untouched since they are only set on confirmation.
        """
        if not event.id or not event.external_id:
            raise BadRequest("Invoice payload requires id and external_id")

        billing_match = BILLING_EXTERNAL_ID.match(event.external_id)
        initial_match = INITIAL_EXTERNAL_ID.match(event.external_id)
        if not billing_match and not initial_match:
            raise BadRequest(f"Unknown external_id format: {event.external_id}")

        try:
            if billing_match:
                billing = self.db.get(Billing, int(billing_match.group(1)))
                if billing is None:
                    raise NotFound(f"Billing {billing_match.group(1)} not found")
                lease = billing.lease
                if billing.status != BillingStatus.PAID:
                    billing.status = BillingStatus.UNPAID
                    billing.paid_at = None
            else:
                lease = self.db.get(LeaseAgreement, int(initial_match.group(2)))
                if lease is None:
                    raise NotFound(f"Lease agreement {initial_match.group(2)} not found")

            payment = self.db.execute(
                select(Payment).where(Payment.receipt_reference == event.id).with_for_update()
            ).scalar_one_or_none()
            if payment is not None and payment.payment_status != PaymentStatus.PENDING:
                self.db.rollback()
                reason = (
                    "duplicate"
                    if payment.payment_status == PaymentStatus.FAILED
                    else "payment_not_pending"
                )
                logger.info(
                    "Invoice failure %s ignored, payment %d is already %s",
                    event.id,
                    payment.id,
                    payment.payment_status.value,
                )
                return WebhookResult(status="ignored", reason=reason, payment_id=payment.id)
            if payment is not None:
                payment.payment_status = PaymentStatus.FAILED

            failure_reason = (event.model_extra or {}).get("failure_reason")
            self.notifications.enqueue(
                lease.tenant_user_id,
                "Payment not completed",
                f"Your payment was not completed (status {event.status.lower()}). "
                "Please try again.",
                url=f"/tenant/payments/{payment.id}" if payment is not None else None,
            )
            AuditService.log(
                db=self.db,
                entity_type="payment",
                entity_id=payment.id if payment is not None else lease.id,
                action="gateway_fail",
                changes={
                    "receipt_reference": event.id,
                    "external_id": event.external_id,
                    "status": event.status,
                    "failure_reason": failure_reason,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Invoice %s (%s) reported %s; payment %s marked failed",
            event.id,
            event.external_id,
            event.status,
            payment.id if payment is not None else "none",
        )
        return WebhookResult(
            status="processed", payment_id=payment.id if payment is not None else None
        )

    def review_payment(self, payment_id: int, action: str, actor_id: int | None = None) -> Payment:
        """Landlord approval or rejection of a pending payment.

        Raises:
            ValidationError: Unknown action or payment no longer pending
            NotFound: Payment does not exist
        """
        if action not in REVIEW_ACTIONS:
            raise ValidationError("action must be 'approve' or 'reject'", field="action")

        try:
            payment = self.get_payment(payment_id)
            if payment.payment_status != PaymentStatus.PENDING:
                raise ValidationError(
                    f"Payment {payment_id} is already {payment.payment_status.value}"
                )

            billing = payment.billing
            lease = payment.lease
            if action == "approve":
                payment.payment_status = PaymentStatus.CONFIRMED
                if billing is not None:
                    billing.status = BillingStatus.PAID
                    billing.paid_at = datetime.now(timezone.utc)
                if payment.payment_type in INITIAL_PAYMENT_TYPES:
                    if payment.payment_type == PaymentType.SECURITY_DEPOSIT:
                        lease.is_security_deposit_paid = True
                    else:
                        lease.is_advance_payment_paid = True
                title = "Payment approved"
                body = f"Your payment of ₱{payment.amount_paid} was approved."
            else:
                payment.payment_status = PaymentStatus.FAILED
                if billing is not None:
                    billing.status = BillingStatus.UNPAID
                    billing.paid_at = None
                title = "Payment rejected"
                body = f"Your payment of ₱{payment.amount_paid} was rejected by the landlord."

            self.notifications.enqueue(
                lease.tenant_user_id, title, body, url=f"/tenant/payments/{payment.id}"
            )
            AuditService.log(
                db=self.db,
                entity_type="payment",
                entity_id=payment.id,
                action=action,
                actor_id=actor_id,
                changes={"payment_status": payment.payment_status.value},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(payment)
        logger.info("Payment %d %sd", payment_id, action)
        return payment

    def update_pdc_status(
        self, pdc_id: int, status: str, actor_id: int | None = None
    ) -> PostDatedCheck:
        """Move a post-dated check to a new status and stamp the transition time.

        Raises:
            ValidationError: Unknown status
            NotFound: Check does not exist
        """
        try:
            new_status = PdcStatus(status)
        except ValueError as e:
            raise ValidationError(
                "status must be one of pending, cleared, bounced, replaced", field="status"
            ) from e

        try:
            pdc = self.db.get(PostDatedCheck, pdc_id)
            if pdc is None:
                raise NotFound(f"Post-dated check {pdc_id} not found")

            now = datetime.now(timezone.utc)
            pdc.status = new_status
            if new_status == PdcStatus.CLEARED:
                pdc.cleared_at = now
            elif new_status == PdcStatus.BOUNCED:
                pdc.bounced_at = now
            elif new_status == PdcStatus.REPLACED:
                pdc.replaced_at = now

            if new_status == PdcStatus.CLEARED:
                self.notifications.enqueue(
                    pdc.lease.tenant_user_id,
                    "Post-dated check cleared",
                    f"Your check {pdc.check_number or pdc.id} of ₱{pdc.amount} has cleared.",
                )
            AuditService.log(
                db=self.db,
                entity_type="pdc",
                entity_id=pdc.id,
                action="status_update",
                actor_id=actor_id,
                changes={"status": new_status.value},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(pdc)
        logger.info("PDC %d marked %s", pdc_id, new_status.value)
        return pdc


__all__ = [
    "PaymentService",
    "WebhookResult",
    "generate_receipt_reference",
    "landlord_user_id",
    "verify_callback_token",
]
