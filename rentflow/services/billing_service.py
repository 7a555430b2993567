"""Billing record lifecycle: create-or-update a unit's bill for a period.

Provides methods for:
- Upserting the submetered bill of a unit (one record per unit per month)
- Adding and removing individual charges/discounts on an unsettled bill
- Reading bills back
"""

import calendar
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping, NamedTuple

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from rentflow.errors import ConflictError, NotFound, ValidationError
from rentflow.models.billing import (
    Billing,
    BillingCharge,
    BillingStatus,
    ChargeCategory,
    MeterReading,
)
from rentflow.models.lease import LeaseAgreement, LeaseStatus, PdcStatus, PostDatedCheck
from rentflow.models.property import Unit, UtilityType
from rentflow.services.audit_service import AuditService
from rentflow.services.billing_calculator import BillBreakdown, compute_bill, round2, to_decimal
from rentflow.services.rate_service import RateService

logger = logging.getLogger(__name__)

MAX_UPSERT_ATTEMPTS = 2
BILLABLE_LEASE_STATUSES = (LeaseStatus.ACTIVE, LeaseStatus.COMPLETED)


class ChargeInput(NamedTuple):
    """A validated charge line from the billing form."""

    charge_category: ChargeCategory
    charge_type: str
    amount: Decimal
    charge_id: int | None = None


class UpsertResult(NamedTuple):
    """Outcome of upsert_billing."""

    billing: Billing
    created: bool


def billing_period_for(day: date) -> date:
    """Normalise any date of a month to that month's billing period (its first day)."""
    return day.replace(day=1)


def period_end(period: date) -> date:
    """Last day of the billing period."""
    return period.replace(day=calendar.monthrange(period.year, period.month)[1])


def parse_reading(field: str, value: Any) -> Decimal | None:
    """Validate a meter reading: absent is allowed, non-numeric or negative is not."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    number = to_decimal(value)
    if number is None:
        raise ValidationError(f"{field} must be a number", field=field)
    if number < 0:
        raise ValidationError(f"{field} cannot be negative", field=field)
    return number


def parse_charge(raw: Any, index: int = 0) -> ChargeInput:
    """Validate one charge line (mapping or ChargeInput)."""
    if isinstance(raw, ChargeInput):
        raw = raw._asdict()
    if not isinstance(raw, Mapping):
        raise ValidationError(f"charges[{index}] must be an object", field=f"charges[{index}]")

    category_value = raw.get("charge_category") or ChargeCategory.ADDITIONAL.value
    try:
        category = ChargeCategory(category_value)
    except ValueError as e:
        raise ValidationError(
            f"charges[{index}].charge_category must be 'additional' or 'discount'",
            field=f"charges[{index}].charge_category",
        ) from e

    charge_type = (raw.get("charge_type") or "").strip()
    if not charge_type:
        raise ValidationError(
            f"charges[{index}].charge_type is required", field=f"charges[{index}].charge_type"
        )

    amount = to_decimal(raw.get("amount"))
    if amount is None or amount < 0:
        raise ValidationError(
            f"charges[{index}].amount must be a non-negative number",
            field=f"charges[{index}].amount",
        )

    return ChargeInput(
        charge_category=category,
        charge_type=charge_type,
        amount=round2(amount),
        charge_id=raw.get("charge_id"),
    )


def parse_charges(charges: Iterable[Any] | None) -> list[ChargeInput]:
    """Validate the whole charge set; an existing charge may appear only once."""
    parsed: list[ChargeInput] = []
    seen_ids: set[Any] = set()
    for index, raw in enumerate(charges or []):
        charge = parse_charge(raw, index)
        if charge.charge_id is not None:
            if charge.charge_id in seen_ids:
                raise ValidationError(
                    f"charges[{index}].charge_id {charge.charge_id} is listed more than once",
                    field=f"charges[{index}].charge_id",
                )
            seen_ids.add(charge.charge_id)
        parsed.append(charge)
    return parsed


class BillingService:
    """Create, correct and read unit billing records."""

    def __init__(self, db: Session):
        """Initialize billing service.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    # ------------------------------------------------------------------ reads

    def get_billing(self, billing_id: int) -> Billing:
        """Get billing by ID.

        Raises:
            NotFound: If the billing does not exist
        """
        billing = self.db.get(Billing, billing_id)
        if billing is None:
            raise NotFound(f"Billing {billing_id} not found")
        return billing

    def get_billing_for_unit(self, unit_id: int, period: date) -> Billing | None:
        """Get the bill of a unit for the month containing ``period``."""
        return self.db.execute(
            select(Billing).where(
                Billing.unit_id == unit_id,
                Billing.billing_period == billing_period_for(period),
            )
        ).scalar_one_or_none()

    def find_billable_lease(self, unit_id: int) -> LeaseAgreement | None:
        """Active lease of a unit, falling back to its latest completed lease."""
        leases = (
            self.db.execute(
                select(LeaseAgreement)
                .where(
                    LeaseAgreement.unit_id == unit_id,
                    LeaseAgreement.status.in_(BILLABLE_LEASE_STATUSES),
                )
                .order_by(LeaseAgreement.id.desc())
            )
            .scalars()
            .all()
        )
        for lease in leases:
            if lease.status == LeaseStatus.ACTIVE:
                return lease
        return leases[0] if leases else None

    def find_pdc(
        self, lease_id: int, billing_id: int | None, period: date
    ) -> PostDatedCheck | None:
        """Post-dated check applicable to a bill.

        A check already linked to the bill wins; otherwise an unlinked check of
        the lease due within the period. Cleared checks are preferred.
        """
        in_period = and_(
            PostDatedCheck.billing_id.is_(None),
            PostDatedCheck.due_date >= period,
            PostDatedCheck.due_date <= period_end(period),
        )
        condition = in_period if billing_id is None else or_(
            PostDatedCheck.billing_id == billing_id, in_period
        )
        candidates = (
            self.db.execute(
                select(PostDatedCheck)
                .where(PostDatedCheck.lease_id == lease_id, condition)
                .order_by(PostDatedCheck.id)
            )
            .scalars()
            .all()
        )
        if not candidates:
            return None

        def rank(pdc: PostDatedCheck) -> tuple[int, int]:
            linked = 0 if billing_id is not None and pdc.billing_id == billing_id else 1
            cleared = 0 if pdc.status == PdcStatus.CLEARED else 1
            return linked, cleared

        return sorted(candidates, key=rank)[0]

    @staticmethod
    def preview_bill(
        water_prev: Any = None,
        water_curr: Any = None,
        elec_prev: Any = None,
        elec_curr: Any = None,
        water_rate: Any = None,
        elec_rate: Any = None,
        rent_amount: Any = None,
        assoc_dues: Any = None,
        charges: Iterable[Any] | None = None,
        pdc: Any = None,
    ) -> BillBreakdown:
        """Compute a bill from raw form values without touching storage.

        Charges are split into additions and discounts by their category;
        lines without a recognisable category count as additions.
        """
        extra_charges, discounts = [], []
        for line in charges or []:
            category = line.get("charge_category") if isinstance(line, Mapping) else getattr(
                line, "charge_category", None
            )
            if category == ChargeCategory.DISCOUNT:
                discounts.append(line)
            else:
                extra_charges.append(line)
        return compute_bill(
            water_prev=water_prev,
            water_curr=water_curr,
            elec_prev=elec_prev,
            elec_curr=elec_curr,
            water_rate=water_rate,
            elec_rate=elec_rate,
            rent_amount=rent_amount,
            assoc_dues=assoc_dues,
            extra_charges=extra_charges,
            discounts=discounts,
            pdc=pdc,
        )

    # ----------------------------------------------------------------- upsert

    def upsert_billing(
        self,
        unit_id: int,
        reading_date: date,
        due_date: date | None = None,
        water_prev: Any = None,
        water_curr: Any = None,
        elec_prev: Any = None,
        elec_curr: Any = None,
        charges: Iterable[Any] | None = None,
        billing_period: date | None = None,
        actor_id: int | None = None,
    ) -> UpsertResult:
        """Create the unit's bill for the period, or update it in place.

        Args:
            unit_id: Billed unit
            reading_date: Date the meters were read (defines the period by default)
            due_date: Payment due date
            water_prev / water_curr: Water meter readings (optional pair)
            elec_prev / elec_curr: Electricity meter readings (optional pair)
            charges: Additional charges and discounts; the stored set is replaced
            billing_period: Explicit period (any day of the month)
            actor_id: Landlord user performing the action (audit log)

        Returns:
            UpsertResult(billing, created)

        Raises:
            ValidationError: Non-numeric readings, malformed charges, negative rent,
                or the bill is already paid
            NotFound: Unit, property or billable lease missing
            ConflictError: Concurrent writers kept colliding on (unit, period)
        """
        if reading_date is None:
            raise ValidationError("reading_date is required", field="reading_date")

        readings = {
            "water_prev": parse_reading("water_prev", water_prev),
            "water_curr": parse_reading("water_curr", water_curr),
            "elec_prev": parse_reading("elec_prev", elec_prev),
            "elec_curr": parse_reading("elec_curr", elec_curr),
        }
        charge_inputs = parse_charges(charges)
        period = billing_period_for(billing_period or reading_date)

        unit = self.db.get(Unit, unit_id)
        if unit is None:
            raise NotFound(f"Unit {unit_id} not found")
        if unit.rental_property is None:
            raise NotFound(f"Property of unit {unit_id} not found")
        if unit.billable_rent is None or unit.billable_rent < 0:
            raise ValidationError("rent_amount cannot be negative", field="rent_amount")

        lease = self.find_billable_lease(unit_id)
        if lease is None:
            raise NotFound(f"No active or completed lease found for unit {unit_id}")

        for attempt in range(1, MAX_UPSERT_ATTEMPTS + 1):
            try:
                result = self._write_billing(
                    unit=unit,
                    lease=lease,
                    period=period,
                    reading_date=reading_date,
                    due_date=due_date,
                    readings=readings,
                    charge_inputs=charge_inputs,
                    actor_id=actor_id,
                )
                self.db.commit()
            except IntegrityError as e:
                # Another writer inserted the same (unit, period) first
                self.db.rollback()
                logger.warning(
                    "Billing upsert collision for unit %d period %s (attempt %d): %s",
                    unit_id,
                    period,
                    attempt,
                    e.orig,
                )
                continue
            except Exception:
                self.db.rollback()
                raise

            self.db.refresh(result.billing)
            logger.info(
                "%s billing %d for unit %d period %s: total_amount_due=%s",
                "Created" if result.created else "Updated",
                result.billing.id,
                unit_id,
                period,
                result.billing.total_amount_due,
            )
            return result

        raise ConflictError(
            f"Billing for unit {unit_id} period {period} is being modified concurrently"
        )

    def _write_billing(
        self,
        unit: Unit,
        lease: LeaseAgreement,
        period: date,
        reading_date: date,
        due_date: date | None,
        readings: dict[str, Decimal | None],
        charge_inputs: list[ChargeInput],
        actor_id: int | None,
    ) -> UpsertResult:
        billing = self.db.execute(
            select(Billing)
            .where(Billing.unit_id == unit.id, Billing.billing_period == period)
            .with_for_update()
        ).scalar_one_or_none()

        if billing is not None and billing.status == BillingStatus.PAID:
            raise ValidationError(f"Billing {billing.id} is already paid and cannot be changed")

        rates = RateService(self.db).get_property_rates(unit.property_id)
        pdc = self.find_pdc(lease.id, billing.id if billing else None, period)

        breakdown = compute_bill(
            water_prev=readings["water_prev"],
            water_curr=readings["water_curr"],
            elec_prev=readings["elec_prev"],
            elec_curr=readings["elec_curr"],
            water_rate=rates.water_rate,
            elec_rate=rates.electricity_rate,
            rent_amount=unit.billable_rent,
            assoc_dues=unit.rental_property.assoc_dues,
            extra_charges=[c for c in charge_inputs if c.charge_category == ChargeCategory.ADDITIONAL],
            discounts=[c for c in charge_inputs if c.charge_category == ChargeCategory.DISCOUNT],
            pdc=pdc,
        )

        created = billing is None
        if created:
            billing = Billing(
                unit_id=unit.id,
                billing_period=period,
                status=BillingStatus.UNPAID,
            )
            self.db.add(billing)

        billing.lease_id = lease.id
        billing.reading_date = reading_date
        billing.due_date = due_date
        billing.water_prev = readings["water_prev"]
        billing.water_curr = readings["water_curr"]
        billing.elec_prev = readings["elec_prev"]
        billing.elec_curr = readings["elec_curr"]
        billing.water_rate = rates.water_rate
        billing.electricity_rate = rates.electricity_rate
        billing.total_water_amount = breakdown.water_cost
        billing.total_electricity_amount = breakdown.elec_cost
        billing.rent_amount = breakdown.rent_amount
        billing.assoc_dues = breakdown.assoc_dues
        billing.total_extra_charges = breakdown.total_extra_charges
        billing.total_discounts = breakdown.total_discounts
        billing.pdc_credit = breakdown.pdc_credit
        billing.total_amount_due = breakdown.total_amount_due

        # Raises IntegrityError when a concurrent writer created the same (unit, period)
        self.db.flush()

        self._upsert_meter_readings(unit.id, period, reading_date, readings)
        self._replace_charges(billing, charge_inputs)

        if pdc is not None and breakdown.pdc_credit > 0 and pdc.billing_id is None:
            pdc.billing_id = billing.id

        AuditService.log(
            db=self.db,
            entity_type="billing",
            entity_id=billing.id,
            action="create" if created else "update",
            actor_id=actor_id,
            changes={
                "billing_period": period.isoformat(),
                "total_amount_due": str(breakdown.total_amount_due),
                "water_usage": str(breakdown.water_usage),
                "elec_usage": str(breakdown.elec_usage),
                "pdc_credit": str(breakdown.pdc_credit),
            },
        )
        self.db.flush()
        return UpsertResult(billing=billing, created=created)

    def _upsert_meter_readings(
        self,
        unit_id: int,
        period: date,
        reading_date: date,
        readings: dict[str, Decimal | None],
    ) -> None:
        pairs = {
            UtilityType.WATER: (readings["water_prev"], readings["water_curr"]),
            UtilityType.ELECTRICITY: (readings["elec_prev"], readings["elec_curr"]),
        }
        for utility_type, (prev, curr) in pairs.items():
            if prev is None or curr is None:
                continue
            reading = self.db.execute(
                select(MeterReading).where(
                    MeterReading.unit_id == unit_id,
                    MeterReading.utility_type == utility_type,
                    MeterReading.billing_period == period,
                )
            ).scalar_one_or_none()
            if reading is None:
                reading = MeterReading(
                    unit_id=unit_id,
                    utility_type=utility_type,
                    billing_period=period,
                )
                self.db.add(reading)
            reading.reading_date = reading_date
            reading.previous_reading = prev
            reading.current_reading = curr

    def _replace_charges(self, billing: Billing, charge_inputs: list[ChargeInput]) -> None:
        """Make the stored charges match the submitted form.

        Lines carrying a charge_id of this bill are updated in place, new lines
        are inserted, and stored charges missing from the form are deleted.
        """
        existing = {charge.id: charge for charge in billing.charges}
        kept: set[int] = set()

        for line in charge_inputs:
            charge = existing.get(line.charge_id) if line.charge_id is not None else None
            if charge is None:
                billing.charges.append(
                    BillingCharge(
                        charge_category=line.charge_category,
                        charge_type=line.charge_type,
                        amount=line.amount,
                    )
                )
                continue
            charge.charge_category = line.charge_category
            charge.charge_type = line.charge_type
            charge.amount = line.amount
            kept.add(charge.id)

        for charge_id, charge in existing.items():
            if charge_id not in kept:
                billing.charges.remove(charge)

    # ---------------------------------------------------------------- charges

    def add_charge(
        self,
        billing_id: int,
        charge_category: str,
        charge_type: str,
        amount: Any,
        actor_id: int | None = None,
    ) -> BillingCharge:
        """Attach one charge or discount to an unpaid bill, adjusting its totals.

        Raises:
            ValidationError: Malformed charge or the bill is already paid
            NotFound: Billing does not exist
        """
        line = parse_charge(
            {"charge_category": charge_category, "charge_type": charge_type, "amount": amount}
        )
        try:
            billing = self.get_billing(billing_id)
            if billing.status == BillingStatus.PAID:
                raise ValidationError(f"Billing {billing_id} is already paid and cannot be changed")

            charge = BillingCharge(
                charge_category=line.charge_category,
                charge_type=line.charge_type,
                amount=line.amount,
            )
            billing.charges.append(charge)
            self._apply_charge_delta(billing, line.charge_category, line.amount)
            self.db.flush()

            AuditService.log(
                db=self.db,
                entity_type="billing",
                entity_id=billing.id,
                action="add_charge",
                actor_id=actor_id,
                changes={
                    "charge_id": charge.id,
                    "charge_category": line.charge_category.value,
                    "amount": str(line.amount),
                    "total_amount_due": str(billing.total_amount_due),
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(charge)
        logger.info("Added %s charge %d to billing %d", line.charge_category.value, charge.id, billing_id)
        return charge

    def remove_charge(self, charge_id: int, actor_id: int | None = None) -> Billing:
        """Delete one charge or discount from storage, adjusting the bill totals.

        Returns:
            The updated billing

        Raises:
            NotFound: Charge does not exist
            ValidationError: The bill is already paid
        """
        try:
            charge = self.db.get(BillingCharge, charge_id)
            if charge is None:
                raise NotFound(f"Charge {charge_id} not found")
            billing = charge.billing
            if billing.status == BillingStatus.PAID:
                raise ValidationError(
                    f"Billing {billing.id} is already paid and cannot be changed"
                )

            self._apply_charge_delta(billing, charge.charge_category, -charge.amount)
            billing.charges.remove(charge)

            AuditService.log(
                db=self.db,
                entity_type="billing",
                entity_id=billing.id,
                action="remove_charge",
                actor_id=actor_id,
                changes={
                    "charge_id": charge_id,
                    "amount": str(charge.amount),
                    "total_amount_due": str(billing.total_amount_due),
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(billing)
        logger.info("Removed charge %d from billing %d", charge_id, billing.id)
        return billing

    @staticmethod
    def _apply_charge_delta(billing: Billing, category: ChargeCategory, delta: Decimal) -> None:
        if category == ChargeCategory.ADDITIONAL:
            billing.total_extra_charges = round2(billing.total_extra_charges + delta)
            billing.total_amount_due = round2(billing.total_amount_due + delta)
        else:
            billing.total_discounts = round2(billing.total_discounts + delta)
            billing.total_amount_due = round2(billing.total_amount_due - delta)


__all__ = [
    "BillingService",
    "ChargeInput",
    "UpsertResult",
    "billing_period_for",
    "parse_charge",
    "parse_charges",
    "parse_reading",
    "period_end",
]
