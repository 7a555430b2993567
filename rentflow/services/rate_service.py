"""Per-unit utility rate derivation from provider statements."""

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from rentflow.models.property import UtilityStatement, UtilityType

logger = logging.getLogger(__name__)

RATE_QUANTUM = Decimal("0.0001")


class UtilityRates(NamedTuple):
    """Derived per-unit rates for a property."""

    water_rate: Decimal
    electricity_rate: Decimal


def derive_rate(total_billed_amount, total_consumption) -> Decimal:
    """Derive the per-unit rate of a utility.

    Formula: total_billed_amount / total_consumption

    A zero (or missing, or negative) consumption yields a rate of 0 instead of
    an error, and so does a negative billed amount.

    Returns:
        Rate as Decimal (rounded to 4 decimal places)
    """
    try:
        billed = Decimal(str(total_billed_amount)) if total_billed_amount is not None else Decimal(0)
        consumption = Decimal(str(total_consumption)) if total_consumption is not None else Decimal(0)
    except InvalidOperation:
        return Decimal(0)

    if not billed.is_finite() or not consumption.is_finite():
        return Decimal(0)
    if consumption <= 0 or billed <= 0:
        return Decimal(0)

    return (billed / consumption).quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)


class RateService:
    """Looks up provider statements and derives the property's utility rates."""

    def __init__(self, db: Session):
        self.db = db

    def get_latest_statement(
        self, property_id: int, utility_type: UtilityType
    ) -> UtilityStatement | None:
        """Most recent provider statement of a utility for a property."""
        stmt = (
            select(UtilityStatement)
            .where(
                UtilityStatement.property_id == property_id,
                UtilityStatement.utility_type == utility_type,
            )
            .order_by(UtilityStatement.period_end.desc(), UtilityStatement.id.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_property_rates(self, property_id: int) -> UtilityRates:
        """Derive water and electricity rates for a property.

        A utility without any statement gets a rate of 0.
        """
        rates = {}
        for utility_type in (UtilityType.WATER, UtilityType.ELECTRICITY):
            statement = self.get_latest_statement(property_id, utility_type)
            if statement is None:
                logger.debug("No %s statement for property %d", utility_type.value, property_id)
                rates[utility_type] = Decimal(0)
                continue
            rates[utility_type] = derive_rate(
                statement.total_billed_amount, statement.total_consumption
            )

        return UtilityRates(
            water_rate=rates[UtilityType.WATER],
            electricity_rate=rates[UtilityType.ELECTRICITY],
        )


__all__ = ["derive_rate", "RateService", "UtilityRates"]
