"""Property, Unit and utility provider statement ORM models."""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Date, ForeignKey, Index, Numeric, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentflow.models import Base, BaseModel


class UtilityType(str, Enum):
    """Submetered utilities."""

    WATER = "water"
    ELECTRICITY = "electricity"


class Property(Base, BaseModel):
    """Model representing a rental property owned by a landlord.

    Association dues are charged on every unit bill of the property.
    """

    __tablename__ = "properties"

    landlord_id: Mapped[int] = mapped_column(
        ForeignKey("landlords.id"),
        nullable=False,
        index=True,
    )
    property_name: Mapped[str] = mapped_column(String(150), nullable=False)
    assoc_dues: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        comment="Association dues added to each unit bill",
    )

    landlord: Mapped["Landlord"] = relationship(  # noqa: F821
        "Landlord",
        back_populates="properties",
    )
    units: Mapped[list["Unit"]] = relationship("Unit", back_populates="rental_property")

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, name={self.property_name}, landlord_id={self.landlord_id})>"


class Unit(Base, BaseModel):
    """A rentable unit inside a property, with its own utility meters."""

    __tablename__ = "units"

    property_id: Mapped[int] = mapped_column(
        ForeignKey("properties.id"),
        nullable=False,
        index=True,
    )
    unit_name: Mapped[str] = mapped_column(String(100), nullable=False)
    rent_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    effective_rent_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
        comment="Negotiated rent overriding rent_amount when set",
    )

    rental_property: Mapped["Property"] = relationship("Property", back_populates="units")

    @property
    def billable_rent(self) -> Decimal:
        """Rent charged on a bill: effective rent wins over list rent."""
        if self.effective_rent_amount is not None:
            return self.effective_rent_amount
        return self.rent_amount

    def __repr__(self) -> str:
        return f"<Unit(id={self.id}, name={self.unit_name}, property_id={self.property_id})>"


class UtilityStatement(Base, BaseModel):
    """Utility provider statement for a whole property.

    The per-unit rate is derived from the most recent statement:
    total_billed_amount / total_consumption.
    """

    __tablename__ = "utility_statements"

    property_id: Mapped[int] = mapped_column(
        ForeignKey("properties.id"),
        nullable=False,
        index=True,
    )
    utility_type: Mapped[UtilityType] = mapped_column(SQLEnum(UtilityType), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    total_billed_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_consumption: Mapped[Decimal] = mapped_column(
        Numeric(12, 3),
        nullable=False,
        comment="Consumption in m3 (water) or kWh (electricity)",
    )

    __table_args__ = (
        Index("idx_statement_property_type_end", "property_id", "utility_type", "period_end"),
    )

    def __repr__(self) -> str:
        return (
            f"<UtilityStatement(id={self.id}, property_id={self.property_id}, "
            f"type={self.utility_type}, amount={self.total_billed_amount}, "
            f"consumption={self.total_consumption})>"
        )


__all__ = ["Property", "Unit", "UtilityStatement", "UtilityType"]
