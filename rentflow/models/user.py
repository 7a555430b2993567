"""User and Landlord ORM models."""

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rentflow.models import Base, BaseModel


class User(Base, BaseModel):
    """A person using the platform (tenant, landlord or admin).

    Authentication lives outside this service; the row only carries what
    notifications and payout bookkeeping need.
    """

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name={self.name})>"


class Landlord(Base, BaseModel):
    """Landlord profile linked to a user account."""

    __tablename__ = "landlords"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        unique=True,
        comment="User account owning this landlord profile",
    )
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])
    properties: Mapped[list["Property"]] = relationship(  # noqa: F821
        "Property",
        back_populates="landlord",
    )

    def __repr__(self) -> str:
        return f"<Landlord(id={self.id}, user_id={self.user_id})>"


__all__ = ["User", "Landlord"]
