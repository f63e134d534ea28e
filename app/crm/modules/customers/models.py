from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.crm.models import Base

if TYPE_CHECKING:
    from app.crm.modules.jobs.models import Job


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        Index("idx_customers_last_name", "last_name", "first_name"),
        Index("idx_customers_email", "email"),
        Index("idx_customers_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    first_name: Mapped[str] = mapped_column(Text, nullable=False)
    last_name: Mapped[str] = mapped_column(Text, nullable=False)
    middle_initial: Mapped[str | None] = mapped_column(String(1), nullable=True)

    address: Mapped[str] = mapped_column(Text, nullable=False)
    phone_number: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # No delete cascade: customers and units are never deleted through the app.
    units: Mapped[list["Unit"]] = relationship(
        "Unit",
        back_populates="customer",
        order_by="Unit.created_at, Unit.id",
        lazy="selectin",
    )
    jobs: Mapped[list["Job"]] = relationship("Job", back_populates="customer", lazy="select")

    @property
    def display_name(self) -> str:
        mi = f"{self.middle_initial}. " if self.middle_initial else ""
        return f"{self.first_name} {mi}{self.last_name}"


class Unit(Base):
    """A motorcycle owned by a customer."""

    __tablename__ = "units"
    __table_args__ = (
        Index("idx_units_customer_id", "customer_id", "created_at"),
        Index("idx_units_plate_number", "plate_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), nullable=False)

    brand: Mapped[str] = mapped_column(Text, nullable=False)
    model: Mapped[str] = mapped_column(Text, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    plate_number: Mapped[str] = mapped_column(String(32), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    customer: Mapped[Customer] = relationship("Customer", back_populates="units", lazy="selectin")

    @property
    def label(self) -> str:
        return f"{self.year} {self.brand} {self.model} ({self.plate_number})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "brand": self.brand,
            "model": self.model,
            "year": self.year,
            "plate_number": self.plate_number,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
