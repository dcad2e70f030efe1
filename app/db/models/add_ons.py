from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, Numeric, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class AddOn(Base):
    __tablename__ = "add_ons"
    __table_args__ = (
        CheckConstraint(
            "price_increase_percentage >= 0 AND price_increase_percentage <= 100",
            name="ck_add_ons_percentage_range",
        ),
        CheckConstraint("status IN ('active','inactive')", name="ck_add_ons_status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    price_increase_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'active'"))
