from __future__ import annotations

from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.models.base import Base


class Program(Base):
    __tablename__ = "programs"
    __table_args__ = (
        CheckConstraint(
            "category IN ('evaluation','instant_funding','reset')",
            name="ck_programs_category",
        ),
        CheckConstraint("status IN ('active','inactive')", name="ck_programs_status"),
        CheckConstraint(
            "activation_fee_value IS NULL OR activation_fee_value >= 0",
            name="ck_programs_activation_fee_non_negative",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    activation_fee_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'active'"))

    tiers: Mapped[list[PricingTier]] = relationship(
        back_populates="program",
        order_by="PricingTier.position",
        lazy="selectin",
    )


class PricingTier(Base):
    __tablename__ = "pricing_tiers"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_pricing_tiers_price_non_negative"),
        CheckConstraint(
            "reset_fee IS NULL OR reset_fee >= 0",
            name="ck_pricing_tiers_reset_fee_non_negative",
        ),
        CheckConstraint(
            "reset_fee_funded IS NULL OR reset_fee_funded >= 0",
            name="ck_pricing_tiers_reset_fee_funded_non_negative",
        ),
        Index("idx_pricing_tiers_program_position", "program_id", "position"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    program_id: Mapped[int] = mapped_column(Integer, ForeignKey("programs.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    tier_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    account_size: Mapped[str] = mapped_column(String(32), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    reset_fee: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    reset_fee_funded: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    program: Mapped[Program] = relationship(back_populates="tiers")


class Platform(Base):
    __tablename__ = "platforms"

    slug: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
