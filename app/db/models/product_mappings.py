from __future__ import annotations

from sqlalchemy import BigInteger, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class ProductMapping(Base):
    __tablename__ = "product_mappings"
    __table_args__ = (
        UniqueConstraint(
            "program_id",
            "tier_id",
            "platform_id",
            name="uq_product_mappings_program_tier_platform",
        ),
        Index("idx_product_mappings_variation", "variation_id"),
        Index("idx_product_mappings_reset_fee_product", "reset_fee_product_id"),
        Index("idx_product_mappings_reset_fee_funded_product", "reset_fee_funded_product_id"),
        Index("idx_product_mappings_activation_product", "activation_product_id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    program_id: Mapped[int] = mapped_column(Integer, nullable=False)
    tier_id: Mapped[str] = mapped_column(String(64), nullable=False)
    platform_id: Mapped[str] = mapped_column(String(32), nullable=False)
    product_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    variation_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    reset_fee_product_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    reset_fee_variation_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    reset_fee_funded_product_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    reset_fee_funded_variation_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    activation_product_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
