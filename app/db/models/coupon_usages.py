from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class CouponUsage(Base):
    __tablename__ = "coupon_usages"
    __table_args__ = (
        UniqueConstraint("coupon_id", "purchase_id", name="uq_coupon_usages_coupon_purchase"),
        Index("idx_coupon_usages_coupon_email", "coupon_id", "customer_email"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    coupon_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("coupons.id"), nullable=False)
    purchase_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("purchases.id"), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    program_id: Mapped[int] = mapped_column(Integer, nullable=False)
    account_size: Mapped[str] = mapped_column(String(32), nullable=False)
    original_price: Mapped[int] = mapped_column(Integer, nullable=False)
    discount_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    final_price: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
