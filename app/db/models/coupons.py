from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Index, Integer, Numeric, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("discount_type IN ('percentage','fixed')", name="ck_coupons_discount_type"),
        CheckConstraint("discount_value >= 0", name="ck_coupons_discount_value_non_negative"),
        CheckConstraint("status IN ('active','inactive')", name="ck_coupons_status"),
        CheckConstraint(
            "restriction_mode IN ('all','whitelist','blacklist')",
            name="ck_coupons_restriction_mode",
        ),
        CheckConstraint("code = upper(code)", name="ck_coupons_code_upper"),
        CheckConstraint("valid_to IS NULL OR valid_to >= valid_from", name="ck_coupons_validity_window"),
        Index(
            "idx_coupons_auto_apply_priority",
            "auto_apply_priority",
            postgresql_where=text("auto_apply AND status = 'active'"),
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    discount_type: Mapped[str] = mapped_column(String(16), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    restriction_mode: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'all'"))
    program_ids: Mapped[list[int]] = mapped_column(JSONB, nullable=False, server_default=text("'[]'::jsonb"))
    minimum_purchase_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    account_size_discounts: Mapped[list[dict[str, object]]] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'[]'::jsonb"),
    )
    total_usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    per_user_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    auto_apply: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    auto_apply_priority: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    prevent_manual_entry: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    affiliate_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    affiliate_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    affiliate_username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
