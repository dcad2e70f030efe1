from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Sequence,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base

ORDER_NUMBER_SEQUENCE = Sequence("purchase_order_number_seq", start=100000, metadata=Base.metadata)


class Purchase(Base):
    __tablename__ = "purchases"
    __table_args__ = (
        CheckConstraint(
            "purchase_type IN ('original','reset','activation')",
            name="ck_purchases_purchase_type",
        ),
        CheckConstraint(
            "status IN ('pending','completed','failed','cancelled')",
            name="ck_purchases_status",
        ),
        CheckConstraint(
            "(purchase_type = 'reset' AND reset_product_type IN ('evaluation','funded'))"
            " OR (purchase_type <> 'reset' AND reset_product_type IS NULL)",
            name="ck_purchases_reset_subtype",
        ),
        CheckConstraint(
            "base_price >= 0 AND applied_discount >= 0 AND purchase_price >= 0 AND add_on_value >= 0",
            name="ck_purchases_amounts_non_negative",
        ),
        CheckConstraint("purchase_price <= base_price", name="ck_purchases_final_not_above_base"),
        CheckConstraint("total_price = purchase_price + add_on_value", name="ck_purchases_total_price"),
        CheckConstraint(
            "purchase_type = 'original' OR (applied_discount = 0 AND add_on_value = 0)",
            name="ck_purchases_fee_variants_undiscounted",
        ),
        Index("idx_purchases_customer_email_created", "customer_email", "created_at"),
        Index("idx_purchases_status_created", "status", "created_at"),
        Index(
            "idx_purchases_affiliated_email",
            "customer_email",
            "created_at",
            postgresql_where=text("affiliate_id IS NOT NULL"),
        ),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    order_number: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)
    program_id: Mapped[int] = mapped_column(Integer, nullable=False)
    program_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    program_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    account_size: Mapped[str] = mapped_column(String(32), nullable=False)
    tier_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    platform_slug: Mapped[str | None] = mapped_column(String(32), nullable=True)
    platform_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    program_details: Mapped[str | None] = mapped_column(String(255), nullable=True)
    purchase_type: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'original'"))
    reset_product_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, server_default=text("'USD'"))
    base_price: Mapped[int] = mapped_column(Integer, nullable=False)
    applied_discount: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    purchase_price: Mapped[int] = mapped_column(Integer, nullable=False)
    add_on_value: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)
    selected_add_ons: Mapped[list[dict[str, object]]] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'[]'::jsonb"),
    )
    discount_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    affiliate_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    affiliate_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    affiliate_username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'pending'"))
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    billing_address: Mapped[dict[str, object]] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    region: Mapped[str | None] = mapped_column(String(32), nullable=True)
    product_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    variation_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    external_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    is_in_app_purchase: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, object]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
