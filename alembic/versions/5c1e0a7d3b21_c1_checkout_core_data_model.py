"""c1_checkout_core_data_model

Revision ID: 5c1e0a7d3b21
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5c1e0a7d3b21"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.execute("CREATE SEQUENCE purchase_order_number_seq START WITH 100000")

    op.create_table(
        "programs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("activation_fee_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'active'")),
        sa.CheckConstraint(
            "category IN ('evaluation','instant_funding','reset')",
            name="ck_programs_category",
        ),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_programs_status"),
        sa.CheckConstraint(
            "activation_fee_value IS NULL OR activation_fee_value >= 0",
            name="ck_programs_activation_fee_non_negative",
        ),
    )

    op.create_table(
        "pricing_tiers",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("program_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("tier_key", sa.String(64), nullable=True),
        sa.Column("account_size", sa.String(32), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("reset_fee", sa.Numeric(12, 2), nullable=True),
        sa.Column("reset_fee_funded", sa.Numeric(12, 2), nullable=True),
        sa.CheckConstraint("price >= 0", name="ck_pricing_tiers_price_non_negative"),
        sa.CheckConstraint(
            "reset_fee IS NULL OR reset_fee >= 0",
            name="ck_pricing_tiers_reset_fee_non_negative",
        ),
        sa.CheckConstraint(
            "reset_fee_funded IS NULL OR reset_fee_funded >= 0",
            name="ck_pricing_tiers_reset_fee_funded_non_negative",
        ),
        sa.ForeignKeyConstraint(["program_id"], ["programs.id"]),
    )
    op.create_index("idx_pricing_tiers_program_position", "pricing_tiers", ["program_id", "position"])

    op.create_table(
        "platforms",
        sa.Column("slug", sa.String(32), primary_key=True),
        sa.Column("name", sa.String(64), nullable=False),
    )

    op.create_table(
        "add_ons",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("price_increase_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'active'")),
        sa.CheckConstraint(
            "price_increase_percentage >= 0 AND price_increase_percentage <= 100",
            name="ck_add_ons_percentage_range",
        ),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_add_ons_status"),
        sa.UniqueConstraint("key", name="uq_add_ons_key"),
    )

    op.create_table(
        "product_mappings",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("program_id", sa.Integer(), nullable=False),
        sa.Column("tier_id", sa.String(64), nullable=False),
        sa.Column("platform_id", sa.String(32), nullable=False),
        sa.Column("product_id", sa.String(32), nullable=True),
        sa.Column("variation_id", sa.String(32), nullable=True),
        sa.Column("reset_fee_product_id", sa.String(32), nullable=True),
        sa.Column("reset_fee_variation_id", sa.String(32), nullable=True),
        sa.Column("reset_fee_funded_product_id", sa.String(32), nullable=True),
        sa.Column("reset_fee_funded_variation_id", sa.String(32), nullable=True),
        sa.Column("activation_product_id", sa.String(32), nullable=True),
        sa.UniqueConstraint(
            "program_id",
            "tier_id",
            "platform_id",
            name="uq_product_mappings_program_tier_platform",
        ),
    )
    op.create_index("idx_product_mappings_variation", "product_mappings", ["variation_id"])
    op.create_index("idx_product_mappings_reset_fee_product", "product_mappings", ["reset_fee_product_id"])
    op.create_index(
        "idx_product_mappings_reset_fee_funded_product",
        "product_mappings",
        ["reset_fee_funded_product_id"],
    )
    op.create_index("idx_product_mappings_activation_product", "product_mappings", ["activation_product_id"])

    op.create_table(
        "coupons",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("discount_type", sa.String(16), nullable=False),
        sa.Column("discount_value", sa.Numeric(12, 2), nullable=False),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("restriction_mode", sa.String(16), nullable=False, server_default=sa.text("'all'")),
        sa.Column(
            "program_ids",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("minimum_purchase_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column(
            "account_size_discounts",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("total_usage_limit", sa.Integer(), nullable=True),
        sa.Column("per_user_limit", sa.Integer(), nullable=True),
        sa.Column("auto_apply", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("auto_apply_priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("prevent_manual_entry", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("affiliate_id", sa.String(64), nullable=True),
        sa.Column("affiliate_email", sa.String(255), nullable=True),
        sa.Column("affiliate_username", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("discount_type IN ('percentage','fixed')", name="ck_coupons_discount_type"),
        sa.CheckConstraint("discount_value >= 0", name="ck_coupons_discount_value_non_negative"),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_coupons_status"),
        sa.CheckConstraint(
            "restriction_mode IN ('all','whitelist','blacklist')",
            name="ck_coupons_restriction_mode",
        ),
        sa.CheckConstraint("code = upper(code)", name="ck_coupons_code_upper"),
        sa.CheckConstraint("valid_to IS NULL OR valid_to >= valid_from", name="ck_coupons_validity_window"),
        sa.UniqueConstraint("code", name="uq_coupons_code"),
    )
    op.create_index(
        "idx_coupons_auto_apply_priority",
        "coupons",
        ["auto_apply_priority"],
        postgresql_where=sa.text("auto_apply AND status = 'active'"),
    )

    op.create_table(
        "purchases",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("order_number", sa.BigInteger(), nullable=False),
        sa.Column("program_id", sa.Integer(), nullable=False),
        sa.Column("program_name", sa.String(128), nullable=True),
        sa.Column("program_type", sa.String(32), nullable=True),
        sa.Column("account_size", sa.String(32), nullable=False),
        sa.Column("tier_id", sa.String(64), nullable=True),
        sa.Column("platform_slug", sa.String(32), nullable=True),
        sa.Column("platform_name", sa.String(64), nullable=True),
        sa.Column("program_details", sa.String(255), nullable=True),
        sa.Column("purchase_type", sa.String(16), nullable=False, server_default=sa.text("'original'")),
        sa.Column("reset_product_type", sa.String(16), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("base_price", sa.Integer(), nullable=False),
        sa.Column("applied_discount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("purchase_price", sa.Integer(), nullable=False),
        sa.Column("add_on_value", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_price", sa.Integer(), nullable=False),
        sa.Column(
            "selected_add_ons",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("discount_code", sa.String(64), nullable=True),
        sa.Column("affiliate_id", sa.String(64), nullable=True),
        sa.Column("affiliate_email", sa.String(255), nullable=True),
        sa.Column("affiliate_username", sa.String(64), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(64), nullable=True),
        sa.Column(
            "billing_address",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("region", sa.String(32), nullable=True),
        sa.Column("product_id", sa.String(32), nullable=True),
        sa.Column("variation_id", sa.String(32), nullable=True),
        sa.Column("external_account_id", sa.String(64), nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=True),
        sa.Column("is_in_app_purchase", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "purchase_type IN ('original','reset','activation')",
            name="ck_purchases_purchase_type",
        ),
        sa.CheckConstraint(
            "status IN ('pending','completed','failed','cancelled')",
            name="ck_purchases_status",
        ),
        sa.CheckConstraint(
            "(purchase_type = 'reset' AND reset_product_type IN ('evaluation','funded'))"
            " OR (purchase_type <> 'reset' AND reset_product_type IS NULL)",
            name="ck_purchases_reset_subtype",
        ),
        sa.CheckConstraint(
            "base_price >= 0 AND applied_discount >= 0 AND purchase_price >= 0 AND add_on_value >= 0",
            name="ck_purchases_amounts_non_negative",
        ),
        sa.CheckConstraint("purchase_price <= base_price", name="ck_purchases_final_not_above_base"),
        sa.CheckConstraint("total_price = purchase_price + add_on_value", name="ck_purchases_total_price"),
        sa.CheckConstraint(
            "purchase_type = 'original' OR (applied_discount = 0 AND add_on_value = 0)",
            name="ck_purchases_fee_variants_undiscounted",
        ),
        sa.UniqueConstraint("order_number", name="uq_purchases_order_number"),
    )
    op.create_index("idx_purchases_customer_email_created", "purchases", ["customer_email", "created_at"])
    op.create_index("idx_purchases_status_created", "purchases", ["status", "created_at"])
    op.create_index(
        "idx_purchases_affiliated_email",
        "purchases",
        ["customer_email", "created_at"],
        postgresql_where=sa.text("affiliate_id IS NOT NULL"),
    )

    op.create_table(
        "coupon_usages",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("coupon_id", sa.BigInteger(), nullable=False),
        sa.Column("purchase_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=False),
        sa.Column("program_id", sa.Integer(), nullable=False),
        sa.Column("account_size", sa.String(32), nullable=False),
        sa.Column("original_price", sa.Integer(), nullable=False),
        sa.Column("discount_amount", sa.Integer(), nullable=False),
        sa.Column("final_price", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=True),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["coupon_id"], ["coupons.id"]),
        sa.ForeignKeyConstraint(["purchase_id"], ["purchases.id"]),
        sa.UniqueConstraint("coupon_id", "purchase_id", name="uq_coupon_usages_coupon_purchase"),
    )
    op.create_index("idx_coupon_usages_coupon_email", "coupon_usages", ["coupon_id", "customer_email"])

    op.create_table(
        "reconciliation_runs",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("run_type", sa.String(32), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("diff_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "details",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
    )


def downgrade() -> None:
    op.drop_table("reconciliation_runs")
    op.drop_index("idx_coupon_usages_coupon_email", table_name="coupon_usages")
    op.drop_table("coupon_usages")
    op.drop_index("idx_purchases_affiliated_email", table_name="purchases")
    op.drop_index("idx_purchases_status_created", table_name="purchases")
    op.drop_index("idx_purchases_customer_email_created", table_name="purchases")
    op.drop_table("purchases")
    op.drop_index("idx_coupons_auto_apply_priority", table_name="coupons")
    op.drop_table("coupons")
    op.drop_index("idx_product_mappings_activation_product", table_name="product_mappings")
    op.drop_index("idx_product_mappings_reset_fee_funded_product", table_name="product_mappings")
    op.drop_index("idx_product_mappings_reset_fee_product", table_name="product_mappings")
    op.drop_index("idx_product_mappings_variation", table_name="product_mappings")
    op.drop_table("product_mappings")
    op.drop_table("add_ons")
    op.drop_table("platforms")
    op.drop_index("idx_pricing_tiers_program_position", table_name="pricing_tiers")
    op.drop_table("pricing_tiers")
    op.drop_table("programs")
    op.execute("DROP SEQUENCE IF EXISTS purchase_order_number_seq")
