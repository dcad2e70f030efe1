from app.db.models.add_ons import AddOn
from app.db.models.coupon_usages import CouponUsage
from app.db.models.coupons import Coupon
from app.db.models.product_mappings import ProductMapping
from app.db.models.programs import Platform, PricingTier, Program
from app.db.models.purchases import Purchase
from app.db.models.reconciliation_runs import ReconciliationRun

__all__ = [
    "AddOn",
    "Coupon",
    "CouponUsage",
    "Platform",
    "PricingTier",
    "ProductMapping",
    "Program",
    "Purchase",
    "ReconciliationRun",
]
