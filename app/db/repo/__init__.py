from app.db.repo.coupon_usages_repo import CouponUsagesRepo
from app.db.repo.coupons_repo import CouponsRepo
from app.db.repo.product_mappings_repo import ProductMappingsRepo
from app.db.repo.programs_repo import ProgramsRepo
from app.db.repo.purchases_repo import PurchasesRepo
from app.db.repo.reconciliation_runs_repo import ReconciliationRunsRepo

__all__ = [
    "CouponUsagesRepo",
    "CouponsRepo",
    "ProductMappingsRepo",
    "ProgramsRepo",
    "PurchasesRepo",
    "ReconciliationRunsRepo",
]
