from __future__ import annotations

from .builder import apply_breakdown, build_pending_purchase
from .checkout import (
    log_client_price_hints,
    mark_checkout_failed,
    prepare_checkout,
    record_checkout_session,
    require_country_code,
)
from .metadata import detect_price_mismatch, merge_metadata, repair_price_mirror
from .pending_orders import create_external_pending_order
from .store import find_by_order_number, get_purchase, get_purchase_for_update, record_metadata
from .transitions import transition_from_pending
from .update import update_pending_purchase


class PurchaseService:
    apply_breakdown = staticmethod(apply_breakdown)
    build_pending_purchase = staticmethod(build_pending_purchase)
    log_client_price_hints = staticmethod(log_client_price_hints)
    require_country_code = staticmethod(require_country_code)
    prepare_checkout = staticmethod(prepare_checkout)
    record_checkout_session = staticmethod(record_checkout_session)
    mark_checkout_failed = staticmethod(mark_checkout_failed)
    update_pending_purchase = staticmethod(update_pending_purchase)
    create_external_pending_order = staticmethod(create_external_pending_order)
    get_purchase = staticmethod(get_purchase)
    get_purchase_for_update = staticmethod(get_purchase_for_update)
    find_by_order_number = staticmethod(find_by_order_number)
    record_metadata = staticmethod(record_metadata)
    merge_metadata = staticmethod(merge_metadata)
    detect_price_mismatch = staticmethod(detect_price_mismatch)
    repair_price_mirror = staticmethod(repair_price_mirror)
    transition_from_pending = staticmethod(transition_from_pending)


__all__ = ["PurchaseService"]
