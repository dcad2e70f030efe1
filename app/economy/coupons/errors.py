class CouponError(Exception):
    pass


class CouponIneligibleError(CouponError):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
