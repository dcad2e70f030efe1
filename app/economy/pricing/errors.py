class PricingError(Exception):
    pass


class ProgramNotFoundError(PricingError):
    pass


class TierNotFoundError(PricingError):
    pass


class PriceUnavailableError(PricingError):
    pass


class AddOnUnavailableError(PricingError):
    pass
