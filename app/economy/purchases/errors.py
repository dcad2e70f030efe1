class PurchaseError(Exception):
    pass


class PurchaseNotFoundError(PurchaseError):
    pass


class PurchaseInvalidStateError(PurchaseError):
    pass


class PurchaseValidationError(PurchaseError):
    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
