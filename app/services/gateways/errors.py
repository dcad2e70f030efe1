class GatewayError(Exception):
    """Upstream payment gateway call failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GatewayAuthError(GatewayError):
    pass


class GatewayConfigError(GatewayError):
    pass


class SignatureInvalidError(Exception):
    pass
