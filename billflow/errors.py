"""
Domain exceptions raised by the billing services.

Routes never build error responses by hand for these: ``register_error_handlers``
turns any ``BillingError`` into the standard JSON envelope using its
``status_code``.
"""


class BillingError(Exception):
    """Base class for every error the billing services raise on purpose."""

    status_code = 500

    def __init__(self, message: str, status_code: int = None, payload: dict = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.payload:
            body["data"] = self.payload
        return body


class ValidationError(BillingError):
    status_code = 400


class AuthenticationError(BillingError):
    status_code = 401


class NotFoundError(BillingError):
    status_code = 404


class ConflictError(BillingError):
    status_code = 409


class GatewayError(BillingError):
    """A gateway call failed. ``code`` and ``type`` come from the gateway."""

    status_code = 402

    def __init__(self, message: str, code: str = None, type: str = None, status_code: int = None):
        super().__init__(message, status_code)
        self.code = code
        self.type = type


class UnsupportedGatewayError(BillingError):
    status_code = 400


class GatewayNotImplementedError(BillingError):
    status_code = 501


class WebhookSignatureError(BillingError):
    status_code = 400


class GatewayDisabledError(BillingError):
    """Raised when the card gateway is switched off via FEATURE_ENABLE_STRIPE."""

    status_code = 503

    def __init__(self, message: str = None, operation: str = None):
        default_msg = "Stripe is disabled via FEATURE_ENABLE_STRIPE=false"
        if operation:
            default_msg = f"Stripe operation '{operation}' disabled via feature flag"
        super().__init__(message or default_msg)
        self.operation = operation
        self.code = "STRIPE_DISABLED"


class GatewayMisconfiguredError(BillingError):
    """Raised when the gateway is enabled but a required secret is missing."""

    status_code = 500

    def __init__(self, missing_config: str = None):
        msg = "Stripe is enabled but misconfigured"
        if missing_config:
            msg = f"Stripe misconfigured: Missing {missing_config}"
        super().__init__(msg)
        self.missing_config = missing_config
        self.code = "STRIPE_MISCONFIGURED"
