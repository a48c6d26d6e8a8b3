"""Domain errors raised by the core modules.

Routers never see SQL or HTTP details from the core; they get one of these and
``main.py`` maps each class to a status code.
"""


class DomainError(Exception):
    error_code = "DOMAIN_ERROR"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(DomainError):
    """Entity does not exist, or does not belong to the caller."""

    error_code = "NOT_FOUND"


class Forbidden(DomainError):
    error_code = "FORBIDDEN"


class Conflict(DomainError):
    error_code = "CONFLICT"


class ValidationFailed(DomainError):
    error_code = "VALIDATION_FAILED"


class PaymentDeclined(DomainError):
    error_code = "PAYMENT_DECLINED"


class Unauthorized(DomainError):
    """Credentials missing or wrong."""

    error_code = "UNAUTHORIZED"
