"""
Domain exceptions for the check-in service.

Services raise these; the handler registered in ``main.py`` turns them into
JSON responses of the form ``{"error": <error_code>, "message": <message>}``.
Every error is scoped to the single request that raised it.
"""


class CheckInServiceError(Exception):
    """Base class for all domain errors."""

    error_code = "CHECKIN_ERROR"
    status_code = 400

    def __init__(self, message: str, error_code: str = None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class InvalidToken(CheckInServiceError):
    """Unknown QR token or registration token."""

    error_code = "INVALID_TOKEN"
    status_code = 404

    def __init__(self, token: str, kind: str = "QR code"):
        super().__init__(f"{kind} '{token}' is not registered for this event")
        self.token = token
        self.kind = kind


class RateLimited(CheckInServiceError):
    """Too many registration attempts from one client address."""

    error_code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, client_ip: str, retry_after: int):
        super().__init__("Rate limit exceeded. Please try again later.")
        self.client_ip = client_ip
        self.retry_after = retry_after


class TokenExpiredOrExhausted(CheckInServiceError):
    """
    Registration token can no longer be used.

    ``reason`` is one of ``inactive``, ``expired`` or ``exhausted``.
    """

    error_code = "TOKEN_EXPIRED_OR_EXHAUSTED"
    status_code = 410

    MESSAGES = {
        "inactive": "This registration link has been deactivated",
        "expired": "This registration link has expired",
        "exhausted": "This registration link has already been used",
    }

    def __init__(self, reason: str):
        super().__init__(self.MESSAGES.get(reason, "This registration link is no longer valid"))
        self.reason = reason


class DuplicateEmail(CheckInServiceError):
    error_code = "DUPLICATE_EMAIL"
    status_code = 409

    def __init__(self, email: str):
        super().__init__("Email already registered")
        self.email = email


class ValidationError(CheckInServiceError):
    """Missing or malformed required field."""

    error_code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, field_name: str, validation_error: str):
        super().__init__(f"Validation error in field '{field_name}': {validation_error}")
        self.field_name = field_name
        self.validation_error = validation_error


class TransientStoreError(CheckInServiceError):
    """Store failure that persisted after the bounded retries."""

    error_code = "TRANSIENT_STORE_ERROR"
    status_code = 503

    def __init__(self, operation: str, details: str):
        super().__init__(f"Data store error during {operation}: {details}")
        self.operation = operation
        self.details = details


class PermissionDenied(CheckInServiceError):
    """Staff account operation refused for the caller."""

    error_code = "PERMISSION_DENIED"
    status_code = 403
