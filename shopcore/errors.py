"""Typed failures raised by the checkout core.

Every error carries the HTTP status the API layer answers with, so routes
never translate business failures by hand.
"""

from typing import List, Optional


class ShopcoreError(Exception):
    """Base exception for all checkout core errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[List[str]] = None):
        self.message = message
        self.details = details or []
        super().__init__(message)


class InvalidRequestError(ShopcoreError):
    """Bad input shape. The caller's fault, never retried."""

    status_code = 400


class NotFoundError(ShopcoreError):
    """Cart, order or product is absent."""

    status_code = 404


class ConflictError(ShopcoreError):
    """Insufficient stock, invalid state transition or duplicate reference."""

    status_code = 409


class InvariantViolation(ShopcoreError):
    """The core was asked to run in a state it must refuse, e.g. no webhook secret."""

    status_code = 500


class GatewayError(ShopcoreError):
    """Base class for payment gateway failures."""

    status_code = 502
    kind = "gateway_error"


class GatewayAuthError(GatewayError):
    """The gateway refused our credentials (401/403)."""

    kind = "authentication_failed"


class GatewayRejectedError(GatewayError):
    """The gateway rejected the request (4xx other than auth)."""

    kind = "rejected"

    def __init__(self, message: str, http_status: Optional[int] = None):
        self.http_status = http_status
        super().__init__(message)


class GatewayResponseError(GatewayError):
    """The gateway answered 2xx with a body we cannot trust."""

    kind = "malformed_response"

    def __init__(self, message: str, field: str):
        self.field = field
        super().__init__(message)


class GatewayTimeoutError(GatewayError):
    """Every attempt timed out. Surfaced as service temporarily unavailable."""

    status_code = 503
    kind = "timeout"


class GatewayUnavailableError(GatewayError):
    """Every attempt hit a connection error or a 5xx."""

    status_code = 503
    kind = "unavailable"

    def __init__(self, message: str, http_status: Optional[int] = None):
        self.http_status = http_status
        super().__init__(message)
