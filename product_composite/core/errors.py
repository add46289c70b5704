# product_composite/core/errors.py
from __future__ import annotations
from typing import Optional


class ServiceError(Exception):
    """Base class for the errors the services raise on purpose."""

    status_code: int = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class InvalidInputError(ServiceError):
    status_code = 422


class NotFoundError(ServiceError):
    status_code = 404


class UpstreamError(ServiceError):
    """
    A downstream call failed for an infrastructure reason: unmapped HTTP status,
    connection problem or timeout. `status` is None when no response was received.
    """

    status_code = 502

    def __init__(self, message: str = "", *, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class UpstreamTimeoutError(UpstreamError):
    status_code = 503


class CallNotPermittedError(ServiceError):
    """Raised by an OPEN (or saturated HALF_OPEN) circuit breaker."""

    status_code = 503

    def __init__(self, breaker_name: str):
        super().__init__(f"CircuitBreaker '{breaker_name}' is OPEN and does not permit further calls")
        self.breaker_name = breaker_name


class EventProcessingError(ServiceError):
    """Consumer side: the message could not be processed and must be redelivered."""
