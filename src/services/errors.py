"""Errors surfaced by the catalog services to the HTTP layer."""

from typing import Any


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_detail(self) -> dict[str, Any]:
        return {"error": self.message, **self.details}


class ValidationFailure(ServiceError):
    status_code = 400


class AuthenticationFailure(ServiceError):
    status_code = 401


class AuthorizationFailure(ServiceError):
    status_code = 403


class EntityNotFound(ServiceError):
    status_code = 404


class RateLimitExceeded(ServiceError):
    status_code = 429


class WriteFailure(ServiceError):
    """A write that could not be completed in any candidate relation."""

    def __init__(self, message: str, attempts: list):
        super().__init__(message, tried=[attempt.relation for attempt in attempts])
        self.attempts = attempts

    def to_detail(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "tried": [attempt.relation for attempt in self.attempts],
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }


class MediaFailure(ServiceError):
    """A required media upload did not succeed."""
