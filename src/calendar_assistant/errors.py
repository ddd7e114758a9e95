"""Exception hierarchy shared by the authorizer and the tool server."""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Broad failure category, so callers can branch without parsing messages."""

    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    PROVIDER_CALL = "provider_call"


class CalendarAssistantError(Exception):
    """Base class for all errors raised by this package."""

    kind: ErrorKind


class ConfigurationError(CalendarAssistantError):
    """A required setting is missing or malformed."""

    kind = ErrorKind.CONFIGURATION


class EventValidationError(CalendarAssistantError):
    """Tool arguments failed validation before any provider call."""

    kind = ErrorKind.VALIDATION


class AuthorizationError(CalendarAssistantError):
    """The OAuth flow or a token grant failed.

    ``error_code`` holds the OAuth error code reported by Google
    (for example ``invalid_grant``) when one was available.
    """

    kind = ErrorKind.AUTHORIZATION

    def __init__(self, message: str, *, error_code: str | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code


class ProviderCallError(CalendarAssistantError):
    """A Google Calendar API call failed."""

    kind = ErrorKind.PROVIDER_CALL
