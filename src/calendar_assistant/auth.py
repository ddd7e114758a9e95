"""Google OAuth 2.0 helpers.

Covers the three grants this package needs:

* building the consent-screen URL for the authorization-code flow,
* exchanging the returned code for an access/refresh token pair,
* minting short-lived access tokens from the stored refresh token.

Secret material (client secret, refresh token, access token) is never
logged.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx

from calendar_assistant.errors import AuthorizationError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

SCOPES = ["https://www.googleapis.com/auth/calendar.events"]

_EXCHANGE_TIMEOUT_SECONDS = 15.0
_DEFAULT_EXPIRES_IN_SECONDS = 3600
# Refresh this long before Google's stated expiry to avoid edge-of-expiry 401s.
_EXPIRY_MARGIN_SECONDS = 60


@dataclass(slots=True)
class GoogleCredentials:
    """The persisted client id/secret/refresh-token triple."""

    client_id: str
    client_secret: str = field(repr=False)
    refresh_token: str = field(repr=False)


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scopes: list[str] | None = None,
) -> str:
    """Return the Google consent-screen URL for the authorization-code flow.

    ``prompt=consent`` forces the consent screen even on repeat runs;
    without it Google only issues a refresh token on the very first grant.
    """
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(scopes or SCOPES),
        "access_type": "offline",
        "prompt": "consent",
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


def _token_error(response: httpx.Response, action: str) -> AuthorizationError:
    """Build an AuthorizationError from a failed token-endpoint reply."""
    error_code: str | None = None
    description: str | None = None
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, str):
            error_code = error
            description = payload.get("error_description")
        elif isinstance(error, dict):
            # Some Google endpoints wrap errors in the Cloud API error shape.
            error_code = error.get("status")
            description = error.get("message")

    message = f"{action} failed: token endpoint returned HTTP {response.status_code}"
    if error_code:
        message += f": {error_code}"
        if isinstance(description, str) and description.strip():
            message += f" ({' '.join(description.split())[:200]})"
    return AuthorizationError(message, error_code=error_code)


async def exchange_code(
    code: str,
    *,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    http_client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Exchange an authorization code for tokens.

    Returns the full token response (``access_token``, ``expires_in`` and,
    when Google issues one, ``refresh_token``).

    Raises:
        AuthorizationError: On network errors, non-200 replies (the OAuth
            error code, e.g. ``invalid_grant``, is kept on the exception)
            and malformed JSON.
    """
    payload = {
        "code": code,
        "client_id": client_id,
        "client_secret": client_secret,
        "redirect_uri": redirect_uri,
        "grant_type": "authorization_code",
    }

    client = http_client or httpx.AsyncClient(timeout=_EXCHANGE_TIMEOUT_SECONDS)
    try:
        response = await client.post(
            GOOGLE_TOKEN_URL, data=payload, headers={"Accept": "application/json"}
        )
    except httpx.HTTPError as exc:
        raise AuthorizationError(f"Network error during token exchange: {exc}") from exc
    finally:
        if http_client is None:
            await client.aclose()

    if response.status_code != 200:
        raise _token_error(response, "Token exchange")

    try:
        result = response.json()
    except ValueError as exc:
        raise AuthorizationError("Token endpoint returned invalid JSON") from exc
    if not isinstance(result, dict):
        raise AuthorizationError("Token endpoint returned an unexpected payload")
    return result


def _coerce_expires_in(value: Any) -> int:
    if isinstance(value, bool):
        return _DEFAULT_EXPIRES_IN_SECONDS
    if isinstance(value, int | float) and value > 0:
        return int(value)
    return _DEFAULT_EXPIRES_IN_SECONDS


class GoogleTokenProvider:
    """Mint access tokens from a refresh token, caching until near expiry."""

    def __init__(self, credentials: GoogleCredentials, http_client: httpx.AsyncClient) -> None:
        self._credentials = credentials
        self._http = http_client
        self._access_token: str | None = None
        self._expires_at: datetime | None = None
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        if self._access_token is None or self._expires_at is None:
            return False
        return datetime.now(UTC) < self._expires_at

    async def get_access_token(self, *, force_refresh: bool = False) -> str:
        if not force_refresh and self._is_fresh():
            assert self._access_token is not None
            return self._access_token

        async with self._lock:
            if not force_refresh and self._is_fresh():
                assert self._access_token is not None
                return self._access_token
            await self._refresh()
            assert self._access_token is not None
            return self._access_token

    def invalidate(self) -> None:
        """Forget the cached access token."""
        self._access_token = None
        self._expires_at = None

    async def _refresh(self) -> None:
        logger.debug("Refreshing Google access token")
        try:
            response = await self._http.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": self._credentials.client_id,
                    "client_secret": self._credentials.client_secret,
                    "refresh_token": self._credentials.refresh_token,
                    "grant_type": "refresh_token",
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise AuthorizationError(f"Token refresh request failed: {exc}") from exc

        if response.status_code != 200:
            raise _token_error(response, "Token refresh")

        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthorizationError("Token endpoint returned invalid JSON") from exc

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not isinstance(access_token, str) or not access_token.strip():
            raise AuthorizationError("Token response is missing a non-empty access_token")

        expires_in = _coerce_expires_in(payload.get("expires_in"))
        ttl = max(expires_in - _EXPIRY_MARGIN_SECONDS, 30)
        self._access_token = access_token.strip()
        self._expires_at = datetime.now(UTC) + timedelta(seconds=ttl)
