"""Thin async HTTP client for the Google Calendar v3 REST API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import quote

import httpx

from calendar_assistant.auth import GoogleCredentials, GoogleTokenProvider
from calendar_assistant.errors import ProviderCallError

CALENDAR_BASE_URL = "https://www.googleapis.com/calendar/v3"

logger = logging.getLogger(__name__)

# Retry configuration for transient errors (429, 503, 504).
_MAX_RETRIES = 3
_RETRY_STATUS_CODES = {429, 503, 504}
_BASE_BACKOFF_SECONDS = 1.0

_DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass(slots=True)
class GoogleApiError(ProviderCallError):
    """Normalized Google API failure with structured metadata."""

    status_code: int
    message: str
    code: str | None = None
    retry_after_seconds: int | None = None

    def __str__(self) -> str:
        code = f" [{self.code}]" if self.code else ""
        return f"Google Calendar API error {self.status_code}{code}: {self.message}"


class GoogleCalendarClient:
    """Async wrapper around the Google Calendar REST API.

    Access tokens come from a :class:`GoogleTokenProvider` and are cached
    until shortly before they expire.  A 401 forces one token refresh and
    a replay; transient errors (429, 503, 504) are retried with
    exponential backoff.
    """

    def __init__(
        self,
        credentials: GoogleCredentials,
        *,
        timeout: float = _DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._http = httpx.AsyncClient(base_url=CALENDAR_BASE_URL, timeout=timeout)
        self._tokens = GoogleTokenProvider(credentials, self._http)

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    async def _auth_headers(self, *, force_refresh: bool = False) -> dict[str, str]:
        token = await self._tokens.get_access_token(force_refresh=force_refresh)
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _parse_retry_after(value: str | None) -> int | None:
        if value is None:
            return None
        try:
            # RFC 9110: delay-seconds is a non-negative decimal integer.
            return max(int(value), 0)
        except ValueError:
            pass
        # RFC 9110 also allows an HTTP-date Retry-After value.
        try:
            retry_at = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if retry_at.tzinfo is None:
            retry_at = retry_at.replace(tzinfo=UTC)
        now = datetime.now(UTC)
        return max(int((retry_at - now).total_seconds()), 0)

    def _raise_google_error(self, resp: httpx.Response) -> None:
        code: str | None = None
        message = f"HTTP {resp.status_code}"
        retry_after_seconds = self._parse_retry_after(resp.headers.get("Retry-After"))

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        # Google error shape:
        # {"error": {"code": 403, "message": "...", "status": "PERMISSION_DENIED",
        #            "errors": [{"reason": "forbidden", ...}]}}
        if isinstance(payload, dict):
            err = payload.get("error")
            if isinstance(err, dict):
                errors = err.get("errors")
                if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                    code = errors[0].get("reason")
                code = code or err.get("status")
                message = err.get("message") or message
            elif isinstance(err, str):
                code = err
                message = payload.get("error_description") or message

        raise GoogleApiError(
            status_code=resp.status_code,
            code=code,
            message=message,
            retry_after_seconds=retry_after_seconds,
        )

    def _ensure_success(self, resp: httpx.Response) -> None:
        if resp.is_error:
            self._raise_google_error(resp)

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute an HTTP request with retry on transient failures.

        A 401 on the first attempt discards the cached access token and
        replays the request once with a freshly minted one.
        """
        headers = await self._auth_headers()
        resp: httpx.Response | None = None

        for attempt in range(_MAX_RETRIES):
            resp = await self._http.request(method, path, headers=headers, **kwargs)

            if attempt == 0 and resp.status_code == 401:
                logger.warning("Got 401, refreshing access token and retrying")
                self._tokens.invalidate()
                headers = await self._auth_headers(force_refresh=True)
                continue

            if resp.status_code not in _RETRY_STATUS_CODES:
                return resp

            # Parse retry delay from server or use exponential backoff.
            retry_after = self._parse_retry_after(resp.headers.get("Retry-After"))
            if retry_after is not None:
                delay = retry_after
            else:
                delay = _BASE_BACKOFF_SECONDS * (2**attempt)

            logger.warning(
                "Google API %s %s returned %d (attempt %d/%d), retrying in %.1fs",
                method,
                path,
                resp.status_code,
                attempt + 1,
                _MAX_RETRIES,
                delay,
            )
            await asyncio.sleep(delay)

        # All retries exhausted: return the last response so the caller
        # gets a proper GoogleApiError via _ensure_success.
        if resp is None:  # pragma: no cover - unreachable when _MAX_RETRIES > 0
            raise RuntimeError("No response received after retries")
        logger.error(
            "Google API %s %s failed after %d attempts with status %d",
            method,
            path,
            _MAX_RETRIES,
            resp.status_code,
        )
        return resp

    async def post(
        self,
        path: str,
        json: dict[str, Any],
    ) -> dict[str, Any]:
        logger.debug("POST %s", path)
        resp = await self._request_with_retry("POST", path, json=json)
        self._ensure_success(resp)
        if not resp.content:
            return {}
        try:
            result: dict[str, Any] = resp.json()
        except ValueError as exc:
            raise GoogleApiError(
                status_code=resp.status_code,
                message="Response body is not valid JSON",
            ) from exc
        return result

    async def insert_event(
        self,
        body: dict[str, Any],
        calendar_id: str = "primary",
    ) -> dict[str, Any]:
        """Insert *body* as a new event on *calendar_id* and return the created event."""
        return await self.post(f"/calendars/{quote(calendar_id, safe='')}/events", json=body)
