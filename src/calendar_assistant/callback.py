"""Temporary local HTTP listener that captures the OAuth redirect.

Google redirects the browser to ``http://localhost:<port>/?code=...`` once
the user grants access.  :class:`CallbackListener` serves exactly that
redirect, hands the code to whoever awaits :meth:`CallbackListener.wait_for_code`
and shuts itself down.

The pending authorization settles at most once: the first request that
carries a ``code`` (or an ``error``) wins and everything after it is
answered without affecting the result.
"""

from __future__ import annotations

import asyncio
import logging

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.routing import Route

from calendar_assistant.errors import AuthorizationError

logger = logging.getLogger(__name__)

SUCCESS_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Calendar Assistant authorized</title>
  <style>
    body { font-family: system-ui, sans-serif; max-width: 32rem; margin: 4rem auto; }
    h1 { color: #1a7f37; }
  </style>
</head>
<body>
  <h1>Authorization successful</h1>
  <p>Calendar Assistant can now create events on your Google Calendar.</p>
  <p>You can close this window and return to the terminal.</p>
</body>
</html>
"""

FAILURE_HTML = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>Authorization failed</title></head>
<body>
  <h1>Authorization failed</h1>
  <p>{message}</p>
  <p>Return to the terminal for details.</p>
</body>
</html>
"""

# Google error codes that can appear on the redirect, mapped to messages
# that are safe to show.  Anything else gets a generic message.
_KNOWN_PROVIDER_ERRORS: dict[str, str] = {
    "access_denied": "Access was denied on the Google consent screen.",
    "invalid_request": "The authorization request was malformed.",
    "unauthorized_client": "This OAuth client is not allowed to use this flow. "
    "Check the client configuration in the Google Cloud console.",
    "invalid_scope": "One or more requested scopes are invalid or not permitted.",
    "server_error": "Google encountered an internal error. Please try again.",
    "temporarily_unavailable": "Google sign-in is temporarily unavailable. Please try again.",
}

DEFAULT_GRACE_PERIOD_SECONDS = 1.0
DEFAULT_TIMEOUT_SECONDS = 300.0


def _provider_error_message(error: str) -> str:
    return _KNOWN_PROVIDER_ERRORS.get(error, "The authorization failed. Please try again.")


class CallbackListener:
    """One-shot redirect listener for the authorization-code flow."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 3333,
        *,
        grace_period: float = DEFAULT_GRACE_PERIOD_SECONDS,
    ) -> None:
        self.host = host
        self.port = port
        self.grace_period = grace_period
        self._result: asyncio.Future[str] | None = None
        self.app = Starlette(routes=[Route("/{path:path}", self._handle, methods=["GET"])])

    @property
    def result(self) -> asyncio.Future[str]:
        """The pending authorization; created on first access."""
        if self._result is None:
            self._result = asyncio.get_running_loop().create_future()
        return self._result

    def _resolve(self, code: str) -> bool:
        if self.result.done():
            return False
        self.result.set_result(code)
        return True

    def _reject(self, exc: BaseException) -> bool:
        if self.result.done():
            return False
        self.result.set_exception(exc)
        return True

    async def _handle(self, request: Request) -> Response:
        """Settle the pending authorization from one redirect request.

        A request carrying ``error`` rejects the flow.  A request with
        neither ``code`` nor ``error`` (such as ``/favicon.ico``) gets an
        empty 404 and leaves the flow pending.
        """
        try:
            error = request.query_params.get("error")
            if error:
                message = _provider_error_message(error)
                logger.warning("Google returned an authorization error: %s", error)
                self._reject(AuthorizationError(message, error_code=error))
                return HTMLResponse(FAILURE_HTML.format(message=message), status_code=400)

            code = request.query_params.get("code")
            if not code:
                logger.debug("Ignoring callback request without a code: %s", request.url.path)
                return Response(status_code=404)

            if self._resolve(code):
                logger.info("Authorization code received")
            else:
                logger.debug("Authorization already settled, ignoring extra code")
            return HTMLResponse(SUCCESS_HTML)
        except Exception as exc:
            logger.exception("Error handling authorization callback")
            self._reject(exc)
            raise

    async def wait_for_code(self, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> str:
        """Serve until the redirect arrives, then stop and return the code.

        Raises:
            AuthorizationError: If no code arrives within *timeout* seconds,
                the listener stops on its own, or Google reports an error.
        """
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
            lifespan="off",
        )
        server = uvicorn.Server(config)
        serve_task = asyncio.create_task(server.serve())
        pending = self.result
        logger.info("Authorization listener on http://%s:%d", self.host, self.port)

        try:
            done, _ = await asyncio.wait(
                {serve_task, pending},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if pending not in done:
                if serve_task in done:
                    serve_task.result()
                    raise AuthorizationError(
                        "Authorization listener stopped before a code was received"
                    )
                raise AuthorizationError(
                    f"Timed out after {timeout:.0f}s waiting for the authorization redirect"
                )
            code = pending.result()
            # Give the browser's confirmation page time to flush.
            await asyncio.sleep(self.grace_period)
            return code
        finally:
            server.should_exit = True
            if not serve_task.done():
                await serve_task
            if not pending.done():
                pending.cancel()
