"""Interactive one-time authorization for Google Calendar access.

Opens the Google consent screen in the browser, captures the redirect on
a temporary local listener, exchanges the code for tokens and stores the
refresh token in the .env file.

Run with: calendar-assistant-setup  (or python -m calendar_assistant.setup)
"""

from __future__ import annotations

import asyncio
import logging
import sys
import webbrowser
from collections.abc import Callable

from calendar_assistant.auth import build_authorization_url, exchange_code
from calendar_assistant.callback import DEFAULT_TIMEOUT_SECONDS, CallbackListener
from calendar_assistant.config import Settings, load_settings, save_refresh_token
from calendar_assistant.errors import AuthorizationError, ConfigurationError

logger = logging.getLogger(__name__)

PERMISSIONS_URL = "https://myaccount.google.com/permissions"


def _launch_browser(open_browser: Callable[[str], bool], url: str) -> None:
    """Open *url* in the default browser; failures only produce a hint."""
    try:
        opened = open_browser(url)
    except webbrowser.Error as exc:
        logger.debug("Browser launch failed: %s", exc)
        opened = False
    if not opened:
        print("Could not open a browser. Open the URL above manually.")


async def run(
    settings: Settings,
    *,
    open_browser: Callable[[str], bool] = webbrowser.open,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    listener: CallbackListener | None = None,
) -> int:
    """Run the authorization flow and return the process exit status."""
    try:
        settings.require_client_credentials()
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    auth_url = build_authorization_url(settings.client_id, settings.redirect_uri)

    print()
    print("Opening browser for authorization...")
    print(auth_url)
    _launch_browser(open_browser, auth_url)

    listener = listener or CallbackListener(port=settings.app_port)
    print()
    print("Waiting for authorization...")
    try:
        code = await listener.wait_for_code(timeout=timeout)
    except AuthorizationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print()
    print("Exchanging code for tokens...")
    try:
        tokens = await exchange_code(
            code,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uri=settings.redirect_uri,
        )
    except AuthorizationError as exc:
        print(f"Error getting tokens: {exc}", file=sys.stderr)
        if exc.error_code == "invalid_grant":
            print(
                "The authorization code may have expired. Please try again.",
                file=sys.stderr,
            )
        return 1

    refresh_token = tokens.get("refresh_token")
    if not refresh_token:
        logger.warning("Token response did not include a refresh token")
        print("Warning: no refresh token received. Remove the app's access at:", file=sys.stderr)
        print(PERMISSIONS_URL, file=sys.stderr)
        print("Then run this setup again.", file=sys.stderr)
        return 0

    save_refresh_token(settings.dotenv_path, refresh_token)
    print()
    print(f"Success! Refresh token saved to {settings.dotenv_path}")
    print("You can now start the server with: calendar-assistant")
    return 0


def main() -> None:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    print("=== Calendar Assistant Setup ===")

    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        status = asyncio.run(run(settings))
    except Exception:
        logger.exception("Unexpected error during authorization")
        sys.exit(1)
    sys.exit(status)


if __name__ == "__main__":
    main()
