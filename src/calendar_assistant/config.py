"""Settings loaded from the ``.env`` file and the process environment.

The ``.env`` file location comes from the ``DOTENV_PATH`` environment
variable (falling back to ``.env`` in the current working directory).
Variables already exported in the environment take precedence over the
file, so a value passed via the MCP client's ``-e`` flag always wins.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import dotenv_values

from calendar_assistant.auth import GoogleCredentials
from calendar_assistant.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3333
DEFAULT_TIMEZONE = "Asia/Singapore"
DEFAULT_LOG_LEVEL = "INFO"

KEY_CLIENT_ID = "GOOGLE_CLIENT_ID"
KEY_CLIENT_SECRET = "GOOGLE_CLIENT_SECRET"
KEY_REFRESH_TOKEN = "GOOGLE_REFRESH_TOKEN"
KEY_APP_PORT = "APP_PORT"
KEY_TIMEZONE = "TIMEZONE"
KEY_LOG_LEVEL = "LOG_LEVEL"

_KNOWN_KEYS = (
    KEY_CLIENT_ID,
    KEY_CLIENT_SECRET,
    KEY_REFRESH_TOKEN,
    KEY_APP_PORT,
    KEY_TIMEZONE,
    KEY_LOG_LEVEL,
)

_REFRESH_TOKEN_LINE = re.compile(rf"^[ \t]*{KEY_REFRESH_TOKEN}[ \t]*=.*$", re.MULTILINE)


@dataclass(frozen=True, slots=True)
class Settings:
    """Configuration for both entry points, built once at startup."""

    client_id: str = ""
    client_secret: str = ""
    refresh_token: str = field(default="", repr=False)
    app_port: int = DEFAULT_PORT
    timezone: str = DEFAULT_TIMEZONE
    log_level: str = DEFAULT_LOG_LEVEL
    dotenv_path: Path = Path(".env")

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.app_port}"

    def require_client_credentials(self) -> None:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError(
                f"{KEY_CLIENT_ID} and {KEY_CLIENT_SECRET} must be set in {self.dotenv_path}."
            )

    def require_refresh_token(self) -> None:
        self.require_client_credentials()
        if not self.refresh_token:
            raise ConfigurationError(
                f"{KEY_REFRESH_TOKEN} is not set in {self.dotenv_path}. "
                "Run calendar-assistant-setup to authorize access first."
            )

    def credentials(self) -> GoogleCredentials:
        """Return the stored Credential Record used for provider calls."""
        self.require_refresh_token()
        return GoogleCredentials(
            client_id=self.client_id,
            client_secret=self.client_secret,
            refresh_token=self.refresh_token,
        )


def dotenv_path() -> Path:
    """Resolve the .env file path."""
    return Path(os.environ.get("DOTENV_PATH", ".env"))


def _parse_port(raw: str) -> int:
    try:
        port = int(raw)
    except ValueError:
        raise ConfigurationError(f"{KEY_APP_PORT} must be an integer, got {raw!r}.") from None
    if not 0 < port < 65536:
        raise ConfigurationError(f"{KEY_APP_PORT} must be between 1 and 65535, got {port}.")
    return port


def _check_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigurationError(
            f"{KEY_TIMEZONE} must be a valid IANA timezone (for example, Europe/London), "
            f"got {name!r}."
        ) from None
    return name


def load_settings(path: Path | str | None = None) -> Settings:
    """Build :class:`Settings` from the .env file and the environment.

    Missing optional values fall back to their defaults.  Missing
    credentials are not an error here; each entry point checks what it
    needs with ``require_client_credentials`` / ``require_refresh_token``.

    Raises:
        ConfigurationError: If ``APP_PORT`` or ``TIMEZONE`` is malformed.
    """
    resolved = Path(path) if path is not None else dotenv_path()
    values: dict[str, str] = {}
    if resolved.exists():
        values = {k: v for k, v in dotenv_values(resolved).items() if v is not None}
    else:
        logger.debug("No .env file at %s, using environment only", resolved)

    for key in _KNOWN_KEYS:
        if key in os.environ:
            values[key] = os.environ[key]

    port_raw = values.get(KEY_APP_PORT, "").strip()
    timezone = values.get(KEY_TIMEZONE, "").strip() or DEFAULT_TIMEZONE

    return Settings(
        client_id=values.get(KEY_CLIENT_ID, "").strip(),
        client_secret=values.get(KEY_CLIENT_SECRET, "").strip(),
        refresh_token=values.get(KEY_REFRESH_TOKEN, "").strip(),
        app_port=_parse_port(port_raw) if port_raw else DEFAULT_PORT,
        timezone=_check_timezone(timezone),
        log_level=(values.get(KEY_LOG_LEVEL, "").strip() or DEFAULT_LOG_LEVEL).upper(),
        dotenv_path=resolved,
    )


def save_refresh_token(path: Path, refresh_token: str) -> None:
    """Write ``GOOGLE_REFRESH_TOKEN`` into the .env file at *path*.

    The first existing ``GOOGLE_REFRESH_TOKEN=`` line is replaced in place
    and any later duplicates are dropped; otherwise a new line is appended.
    Every other line is left untouched.
    """
    if not refresh_token:
        raise ValueError("refresh_token must be non-empty")

    line = f'{KEY_REFRESH_TOKEN}="{refresh_token}"'
    content = path.read_text() if path.exists() else ""

    matches = list(_REFRESH_TOKEN_LINE.finditer(content))
    if matches:
        first = matches[0]
        updated = content[: first.start()] + line
        cursor = first.end()
        for dup in matches[1:]:
            updated += content[cursor : dup.start()]
            cursor = dup.end()
            # Drop the newline that ended the duplicate line as well.
            if content.startswith("\n", cursor):
                cursor += 1
        content = updated + content[cursor:]
    else:
        if content and not content.endswith("\n"):
            content += "\n"
        content += f"{line}\n"

    path.write_text(content)
    # Restrict to owner-only read/write since this contains secrets.
    path.chmod(0o600)
