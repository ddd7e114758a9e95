"""MCP server entry point for Google Calendar event creation."""

from __future__ import annotations

import asyncio
import logging
import sys

from mcp.server.stdio import stdio_server

from calendar_assistant.app import create_server
from calendar_assistant.config import Settings, load_settings
from calendar_assistant.errors import ConfigurationError

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    # stdout carries the MCP transport, so logs must go to stderr.
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def serve(settings: Settings) -> None:
    server = create_server(settings)
    async with stdio_server() as (read_stream, write_stream):
        logger.info("Calendar MCP server running on stdio")
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    try:
        settings = load_settings()
        configure_logging(settings.log_level)
        settings.require_refresh_token()
    except ConfigurationError as exc:
        configure_logging("INFO")
        logger.error("%s", exc)
        sys.exit(1)

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        pass
    except Exception:
        logger.exception("Fatal error running server")
        sys.exit(1)


if __name__ == "__main__":
    main()
