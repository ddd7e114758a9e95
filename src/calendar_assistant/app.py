"""MCP server application: lifespan state and request handlers."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import mcp.types as types
from mcp.server.lowlevel import Server

from calendar_assistant import tools
from calendar_assistant.config import Settings
from calendar_assistant.google_client import GoogleCalendarClient

SERVER_NAME = "calendar-assistant"


@dataclass
class AppContext:
    """Lifespan state shared across all MCP tool invocations."""

    calendar: GoogleCalendarClient
    timezone: str


def create_server(settings: Settings) -> Server[AppContext, Any]:
    """Build the MCP server for *settings*.

    The Google client is created when a session starts and closed when it
    ends; settings are read once, here, and never looked up again.
    """

    @asynccontextmanager
    async def app_lifespan(server: Server[AppContext, Any]) -> AsyncIterator[AppContext]:
        client = GoogleCalendarClient(settings.credentials())
        try:
            yield AppContext(calendar=client, timezone=settings.timezone)
        finally:
            await client.close()

    server: Server[AppContext, Any] = Server(SERVER_NAME, lifespan=app_lifespan)

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        return tools.list_tools()

    @server.call_tool()
    async def handle_call_tool(
        name: str, arguments: dict[str, Any] | None
    ) -> types.CallToolResult:
        ctx = server.request_context.lifespan_context
        return await tools.call_tool(ctx.calendar, name, arguments, timezone=ctx.timezone)

    return server
