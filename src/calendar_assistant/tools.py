"""Tool catalog and dispatcher for the MCP server.

Every call produces exactly one ``CallToolResult``.  Unknown tools,
missing arguments, validation failures and provider faults all come back
as error results (``isError=True``) rather than protocol errors, so a bad
call never takes the server down.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from calendar_assistant.errors import CalendarAssistantError, ErrorKind
from calendar_assistant.events import create_event
from calendar_assistant.google_client import GoogleCalendarClient

logger = logging.getLogger(__name__)

CREATE_EVENT = "create_event"

CREATE_EVENT_TOOL = types.Tool(
    name=CREATE_EVENT,
    description="Create a calendar event with specified details",
    inputSchema={
        "type": "object",
        "properties": {
            "summary": {"type": "string", "description": "Event title"},
            "start_time": {
                "type": "string",
                "description": "Start time (ISO format, e.g. 2025-02-06T15:00:00Z)",
            },
            "end_time": {
                "type": "string",
                "description": "End time (ISO format, e.g. 2025-02-06T16:00:00Z)",
            },
            "description": {"type": "string", "description": "Event description"},
            "attendees": {
                "type": "array",
                "items": {"type": "string"},
                "description": "List of attendee emails",
            },
        },
        "required": ["summary", "start_time", "end_time"],
    },
)


def list_tools() -> list[types.Tool]:
    """Return the static tool catalog."""
    return [CREATE_EVENT_TOOL]


def _text_result(text: str, *, is_error: bool) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        isError=is_error,
    )


async def call_tool(
    calendar: GoogleCalendarClient,
    name: str,
    arguments: dict[str, Any] | None,
    *,
    timezone: str,
) -> types.CallToolResult:
    """Dispatch one tool call and wrap the outcome as a tagged result."""
    logger.debug("Call tool request: %s", name)
    if arguments is None:
        return _text_result("No arguments provided", is_error=True)

    if name != CREATE_EVENT:
        logger.debug("Unknown tool requested: %s", name)
        return _text_result(f"Unknown tool: {name}", is_error=True)

    try:
        text = await create_event(calendar, arguments, timezone=timezone)
    except CalendarAssistantError as exc:
        if exc.kind is ErrorKind.VALIDATION:
            logger.info("Rejected %s call: %s", name, exc)
        else:
            logger.warning("%s failed (%s): %s", name, exc.kind.value, exc)
        return _text_result(str(exc), is_error=True)
    except Exception as exc:
        logger.exception("Unexpected error in %s", name)
        return _text_result(str(exc) or type(exc).__name__, is_error=True)

    logger.debug("Event creation successful: %s", text)
    return _text_result(text, is_error=False)
