"""End-to-end tests through an in-memory MCP client session."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from mcp.shared.memory import create_connected_server_and_client_session

from calendar_assistant.app import create_server
from calendar_assistant.google_client import GoogleCalendarClient


@pytest.fixture
def insert_event():
    with patch.object(GoogleCalendarClient, "insert_event", new_callable=AsyncMock) as mocked:
        yield mocked


@pytest.mark.asyncio
async def test_list_tools(settings, insert_event):
    server = create_server(settings)

    async with create_connected_server_and_client_session(server) as session:
        result = await session.list_tools()

    assert [tool.name for tool in result.tools] == ["create_event"]
    assert set(result.tools[0].inputSchema["required"]) == {"summary", "start_time", "end_time"}


@pytest.mark.asyncio
async def test_create_event_flow(settings, insert_event):
    insert_event.return_value = {"id": "evt-1", "htmlLink": "https://calendar/evt-1"}
    server = create_server(settings)

    async with create_connected_server_and_client_session(server) as session:
        result = await session.call_tool(
            "create_event",
            {
                "summary": "Planning",
                "start_time": "2025-02-06T15:00:00",
                "end_time": "2025-02-06T16:00:00",
                "attendees": ["bob@example.com"],
            },
        )

    assert result.isError is False
    assert result.content[0].text == "Event created: https://calendar/evt-1"
    body = insert_event.call_args[0][0]
    assert body["start"]["timeZone"] == "Asia/Singapore"
    assert body["attendees"] == [{"email": "bob@example.com"}]


@pytest.mark.asyncio
async def test_unknown_tool_is_an_error_result(settings, insert_event):
    server = create_server(settings)

    async with create_connected_server_and_client_session(server) as session:
        result = await session.call_tool("nope", {"summary": "x"})
        # The session keeps working after an error result.
        tools = await session.list_tools()

    assert result.isError is True
    assert result.content[0].text == "Unknown tool: nope"
    assert len(tools.tools) == 1
    insert_event.assert_not_called()


@pytest.mark.asyncio
async def test_missing_required_field_rejected_before_provider(settings, insert_event):
    server = create_server(settings)

    async with create_connected_server_and_client_session(server) as session:
        result = await session.call_tool(
            "create_event",
            {"start_time": "2025-02-06T15:00:00", "end_time": "2025-02-06T16:00:00"},
        )

    assert result.isError is True
    assert "summary" in result.content[0].text
    insert_event.assert_not_called()
