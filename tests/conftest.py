"""Shared test fixtures."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from calendar_assistant.auth import GoogleCredentials
from calendar_assistant.config import Settings
from calendar_assistant.google_client import GoogleCalendarClient


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep real credentials in the developer's environment out of tests."""
    for key in (
        "GOOGLE_CLIENT_ID",
        "GOOGLE_CLIENT_SECRET",
        "GOOGLE_REFRESH_TOKEN",
        "APP_PORT",
        "TIMEZONE",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DOTENV_PATH", str(tmp_path / ".env"))


@pytest.fixture
def credentials():
    return GoogleCredentials(
        client_id="client-id",
        client_secret="client-secret",
        refresh_token="refresh-token",
    )


@pytest.fixture
def settings(tmp_path):
    return Settings(
        client_id="client-id",
        client_secret="client-secret",
        refresh_token="refresh-token",
        timezone="Asia/Singapore",
        dotenv_path=tmp_path / ".env",
    )


@pytest.fixture
def mock_calendar(credentials):
    """A GoogleCalendarClient with the event insert call mocked."""
    client = GoogleCalendarClient(credentials)
    client.insert_event = AsyncMock()
    client.post = AsyncMock()
    return client
