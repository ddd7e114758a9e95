"""Tests for the interactive authorization flow."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from calendar_assistant.config import Settings
from calendar_assistant.errors import AuthorizationError
from calendar_assistant.setup import main, run


def _listener(code: str = "abc") -> MagicMock:
    listener = MagicMock()
    listener.wait_for_code = AsyncMock(return_value=code)
    return listener


class TestRun:
    @pytest.mark.asyncio
    async def test_missing_client_credentials_exits_before_network(self, tmp_path, capsys):
        settings = Settings(dotenv_path=tmp_path / ".env")
        browser = MagicMock()
        listener = _listener()

        with patch("calendar_assistant.setup.exchange_code", new_callable=AsyncMock) as exchange:
            status = await run(settings, open_browser=browser, listener=listener)

        assert status == 1
        browser.assert_not_called()
        listener.wait_for_code.assert_not_called()
        exchange.assert_not_called()
        assert "GOOGLE_CLIENT_ID" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_saves_refresh_token(self, settings, capsys):
        settings.dotenv_path.write_text(
            "GOOGLE_CLIENT_ID=client-id\nGOOGLE_REFRESH_TOKEN=oldvalue\n"
        )
        browser = MagicMock(return_value=True)

        with patch(
            "calendar_assistant.setup.exchange_code",
            new_callable=AsyncMock,
            return_value={"access_token": "at", "refresh_token": "newvalue"},
        ) as exchange:
            status = await run(settings, open_browser=browser, listener=_listener("abc"))

        assert status == 0
        lines = settings.dotenv_path.read_text().splitlines()
        assert lines.count('GOOGLE_REFRESH_TOKEN="newvalue"') == 1
        assert sum(line.startswith("GOOGLE_REFRESH_TOKEN=") for line in lines) == 1
        exchange.assert_awaited_once_with(
            "abc",
            client_id="client-id",
            client_secret="client-secret",
            redirect_uri="http://localhost:3333",
        )
        auth_url = browser.call_args[0][0]
        assert "prompt=consent" in auth_url
        assert "Success" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_no_refresh_token_leaves_store_untouched(self, settings, capsys):
        original = "GOOGLE_CLIENT_ID=client-id\nGOOGLE_REFRESH_TOKEN=oldvalue\n"
        settings.dotenv_path.write_text(original)

        with patch(
            "calendar_assistant.setup.exchange_code",
            new_callable=AsyncMock,
            return_value={"access_token": "at"},
        ):
            status = await run(settings, open_browser=MagicMock(), listener=_listener())

        assert status == 0
        assert settings.dotenv_path.read_text() == original
        err = capsys.readouterr().err
        assert "no refresh token" in err
        assert "https://myaccount.google.com/permissions" in err

    @pytest.mark.asyncio
    async def test_invalid_grant_adds_retry_hint(self, settings, capsys):
        with patch(
            "calendar_assistant.setup.exchange_code",
            new_callable=AsyncMock,
            side_effect=AuthorizationError(
                "Token exchange failed: token endpoint returned HTTP 400: invalid_grant",
                error_code="invalid_grant",
            ),
        ):
            status = await run(settings, open_browser=MagicMock(), listener=_listener())

        assert status == 1
        err = capsys.readouterr().err
        assert "Error getting tokens" in err
        assert "invalid_grant" in err
        assert "may have expired" in err
        assert not settings.dotenv_path.exists()

    @pytest.mark.asyncio
    async def test_other_exchange_error_has_no_hint(self, settings, capsys):
        with patch(
            "calendar_assistant.setup.exchange_code",
            new_callable=AsyncMock,
            side_effect=AuthorizationError("Network error during token exchange: refused"),
        ):
            status = await run(settings, open_browser=MagicMock(), listener=_listener())

        assert status == 1
        err = capsys.readouterr().err
        assert "Network error" in err
        assert "may have expired" not in err

    @pytest.mark.asyncio
    async def test_listener_failure_exits_non_zero(self, settings, capsys):
        listener = MagicMock()
        listener.wait_for_code = AsyncMock(side_effect=AuthorizationError("Timed out"))

        with patch("calendar_assistant.setup.exchange_code", new_callable=AsyncMock) as exchange:
            status = await run(settings, open_browser=MagicMock(), listener=listener)

        assert status == 1
        exchange.assert_not_called()
        assert "Timed out" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_browser_failure_is_not_fatal(self, settings, capsys):
        import webbrowser

        browser = MagicMock(side_effect=webbrowser.Error("no browser"))

        with patch(
            "calendar_assistant.setup.exchange_code",
            new_callable=AsyncMock,
            return_value={"refresh_token": "newvalue"},
        ):
            status = await run(settings, open_browser=browser, listener=_listener())

        assert status == 0
        out = capsys.readouterr().out
        assert "Open the URL above manually" in out
        assert "accounts.google.com" in out


class TestMain:
    def test_invalid_config_exits_1(self, tmp_path, monkeypatch):
        env_file = tmp_path / ".env"
        env_file.write_text("APP_PORT=nope\n")
        monkeypatch.setenv("DOTENV_PATH", str(env_file))

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1

    def test_missing_credentials_exits_1(self):
        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
