"""Tests for scripts/mailbox_groups.py - mailbox group manager CLI."""

import io
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from rich.console import Console

from mbxgroups.core.config import NamingConfig
from mbxgroups.exchange.session import ExchangeConnectionError
from mbxgroups.groups.discovery import (
    FallbackDiscovery,
    MembershipScanDiscovery,
    ReverseMembershipDiscovery,
)
from mbxgroups.scripts.mailbox_groups import main, run_console

MODULE = "mbxgroups.scripts.mailbox_groups"


@pytest.fixture
def naming():
    return NamingConfig(search_result_limit=7, backup_dir="backups/mbx")


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def console(output):
    return Console(file=output, width=200)


@pytest.fixture
def restore_root_level():
    """Undo --verbose changes to the root logger."""
    root = logging.getLogger()
    level = root.level
    yield
    root.setLevel(level)


# =============================================================================
# Test run_console
# =============================================================================


class TestRunConsole:
    """Tests for run_console."""

    async def test_connects_runs_and_closes(self, naming, console):
        mock_client = MagicMock()
        mock_client.connect = AsyncMock()
        mock_client.close = AsyncMock()

        with (
            patch(f"{MODULE}.get_naming_config", return_value=naming),
            patch(f"{MODULE}.ExchangeOnlineClient", return_value=mock_client),
            patch(f"{MODULE}.GroupConsole") as mock_console_cls,
        ):
            mock_console_cls.return_value.run = AsyncMock()
            result = await run_console("jane@contoso.com", dry_run=True, console=console)

        assert result == 0
        mock_client.connect.assert_awaited_once()
        mock_client.close.assert_awaited_once()

        kwargs = mock_console_cls.call_args[1]
        assert kwargs["state"].user == "jane@contoso.com"
        assert kwargs["state"].dry_run is True
        assert kwargs["client"] is mock_client
        assert kwargs["search_limit"] == 7
        assert kwargs["backup_dir"] == "backups/mbx"

        discovery = kwargs["discovery"]
        assert isinstance(discovery, FallbackDiscovery)
        assert isinstance(discovery.primary, ReverseMembershipDiscovery)
        assert isinstance(discovery.fallback, MembershipScanDiscovery)
        assert discovery.fallback.client is mock_client

    async def test_connection_failure_returns_error(self, naming, console, output):
        mock_client = MagicMock()
        mock_client.connect = AsyncMock(
            side_effect=ExchangeConnectionError("Failed to connect to Exchange Online: denied")
        )
        mock_client.close = AsyncMock()

        with (
            patch(f"{MODULE}.get_naming_config", return_value=naming),
            patch(f"{MODULE}.ExchangeOnlineClient", return_value=mock_client),
            patch(f"{MODULE}.GroupConsole") as mock_console_cls,
        ):
            result = await run_console("jane@contoso.com", console=console)

        assert result == 1
        assert "Failed to connect to Exchange Online: denied" in output.getvalue()
        mock_console_cls.assert_not_called()

    async def test_missing_credentials_returns_error(self, naming, console, output):
        with (
            patch(f"{MODULE}.get_naming_config", return_value=naming),
            patch(
                f"{MODULE}.ExchangeOnlineClient",
                side_effect=ValueError("Exchange organization not set"),
            ),
        ):
            result = await run_console("jane@contoso.com", console=console)

        assert result == 1
        assert "Exchange organization not set" in output.getvalue()

    async def test_closes_client_when_console_fails(self, naming, console):
        mock_client = MagicMock()
        mock_client.connect = AsyncMock()
        mock_client.close = AsyncMock()

        with (
            patch(f"{MODULE}.get_naming_config", return_value=naming),
            patch(f"{MODULE}.ExchangeOnlineClient", return_value=mock_client),
            patch(f"{MODULE}.GroupConsole") as mock_console_cls,
        ):
            mock_console_cls.return_value.run = AsyncMock(side_effect=RuntimeError("boom"))
            with pytest.raises(RuntimeError):
                await run_console("jane@contoso.com", console=console)

        mock_client.close.assert_awaited_once()


# =============================================================================
# Test main (CLI)
# =============================================================================


class TestMain:
    """Tests for main CLI function."""

    @patch(f"{MODULE}.run_console", new_callable=MagicMock)
    @patch("asyncio.run")
    def test_runs_console_for_user(self, mock_async_run, mock_run_console):
        """A valid UPN should start the console and exit with its code."""
        mock_async_run.return_value = 0

        with (
            patch("sys.argv", ["mailbox-groups", "jane.doe@Contoso.com"]),
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 0
        mock_run_console.assert_called_once_with("jane.doe@contoso.com", dry_run=False)
        mock_async_run.assert_called_once_with(mock_run_console.return_value)

    @patch(f"{MODULE}.run_console")
    @patch("asyncio.run")
    def test_dry_run_flag(self, mock_async_run, mock_run_console):
        """--dry-run flag should set dry_run=True."""
        mock_async_run.return_value = 0

        with (
            patch("sys.argv", ["mailbox-groups", "--dry-run", "jane@contoso.com"]),
            pytest.raises(SystemExit),
        ):
            main()

        mock_run_console.assert_called_once_with("jane@contoso.com", dry_run=True)

    @patch(f"{MODULE}.run_console")
    @patch("asyncio.run")
    def test_exit_code_propagates(self, mock_async_run, mock_run_console):
        mock_async_run.return_value = 1

        with (
            patch("sys.argv", ["mailbox-groups", "jane@contoso.com"]),
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 1

    @patch(f"{MODULE}.run_console")
    @patch("asyncio.run")
    def test_invalid_upn_is_usage_error(self, mock_async_run, mock_run_console):
        """An invalid UPN should fail argument parsing without connecting."""
        with (
            patch("sys.argv", ["mailbox-groups", "not-an-email"]),
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 2
        mock_async_run.assert_not_called()

    def test_missing_user_is_usage_error(self):
        with patch("sys.argv", ["mailbox-groups"]), pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 2

    @patch(f"{MODULE}.run_console")
    @patch("asyncio.run")
    def test_verbose_flag_sets_debug_level(
        self, mock_async_run, mock_run_console, restore_root_level
    ):
        """--verbose flag should set DEBUG log level."""
        mock_async_run.return_value = 0

        with (
            patch("sys.argv", ["mailbox-groups", "-v", "jane@contoso.com"]),
            pytest.raises(SystemExit),
        ):
            main()

        assert logging.getLogger().level == logging.DEBUG
