"""Tests for mbxgroups.entra.groups and mbxgroups.entra.users."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from kiota_abstractions.api_error import APIError

from mbxgroups.core.msgraph_client import get_graph_client
from mbxgroups.entra.groups import EntraGroup, EntraGroupManager, GroupType, odata_quote
from mbxgroups.entra.users import EntraUserManager


def make_graph_group(
    group_id="group-123",
    display_name="MBX-Sales-Owners",
    mail="mbx-sales-owners@contoso.com",
    mail_enabled=True,
    security_enabled=True,
    group_types=None,
):
    """Create a mock MS Graph Group object."""
    group = MagicMock()
    group.id = group_id
    group.display_name = display_name
    group.mail = mail
    group.mail_enabled = mail_enabled
    group.security_enabled = security_enabled
    group.group_types = group_types or []
    return group


def make_page(groups, next_link=None):
    """Create a mock collection response page."""
    page = MagicMock()
    page.value = groups
    page.odata_next_link = next_link
    return page


class TestEntraGroup:
    """Tests for the EntraGroup dataclass."""

    def test_mail_enabled_security_group_type(self):
        group = EntraGroup(
            id="group-1",
            display_name="MBX-Sales-Owners",
            mail="mbx-sales-owners@contoso.com",
            mail_enabled=True,
            security_enabled=True,
            group_types=[],
        )
        assert group.group_type == GroupType.MAIL_ENABLED_SECURITY

    def test_distribution_group_type(self):
        group = EntraGroup(
            id="group-1",
            display_name="All Staff",
            mail="all@contoso.com",
            mail_enabled=True,
            security_enabled=False,
            group_types=[],
        )
        assert group.group_type == GroupType.DISTRIBUTION

    def test_security_group_type(self):
        group = EntraGroup(
            id="group-1",
            display_name="VPN Users",
            mail=None,
            mail_enabled=False,
            security_enabled=True,
            group_types=[],
        )
        assert group.group_type == GroupType.SECURITY

    def test_m365_takes_precedence(self):
        # Even with security_enabled=True, Unified groups are M365
        group = EntraGroup(
            id="group-1",
            display_name="Team",
            mail="team@contoso.com",
            mail_enabled=True,
            security_enabled=True,
            group_types=["Unified"],
        )
        assert group.group_type == GroupType.MICROSOFT_365

    def test_unknown_group_type(self):
        group = EntraGroup(
            id="group-1",
            display_name="Odd",
            mail=None,
            mail_enabled=False,
            security_enabled=False,
            group_types=[],
        )
        assert group.group_type == GroupType.UNKNOWN


class TestOdataQuote:
    """Tests for odata_quote."""

    def test_doubles_single_quotes(self):
        assert odata_quote("MBX-O'Brien-Owners") == "MBX-O''Brien-Owners"


class TestEntraGroupManager:
    """Tests for EntraGroupManager class."""

    @pytest.fixture
    def mock_client(self):
        """Create a mock Graph client."""
        return MagicMock()

    @pytest.fixture
    def manager(self, mock_client):
        """Create an EntraGroupManager with mocked client."""
        with patch("mbxgroups.entra.groups.get_graph_client", return_value=mock_client):
            manager = EntraGroupManager()
        return manager

    async def test_get_user_groups(self, manager, mock_client):
        member_of = mock_client.users.by_user_id.return_value.member_of.graph_group
        member_of.get = AsyncMock(
            return_value=make_page(
                [
                    make_graph_group("g1", "MBX-Sales-Owners"),
                    make_graph_group("g2", "Team", group_types=["Unified"]),
                ]
            )
        )

        groups = await manager.get_user_groups("jane@contoso.com")

        mock_client.users.by_user_id.assert_called_once_with("jane@contoso.com")
        assert [g.id for g in groups] == ["g1", "g2"]

    async def test_get_user_groups_filters_types(self, manager, mock_client):
        member_of = mock_client.users.by_user_id.return_value.member_of.graph_group
        member_of.get = AsyncMock(
            return_value=make_page(
                [
                    make_graph_group("g1", "MBX-Sales-Owners"),
                    make_graph_group("g2", "Team", group_types=["Unified"]),
                    make_graph_group("g3", "VPN", mail=None, mail_enabled=False),
                ]
            )
        )

        groups = await manager.get_user_groups(
            "jane@contoso.com", include_types=[GroupType.MAIL_ENABLED_SECURITY]
        )

        assert [g.id for g in groups] == ["g1"]

    async def test_get_user_groups_follows_pages(self, manager, mock_client):
        member_of = mock_client.users.by_user_id.return_value.member_of.graph_group
        member_of.get = AsyncMock(
            return_value=make_page([make_graph_group("g1")], next_link="https://next")
        )
        next_builder = MagicMock()
        next_builder.get = AsyncMock(return_value=make_page([make_graph_group("g2")]))
        member_of.with_url.return_value = next_builder

        groups = await manager.get_user_groups("jane@contoso.com")

        member_of.with_url.assert_called_once_with("https://next")
        assert [g.id for g in groups] == ["g1", "g2"]

    async def test_get_user_groups_empty(self, manager, mock_client):
        member_of = mock_client.users.by_user_id.return_value.member_of.graph_group
        member_of.get = AsyncMock(return_value=make_page([]))

        assert await manager.get_user_groups("jane@contoso.com") == []

    async def test_get_user_groups_error_propagates(self, manager, mock_client):
        member_of = mock_client.users.by_user_id.return_value.member_of.graph_group
        member_of.get = AsyncMock(side_effect=RuntimeError("403 Forbidden"))

        with pytest.raises(RuntimeError):
            await manager.get_user_groups("jane@contoso.com")

    async def test_get_group_by_name(self, manager, mock_client):
        mock_client.groups.get = AsyncMock(
            return_value=make_page([make_graph_group("g1", "MBX-Sales-SendAs")])
        )

        group = await manager.get_group_by_name("MBX-Sales-SendAs")

        assert group.id == "g1"
        config = mock_client.groups.get.call_args[1]["request_configuration"]
        assert config.query_parameters.filter == "displayName eq 'MBX-Sales-SendAs'"

    async def test_get_group_by_name_not_found(self, manager, mock_client):
        mock_client.groups.get = AsyncMock(return_value=make_page([]))

        assert await manager.get_group_by_name("MBX-Missing-SendAs") is None

    async def test_get_group_by_name_duplicates_uses_first(self, manager, mock_client, caplog):
        mock_client.groups.get = AsyncMock(
            return_value=make_page(
                [make_graph_group("g1", "MBX-A-SendAs"), make_graph_group("g2", "MBX-A-SendAs")]
            )
        )

        group = await manager.get_group_by_name("MBX-A-SendAs")

        assert group.id == "g1"
        assert "2 groups named" in caplog.text


class TestEntraUserManager:
    """Tests for EntraUserManager class."""

    @pytest.fixture
    def mock_client(self):
        return MagicMock()

    @pytest.fixture
    def manager(self, mock_client):
        with patch("mbxgroups.entra.users.get_graph_client", return_value=mock_client):
            manager = EntraUserManager()
        return manager

    async def test_get_user_by_upn(self, manager, mock_client):
        user = MagicMock()
        user.id = "user-1"
        user.display_name = "Jane Doe"
        user.mail = "jane@contoso.com"
        user.user_principal_name = "jane@contoso.com"
        user.account_enabled = True
        mock_client.users.by_user_id.return_value.get = AsyncMock(return_value=user)

        result = await manager.get_user_by_upn("jane@contoso.com")

        assert result.id == "user-1"
        assert result.upn == "jane@contoso.com"
        assert result.account_enabled is True

    async def test_get_user_by_upn_not_found(self, manager, mock_client):
        mock_client.users.by_user_id.return_value.get = AsyncMock(
            side_effect=APIError(message="Resource does not exist", response_status_code=404)
        )

        assert await manager.get_user_by_upn("ghost@contoso.com") is None

    async def test_get_user_by_upn_empty_response(self, manager, mock_client):
        mock_client.users.by_user_id.return_value.get = AsyncMock(return_value=None)

        assert await manager.get_user_by_upn("ghost@contoso.com") is None

    @pytest.mark.parametrize("status", [401, 403, 429, 503])
    async def test_get_user_by_upn_other_errors_propagate(self, manager, mock_client, status):
        """Auth and throttling failures are not reported as a missing user."""
        mock_client.users.by_user_id.return_value.get = AsyncMock(
            side_effect=APIError(message="Request failed", response_status_code=status)
        )

        with pytest.raises(APIError) as exc_info:
            await manager.get_user_by_upn("jane@contoso.com")

        assert exc_info.value.response_status_code == status


class TestGetGraphClient:
    """Tests for get_graph_client."""

    def test_builds_client_from_credentials(self, mock_env_vars):
        with (
            patch("mbxgroups.core.config.load_dotenv"),
            patch("mbxgroups.core.msgraph_client.ClientSecretCredential") as mock_cred,
            patch("mbxgroups.core.msgraph_client.GraphServiceClient") as mock_graph,
        ):
            client = get_graph_client()

        mock_cred.assert_called_once_with(
            tenant_id="test-tenant-id",
            client_id="test-client-id",
            client_secret="test-client-secret",
        )
        mock_graph.assert_called_once_with(
            credentials=mock_cred.return_value,
            scopes=["https://graph.microsoft.com/.default"],
        )
        assert client is mock_graph.return_value
