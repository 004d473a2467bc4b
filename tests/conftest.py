"""Shared pytest fixtures."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from mbxgroups.core.config import NamingConfig


@pytest.fixture
def naming():
    """Default naming convention (MBX-<name>-Owners/SendAs/SendOnBehalf)."""
    return NamingConfig()


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set mock environment variables for testing."""
    monkeypatch.setenv("MS_GRAPH_TENANT_ID", "test-tenant-id")
    monkeypatch.setenv("MS_GRAPH_CLIENT_ID", "test-client-id")
    monkeypatch.setenv("MS_GRAPH_CLIENT_SECRET", "test-client-secret")
    monkeypatch.setenv("EXCHANGE_ORGANIZATION", "contoso.onmicrosoft.com")
    monkeypatch.setenv("EXCHANGE_CERTIFICATE_THUMBPRINT", "ABC123")
    monkeypatch.delenv("EXCHANGE_CERTIFICATE_PATH", raising=False)
    monkeypatch.delenv("MAILBOX_GROUP_PREFIX", raising=False)


@pytest.fixture
def mock_exchange_client():
    """Mock Exchange Online client with async methods."""
    client = MagicMock()
    client.get_distribution_groups = AsyncMock(return_value=[])
    client.get_distribution_group_members = AsyncMock(return_value=[])
    client.add_distribution_group_member = AsyncMock(return_value=True)
    client.remove_distribution_group_member = AsyncMock(return_value=True)
    client.search_recipients = AsyncMock(return_value=[])
    return client
