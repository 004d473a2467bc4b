"""Configuration loading utilities."""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def get_graph_credentials() -> tuple[str, str, str]:
    """Get MS Graph API credentials from environment.

    Returns:
        Tuple of (tenant_id, client_id, client_secret)

    Raises:
        ValueError: If any required credential is not set
    """
    load_dotenv()

    tenant_id = os.getenv("MS_GRAPH_TENANT_ID")
    client_id = os.getenv("MS_GRAPH_CLIENT_ID")
    client_secret = os.getenv("MS_GRAPH_CLIENT_SECRET")

    if not tenant_id or not client_id or not client_secret:
        raise ValueError(
            "MS Graph credentials not set. Required: "
            "MS_GRAPH_TENANT_ID, MS_GRAPH_CLIENT_ID, MS_GRAPH_CLIENT_SECRET"
        )

    return tenant_id, client_id, client_secret


@dataclass
class ExchangeCredentials:
    """Credentials for Exchange Online PowerShell authentication."""

    tenant_id: str
    client_id: str
    organization: str
    certificate_thumbprint: str | None = None
    certificate_path: str | None = None
    certificate_password: str | None = None


def get_exchange_credentials() -> ExchangeCredentials:
    """Get Exchange Online credentials from environment.

    Uses certificate-based authentication for app-only access.
    Either certificate_thumbprint (Windows) or certificate_path + password
    (cross-platform) must be provided.

    Environment variables:
        EXCHANGE_TENANT_ID: Tenant ID (falls back to MS_GRAPH_TENANT_ID)
        EXCHANGE_CLIENT_ID: App client ID (falls back to MS_GRAPH_CLIENT_ID)
        EXCHANGE_ORGANIZATION: Organization domain (e.g. contoso.onmicrosoft.com)
        EXCHANGE_CERTIFICATE_THUMBPRINT: Certificate thumbprint (Windows)
        EXCHANGE_CERTIFICATE_PATH: Path to .pfx certificate file
        EXCHANGE_CERTIFICATE_PASSWORD: Password for .pfx file

    Returns:
        ExchangeCredentials with certificate configuration

    Raises:
        ValueError: If required settings are missing
    """
    load_dotenv()

    # Get tenant/client, with fallback to Graph credentials
    tenant_id = os.getenv("EXCHANGE_TENANT_ID") or os.getenv("MS_GRAPH_TENANT_ID")
    client_id = os.getenv("EXCHANGE_CLIENT_ID") or os.getenv("MS_GRAPH_CLIENT_ID")

    if not tenant_id or not client_id:
        raise ValueError(
            "Exchange credentials not set. Required: "
            "EXCHANGE_TENANT_ID/MS_GRAPH_TENANT_ID and EXCHANGE_CLIENT_ID/MS_GRAPH_CLIENT_ID"
        )

    organization = os.getenv("EXCHANGE_ORGANIZATION")
    if not organization:
        raise ValueError("Exchange organization not set. Required: EXCHANGE_ORGANIZATION")

    thumbprint = os.getenv("EXCHANGE_CERTIFICATE_THUMBPRINT")
    cert_path = os.getenv("EXCHANGE_CERTIFICATE_PATH")
    cert_password = os.getenv("EXCHANGE_CERTIFICATE_PASSWORD")

    if not thumbprint and not cert_path:
        raise ValueError(
            "Exchange credentials not set. Required: "
            "EXCHANGE_CERTIFICATE_THUMBPRINT (Windows) or "
            "EXCHANGE_CERTIFICATE_PATH + EXCHANGE_CERTIFICATE_PASSWORD (cross-platform)"
        )

    if cert_path and cert_password is None:
        raise ValueError(
            "EXCHANGE_CERTIFICATE_PASSWORD is required when using EXCHANGE_CERTIFICATE_PATH "
            "(can be empty string for Key Vault generated certs)"
        )

    return ExchangeCredentials(
        tenant_id=tenant_id,
        client_id=client_id,
        organization=organization,
        certificate_thumbprint=thumbprint,
        certificate_path=cert_path,
        certificate_password=cert_password,
    )


@dataclass
class NamingConfig:
    """Naming convention for mailbox permission groups.

    Loaded from config/mailbox_groups.json so that a tenant's convention
    can change without code edits.
    """

    group_prefix: str = "MBX-"
    delimiter: str = "-"
    owners_segment: str = "Owners"
    sibling_segments: tuple[str, ...] = ("SendAs", "SendOnBehalf")
    search_result_limit: int = 20
    backup_dir: str = "backups"


def get_project_root() -> Path:
    """Get the project root directory."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / "pyproject.toml").exists():
            return parent
    raise RuntimeError("Could not find project root (no pyproject.toml found)")


def load_naming_config(config_path: Path | str | None = None) -> NamingConfig:
    """Load the group naming convention from config file and environment.

    Args:
        config_path: Path to the JSON config. If None, uses
            config/mailbox_groups.json under the project root.

    Raises:
        ValueError: If the configured delimiter is empty

    Returns:
        NamingConfig, with defaults for anything the file leaves out
    """
    load_dotenv()

    if config_path is None:
        try:
            config_path = get_project_root() / "config" / "mailbox_groups.json"
        except RuntimeError:
            # Installed without a source tree: look in the working directory
            config_path = Path("config") / "mailbox_groups.json"
    config_path = Path(config_path)

    config_data: dict = {}
    if config_path.exists():
        with config_path.open() as f:
            config_data = json.load(f)
    else:
        logger.debug(f"Config file not found, using defaults: {config_path}")

    defaults = NamingConfig()
    config = NamingConfig(
        group_prefix=config_data.get("group_prefix", defaults.group_prefix),
        delimiter=config_data.get("delimiter", defaults.delimiter),
        owners_segment=config_data.get("owners_segment", defaults.owners_segment),
        sibling_segments=tuple(config_data.get("sibling_segments", defaults.sibling_segments)),
        search_result_limit=int(
            config_data.get("search_result_limit", defaults.search_result_limit)
        ),
        backup_dir=config_data.get("backup_dir", defaults.backup_dir),
    )

    prefix_override = os.getenv("MAILBOX_GROUP_PREFIX")
    if prefix_override:
        config.group_prefix = prefix_override

    if not config.delimiter:
        raise ValueError("Naming config 'delimiter' must not be empty")

    return config


# Cached config instance
_naming_config: NamingConfig | None = None


def get_naming_config() -> NamingConfig:
    """Get cached naming config.

    Loads config once and caches it for subsequent calls.
    """
    global _naming_config
    if _naming_config is None:
        _naming_config = load_naming_config()
    return _naming_config
