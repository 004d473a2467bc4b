"""Core utilities for mailbox group management."""

from mbxgroups.core.config import (
    ExchangeCredentials,
    NamingConfig,
    get_exchange_credentials,
    get_graph_credentials,
    get_naming_config,
    load_naming_config,
)
from mbxgroups.core.naming import derive_sibling_names, matches_prefix

__all__ = [
    "ExchangeCredentials",
    "NamingConfig",
    "derive_sibling_names",
    "get_exchange_credentials",
    "get_graph_credentials",
    "get_naming_config",
    "load_naming_config",
    "matches_prefix",
]
