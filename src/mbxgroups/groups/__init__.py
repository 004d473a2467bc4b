"""Mailbox permission group discovery and interactive management."""

from mbxgroups.groups.console import ConsoleState, GroupConsole, MenuAction
from mbxgroups.groups.discovery import (
    FallbackDiscovery,
    GroupDiscovery,
    GroupDiscoveryError,
    MembershipScanDiscovery,
    ReverseMembershipDiscovery,
)
from mbxgroups.groups.models import MailGroup, dedupe_groups

__all__ = [
    "ConsoleState",
    "FallbackDiscovery",
    "GroupConsole",
    "GroupDiscovery",
    "GroupDiscoveryError",
    "MailGroup",
    "MembershipScanDiscovery",
    "MenuAction",
    "ReverseMembershipDiscovery",
    "dedupe_groups",
]
