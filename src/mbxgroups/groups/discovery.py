"""Discovery of the mailbox permission groups a user belongs to.

Two strategies implement the same contract:

- ``ReverseMembershipDiscovery`` asks Entra ID which groups contain the
  user (one query plus one per derived sibling name).
- ``MembershipScanDiscovery`` lists every prefixed group in Exchange and
  reads each membership. Slow, but needs no reverse lookup.

``FallbackDiscovery`` runs the first and switches to the second on any error.
"""

import logging
from abc import ABC, abstractmethod

from mbxgroups.core.config import NamingConfig
from mbxgroups.core.naming import derive_sibling_names, matches_prefix
from mbxgroups.entra.groups import EntraGroupManager, GroupType
from mbxgroups.entra.users import EntraUserManager
from mbxgroups.exchange.client import ExchangeOnlineClient
from mbxgroups.exchange.session import ExchangeError
from mbxgroups.groups.models import MailGroup, dedupe_groups

logger = logging.getLogger(__name__)


class GroupDiscoveryError(Exception):
    """Group discovery could not produce a result."""


class GroupDiscovery(ABC):
    """Find the manageable groups for a user."""

    name: str = "discovery"

    @abstractmethod
    async def discover(self, user: str) -> list[MailGroup]:
        """Return the user's manageable groups, without duplicate IDs.

        Args:
            user: User principal name / primary email address

        Raises:
            GroupDiscoveryError: If no result can be produced
        """


class ReverseMembershipDiscovery(GroupDiscovery):
    """Discover groups via the user's ``memberOf`` in Entra ID."""

    name = "reverse membership lookup"

    def __init__(
        self,
        naming: NamingConfig,
        groups: EntraGroupManager | None = None,
        users: EntraUserManager | None = None,
    ) -> None:
        """Initialize the discovery.

        Graph managers are created on first use so missing Graph credentials
        surface as a discovery error rather than at construction.
        """
        self.naming = naming
        self._groups = groups
        self._users = users

    @property
    def groups(self) -> EntraGroupManager:
        """Lazy-load Entra group manager."""
        if self._groups is None:
            self._groups = EntraGroupManager()
        return self._groups

    @property
    def users(self) -> EntraUserManager:
        """Lazy-load Entra user manager."""
        if self._users is None:
            self._users = EntraUserManager()
        return self._users

    async def discover(self, user: str) -> list[MailGroup]:
        """Discover groups for a user via reverse-membership lookup."""
        entra_user = await self.users.get_user_by_upn(user)
        if entra_user is None:
            raise GroupDiscoveryError(f"User not found in Entra ID: {user}")

        memberships = await self.groups.get_user_groups(
            entra_user.id, include_types=[GroupType.MAIL_ENABLED_SECURITY]
        )
        found = [
            MailGroup.from_entra(g)
            for g in memberships
            if matches_prefix(g.display_name, self.naming.group_prefix)
        ]
        logger.info(f"{user} is a direct member of {len(found)} matching groups")

        derived: list[MailGroup] = []
        for group in found:
            for sibling_name in derive_sibling_names(group.display_name, self.naming):
                sibling = await self.groups.get_group_by_name(sibling_name)
                if sibling is None:
                    logger.warning(f"Sibling group not found: {sibling_name}")
                    continue
                derived.append(MailGroup.from_entra(sibling))

        return dedupe_groups([*found, *derived])


class MembershipScanDiscovery(GroupDiscovery):
    """Discover groups by reading the membership of every prefixed group."""

    name = "membership scan"

    def __init__(self, client: ExchangeOnlineClient, naming: NamingConfig) -> None:
        """Initialize the discovery.

        Args:
            client: Connected Exchange Online client
            naming: Naming convention
        """
        self.client = client
        self.naming = naming

    async def discover(self, user: str) -> list[MailGroup]:
        """Discover groups for a user by scanning candidate memberships."""
        address = user.lower()
        prefix = self.naming.group_prefix

        try:
            listed = await self.client.get_distribution_groups(prefix)
        except ExchangeError as e:
            raise GroupDiscoveryError(f"Failed to list groups matching '{prefix}*': {e}") from e

        candidates = dedupe_groups(MailGroup.from_exchange(g) for g in listed)
        by_name = {g.display_name.lower(): g for g in candidates}
        logger.info(f"Scanning membership of {len(candidates)} candidate groups")

        matched: list[MailGroup] = []
        for group in candidates:
            try:
                members = await self.client.get_distribution_group_members(group.identity)
            except ExchangeError as e:
                logger.warning(f"Skipping {group.display_name}: failed to read members: {e}")
                continue
            if address in members:
                matched.append(group)

        derived: list[MailGroup] = []
        for group in matched:
            for sibling_name in derive_sibling_names(group.display_name, self.naming):
                sibling = by_name.get(sibling_name.lower())
                if sibling is None:
                    logger.warning(f"Sibling group not found: {sibling_name}")
                    continue
                derived.append(sibling)

        return dedupe_groups([*matched, *derived])


class FallbackDiscovery(GroupDiscovery):
    """Try a primary discovery; on any failure use the fallback."""

    name = "discovery with fallback"

    def __init__(self, primary: GroupDiscovery, fallback: GroupDiscovery) -> None:
        """Initialize with the two strategies to chain."""
        self.primary = primary
        self.fallback = fallback
        self.last_used: GroupDiscovery | None = None

    async def discover(self, user: str) -> list[MailGroup]:
        """Discover groups, falling back when the primary strategy fails.

        Raises:
            GroupDiscoveryError: If the fallback strategy also fails
        """
        try:
            groups = await self.primary.discover(user)
            self.last_used = self.primary
            return groups
        except Exception as e:
            logger.warning(
                f"{self.primary.name} failed ({e}); falling back to {self.fallback.name}"
            )

        groups = await self.fallback.discover(user)
        self.last_used = self.fallback
        return groups
