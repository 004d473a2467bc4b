"""Entra ID group lookups."""

import logging
from dataclasses import dataclass
from enum import Enum

from kiota_abstractions.base_request_configuration import RequestConfiguration
from msgraph import GraphServiceClient
from msgraph.generated.groups.groups_request_builder import GroupsRequestBuilder
from msgraph.generated.models.group import Group
from msgraph.generated.users.item.member_of.graph_group.graph_group_request_builder import (
    GraphGroupRequestBuilder,
)

from mbxgroups.core.msgraph_client import get_graph_client

logger = logging.getLogger(__name__)

GROUP_SELECT = [
    "id",
    "displayName",
    "mail",
    "mailEnabled",
    "securityEnabled",
    "groupTypes",
]


class GroupType(Enum):
    """Types of Entra ID groups."""

    SECURITY = "security"
    MICROSOFT_365 = "microsoft365"
    DISTRIBUTION = "distribution"
    MAIL_ENABLED_SECURITY = "mail_enabled_security"
    UNKNOWN = "unknown"


@dataclass
class EntraGroup:
    """Represents an Entra ID group."""

    id: str
    display_name: str
    mail: str | None
    mail_enabled: bool
    security_enabled: bool
    group_types: list[str]

    @property
    def group_type(self) -> GroupType:
        """Determine the type of group."""
        # Microsoft 365 groups have "Unified" in groupTypes
        if "Unified" in self.group_types:
            return GroupType.MICROSOFT_365
        if self.mail_enabled and self.security_enabled:
            return GroupType.MAIL_ENABLED_SECURITY
        if self.mail_enabled and not self.security_enabled:
            return GroupType.DISTRIBUTION
        if self.security_enabled and not self.mail_enabled:
            return GroupType.SECURITY
        return GroupType.UNKNOWN


def odata_quote(value: str) -> str:
    """Escape a value for use inside a single-quoted OData string."""
    return value.replace("'", "''")


class EntraGroupManager:
    """Read groups and group memberships from Entra ID."""

    def __init__(self) -> None:
        """Initialize the group manager."""
        self.client: GraphServiceClient = get_graph_client()

    def _to_entra_group(self, group: Group) -> EntraGroup:
        """Convert MS Graph Group to EntraGroup.

        Args:
            group: MS Graph Group object

        Returns:
            EntraGroup object
        """
        return EntraGroup(
            id=group.id or "",
            display_name=group.display_name or "",
            mail=group.mail,
            mail_enabled=group.mail_enabled or False,
            security_enabled=group.security_enabled or False,
            group_types=group.group_types or [],
        )

    async def get_user_groups(
        self,
        user_id: str,
        include_types: list[GroupType] | None = None,
    ) -> list[EntraGroup]:
        """Fetch the groups a user is a direct member of.

        Args:
            user_id: User object ID or UPN
            include_types: Filter to specific group types. If None, returns all.

        Returns:
            List of EntraGroup objects
        """
        member_of = self.client.users.by_user_id(user_id).member_of.graph_group
        query_params = GraphGroupRequestBuilder.GraphGroupRequestBuilderGetQueryParameters(
            select=GROUP_SELECT,
            top=999,
        )
        config = RequestConfiguration(query_parameters=query_params)
        result = await member_of.get(request_configuration=config)

        groups = []
        if result and result.value:
            for group in result.value:
                entra_group = self._to_entra_group(group)
                if include_types is None or entra_group.group_type in include_types:
                    groups.append(entra_group)

        # Handle pagination
        while result and result.odata_next_link:
            result = await member_of.with_url(result.odata_next_link).get()
            if result and result.value:
                for group in result.value:
                    entra_group = self._to_entra_group(group)
                    if include_types is None or entra_group.group_type in include_types:
                        groups.append(entra_group)

        logger.debug(f"{user_id} is a member of {len(groups)} groups")
        return groups

    async def get_group_by_name(self, display_name: str) -> EntraGroup | None:
        """Find a group by exact display name.

        Args:
            display_name: The display name to search for

        Returns:
            EntraGroup if found, None otherwise
        """
        query_params = GroupsRequestBuilder.GroupsRequestBuilderGetQueryParameters(
            filter=f"displayName eq '{odata_quote(display_name)}'",
            select=GROUP_SELECT,
        )
        config = RequestConfiguration(query_parameters=query_params)

        result = await self.client.groups.get(request_configuration=config)
        if result and result.value:
            if len(result.value) > 1:
                logger.warning(f"{len(result.value)} groups named '{display_name}', using first")
            return self._to_entra_group(result.value[0])
        return None
