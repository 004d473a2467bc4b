"""Entra ID user lookups."""

import logging
from dataclasses import dataclass

from kiota_abstractions.api_error import APIError
from kiota_abstractions.base_request_configuration import RequestConfiguration
from msgraph import GraphServiceClient
from msgraph.generated.models.user import User
from msgraph.generated.users.item.user_item_request_builder import UserItemRequestBuilder

from mbxgroups.core.msgraph_client import get_graph_client

logger = logging.getLogger(__name__)


@dataclass
class EntraUser:
    """Represents an Entra ID user."""

    id: str
    display_name: str | None
    email: str | None
    upn: str | None
    account_enabled: bool = True


class EntraUserManager:
    """Look up users in Entra ID."""

    def __init__(self) -> None:
        """Initialize the user manager."""
        self.client: GraphServiceClient = get_graph_client()

    def _to_entra_user(self, user: User) -> EntraUser:
        return EntraUser(
            id=user.id or "",
            display_name=user.display_name,
            email=user.mail,
            upn=user.user_principal_name,
            account_enabled=user.account_enabled or False,
        )

    async def get_user_by_upn(self, upn: str) -> EntraUser | None:
        """Fetch a single user by UPN.

        Args:
            upn: User principal name

        Returns:
            EntraUser or None if not found

        Raises:
            APIError: For Graph errors other than "not found"
        """
        query_params = UserItemRequestBuilder.UserItemRequestBuilderGetQueryParameters(
            select=["id", "displayName", "mail", "userPrincipalName", "accountEnabled"],
        )
        config = RequestConfiguration(query_parameters=query_params)
        try:
            user = await self.client.users.by_user_id(upn).get(request_configuration=config)
        except APIError as e:
            if e.response_status_code != 404:
                raise
            logger.debug(f"User not found: {upn} - {e}")
            return None
        return self._to_entra_user(user) if user else None
