"""Backend-neutral group model shared by discovery and the console."""

from collections.abc import Iterable
from dataclasses import dataclass

from mbxgroups.entra.groups import EntraGroup
from mbxgroups.exchange.client import ExchangeGroup


@dataclass(frozen=True)
class MailGroup:
    """A mail-enabled security group the acting user can manage.

    ``id`` is the Entra object ID, which Exchange exposes as
    ExternalDirectoryObjectId, so groups found through Graph and through
    Exchange compare equal.
    """

    id: str
    display_name: str
    primary_smtp_address: str = ""

    @property
    def identity(self) -> str:
        """Identity to pass to Exchange cmdlets."""
        return self.primary_smtp_address or self.id

    @classmethod
    def from_entra(cls, group: EntraGroup) -> "MailGroup":
        """Build from an Entra ID group."""
        return cls(
            id=group.id,
            display_name=group.display_name,
            primary_smtp_address=(group.mail or "").lower(),
        )

    @classmethod
    def from_exchange(cls, group: ExchangeGroup) -> "MailGroup":
        """Build from an Exchange group."""
        return cls(
            id=group.external_directory_object_id or group.identity,
            display_name=group.display_name,
            primary_smtp_address=group.primary_smtp_address.lower(),
        )


def dedupe_groups(groups: Iterable[MailGroup]) -> list[MailGroup]:
    """Drop groups whose ID was already seen, keeping first-seen order."""
    seen: set[str] = set()
    unique = []
    for group in groups:
        key = group.id.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(group)
    return unique
