"""Interactive console for managing mailbox permission group membership.

All session data lives in ``ConsoleState`` and all I/O goes through the
injected ``rich`` console and prompt callable, so the loop can be driven
from tests with scripted input.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from email_validator import EmailNotValidError, validate_email
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mbxgroups.core.backup import DEFAULT_BACKUP_DIR, backup_group_membership
from mbxgroups.exchange.client import Recipient
from mbxgroups.exchange.session import ExchangeError
from mbxgroups.groups.discovery import GroupDiscovery, GroupDiscoveryError
from mbxgroups.groups.models import MailGroup

logger = logging.getLogger(__name__)


class MenuAction(Enum):
    """Top-level menu choices."""

    LIST = "1"
    ADD = "2"
    REMOVE = "3"
    REFRESH = "4"
    QUIT = "q"


MENU_LABELS = {
    MenuAction.LIST: "List members",
    MenuAction.ADD: "Add member",
    MenuAction.REMOVE: "Remove member",
    MenuAction.REFRESH: "Refresh groups",
    MenuAction.QUIT: "Quit",
}


class MembershipClient(Protocol):
    """Mail service operations the console needs."""

    async def get_distribution_group_members(self, identity: str) -> list[str]:
        """List member addresses of a group."""
        ...

    async def add_distribution_group_member(self, identity: str, member: str) -> bool:
        """Add a member to a group."""
        ...

    async def remove_distribution_group_member(self, identity: str, member: str) -> bool:
        """Remove a member from a group."""
        ...

    async def search_recipients(self, term: str, limit: int = 20) -> list[Recipient]:
        """Search recipients by name or address substring."""
        ...


@dataclass
class ConsoleState:
    """Session state for one console run."""

    user: str
    dry_run: bool = False
    groups: tuple[MailGroup, ...] = ()


class ConsoleExit(Exception):
    """The operator ended input (EOF or Ctrl-C)."""


def is_email_address(value: str) -> bool:
    """Check if a value is a well-formed email address."""
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


class GroupConsole:
    """Menu loop over the manageable groups of one user."""

    def __init__(
        self,
        state: ConsoleState,
        discovery: GroupDiscovery,
        client: MembershipClient,
        console: Console | None = None,
        prompt: Callable[[str], str] | None = None,
        search_limit: int = 20,
        backup_dir: Path | str = DEFAULT_BACKUP_DIR,
        backup: bool = True,
    ) -> None:
        """Initialize the console.

        Args:
            state: Session state (user, dry-run flag, current groups)
            discovery: Strategy used at startup and on refresh
            client: Mail service client for members, mutations and search
            console: Output console (defaults to a new rich Console)
            prompt: Input function (defaults to ``console.input``)
            search_limit: Maximum recipients returned by a fuzzy search
            backup_dir: Where to write membership backups (relative to the project root)
            backup: If False, skip membership backups
        """
        self.state = state
        self.discovery = discovery
        self.client = client
        self.console = console or Console()
        self._prompt = prompt or self._console_input
        self.search_limit = search_limit
        self.backup_dir = backup_dir
        self.backup = backup

    # Output helpers

    def success(self, message: str) -> None:
        """Print a success line."""
        self.console.print(f"[green]✓ {escape(message)}[/green]")

    def warn(self, message: str) -> None:
        """Print a warning line."""
        self.console.print(f"[yellow]⚠ {escape(message)}[/yellow]")

    def error(self, message: str) -> None:
        """Print an error line."""
        self.console.print(f"[red]✗ {escape(message)}[/red]")

    def _console_input(self, message: str) -> str:
        # Prompts can contain display names, which must not be read as markup
        return self.console.input(escape(message))

    def ask(self, message: str) -> str:
        """Prompt the operator and return the stripped answer.

        Raises:
            ConsoleExit: On EOF or Ctrl-C
        """
        try:
            return self._prompt(message).strip()
        except (EOFError, KeyboardInterrupt) as e:
            raise ConsoleExit from e

    def confirm(self, message: str, allow_cancel: bool = False) -> str:
        """Ask a yes/no (or yes/no/cancel) question until answered.

        Returns:
            "y", "n" or "c"
        """
        choices = ("y", "n", "c") if allow_cancel else ("y", "n")
        suffix = "/".join(choices)
        while True:
            answer = self.ask(f"{message} ({suffix}): ").lower()
            if answer in choices:
                return answer
            self.warn(f"Please answer {suffix}")

    # Main loop

    async def run(self) -> None:
        """Discover groups, then process menu actions until quit."""
        self.console.print(f"[bold cyan]Mailbox group manager for {escape(self.state.user)}[/]")
        if self.state.dry_run:
            self.warn("DRY RUN - no changes will be made")

        await self.refresh()

        try:
            while True:
                self.show_menu()
                choice = self.ask("Select an option: ").lower()
                action = next((a for a in MenuAction if a.value == choice), None)
                if action is None:
                    self.warn(f"Invalid option: {choice}")
                    continue
                if action is MenuAction.QUIT:
                    break
                await self.handle(action)
        except ConsoleExit:
            self.console.print()

        self.console.print("[cyan]Goodbye.[/cyan]")

    async def handle(self, action: MenuAction) -> None:
        """Run one menu action."""
        if action is MenuAction.REFRESH:
            await self.refresh()
            return

        group = self.select_group()
        if group is None:
            return

        if action is MenuAction.LIST:
            await self.list_members(group)
            return

        member = await self.prompt_member()
        if member is None:
            return

        if action is MenuAction.ADD:
            if self.confirm(f"Add {member} to {group.display_name}?") == "y":
                await self.add_member(group, member)
        elif action is MenuAction.REMOVE:
            if self.confirm(f"Remove {member} from {group.display_name}?") == "y":
                await self.remove_member(group, member)

    def show_menu(self) -> None:
        """Print the action menu."""
        self.console.print()
        for action, label in MENU_LABELS.items():
            self.console.print(f"  [bold]{action.value.upper()}[/bold]. {label}")

    def show_groups(self) -> None:
        """Print the current groups as a numbered table."""
        table = Table(title="Manageable groups")
        table.add_column("#", justify="right")
        table.add_column("Group")
        table.add_column("Email")
        for i, group in enumerate(self.state.groups, start=1):
            table.add_row(str(i), escape(group.display_name), group.primary_smtp_address)
        self.console.print(table)

    # Actions

    async def refresh(self) -> bool:
        """Re-run discovery and replace the group list.

        On failure the previous list is kept.

        Returns:
            True if discovery succeeded
        """
        self.console.print(f"[cyan]Discovering groups for {escape(self.state.user)}...[/cyan]")
        try:
            groups = await self.discovery.discover(self.state.user)
        except (GroupDiscoveryError, ExchangeError) as e:
            logger.error(f"Group discovery failed for {self.state.user}: {e}")
            self.error(f"Group discovery failed: {e}")
            return False

        self.state.groups = tuple(groups)
        if groups:
            self.success(f"Found {len(groups)} manageable groups")
            self.show_groups()
        else:
            self.warn(f"No groups matching the naming convention found for {self.state.user}")
        return True

    def select_group(self) -> MailGroup | None:
        """Ask the operator to pick a group by number.

        Returns:
            The selected group, or None if cancelled or none are known
        """
        groups = self.state.groups
        if not groups:
            self.warn("No manageable groups. Use Refresh to try again.")
            return None

        self.show_groups()
        while True:
            answer = self.ask("Select a group number (c to cancel): ").lower()
            if answer == "c":
                return None
            if answer.isdigit() and 1 <= int(answer) <= len(groups):
                return groups[int(answer) - 1]
            self.warn(f"Invalid selection: {answer}")

    async def list_members(self, group: MailGroup) -> list[str] | None:
        """Fetch and print a group's members.

        Returns:
            Member addresses, or None if they could not be read
        """
        try:
            members = await self.client.get_distribution_group_members(group.identity)
        except ExchangeError as e:
            logger.error(f"Failed to read members of {group.identity}: {e}")
            self.error(f"Failed to read members of {group.display_name}: {e}")
            return None

        if not members:
            self.warn(f"{group.display_name} has no members")
            return members

        self.console.print(f"[bold]{escape(group.display_name)}[/bold] ({len(members)} members)")
        for member in sorted(members):
            self.console.print(f"  {escape(member)}")
        return members

    async def prompt_member(self) -> str | None:
        """Ask for an email address or search term and resolve it."""
        term = self.ask("Enter an email address or search term: ")
        return await self.resolve_user(term)

    async def resolve_user(self, term: str) -> str | None:
        """Resolve operator input to a single email address.

        A well-formed address is returned unchanged without searching.
        Anything else is a substring search on display name or address.

        Returns:
            The resolved address, or None if nothing usable was chosen
        """
        term = term.strip()
        if not term:
            self.warn("No user entered")
            return None

        if is_email_address(term):
            return term

        try:
            matches = await self.client.search_recipients(term, self.search_limit)
        except ExchangeError as e:
            logger.error(f"Recipient search for '{term}' failed: {e}")
            self.error(f"Recipient search failed: {e}")
            return None

        if not matches:
            self.warn(f"No recipients match '{term}'")
            return None

        if len(matches) == 1:
            match = matches[0]
            answer = self.confirm(
                f"Use {match.display_name} <{match.primary_smtp_address}>?", allow_cancel=True
            )
            return match.primary_smtp_address if answer == "y" else None

        for i, match in enumerate(matches, start=1):
            self.console.print(
                f"  {i}. {escape(match.display_name)} <{escape(match.primary_smtp_address)}>"
            )
        if len(matches) >= self.search_limit:
            self.warn(f"Showing the first {self.search_limit} matches; refine the search to narrow")

        while True:
            answer = self.ask("Select a user number (c to cancel): ").lower()
            if answer == "c":
                return None
            if answer.isdigit() and 1 <= int(answer) <= len(matches):
                return matches[int(answer) - 1].primary_smtp_address
            self.warn(f"Invalid selection: {answer}")

    async def _backup_membership(self, group: MailGroup) -> None:
        if not self.backup:
            return
        try:
            members = await self.client.get_distribution_group_members(group.identity)
            backup_group_membership(group, members, self.backup_dir)
        except (ExchangeError, OSError) as e:
            logger.warning(f"Membership backup failed for {group.identity}: {e}")
            self.warn(f"Could not back up {group.display_name} before the change: {e}")

    async def add_member(self, group: MailGroup, member: str) -> bool:
        """Add a member, or report what would be added in dry-run mode.

        Returns:
            True if the member was added (always True in dry-run mode)
        """
        if self.state.dry_run:
            self.warn(f"[DRY RUN] Would add {member} to {group.display_name}")
            return True

        await self._backup_membership(group)
        if await self.client.add_distribution_group_member(group.identity, member):
            self.success(f"Added {member} to {group.display_name}")
            return True

        self.error(f"Failed to add {member} to {group.display_name}")
        return False

    async def remove_member(self, group: MailGroup, member: str) -> bool:
        """Remove a member, or report what would be removed in dry-run mode.

        Returns:
            True if the member was removed (always True in dry-run mode)
        """
        if self.state.dry_run:
            self.warn(f"[DRY RUN] Would remove {member} from {group.display_name}")
            return True

        await self._backup_membership(group)
        if await self.client.remove_distribution_group_member(group.identity, member):
            self.success(f"Removed {member} from {group.display_name}")
            return True

        self.error(f"Failed to remove {member} from {group.display_name}")
        return False
