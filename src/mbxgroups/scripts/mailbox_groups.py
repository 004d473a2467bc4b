#!/usr/bin/env python3
"""Interactive manager for Exchange Online mailbox permission groups.

Finds the mail-enabled security groups a user belongs to (plus the
SendAs/SendOnBehalf siblings of any Owners group) and lets an operator
list, add and remove members.

Prerequisites:
1. PowerShell 7+ with ExchangeOnlineManagement module
2. Azure AD App with Exchange.ManageAsApp permission and certificate auth
3. Optional: MS Graph credentials for fast reverse-membership discovery
   (without them every prefixed group is scanned)
"""

import argparse
import asyncio
import logging
import sys

from email_validator import EmailNotValidError, validate_email
from rich.console import Console
from rich.markup import escape

from mbxgroups.core.config import get_naming_config
from mbxgroups.exchange.client import ExchangeOnlineClient
from mbxgroups.exchange.session import ExchangeConnectionError
from mbxgroups.groups.console import ConsoleState, GroupConsole
from mbxgroups.groups.discovery import (
    FallbackDiscovery,
    MembershipScanDiscovery,
    ReverseMembershipDiscovery,
)

logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

# Silence verbose HTTP request logging
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("azure.identity").setLevel(logging.WARNING)
logging.getLogger("azure.core.pipeline.policies.http_logging_policy").setLevel(logging.WARNING)


async def run_console(user: str, dry_run: bool = False, console: Console | None = None) -> int:
    """Connect to Exchange Online and run the interactive console.

    Args:
        user: User principal name whose groups are managed
        dry_run: If True, report mutations without applying them
        console: Output console (defaults to a new rich Console)

    Returns:
        Exit code
    """
    console = console or Console()
    naming = get_naming_config()

    try:
        client = ExchangeOnlineClient()
        console.print("[cyan]Connecting to Exchange Online...[/cyan]")
        await client.connect()
    except (ValueError, ExchangeConnectionError) as e:
        logger.error(f"Exchange Online connection failed: {e}")
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        return 1

    try:
        discovery = FallbackDiscovery(
            primary=ReverseMembershipDiscovery(naming),
            fallback=MembershipScanDiscovery(client, naming),
        )
        group_console = GroupConsole(
            state=ConsoleState(user=user, dry_run=dry_run),
            discovery=discovery,
            client=client,
            console=console,
            search_limit=naming.search_result_limit,
            backup_dir=naming.backup_dir,
        )
        await group_console.run()
    finally:
        await client.close()

    return 0


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Manage membership of a user's mailbox permission groups "
        "(Owners / SendAs / SendOnBehalf) in Exchange Online.",
    )
    parser.add_argument("user", help="User principal name (e.g. jane.doe@contoso.com)")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        user = validate_email(args.user, check_deliverability=False).normalized
    except EmailNotValidError as e:
        parser.error(f"Invalid user principal name: {e}")

    exit_code = asyncio.run(run_console(user, dry_run=args.dry_run))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
