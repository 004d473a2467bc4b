"""Exchange Online PowerShell client.

Executes Exchange Online PowerShell cmdlets through a long-lived ``pwsh``
session to manage the membership of mail-enabled security groups.
Microsoft Graph cannot change membership of these groups, so all writes
go through Exchange.

Prerequisites:
1. Install Exchange Online Management module:
   Install-Module -Name ExchangeOnlineManagement

2. For app-only (unattended) authentication, you need:
   - Azure AD App Registration with Exchange.ManageAsApp permission
   - A certificate (self-signed or CA-signed) uploaded to the app
   - The certificate installed locally (or accessible as .pfx file)
   - App assigned "Exchange Recipient Administrator" role

References:
- https://learn.microsoft.com/en-us/powershell/exchange/app-only-auth-powershell-v2
- https://learn.microsoft.com/en-us/powershell/exchange/exchange-online-powershell-v2
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from mbxgroups.core.config import get_exchange_credentials
from mbxgroups.exchange.session import (
    ExchangeCommandError,
    ExchangeError,
    ExchangePowerShellSession,
    ExchangeSessionError,
)

logger = logging.getLogger(__name__)

GROUP_FIELDS = (
    "Identity, DisplayName, PrimarySmtpAddress, RecipientTypeDetails, ExternalDirectoryObjectId"
)

# PowerShell accepts the curly and low-9 single quotes as string delimiters too
SINGLE_QUOTES = "'\u2018\u2019\u201a\u201b"


def ps_quote(value: str) -> str:
    """Quote a value as a PowerShell single-quoted string literal."""
    escaped = "".join(c * 2 if c in SINGLE_QUOTES else c for c in value)
    return "'" + escaped + "'"


def opath_value(value: str) -> str:
    """Make a value safe to embed in a double-quoted OPATH filter value."""
    return value.replace('"', "").replace("`", "")


@dataclass
class ExchangeGroup:
    """Represents an Exchange Online mail-enabled group."""

    identity: str  # Group identity (name or email)
    display_name: str
    primary_smtp_address: str
    group_type: str  # "MailUniversalSecurityGroup" or "MailUniversalDistributionGroup"
    external_directory_object_id: str = ""  # Entra object ID


@dataclass
class Recipient:
    """A mail recipient returned by a search."""

    display_name: str
    primary_smtp_address: str
    recipient_type: str = ""


class ExchangeOnlineClient:
    """Client for Exchange Online PowerShell operations.

    Call ``connect()`` once before any other operation and ``close()`` when
    done; every cmdlet runs in the same connected session.
    """

    def __init__(
        self,
        certificate_thumbprint: str | None = None,
        certificate_path: Path | str | None = None,
        certificate_password: str | None = None,
        organization: str | None = None,
        executable: str = "pwsh",
    ) -> None:
        """Initialize the Exchange Online client.

        Args:
            certificate_thumbprint: Thumbprint of installed certificate (Windows)
            certificate_path: Path to .pfx certificate file (cross-platform)
            certificate_password: Password for the .pfx file
            organization: The organization domain (overrides env config)
            executable: PowerShell 7+ executable
        """
        creds = get_exchange_credentials()
        self.tenant_id = creds.tenant_id
        self.client_id = creds.client_id
        self.organization = organization or creds.organization
        # Use passed params if provided, otherwise use from credentials
        self.certificate_thumbprint = certificate_thumbprint or creds.certificate_thumbprint
        self.certificate_path = certificate_path or creds.certificate_path
        self.certificate_password = certificate_password or creds.certificate_password
        self.executable = executable
        self._session: ExchangePowerShellSession | None = None

    def _build_connect_command(self) -> str:
        """Build the Connect-ExchangeOnline command."""
        # Suppress banner output with *>$null to prevent it from mixing with JSON output
        # Prefer certificate_path over thumbprint (thumbprint is Windows-only)
        if self.certificate_path:
            # For empty password (Key Vault certs), skip the -CertificatePassword param
            if self.certificate_password:
                secure_str = (
                    f"-CertificatePassword (ConvertTo-SecureString "
                    f"-String {ps_quote(self.certificate_password)} -AsPlainText -Force) "
                )
            else:
                secure_str = ""
            return (
                f"Connect-ExchangeOnline "
                f"-AppId {ps_quote(self.client_id)} "
                f"-CertificateFilePath {ps_quote(str(self.certificate_path))} "
                f"{secure_str}"
                f"-Organization {ps_quote(self.organization)} -ShowBanner:$false *>$null"
            )
        elif self.certificate_thumbprint:
            return (
                f"Connect-ExchangeOnline "
                f"-AppId {ps_quote(self.client_id)} "
                f"-CertificateThumbprint {ps_quote(self.certificate_thumbprint)} "
                f"-Organization {ps_quote(self.organization)} -ShowBanner:$false *>$null"
            )
        else:
            raise ValueError("Either certificate_thumbprint or certificate_path must be provided")

    async def connect(self) -> None:
        """Open the PowerShell session and connect to Exchange Online.

        Raises:
            ExchangeConnectionError: If the connection cannot be established
        """
        if self._session is not None and self._session.is_open:
            return
        self._session = ExchangePowerShellSession(
            self._build_connect_command(), executable=self.executable
        )
        self._session.open()

    def _run_powershell(self, commands: list[str], parse_json: bool = True) -> dict | list | str:
        """Run PowerShell commands in the connected session.

        Args:
            commands: List of PowerShell commands to execute
            parse_json: If True, parse output as JSON

        Returns:
            Parsed JSON (dict or list) or raw string output

        Raises:
            ExchangeSessionError: If not connected
            ExchangeCommandError: If a cmdlet fails
        """
        if self._session is None or not self._session.is_open:
            raise ExchangeSessionError("Not connected to Exchange Online")

        output = self._session.run(commands)
        if not output:
            return {} if parse_json else ""

        if parse_json:
            try:
                return json.loads(output)
            except json.JSONDecodeError:
                # Warning text may precede JSON - try to find JSON in output
                json_start = output.find("{")
                array_start = output.find("[")
                if json_start == -1 or (array_start != -1 and array_start < json_start):
                    json_start = array_start
                if json_start != -1:
                    try:
                        return json.loads(output[json_start:])
                    except json.JSONDecodeError:
                        pass
                if "{" in output or "[" in output:
                    logger.warning(f"Failed to parse JSON output: {output[:200]}")
                return {"raw": output}

        return output

    @staticmethod
    def _as_records(result: dict | list | str) -> list[dict]:
        """Normalize ConvertTo-Json output (single object vs array) to a list."""
        if isinstance(result, dict):
            if not result or "raw" in result:
                return []
            return [result]
        if isinstance(result, list):
            return [r for r in result if isinstance(r, dict)]
        return []

    @staticmethod
    def _to_exchange_group(data: dict) -> ExchangeGroup:
        return ExchangeGroup(
            identity=str(data.get("Identity") or ""),
            display_name=data.get("DisplayName") or "",
            primary_smtp_address=(data.get("PrimarySmtpAddress") or "").lower(),
            group_type=data.get("RecipientTypeDetails") or "",
            external_directory_object_id=data.get("ExternalDirectoryObjectId") or "",
        )

    async def get_distribution_groups(self, name_prefix: str) -> list[ExchangeGroup]:
        """List mail-enabled security groups whose display name starts with a prefix.

        Args:
            name_prefix: Display name prefix (e.g. "MBX-")

        Returns:
            List of ExchangeGroup

        Raises:
            ExchangeError: If the listing fails
        """
        group_filter = f'DisplayName -like "{opath_value(name_prefix)}*"'
        commands = [
            "Get-DistributionGroup -RecipientTypeDetails MailUniversalSecurityGroup "
            f"-ResultSize Unlimited -Filter {ps_quote(group_filter)} "
            f"| Select-Object {GROUP_FIELDS} | ConvertTo-Json -Depth 3 -Compress",
        ]

        result = self._run_powershell(commands)
        groups = [self._to_exchange_group(r) for r in self._as_records(result)]
        logger.info(f"Found {len(groups)} groups matching '{name_prefix}*'")
        return groups

    async def get_distribution_group_members(self, identity: str) -> list[str]:
        """Get members of a distribution group or mail-enabled security group.

        Args:
            identity: Group name, alias, or email address

        Returns:
            List of member email addresses (lowercase)

        Raises:
            ExchangeError: If the group cannot be read
        """
        commands = [
            f"Get-DistributionGroupMember -Identity {ps_quote(identity)} -ResultSize Unlimited "
            "| Select-Object PrimarySmtpAddress | ConvertTo-Json -Compress",
        ]

        result = self._run_powershell(commands)
        return [
            m["PrimarySmtpAddress"].lower()
            for m in self._as_records(result)
            if m.get("PrimarySmtpAddress")
        ]

    async def add_distribution_group_member(self, identity: str, member: str) -> bool:
        """Add a member to a distribution group or mail-enabled security group.

        Args:
            identity: Group name, alias, or email address
            member: Member email address to add

        Returns:
            True if successful (or already a member)
        """
        commands = [
            f"Add-DistributionGroupMember -Identity {ps_quote(identity)} "
            f"-Member {ps_quote(member)} -BypassSecurityGroupManagerCheck -ErrorAction Stop",
            "Write-Output 'SUCCESS'",
        ]

        try:
            result = self._run_powershell(commands, parse_json=False)
        except ExchangeCommandError as e:
            if "already a member" in str(e).lower():
                logger.debug(f"{member} is already a member of {identity}")
                return True
            logger.error(f"Failed to add {member} to {identity}: {e}")
            return False
        except ExchangeError as e:
            logger.error(f"Failed to add {member} to {identity}: {e}")
            return False

        if "SUCCESS" in str(result):
            logger.info(f"Added {member} to {identity}")
            return True

        logger.error(f"Failed to add {member} to {identity}: unexpected output")
        return False

    async def remove_distribution_group_member(self, identity: str, member: str) -> bool:
        """Remove a member from a distribution group or mail-enabled security group.

        Args:
            identity: Group name, alias, or email address
            member: Member email address to remove

        Returns:
            True if successful
        """
        commands = [
            f"Remove-DistributionGroupMember -Identity {ps_quote(identity)} "
            f"-Member {ps_quote(member)} -BypassSecurityGroupManagerCheck -Confirm:$false "
            "-ErrorAction Stop",
            "Write-Output 'SUCCESS'",
        ]

        try:
            result = self._run_powershell(commands, parse_json=False)
        except ExchangeError as e:
            logger.error(f"Failed to remove {member} from {identity}: {e}")
            return False

        if "SUCCESS" in str(result):
            logger.info(f"Removed {member} from {identity}")
            return True

        logger.error(f"Failed to remove {member} from {identity}: unexpected output")
        return False

    async def search_recipients(self, term: str, limit: int = 20) -> list[Recipient]:
        """Search recipients whose display name or primary address contains a term.

        Matching is Exchange's ``-like '*term*'``, which is case-insensitive.

        Args:
            term: Free-text search term
            limit: Maximum number of results

        Returns:
            List of matching recipients (at most ``limit``)

        Raises:
            ExchangeError: If the search fails
        """
        value = opath_value(term.strip())
        recipient_filter = (
            f'DisplayName -like "*{value}*" -or PrimarySmtpAddress -like "*{value}*"'
        )
        commands = [
            f"Get-Recipient -Filter {ps_quote(recipient_filter)} -ResultSize {int(limit)} "
            "| Select-Object DisplayName, PrimarySmtpAddress, RecipientTypeDetails "
            "| ConvertTo-Json -Compress",
        ]

        result = self._run_powershell(commands)
        recipients = [
            Recipient(
                display_name=r.get("DisplayName") or "",
                primary_smtp_address=r["PrimarySmtpAddress"].lower(),
                recipient_type=r.get("RecipientTypeDetails") or "",
            )
            for r in self._as_records(result)
            if r.get("PrimarySmtpAddress")
        ]
        return recipients[:limit]

    async def close(self) -> None:
        """Disconnect and stop the PowerShell session."""
        if self._session is not None:
            self._session.close()
            self._session = None
