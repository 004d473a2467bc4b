"""Long-lived Exchange Online PowerShell session.

Connecting to Exchange Online takes several seconds, so an interactive
tool keeps one ``pwsh`` process open for its whole run instead of
reconnecting per cmdlet. Commands are written to the process's stdin one
batch per line; each batch is wrapped in ``try/catch`` and followed by a
unique end marker so its output can be read back from stdout.

The batch body travels base64-encoded and is compiled inside the ``try``
with ``[scriptblock]::Create``. A body that does not parse then fails like
any other cmdlet instead of leaving ``pwsh`` waiting for the rest of an
incomplete statement.
"""

import base64
import contextlib
import logging
import subprocess
import uuid

logger = logging.getLogger(__name__)

ERROR_PREFIX = "__MBX_ERROR__:"
END_MARKER_PREFIX = "__MBX_END_"

SESSION_SETUP = [
    "[Console]::OutputEncoding = [System.Text.Encoding]::UTF8",
    "$OutputEncoding = [System.Text.Encoding]::UTF8",
    "$ErrorActionPreference = 'Stop'",
    "$ProgressPreference = 'SilentlyContinue'",
    "Import-Module ExchangeOnlineManagement",
]


def encode_batch(commands: list[str]) -> str:
    """Encode a batch of statements as base64 of their UTF-8 text."""
    body = "; ".join(commands)
    return base64.b64encode(body.encode("utf-8")).decode("ascii")


class ExchangeError(Exception):
    """Base error for Exchange Online operations."""


class ExchangeConnectionError(ExchangeError):
    """Could not start PowerShell or connect to Exchange Online."""


class ExchangeCommandError(ExchangeError):
    """A cmdlet batch raised an error inside PowerShell."""


class ExchangeSessionError(ExchangeError):
    """The PowerShell process is not running or exited mid-command."""


class ExchangePowerShellSession:
    """A single connected ``pwsh`` process driven over stdin/stdout."""

    def __init__(self, connect_command: str, executable: str = "pwsh") -> None:
        """Initialize the session.

        Args:
            connect_command: Full ``Connect-ExchangeOnline`` command line
            executable: PowerShell 7+ executable name or path
        """
        self.connect_command = connect_command
        self.executable = executable
        self._process: subprocess.Popen | None = None

    @property
    def is_open(self) -> bool:
        """Check if the PowerShell process is running."""
        return self._process is not None and self._process.poll() is None

    def open(self) -> None:
        """Start PowerShell, import the module and connect.

        Raises:
            ExchangeConnectionError: If pwsh is missing or the connection fails
        """
        if self.is_open:
            return

        try:
            self._process = subprocess.Popen(  # noqa: S603
                [self.executable, "-NoLogo", "-NoProfile", "-NonInteractive", "-Command", "-"],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except FileNotFoundError as e:
            raise ExchangeConnectionError(
                f"PowerShell ({self.executable}) not found. Install PowerShell 7+."
            ) from e

        try:
            self.run([*SESSION_SETUP, self.connect_command])
        except ExchangeError as e:
            self._terminate()
            raise ExchangeConnectionError(f"Failed to connect to Exchange Online: {e}") from e

        logger.info("Connected to Exchange Online")

    def run(self, commands: list[str]) -> str:
        """Run a batch of PowerShell commands in the open session.

        Args:
            commands: PowerShell statements, joined with "; " into one script block

        Returns:
            Stripped stdout of the batch

        Raises:
            ExchangeSessionError: If the session is not open or ends early
            ExchangeCommandError: If any statement in the batch throws
        """
        process = self._process
        if process is None or process.stdin is None or process.stdout is None:
            raise ExchangeSessionError("PowerShell session is not open")

        marker = f"{END_MARKER_PREFIX}{uuid.uuid4().hex}__"
        # Dot-sourced so variables and preferences persist across batches
        body = (
            "[System.Text.Encoding]::UTF8.GetString("
            f"[System.Convert]::FromBase64String('{encode_batch(commands)}'))"
        )
        script = (
            f"try {{ . ([scriptblock]::Create({body})) }} "
            f"catch {{ Write-Output ('{ERROR_PREFIX}' + $_.Exception.Message) }}; "
            f"Write-Output '{marker}'"
        )

        try:
            process.stdin.write(script + "\n")
            process.stdin.flush()
        except OSError as e:
            raise ExchangeSessionError("PowerShell session is closed") from e

        lines: list[str] = []
        while True:
            line = process.stdout.readline()
            if not line:
                raise ExchangeSessionError("PowerShell session ended unexpectedly")
            line = line.rstrip("\r\n")
            if line == marker:
                break
            lines.append(line)

        errors = [
            line[len(ERROR_PREFIX) :].strip() for line in lines if line.startswith(ERROR_PREFIX)
        ]
        if errors:
            raise ExchangeCommandError(errors[0])

        return "\n".join(lines).strip()

    def close(self) -> None:
        """Disconnect from Exchange Online and stop PowerShell."""
        if self._process is None:
            return

        if self.is_open:
            try:
                self.run(["Disconnect-ExchangeOnline -Confirm:$false *>$null"])
                logger.info("Disconnected from Exchange Online")
            except ExchangeError as e:
                logger.warning(f"Failed to disconnect from Exchange Online: {e}")

        self._terminate()

    def _terminate(self) -> None:
        process, self._process = self._process, None
        if process is None:
            return

        if process.stdin:
            # The pipe may already be broken if pwsh died
            with contextlib.suppress(OSError):
                process.stdin.close()

        try:
            process.wait(timeout=30)
        except subprocess.TimeoutExpired:
            logger.warning("PowerShell did not exit, killing process")
            process.kill()
            process.wait()

    def __enter__(self) -> "ExchangePowerShellSession":
        """Open the session."""
        self.open()
        return self

    def __exit__(self, *args: object) -> None:
        """Close the session."""
        self.close()
