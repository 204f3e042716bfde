"""Error types raised while talking to signal-cli."""

from typing import Optional


class SignalCliError(Exception):
    """Base class for all signal-cli invocation errors."""


class SignalCliProcessError(SignalCliError):
    """signal-cli could not be executed or exited unsuccessfully."""

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        stderr: str = "",
        stdout: str = "",
    ):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout

    @classmethod
    def from_exit(
        cls, bin_name: str, returncode: Optional[int], stderr: str, stdout: str
    ) -> "SignalCliProcessError":
        stderr = stderr.strip()
        stdout = stdout.strip()
        return cls(
            f"{bin_name} failed (code={returncode}). stderr: {stderr} stdout: {stdout}",
            returncode=returncode,
            stderr=stderr,
            stdout=stdout,
        )


class ProtocolParseError(SignalCliError):
    """signal-cli output could not be decoded into the expected JSON shape."""
