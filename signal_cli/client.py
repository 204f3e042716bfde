"""
signal-cli Client

Runs signal-cli as a subprocess for every operation. Each invocation must exit
successfully; JSON-producing commands are additionally decoded through
`signal_cli.protocol`.
"""

import asyncio
from typing import Any, List, Optional, Sequence

from loguru import logger

from messaging.models import IncomingMessage

from .exceptions import ProtocolParseError, SignalCliProcessError
from .protocol import (
    Contact,
    Group,
    decode_json_output,
    parse_accounts,
    parse_contacts,
    parse_groups,
    parse_receive_value,
)

DEFAULT_BIN = "signal-cli"


class SignalCli:
    """Async wrapper around the signal-cli command line tool."""

    def __init__(self, bin: str = DEFAULT_BIN):
        self.bin = bin

    def __repr__(self) -> str:
        return f"SignalCli(bin={self.bin!r})"

    async def _run(self, args: Sequence[str]) -> str:
        """
        Execute signal-cli and return its stdout.

        Raises:
            SignalCliProcessError: if the binary cannot be started or exits
                with a non-zero status.
            ProtocolParseError: if stdout is not valid UTF-8.
        """
        logger.debug(f"SIGNAL_CLI: exec {self.bin} {args[0] if args else ''}...")
        try:
            process = await asyncio.create_subprocess_exec(
                self.bin,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SignalCliProcessError(f"failed to execute {self.bin}: {e}") from e

        stdout_b, stderr_b = await process.communicate()
        if process.returncode != 0:
            err = SignalCliProcessError.from_exit(
                self.bin,
                process.returncode,
                (stderr_b or b"").decode("utf-8", errors="replace"),
                (stdout_b or b"").decode("utf-8", errors="replace"),
            )
            logger.warning(f"SIGNAL_CLI: {err}")
            raise err

        try:
            return (stdout_b or b"").decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolParseError(f"{self.bin} output was not utf-8") from e

    async def _run_json(self, args: Sequence[str]) -> Optional[Any]:
        return decode_json_output(await self._run(args))

    async def list_accounts(self) -> List[str]:
        value = await self._run_json(["-o", "json", "listAccounts"])
        return parse_accounts(value)

    async def list_contacts(self, account: str) -> List[Contact]:
        value = await self._run_json(["-a", account, "-o", "json", "listContacts"])
        return parse_contacts(value)

    async def list_groups(self, account: str) -> List[Group]:
        value = await self._run_json(["-a", account, "-o", "json", "listGroups"])
        return parse_groups(value)

    async def send_to_number(self, account: str, recipient: str, body: str) -> None:
        await self._run(["-a", account, "send", "-m", body, recipient])
        logger.info(f"SIGNAL_CLI: sent message to {recipient}")

    async def send_to_group(self, account: str, group_id: str, body: str) -> None:
        await self._run(["-a", account, "send", "-g", group_id, "-m", body])
        logger.info(f"SIGNAL_CLI: sent message to group {group_id}")

    async def receive(self, account: str, timeout_secs: int = 1) -> List[IncomingMessage]:
        """
        Run one bounded `receive` call and normalize its output.

        Args:
            account: Account number to receive for
            timeout_secs: How long signal-cli waits for new messages

        Returns:
            Incoming text messages in the order signal-cli reported them.
        """
        value = await self._run_json(
            ["-a", account, "-o", "json", "receive", "--timeout", str(timeout_secs)]
        )
        messages = parse_receive_value(value)
        if messages:
            logger.debug(f"SIGNAL_CLI: received {len(messages)} message(s)")
        return messages
