"""signal-cli subprocess client and output decoding."""

from .client import SignalCli
from .exceptions import ProtocolParseError, SignalCliError, SignalCliProcessError
from .protocol import Contact, Group, parse_receive_output

__all__ = [
    "Contact",
    "Group",
    "ProtocolParseError",
    "SignalCli",
    "SignalCliError",
    "SignalCliProcessError",
    "parse_receive_output",
]
