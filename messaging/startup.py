"""Startup discovery: account selection, conversation list, history replay."""

from dataclasses import dataclass
from typing import List, Optional

from loguru import logger

from config.settings import Settings
from signal_cli.client import SignalCli
from signal_cli.exceptions import SignalCliError

from .models import Target
from .notifications import Notifier
from .registry import ConversationRegistry
from .scrollback import ScrollbackStore
from .state import SessionState


class StartupError(Exception):
    """The session cannot start (no account, or signal-cli unusable)."""


@dataclass
class Discovery:
    account: str
    accounts: List[str]
    targets: List[Target]

    @property
    def status(self) -> str:
        if len(self.accounts) > 1:
            return (
                f"using account {self.account} "
                f"(found {len(self.accounts)} accounts; no selector yet)"
            )
        return f"using account {self.account}"


async def discover(client: SignalCli, account: Optional[str] = None) -> Discovery:
    """
    List accounts, contacts and groups.

    Raises:
        StartupError: if signal-cli fails or no account is available.
    """
    try:
        accounts = await client.list_accounts()
        selected = account or (accounts[0] if accounts else "")
        if not selected:
            raise StartupError(
                "no signal-cli accounts found "
                "(try `signal-cli register` / `signal-cli link` first)"
            )
        contacts = await client.list_contacts(selected)
        groups = await client.list_groups(selected)
    except SignalCliError as e:
        raise StartupError(f"signal-cli discovery failed: {e}") from e

    targets = [Target.for_contact(c.number, c.name) for c in contacts]
    targets.extend(Target.for_group(g.id, g.name) for g in groups)
    logger.info(
        f"Discovered {len(contacts)} contact(s) and {len(groups)} group(s) for {selected}"
    )
    return Discovery(account=selected, accounts=accounts, targets=targets)


async def create_session(
    settings: Settings,
    client: SignalCli,
    account: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> SessionState:
    """Build the initial session state with scrollback replayed."""
    found = await discover(client, account or settings.account)
    state = SessionState(
        account=found.account,
        client=client,
        registry=ConversationRegistry(found.targets),
        scrollback=ScrollbackStore(settings.scrollback_dir),
        save_scrollback=settings.save_scrollback,
        notifier=notifier,
        receive_timeout=settings.receive_timeout,
        status=found.status,
    )
    state.load_history(settings.scrollback_load_limit)
    return state
