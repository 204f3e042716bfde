"""
signal-tui entry point.

Resolves configuration, discovers the signal-cli account and its
conversations, replays scrollback and runs the terminal UI.
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger

from config.logging_config import configure_logging
from config.settings import ConfigurationError, load_or_create_settings
from messaging.ingestion import IngestionPipeline
from messaging.notifications import create_notifier
from messaging.runtime import SessionRuntime
from messaging.startup import StartupError, create_session
from signal_cli.client import SignalCli
from ui.app import SignalTuiApp
from ui.keys import KeyInterpreter

app = typer.Typer(
    name="signal-tui",
    help="Terminal client for Signal, driven through signal-cli",
    add_completion=False,
)


async def _run(
    config: Optional[Path], account: Optional[str], signal_cli_bin: Optional[str]
) -> None:
    settings = load_or_create_settings(config, signal_cli_bin=signal_cli_bin)
    configure_logging(settings.log_file, settings.log_level)
    logger.info("Starting signal-tui...")

    client = SignalCli(settings.signal_cli_bin)
    state = await create_session(
        settings, client, account=account, notifier=create_notifier(settings.notify)
    )
    pipeline = IngestionPipeline(
        client,
        state.account,
        timeout_secs=settings.receive_timeout,
        backoff_secs=settings.receive_backoff,
    )
    runtime = SessionRuntime(state, pipeline, keys=KeyInterpreter())
    await SignalTuiApp(runtime).run_async()


@app.command()
def main(
    account: Optional[str] = typer.Option(
        None, "--account", "-a", help="Account number, e.g. +15551234567"
    ),
    signal_cli_bin: Optional[str] = typer.Option(
        None, "--signal-cli", help="Path to the signal-cli binary"
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", help="Path to config.toml"
    ),
) -> None:
    """Chat over Signal from the terminal.

    Keys: j/k or arrows move, gg/G top/bottom, a add recipient, i compose,
    Enter send, Esc cancel, r sync once, q quit.
    """
    if not sys.stdin.isatty() or not sys.stdout.isatty():
        typer.echo("signal-tui must be run in an interactive TTY", err=True)
        raise typer.Exit(code=1)

    try:
        asyncio.run(_run(config, account, signal_cli_bin))
    except (ConfigurationError, StartupError) as e:
        typer.echo(f"signal-tui: {e}", err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
