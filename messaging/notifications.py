"""Desktop notifications for incoming messages via notify-send."""

import os
import shutil
import subprocess
from typing import Optional, Protocol

from loguru import logger

NOTIFY_BODY_LIMIT = 200


def truncate_body(body: str, limit: int = NOTIFY_BODY_LIMIT) -> str:
    """Cut a message body to `limit` characters, marking the cut with '...'."""
    if len(body) <= limit:
        return body
    return body[:limit] + "..."


class Notifier(Protocol):
    def notify(self, chat: str, sender: str, body: str) -> None: ...


class DesktopNotifier:
    """Fire-and-forget notifications through the `notify-send` binary."""

    def __init__(
        self, app_name: str = "signal-tui", expire_ms: int = 4000, binary: str = "notify-send"
    ):
        self.app_name = app_name
        self.expire_ms = expire_ms
        self.binary = binary

    def available(self) -> bool:
        """True when a graphical session exists and notify-send is on PATH."""
        if not (os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY")):
            return False
        return shutil.which(self.binary) is not None

    def notify(self, chat: str, sender: str, body: str) -> None:
        try:
            subprocess.Popen(
                [
                    self.binary,
                    "-a",
                    self.app_name,
                    "-t",
                    str(self.expire_ms),
                    f"Signal: {chat}",
                    f"{sender}: {body}",
                ],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            logger.warning(f"notify-send failed: {e}")


def create_notifier(enabled: bool) -> Optional[DesktopNotifier]:
    """Return a notifier when enabled in config and usable on this system."""
    if not enabled:
        return None
    notifier = DesktopNotifier()
    if not notifier.available():
        logger.info("Desktop notifications disabled: no display or notify-send")
        return None
    return notifier
