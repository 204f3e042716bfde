"""Textual front end.

Renders session snapshots and forwards key presses to the session runtime.
It never touches session state directly.
"""

from rich.text import Text
from textual import events, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.widgets import Static

from messaging.events import KeyPress, Quit
from messaging.models import Direction, Mode, TargetKind
from messaging.runtime import SessionRuntime
from messaging.state import Snapshot

APP_CSS = """
#main {
    height: 1fr;
}

#targets {
    width: 30%;
    border: round $accent;
}

#chat {
    width: 70%;
    border: round $accent;
}

#status {
    height: 4;
    border: round $secondary;
}
"""

# Only the most recent lines of a conversation are drawn
CHAT_RENDER_LIMIT = 200

_MODE_HELP = {
    Mode.NORMAL: "normal: j/k move, i insert, a add-recipient, r sync, q quit",
    Mode.COMPOSING: "insert: type, Enter send, Esc cancel",
    Mode.ADDING_RECIPIENT: "add-recipient: type +E164, Enter add, Esc cancel",
}


def render_targets(snapshot: Snapshot) -> Text:
    text = Text()
    for i, view in enumerate(snapshot.targets):
        prefix = "#" if view.target.kind is TargetKind.GROUP else "@"
        badge = f" ({view.unread})" if view.unread > 0 else ""
        style = "bold black on bright_green" if i == snapshot.selected else ""
        if i:
            text.append("\n")
        text.append(f"{prefix} ", style=style)
        text.append(f"{view.target.display_name}{badge}", style=style)
    return text


def render_chat(snapshot: Snapshot) -> Text:
    text = Text()
    for i, msg in enumerate(snapshot.messages[-CHAT_RENDER_LIMIT:]):
        arrow = ">" if msg.direction is Direction.OUTBOUND else "<"
        if i:
            text.append("\n")
        text.append(
            f"{msg.format_timestamp()} {arrow} {msg.sender or '?'}: ", style="grey62"
        )
        text.append(msg.body)
    return text


def render_status(snapshot: Snapshot) -> Text:
    text = Text()
    text.append(snapshot.account, style="cyan")
    text.append(f"  {_MODE_HELP[snapshot.mode]}\n")
    if snapshot.mode is Mode.NORMAL:
        text.append(snapshot.status)
    else:
        text.append("> ", style="yellow")
        text.append(snapshot.input)
    return text


class SignalTuiApp(App):
    """Two-pane chat UI: conversation list on the left, messages on the right."""

    CSS = APP_CSS
    TITLE = "signal-tui"

    BINDINGS = [
        Binding("ctrl+c", "request_quit", "Quit", priority=True, show=False),
    ]

    def __init__(self, runtime: SessionRuntime) -> None:
        super().__init__()
        self._runtime = runtime

    def compose(self) -> ComposeResult:
        with Horizontal(id="main"):
            yield Static(id="targets")
            yield Static(id="chat")
        yield Static(id="status")

    def on_mount(self) -> None:
        self._run_session()

    @work(exclusive=True)
    async def _run_session(self) -> None:
        try:
            await self._runtime.run(self.show_snapshot)
        finally:
            self.exit()

    def show_snapshot(self, snapshot: Snapshot) -> None:
        targets = self.query_one("#targets", Static)
        targets.border_title = f"Chats ({len(snapshot.targets)})"
        targets.update(render_targets(snapshot))

        chat = self.query_one("#chat", Static)
        selected = snapshot.selected_target
        chat.border_title = (
            f"{selected.display_name}  [{selected.address}]"
            if selected
            else "No chat selected"
        )
        chat.update(render_chat(snapshot))

        status = self.query_one("#status", Static)
        status.border_title = "Status"
        status.update(render_status(snapshot))

        unread = snapshot.total_unread
        self.title = f"signal-tui ({unread})" if unread else "signal-tui"

    def on_key(self, event: events.Key) -> None:
        self._runtime.submit(KeyPress(event.key, event.character))
        event.stop()

    def action_request_quit(self) -> None:
        self._runtime.submit(Quit())
