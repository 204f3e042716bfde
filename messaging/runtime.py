"""Consumer loop tying ingestion, user input and rendering together."""

import asyncio
import inspect
from collections import deque
from typing import Any, Callable, Deque, List, Optional, Protocol, Union

from loguru import logger

from .events import InputEvent, KeyPress
from .ingestion import IngestionPipeline
from .models import Mode
from .state import SessionState, Snapshot

DEFAULT_TICK_SECS = 0.2


class KeyInterpreter(Protocol):
    def interpret(
        self, mode: Mode, key: str, character: Optional[str] = None
    ) -> List[InputEvent]: ...


class SessionRuntime:
    """
    The only task that mutates `SessionState`.

    Each cycle drains every pending ingestion event, then every pending input
    event, renders one snapshot, and waits until new work arrives or the
    render tick elapses.

    Raw key presses are interpreted when they are handled rather than when
    they are submitted, so keys typed right after a mode switch see the new
    mode.
    """

    def __init__(
        self,
        state: SessionState,
        pipeline: IngestionPipeline,
        keys: Optional[KeyInterpreter] = None,
        tick_secs: float = DEFAULT_TICK_SECS,
    ):
        self.state = state
        self._pipeline = pipeline
        self._keys = keys
        self._tick_secs = tick_secs
        self._input: Deque[Union[InputEvent, KeyPress]] = deque()
        self._activity = asyncio.Event()
        pipeline.set_event_callback(self._wake)

    def _wake(self) -> None:
        self._activity.set()

    def submit(self, event: Union[InputEvent, KeyPress]) -> None:
        """Queue an input event or raw key press from the presentation layer."""
        self._input.append(event)
        self._wake()

    def drain_ingestion(self) -> int:
        drained = 0
        while True:
            try:
                event = self._pipeline.events.get_nowait()
            except asyncio.QueueEmpty:
                return drained
            self.state.apply(event)
            drained += 1

    def _expand(self, item: Union[InputEvent, KeyPress]) -> List[InputEvent]:
        if not isinstance(item, KeyPress):
            return [item]
        if self._keys is None:
            return []
        return self._keys.interpret(self.state.mode, item.key, item.character)

    async def drain_input(self) -> int:
        drained = 0
        while self._input and not self.state.quit_requested:
            for event in self._expand(self._input.popleft()):
                if self.state.quit_requested:
                    break
                await self.state.handle(event)
                drained += 1
        return drained

    async def _wait_for_activity(self) -> None:
        try:
            await asyncio.wait_for(self._activity.wait(), timeout=self._tick_secs)
        except asyncio.TimeoutError:
            pass

    async def run(self, render: Callable[[Snapshot], Any]) -> None:
        """
        Run until a Quit event is handled, then stop and join ingestion.

        Args:
            render: Called with a fresh snapshot once per cycle; may be async
        """
        self._pipeline.start()
        try:
            while not self.state.quit_requested:
                self._activity.clear()
                self.drain_ingestion()
                await self.drain_input()
                if self.state.quit_requested:
                    break
                result = render(self.state.snapshot())
                if inspect.isawaitable(result):
                    await result
                await self._wait_for_activity()
        finally:
            await self._pipeline.stop()
            # the joined receive may have queued one last batch
            self.drain_ingestion()
            logger.info("Session ended")
