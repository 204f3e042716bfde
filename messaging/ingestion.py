"""
Ingestion Pipeline

A background task that repeatedly runs a bounded `receive` against signal-cli
and hands each non-empty batch to the session as an immutable event. The task
owns no session state; its only output is the event queue.
"""

import asyncio
from typing import Callable, List, Optional, Protocol

from loguru import logger

from signal_cli.exceptions import SignalCliError

from .events import IngestionEvent, MessagesReceived, ReceiveFailed
from .models import IncomingMessage

DEFAULT_RECEIVE_TIMEOUT_SECS = 1
DEFAULT_BACKOFF_SECS = 2.0


class Receiver(Protocol):
    async def receive(self, account: str, timeout_secs: int = 1) -> List[IncomingMessage]: ...


class IngestionPipeline:
    """
    Polls for new messages without blocking the interactive loop.

    Batches are queued in the order their receive calls completed. Failures
    are reported as `ReceiveFailed` events followed by a fixed backoff; they
    never end the loop. Cancellation is cooperative: `stop()` sets a flag that
    is checked once per iteration and then waits for the task to finish, so
    shutdown latency is bounded by the receive timeout.
    """

    def __init__(
        self,
        receiver: Receiver,
        account: str,
        events: Optional["asyncio.Queue[IngestionEvent]"] = None,
        timeout_secs: int = DEFAULT_RECEIVE_TIMEOUT_SECS,
        backoff_secs: float = DEFAULT_BACKOFF_SECS,
        on_event: Optional[Callable[[], None]] = None,
    ):
        self._receiver = receiver
        self._account = account
        self.events: "asyncio.Queue[IngestionEvent]" = (
            events if events is not None else asyncio.Queue()
        )
        self._timeout_secs = timeout_secs
        self._backoff_secs = backoff_secs
        self._on_event = on_event
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def set_event_callback(self, on_event: Optional[Callable[[], None]]) -> None:
        """Update the callback invoked after each event is queued."""
        self._on_event = on_event

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the polling task. Starting twice is a no-op."""
        if self.is_running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="signal-ingestion")
        logger.info(f"Ingestion started for {self._account}")

    async def stop(self) -> None:
        """Signal cancellation and wait for the current iteration to finish."""
        self._stop.set()
        task, self._task = self._task, None
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Ingestion stopped")

    def _emit(self, event: IngestionEvent) -> None:
        self.events.put_nowait(event)
        if self._on_event is not None:
            self._on_event()

    async def _run(self) -> None:
        while not self._stop.is_set():
            error: Optional[str] = None
            try:
                messages = await self._receiver.receive(self._account, self._timeout_secs)
            except SignalCliError as e:
                error = str(e)
            except Exception as e:
                logger.exception("Unexpected receive failure")
                error = f"{type(e).__name__}: {e}"

            if error is not None:
                logger.warning(f"Receive failed, retrying in {self._backoff_secs}s: {error}")
                self._emit(ReceiveFailed(error))
                await self._backoff()
                continue

            if messages:
                logger.debug(f"Queued batch of {len(messages)} message(s)")
                self._emit(MessagesReceived(tuple(messages)))

            # a receiver that returns without suspending must not starve the loop
            await asyncio.sleep(0)

    async def _backoff(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self._backoff_secs)
        except asyncio.TimeoutError:
            pass
