"""Session-scoped outbox: stage, undo and auto-send patient messages."""
import threading
import time
from contextlib import contextmanager
from typing import Callable, List, Optional

from spruce_outbox import settings
from spruce_outbox.dispatcher import DeliverySink, Dispatcher
from spruce_outbox.logging_conf import logger
from spruce_outbox.notifications import Notifier
from spruce_outbox.queue.models import DispatchOutcome, PendingView, QueuedSend, UndoResult
from spruce_outbox.queue.send_queue import SendQueue
from spruce_outbox.spruce_client import SpruceClient
from spruce_outbox.ticker import Ticker


class Outbox:
    """Owns the send queue for one session.

    Views come and go: while at least one view is open a ticker dispatches
    due messages. Closing a view leaves staged messages pending; they go out
    on the first tick after a view is reopened. Closing the outbox itself
    cancels whatever is still pending.
    """

    def __init__(
        self,
        sink: Optional[DeliverySink] = None,
        delay: Optional[float] = None,
        tick_interval: Optional[float] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.time,
    ):
        if sink is None:
            sink = SpruceClient()

        self.delay = delay if delay is not None else settings.SEND_DELAY_SECONDS
        self.tick_interval = tick_interval if tick_interval is not None else settings.TICK_INTERVAL
        self.clock = clock
        self.notifier = notifier or Notifier()
        self.queue = SendQueue(clock=clock)
        self.dispatcher = Dispatcher(self.queue, sink, notifier=self.notifier, clock=clock)

        self._ticker: Optional[Ticker] = None
        self._open_views = 0
        self._views_lock = threading.Lock()
        self.closed = False

    def stage(self, target_id: str, target_label: str, content: str, delay: Optional[float] = None) -> str:
        """Queue a message for delayed sending and return its queue id."""
        if self.closed:
            raise RuntimeError("Outbox is closed")
        if not target_id:
            raise ValueError("A conversation is required to stage a message")
        if not content or not content.strip():
            raise ValueError("Cannot stage an empty message")

        delay = self.delay if delay is None else delay
        queue_id = self.queue.enqueue(target_id, target_label, content, delay)
        self.notifier.info("Message Staged", f"Will send in {max(0, round(delay))} seconds")
        return queue_id

    def undo(self, queue_id: str) -> UndoResult:
        """Pull a staged message back before it is sent."""
        item = self.queue.cancel(queue_id)
        if item is None:
            self.notifier.info("Too Late", "The message was already sent or is no longer queued")
            return UndoResult(restored=False)

        self.notifier.info("Message Cancelled", f"Draft for {item.target_label or item.target_id} restored")
        return UndoResult(restored=True, item=item)

    def send_now(self, queue_id: str) -> Optional[DispatchOutcome]:
        """Skip the remaining delay and send a staged message immediately."""
        item = self.queue.claim(queue_id)
        if item is None:
            logger.debug(f"Send now ignored, not pending: {queue_id}")
            return None
        return self.dispatcher.dispatch(item)

    def tick(self, now: Optional[float] = None) -> List[DispatchOutcome]:
        return self.dispatcher.tick(now)

    def pending(self, now: Optional[float] = None) -> List[PendingView]:
        """Countdown projection of staged messages, in staging order."""
        if now is None:
            now = self.clock()
        return [PendingView.from_item(item, now) for item in self.queue.list_pending()]

    @contextmanager
    def view(self):
        """Keep the dispatch ticker running for the lifetime of a view."""
        self._open_view()
        try:
            yield self
        finally:
            self._close_view()

    @property
    def ticking(self) -> bool:
        return self._ticker is not None and self._ticker.running

    def close(self) -> List[QueuedSend]:
        """End the session: stop ticking and cancel every pending message."""
        with self._views_lock:
            ticker, self._ticker = self._ticker, None
            self._open_views = 0
        if ticker:
            ticker.stop()

        self.closed = True
        cancelled = self.queue.cancel_all()
        if cancelled:
            logger.info(f"Outbox closed with {len(cancelled)} unsent messages")
        return cancelled

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _open_view(self):
        if self.closed:
            raise RuntimeError("Outbox is closed")
        with self._views_lock:
            self._open_views += 1
            if self._ticker is None:
                self._ticker = Ticker(self.tick, interval=self.tick_interval, clock=self.clock)
                self._ticker.start()

    def _close_view(self):
        with self._views_lock:
            if self._open_views == 0:
                return
            self._open_views -= 1
            if self._open_views > 0:
                return
            ticker, self._ticker = self._ticker, None
        if ticker:
            ticker.stop()
