"""In-memory queue of messages waiting for their send time."""
import itertools
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

from spruce_outbox.logging_conf import logger
from spruce_outbox.queue.models import QueuedSend, SendState


class SendQueue:
    """Holds pending sends and hands out the ones that are due.

    Every mutation happens under a single lock, so a drain and a cancel for
    the same item never both succeed: whichever takes the lock first wins.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._lock = threading.Lock()
        self._seq = itertools.count()

        # id -> (enqueue sequence, item); dicts keep insertion order
        self._pending: Dict[str, Tuple[int, QueuedSend]] = {}

        # Terminal states of removed items, so ids are never reused
        self._resolved: Dict[str, SendState] = {}

    def enqueue(self, target_id: str, target_label: str, content: str, delay: float) -> str:
        """Stage a message due `delay` seconds from now and return its id."""
        item = QueuedSend.create(target_id, target_label, content, delay, self.clock())
        with self._lock:
            assert item.id not in self._pending and item.id not in self._resolved, (
                f"duplicate queue id {item.id}"
            )
            self._pending[item.id] = (next(self._seq), item)

        logger.info(
            f"Queued message for {item.target_label or item.target_id} (due in {delay:.0f}s)",
            extra={"queue_id": item.id, "conversation_id": item.target_id},
        )
        return item.id

    def cancel(self, queue_id: str) -> Optional[QueuedSend]:
        """Remove a pending item. Returns None if it is unknown or already sent."""
        item = self._remove(queue_id, SendState.CANCELLED)
        if item is None:
            logger.debug(f"Cancel ignored, not pending: {queue_id}")
        else:
            logger.info(f"Cancelled queued message {queue_id}", extra={"queue_id": queue_id})
        return item

    def claim(self, queue_id: str) -> Optional[QueuedSend]:
        """Remove a pending item for immediate dispatch, ignoring its schedule."""
        return self._remove(queue_id, SendState.DISPATCHED)

    def drain_due(self, now: Optional[float] = None) -> List[QueuedSend]:
        """Remove and return every item due at `now`, earliest first.

        Items sharing a send time come back in enqueue order.
        """
        if now is None:
            now = self.clock()

        with self._lock:
            due = [
                (item.scheduled_at, seq, item)
                for seq, item in self._pending.values()
                if item.is_due(now)
            ]
            for _, _, item in due:
                del self._pending[item.id]
                self._resolved[item.id] = SendState.DISPATCHED

        due.sort(key=lambda entry: (entry[0], entry[1]))
        return [item for _, _, item in due]

    def cancel_all(self) -> List[QueuedSend]:
        """Cancel everything still pending, in enqueue order."""
        with self._lock:
            items = [item for _, item in self._pending.values()]
            for item in items:
                self._resolved[item.id] = SendState.CANCELLED
            self._pending.clear()

        if items:
            logger.info(f"Cancelled {len(items)} queued messages")
        return items

    def list_pending(self) -> List[QueuedSend]:
        """Snapshot of pending items in enqueue order."""
        with self._lock:
            return [item for _, item in self._pending.values()]

    def get(self, queue_id: str) -> Optional[QueuedSend]:
        with self._lock:
            entry = self._pending.get(queue_id)
            return entry[1] if entry else None

    def state(self, queue_id: str) -> Optional[SendState]:
        """Current lifecycle state of an id, or None if it was never queued."""
        with self._lock:
            if queue_id in self._pending:
                return SendState.PENDING
            return self._resolved.get(queue_id)

    def size(self) -> int:
        with self._lock:
            return len(self._pending)

    def __len__(self) -> int:
        return self.size()

    def _remove(self, queue_id: str, final_state: SendState) -> Optional[QueuedSend]:
        with self._lock:
            entry = self._pending.pop(queue_id, None)
            if entry is None:
                return None
            self._resolved[queue_id] = final_state
            return entry[1]
