"""Dispatch due outbox items to the delivery sink."""
import time
from typing import Callable, List, Optional, Protocol

from spruce_outbox.logging_conf import logger
from spruce_outbox.notifications import Notifier
from spruce_outbox.queue.models import DeliveryResult, DispatchOutcome, QueuedSend
from spruce_outbox.queue.send_queue import SendQueue


class DeliverySink(Protocol):
    def send(self, target_id: str, content: str) -> DeliveryResult: ...


class Dispatcher:
    """Drains due items on every tick and sends each one exactly once.

    Delivery is at-most-once: an item is removed from the queue before the
    send is attempted, and a failed send is reported, never re-queued.
    """

    def __init__(
        self,
        queue: SendQueue,
        sink: DeliverySink,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.queue = queue
        self.sink = sink
        self.notifier = notifier or Notifier()
        self.clock = clock

    def tick(self, now: Optional[float] = None) -> List[DispatchOutcome]:
        """Send everything due at `now`, in due order."""
        if now is None:
            now = self.clock()

        due = self.queue.drain_due(now)
        if due:
            logger.debug(f"Dispatching {len(due)} due messages")
        return [self.dispatch(item) for item in due]

    def dispatch(self, item: QueuedSend) -> DispatchOutcome:
        """Hand one claimed item to the sink and report the outcome."""
        recipient = item.target_label or item.target_id
        try:
            result = self.sink.send(item.target_id, item.content)
        except Exception as e:
            logger.error(
                f"Failed to send queued message {item.id} to {recipient}: {e}",
                exc_info=True,
                extra={"queue_id": item.id, "conversation_id": item.target_id},
            )
            result = DeliveryResult.failed(str(e) or e.__class__.__name__)

        if result.success:
            logger.info(
                f"Sent queued message {item.id} to {recipient}",
                extra={"queue_id": item.id, "conversation_id": item.target_id},
            )
            self.notifier.success("Message Sent", f"Message sent to {recipient}")
        else:
            self.notifier.error("Send Failed", f"Could not send message to {recipient}: {result.error}")

        return DispatchOutcome(item=item, result=result)
