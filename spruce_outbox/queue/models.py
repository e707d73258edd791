"""Queue data models."""
import math
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SendState(str, Enum):
    """Lifecycle of a staged message. Both non-pending states are terminal."""

    PENDING = "pending"
    DISPATCHED = "dispatched"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class QueuedSend:
    """A message waiting in the outbox for its scheduled send time."""

    id: str
    target_id: str  # Spruce conversation ID
    target_label: str  # Recipient display name, UI only
    content: str
    scheduled_at: float  # Epoch seconds when the item becomes due
    enqueued_at: float

    @classmethod
    def create(cls, target_id: str, target_label: str, content: str, delay: float, now: float):
        """Factory method to create a QueuedSend due `delay` seconds after `now`."""
        return cls(
            id=uuid.uuid4().hex,
            target_id=target_id,
            target_label=target_label,
            content=content,
            scheduled_at=now + delay,
            enqueued_at=now,
        )

    def is_due(self, now: float) -> bool:
        return self.scheduled_at <= now


@dataclass(frozen=True)
class PendingView:
    """Read-only countdown projection of a pending item."""

    id: str
    target_id: str
    target_label: str
    content: str
    scheduled_at: float
    remaining_seconds: int

    @classmethod
    def from_item(cls, item: QueuedSend, now: float):
        remaining = max(0, math.ceil(item.scheduled_at - now))
        return cls(
            id=item.id,
            target_id=item.target_id,
            target_label=item.target_label,
            content=item.content,
            scheduled_at=item.scheduled_at,
            remaining_seconds=remaining,
        )


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of handing one message to the delivery sink."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, message_id: Optional[str] = None):
        return cls(success=True, message_id=message_id)

    @classmethod
    def failed(cls, error: str):
        return cls(success=False, error=error)


@dataclass(frozen=True)
class DispatchOutcome:
    """A dispatched item together with its delivery result."""

    item: QueuedSend
    result: DeliveryResult


@dataclass(frozen=True)
class UndoResult:
    """Result of an undo request; `restored` is False when it came too late."""

    restored: bool
    item: Optional[QueuedSend] = None

    @property
    def content(self) -> Optional[str]:
        return self.item.content if self.item else None

    @property
    def target_id(self) -> Optional[str]:
        return self.item.target_id if self.item else None
