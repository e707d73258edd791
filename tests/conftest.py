import threading

import pytest

from spruce_outbox.queue.models import DeliveryResult


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingSink:
    """Delivery sink that records every send and can be told to fail."""

    def __init__(self):
        self.sent = []
        self.fail_with = None
        self.raise_with = None
        self.sent_event = threading.Event()

    def send(self, target_id, content):
        self.sent.append((target_id, content))
        self.sent_event.set()
        if self.raise_with is not None:
            raise self.raise_with
        if self.fail_with is not None:
            return DeliveryResult.failed(self.fail_with)
        return DeliveryResult.ok(f"msg-{len(self.sent)}")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return RecordingSink()
