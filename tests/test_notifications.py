from spruce_outbox.notifications import Notifier


def test_notifications_are_buffered_and_drained():
    notifier = Notifier()
    notifier.info("Message Staged", "Will send in 30 seconds")
    notifier.success("Message Sent", "Message sent to Alice")

    assert [n.level for n in notifier.recent()] == ["info", "success"]
    assert [n.title for n in notifier.drain()] == ["Message Staged", "Message Sent"]
    assert notifier.drain() == []


def test_buffer_is_bounded():
    notifier = Notifier(maxlen=2)
    for i in range(5):
        notifier.info(f"n{i}")

    assert [n.title for n in notifier.recent()] == ["n3", "n4"]


def test_listeners_receive_notifications_and_failures_are_contained():
    notifier = Notifier()
    received = []

    def broken(notification):
        raise RuntimeError("listener bug")

    notifier.listeners.extend([broken, received.append])
    note = notifier.error("Send Failed", "timeout")

    assert received == [note]
