import pytest

from spruce_outbox.notifications import Notifier
from spruce_outbox.outbox import Outbox
from spruce_outbox.queue.models import SendState


@pytest.fixture
def outbox(clock, sink):
    box = Outbox(sink=sink, delay=30, tick_interval=0.01, notifier=Notifier(), clock=clock)
    yield box
    box.close()


def test_stage_uses_default_delay(outbox, clock):
    clock.now = 100.0
    queue_id = outbox.stage("conv-1", "Jean Tremblay", "Bonjour")

    [view] = outbox.pending()
    assert view.id == queue_id
    assert view.scheduled_at == 130.0
    assert view.remaining_seconds == 30
    assert outbox.notifier.recent()[-1].description == "Will send in 30 seconds"


def test_stage_rejects_missing_target_or_content(outbox):
    with pytest.raises(ValueError):
        outbox.stage("", "Nobody", "hello")
    with pytest.raises(ValueError):
        outbox.stage("conv-1", "Alice", "   ")
    assert outbox.pending() == []


def test_pending_countdown(outbox, clock):
    outbox.stage("conv-1", "Alice", "hello", delay=10)

    clock.now = 2.5
    assert outbox.pending()[0].remaining_seconds == 8
    clock.now = 12.0
    assert outbox.pending()[0].remaining_seconds == 0


def test_undo_returns_draft(outbox, clock, sink):
    queue_id = outbox.stage("conv-1", "Alice", "original text")
    clock.now = 10.0

    result = outbox.undo(queue_id)

    assert result.restored
    assert result.content == "original text"
    assert result.target_id == "conv-1"
    assert outbox.tick(30.0) == []
    assert sink.sent == []


def test_undo_after_send_is_too_late(outbox, sink):
    queue_id = outbox.stage("conv-1", "Alice", "hello")
    outbox.tick(30.0)

    result = outbox.undo(queue_id)

    assert not result.restored
    assert result.content is None
    assert sink.sent == [("conv-1", "hello")]
    assert outbox.notifier.recent()[-1].title == "Too Late"


def test_send_now_skips_delay(outbox, sink):
    queue_id = outbox.stage("conv-1", "Alice", "hello")

    outcome = outbox.send_now(queue_id)

    assert outcome.result.success
    assert sink.sent == [("conv-1", "hello")]
    assert outbox.send_now(queue_id) is None
    assert outbox.tick(30.0) == []


def test_view_runs_ticker_and_dispatches(outbox, clock, sink):
    clock.now = 0.0
    queue_id = outbox.stage("conv-1", "Alice", "hello", delay=0)

    with outbox.view():
        assert outbox.ticking
        assert sink.sent_event.wait(2)

    assert not outbox.ticking
    assert outbox.queue.state(queue_id) == SendState.DISPATCHED


def test_closing_view_keeps_items_pending(outbox, clock, sink):
    queue_id = outbox.stage("conv-1", "Alice", "hello", delay=30)

    with outbox.view():
        pass

    assert not outbox.ticking
    assert outbox.queue.state(queue_id) == SendState.PENDING

    # Becomes due while no view is open, goes out once a view reopens
    clock.now = 31.0
    assert sink.sent == []
    with outbox.view():
        assert sink.sent_event.wait(2)
    assert sink.sent == [("conv-1", "hello")]


def test_nested_views_share_one_ticker(outbox):
    with outbox.view():
        ticker = outbox._ticker
        with outbox.view():
            assert outbox._ticker is ticker
        assert outbox.ticking
    assert not outbox.ticking


def test_close_cancels_pending_and_rejects_new_work(clock, sink):
    outbox = Outbox(sink=sink, delay=30, tick_interval=0.01, clock=clock)
    queue_id = outbox.stage("conv-1", "Alice", "hello")

    with outbox.view():
        cancelled = outbox.close()
        assert not outbox.ticking

    assert [i.id for i in cancelled] == [queue_id]
    assert outbox.queue.state(queue_id) == SendState.CANCELLED
    with pytest.raises(RuntimeError):
        outbox.stage("conv-1", "Alice", "again")
    with pytest.raises(RuntimeError):
        with outbox.view():
            pass


def test_context_manager_closes(clock, sink):
    with Outbox(sink=sink, clock=clock) as outbox:
        outbox.stage("conv-1", "Alice", "hello")
    assert outbox.closed
    assert outbox.pending() == []
