import logging

import pytest

from spruce_outbox.logging_conf import ContextFormatter, build_file_handler


def make_record(**extra):
    record = logging.LogRecord("spruce_outbox", logging.INFO, __file__, 1, "Sent queued message", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_context_fields_are_appended():
    formatter = ContextFormatter("%(levelname)s - %(message)s")
    line = formatter.format(make_record(queue_id="abc", conversation_id="conv-1"))
    assert line == "INFO - Sent queued message [queue_id=abc conversation_id=conv-1]"


def test_plain_records_are_unchanged():
    formatter = ContextFormatter("%(levelname)s - %(message)s")
    assert formatter.format(make_record()) == "INFO - Sent queued message"


def test_file_handler_creates_logs_dir(tmp_path):
    logs_dir = tmp_path / "nested" / "logs"
    handler = build_file_handler(logs_dir)
    try:
        assert logs_dir.is_dir()
        assert handler.baseFilename == str(logs_dir / "app.log")
    finally:
        handler.close()


def test_file_handler_raises_for_unwritable_location(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")

    with pytest.raises(OSError):
        build_file_handler(blocker / "logs")
