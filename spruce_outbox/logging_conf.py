"""Logging configuration with Betterstack support."""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from logtail import LogtailHandler

from spruce_outbox import settings

# Context fields passed through `extra=` by the queue and dispatcher
CONTEXT_FIELDS = ("queue_id", "conversation_id")


class ContextFormatter(logging.Formatter):
    """Appends outbox context fields to the line when a record carries them."""

    def format(self, record):
        line = super().format(record)
        context = [f"{name}={getattr(record, name)}" for name in CONTEXT_FIELDS if getattr(record, name, None)]
        if context:
            line = f"{line} [{' '.join(context)}]"
        return line


def build_file_handler(logs_dir: Path) -> RotatingFileHandler:
    logs_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(logs_dir / "app.log", maxBytes=10 * 1024 * 1024, backupCount=5)
    handler.setLevel(logging.INFO)
    return handler


def setup_logging():
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []

    formatter = ContextFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler, rotated at 10 MB
    try:
        file_handler = build_file_handler(settings.LOGS_DIR)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except OSError as e:
        root_logger.warning(f"File logging disabled, cannot write to {settings.LOGS_DIR}: {e}")

    # BetterStack handler; structured fields travel as record attributes
    if settings.BETTERSTACK_SOURCE_TOKEN:
        try:
            handler_kwargs = {"source_token": settings.BETTERSTACK_SOURCE_TOKEN}
            if settings.BETTERSTACK_INGEST_HOST:
                handler_kwargs["host"] = settings.BETTERSTACK_INGEST_HOST
            betterstack_handler = LogtailHandler(**handler_kwargs)
            betterstack_handler.setLevel(logging.DEBUG)
            root_logger.addHandler(betterstack_handler)
            host_info = settings.BETTERSTACK_INGEST_HOST or "default (in.logs.betterstack.com)"
            root_logger.info(f"BetterStack logging enabled (host: {host_info})")
        except Exception as e:
            root_logger.warning(f"Failed to initialize BetterStack logging: {e}")

    # requests retries are logged by the Spruce client itself
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return logging.getLogger("spruce_outbox")


logger = setup_logging()
