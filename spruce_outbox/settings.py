"""Configuration for Spruce Outbox."""
import os
from pathlib import Path
from urllib.parse import urlparse
from dotenv import load_dotenv

load_dotenv()

# Log files land in the working directory unless LOGS_DIR says otherwise
LOGS_DIR = Path(os.getenv("LOGS_DIR") or Path.cwd() / "logs")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
BETTERSTACK_SOURCE_TOKEN = os.getenv("BETTERSTACK_SOURCE_TOKEN")
BETTERSTACK_INGEST_HOST = os.getenv("BETTERSTACK_INGEST_HOST")

# Spruce Health API
SPRUCE_API_TOKEN = os.getenv("SPRUCE_API_TOKEN")
SPRUCE_API_BASE_URL = os.getenv("SPRUCE_API_BASE_URL", "https://api.sprucehealth.com/v1")
SPRUCE_MAX_RETRIES = int(os.getenv("SPRUCE_MAX_RETRIES", "3"))
SPRUCE_RETRY_DELAY = float(os.getenv("SPRUCE_RETRY_DELAY", "1.0"))  # base backoff seconds
SPRUCE_TIMEOUT = int(os.getenv("SPRUCE_TIMEOUT", "30"))

# Outbox settings
SEND_DELAY_SECONDS = float(os.getenv("SEND_DELAY_SECONDS", "30"))  # undo window
TICK_INTERVAL = float(os.getenv("TICK_INTERVAL", "1.0"))  # seconds between queue checks
NOTIFICATION_HISTORY = int(os.getenv("NOTIFICATION_HISTORY", "50"))


def validate_config():
    """Validate required configuration."""
    errors = []

    if not SPRUCE_API_TOKEN:
        errors.append("SPRUCE_API_TOKEN is required")

    parsed = urlparse(SPRUCE_API_BASE_URL or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        errors.append(f"SPRUCE_API_BASE_URL must be an http(s) URL: {SPRUCE_API_BASE_URL}")

    if TICK_INTERVAL <= 0:
        errors.append(f"TICK_INTERVAL must be positive: {TICK_INTERVAL}")

    if SEND_DELAY_SECONDS < 0:
        errors.append(f"SEND_DELAY_SECONDS must not be negative: {SEND_DELAY_SECONDS}")

    if errors:
        raise ValueError("Config errors:\n  " + "\n  ".join(errors))
