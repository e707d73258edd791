"""Periodic tick thread that drives the outbox."""
import threading
import time
from typing import Callable, Optional

from spruce_outbox import settings
from spruce_outbox.logging_conf import logger


class Ticker:
    """Calls `callback(now)` every `interval` seconds on a background thread.

    The ticker belongs to whoever started it. Once `stop()` returns the
    callback is not invoked again.
    """

    def __init__(
        self,
        callback: Callable[[float], object],
        interval: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        name: str = "outbox-ticker",
    ):
        self.callback = callback
        self.interval = interval if interval is not None else settings.TICK_INTERVAL
        self.clock = clock
        self.name = name
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._tick_lock = threading.RLock()

    def start(self):
        """Start the ticker in a background thread."""
        if self.running:
            logger.warning(f"Ticker {self.name} is already running")
            return

        if self.interval <= 0:
            raise ValueError(f"Tick interval must be positive: {self.interval}")

        self._stop_event.clear()
        self.running = True
        self.thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self.thread.start()
        logger.info(f"Ticker {self.name} started (interval: {self.interval}s)")

    def stop(self):
        """Stop the ticker and wait for an in-flight tick to finish."""
        if not self.running:
            return

        # Holding the tick lock means no callback is mid-flight once we flip the flag
        with self._tick_lock:
            self.running = False
            self._stop_event.set()

        if self.thread and self.thread is not threading.current_thread():
            self.thread.join(timeout=10)
        self.thread = None
        logger.info(f"Ticker {self.name} stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False

    def _run(self):
        """Main ticker loop."""
        logger.debug(f"Ticker thread {self.name} started")

        while not self._stop_event.wait(self.interval):
            self._tick()

        logger.debug(f"Ticker thread {self.name} stopped")

    def _tick(self):
        with self._tick_lock:
            if not self.running:
                return
            try:
                self.callback(self.clock())
            except Exception as e:
                logger.error(f"Ticker {self.name} callback error: {e}", exc_info=True)
