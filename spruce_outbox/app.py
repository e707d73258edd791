"""Command-line entry point: stage one message, show the countdown, undo on Ctrl-C."""
import argparse
import signal
import sys
import time
from typing import List, Optional

from spruce_outbox.logging_conf import logger
from spruce_outbox import settings
from spruce_outbox.notifications import Notification
from spruce_outbox.outbox import Outbox
from spruce_outbox.queue.models import SendState
from spruce_outbox.spruce_client import SpruceAPIError, SpruceClient


class Application:
    """Stages a single message through the outbox and waits for the outcome."""

    def __init__(self, args: argparse.Namespace, client: Optional[SpruceClient] = None):
        self.args = args
        self.client = client or SpruceClient()
        self.outbox: Optional[Outbox] = None
        self.notifications: List[Notification] = []

    def start(self):
        """Validate configuration and log the startup banner."""
        logger.info("=" * 50)
        logger.info("Spruce Outbox")
        logger.info("=" * 50)
        logger.info(f"API: {self.client.base_url}")
        logger.info(f"Send delay: {self.args.delay}s")
        logger.info("=" * 50)

        settings.validate_config()

    def run(self) -> int:
        """Main loop. Returns the process exit code."""
        self.start()

        try:
            target_id, target_label = self._resolve_target()
        except (SpruceAPIError, LookupError) as e:
            logger.error(f"Could not resolve conversation: {e}")
            return 1

        self.outbox = Outbox(sink=self.client, delay=self.args.delay)
        self.outbox.notifier.listeners.append(self.notifications.append)
        try:
            try:
                queue_id = self.outbox.stage(target_id, target_label, self.args.message)
            except ValueError as e:
                logger.error(f"Cannot stage message: {e}")
                return 1

            with self.outbox.view():
                self._wait_until_sent(queue_id)
        except KeyboardInterrupt:
            undo = self.outbox.undo(queue_id)
            if undo.restored:
                print(f"Undone. Draft for {target_label}:")
                print(undo.content)
                return 0
            print("Too late to undo, the message was already sent.")
        finally:
            self.outbox.close()

        return 0 if self._delivered() else 1

    def _resolve_target(self):
        if self.args.conversation:
            return self.args.conversation, self.args.label or self.args.conversation

        matches = self.client.search_conversations(self.args.search)
        if not matches:
            raise LookupError(f"No conversation matches {self.args.search!r}")

        conversation = matches[0]
        label = self.args.label or conversation.get("title") or conversation["id"]
        logger.info(f"Resolved {self.args.search!r} to conversation {conversation['id']} ({label})")
        return conversation["id"], label

    def _wait_until_sent(self, queue_id: str):
        while self.outbox.queue.state(queue_id) == SendState.PENDING:
            for view in self.outbox.pending():
                if view.id == queue_id:
                    print(f"Sending to {view.target_label} in {view.remaining_seconds}s (Ctrl-C to undo)")
            time.sleep(self.outbox.tick_interval)

    def _delivered(self) -> bool:
        levels = [n.level for n in self.notifications if n.level in ("success", "error")]
        return bool(levels) and levels[-1] == "success"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spruce-outbox",
        description="Send a message to a Spruce conversation after an undo window.",
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--conversation", help="Spruce conversation ID")
    target.add_argument("--search", help="Pick the first conversation matching this name")
    parser.add_argument("--label", help="Recipient name shown in the countdown")
    parser.add_argument(
        "--delay",
        type=float,
        default=settings.SEND_DELAY_SECONDS,
        help=f"Seconds before the message is sent (default: {settings.SEND_DELAY_SECONDS:g})",
    )
    parser.add_argument("message", help="Message body")
    return parser


def main(argv: Optional[List[str]] = None):
    """Entry point."""
    args = build_parser().parse_args(argv)
    app = Application(args)

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, signal_handler)

    try:
        code = app.run()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
