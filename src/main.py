"""Entry point for the incident feed watcher."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Optional, Sequence

from incident_bot import config, feed, notifier, processor, storage

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
LOGGER = logging.getLogger(__name__)

DEFAULT_INTERVAL_MINUTES = 10


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Notify new incidents from a status feed.")
    parser.add_argument(
        "--every",
        type=int,
        nargs="?",
        const=DEFAULT_INTERVAL_MINUTES,
        default=None,
        metavar="MINUTES",
        help="keep running and poll the feed every MINUTES (default %(const)s)",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="forget every incident already notified and exit",
    )
    return parser.parse_args(argv)


def build_processor(settings: config.Settings) -> processor.FeedProcessor:
    properties = storage.SQLitePropertyStore(settings.database_path)
    store = storage.SeenSetStore(properties, retention_limit=settings.retention_limit)
    return processor.FeedProcessor(
        settings,
        store,
        notifier.create_sender(settings),
        notifier.resolve_recipient(settings),
    )


def run_once(bot: processor.FeedProcessor) -> int:
    """Run a single pass and map its failures to an exit status."""

    try:
        bot.run()
    except (feed.FeedFetchError, feed.FeedParseError) as exc:
        LOGGER.critical("Pass aborted, nothing persisted: %s", exc)
        return 1
    except notifier.NotificationError as exc:
        LOGGER.error("Pass stopped after a delivery failure: %s", exc)
        return 1
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    settings = config.Settings.from_env()

    if args.reset:
        properties = storage.SQLitePropertyStore(settings.database_path)
        storage.SeenSetStore(properties).reset()
        LOGGER.info("Cleared seen incidents in %s", settings.database_path)
        return 0

    bot = build_processor(settings)
    if args.every is None:
        return run_once(bot)

    interval = max(1, args.every) * 60
    LOGGER.info("Polling %s every %d seconds", settings.feed_url, interval)
    while True:
        try:
            run_once(bot)
        except Exception:
            LOGGER.exception("Pass failed unexpectedly; retrying in %d seconds", interval)
        time.sleep(interval)


if __name__ == "__main__":  # pragma: no cover - script entrypoint
    sys.exit(main())
