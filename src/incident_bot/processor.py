"""One polling pass: diff the feed against the seen set and notify new incidents."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

from . import config, feed, normalize, notifier, storage

LOGGER = logging.getLogger(__name__)

EntryLoader = Callable[[config.Settings], Sequence[feed.FeedEntry]]


@dataclass(slots=True)
class PassResult:
    """Outcome of a single :meth:`FeedProcessor.run` call."""

    fetched: int = 0
    skipped: int = 0
    notified: List[str] = field(default_factory=list)


class FeedProcessor:
    """Drives a polling pass over the incident feed.

    Entries are handled oldest first. Each unseen entry is notified and then
    recorded immediately, so a duplicate id later in the same pull is
    skipped. The seen set is written once at the end of the pass, and only
    when something was added. A failed notification stops the pass, but the
    progress made before it is still persisted before the error propagates.
    """

    def __init__(
        self,
        settings: config.Settings,
        store: storage.SeenSetStore,
        sender: notifier.MailSender,
        recipient: str,
        load_entries: EntryLoader = feed.load_entries,
    ) -> None:
        self.settings = settings
        self.store = store
        self.sender = sender
        self.recipient = recipient
        self.load_entries = load_entries

    def run(self) -> PassResult:
        seen = self.store.load()
        # Fetch and parse errors propagate before anything is written.
        entries = self.load_entries(self.settings)
        result = PassResult(fetched=len(entries))

        newly_seen: List[str] = []
        try:
            for entry in entries:
                if entry.id in seen:
                    LOGGER.debug("Skipping already notified entry %s", entry.id)
                    result.skipped += 1
                    continue
                self._notify(entry)
                seen.record_all([entry.id])
                newly_seen.append(entry.id)
        finally:
            if newly_seen:
                self.store.persist(seen)

        result.notified = newly_seen
        LOGGER.info(
            "Pass complete: %d fetched, %d notified, %d already seen",
            result.fetched,
            len(result.notified),
            result.skipped,
        )
        return result

    def _notify(self, entry: feed.FeedEntry) -> None:
        LOGGER.info("Notifying new incident %s: %s", entry.id, entry.title)
        try:
            summary = normalize.normalize_summary(entry.summary_html, entry.link, self.settings)
            payload = notifier.build_notification(entry, summary, self.recipient, self.settings)
            self.sender.send(payload)
        except Exception:
            LOGGER.exception("Failed to notify incident %s (%s)", entry.id, entry.link)
            raise
