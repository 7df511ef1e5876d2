"""Shared fixtures for the incident bot tests."""

from typing import Dict, List, Optional

import pytest

from incident_bot.config import Settings
from incident_bot.feed import FeedEntry
from incident_bot.notifier import NotificationPayload


class MemoryPropertyStore:
    """Dict-backed property store that records every write."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(initial or {})
        self.writes: List[str] = []

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.writes.append(key)
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


class RecordingSender:
    def __init__(self):
        self.sent: List[NotificationPayload] = []

    def send(self, payload: NotificationPayload) -> None:
        self.sent.append(payload)


def make_entry(entry_id: str, **overrides) -> FeedEntry:
    values = {
        "id": entry_id,
        "title": f"Incident {entry_id} (UTC)",
        "link": f"https://status.example/incident/{entry_id}",
        "summary_html": "<p><strong>2025-12-14 09:30</strong> (UTC timezone)</p>",
        "updated": "2025-12-14T09:45:00+00:00",
    }
    values.update(overrides)
    return FeedEntry(**values)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        feed_url="https://status.example/feed.atom",
        dashboard_url="https://status.example/",
        display_timezone="Europe/Paris",
        display_locale="fr_FR",
        recipient="ops@example.com",
    )


@pytest.fixture
def properties() -> MemoryPropertyStore:
    return MemoryPropertyStore()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def entry_factory():
    return make_entry
