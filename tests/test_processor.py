"""Tests for the polling pass: dedup, ordering, persistence and failures."""

import json
from typing import List

import pytest

from incident_bot.feed import FeedEntry, FeedFetchError, FeedParseError
from incident_bot.notifier import NotificationError, NotificationPayload
from incident_bot.processor import FeedProcessor
from incident_bot.storage import SEEN_IDS_KEY, SeenSet, SeenSetStore


def make_processor(settings, properties, sender, entries: List[FeedEntry]) -> FeedProcessor:
    return FeedProcessor(
        settings,
        SeenSetStore(properties, retention_limit=settings.retention_limit),
        sender,
        "ops@example.com",
        load_entries=lambda _settings: list(entries),
    )


def stored_ids(properties) -> List[str]:
    return json.loads(properties.values[SEEN_IDS_KEY])


class FailingSender:
    def __init__(self, fail_on: str):
        self.fail_on = fail_on
        self.sent: List[NotificationPayload] = []

    def send(self, payload: NotificationPayload) -> None:
        if self.fail_on in payload.subject:
            raise NotificationError("relay rejected message")
        self.sent.append(payload)


class TestFeedProcessor:
    def test_notifies_oldest_first(self, settings, properties, sender, entry_factory):
        # the loader already yields entries oldest first: C, B, A
        entries = [entry_factory("C"), entry_factory("B"), entry_factory("A")]
        result = make_processor(settings, properties, sender, entries).run()

        assert result.notified == ["C", "B", "A"]
        assert [p.subject for p in sender.sent] == [
            "[Incident] Incident C",
            "[Incident] Incident B",
            "[Incident] Incident A",
        ]
        assert stored_ids(properties) == ["C", "B", "A"]

    def test_second_run_is_idempotent(self, settings, properties, sender, entry_factory):
        entries = [entry_factory("1"), entry_factory("2")]
        make_processor(settings, properties, sender, entries).run()
        writes_after_first = len(properties.writes)

        result = make_processor(settings, properties, sender, entries).run()

        assert result.notified == []
        assert result.skipped == 2
        assert len(sender.sent) == 2
        assert len(properties.writes) == writes_after_first

    def test_no_write_when_everything_seen(self, settings, properties, sender, entry_factory):
        properties.values[SEEN_IDS_KEY] = json.dumps(["1", "2"])
        result = make_processor(settings, properties, sender, [entry_factory("1"), entry_factory("2")]).run()

        assert result.fetched == 2
        assert sender.sent == []
        assert properties.writes == []

    def test_only_unseen_entries_notified(self, settings, properties, sender, entry_factory):
        properties.values[SEEN_IDS_KEY] = json.dumps(["old"])
        result = make_processor(
            settings, properties, sender, [entry_factory("old"), entry_factory("new")]
        ).run()

        assert result.notified == ["new"]
        assert stored_ids(properties) == ["old", "new"]

    def test_duplicate_id_in_same_pull_notified_once(self, settings, properties, sender, entry_factory):
        entries = [entry_factory("dup"), entry_factory("dup", title="Again")]
        result = make_processor(settings, properties, sender, entries).run()

        assert result.notified == ["dup"]
        assert len(sender.sent) == 1

    def test_ids_recorded_through_record_all(
        self, settings, properties, sender, entry_factory, monkeypatch: pytest.MonkeyPatch
    ):
        recorded = []
        original = SeenSet.record_all

        def spy(self, entry_ids):
            entry_ids = list(entry_ids)
            recorded.extend(entry_ids)
            return original(self, entry_ids)

        monkeypatch.setattr(SeenSet, "record_all", spy)
        make_processor(settings, properties, sender, [entry_factory("1"), entry_factory("2")]).run()

        assert recorded == ["1", "2"]

    def test_retention_keeps_most_recent_across_passes(self, settings, properties, sender, entry_factory):
        first = [entry_factory(f"id-{i}") for i in range(30)]
        second = [entry_factory(f"id-{i}") for i in range(30, 60)]
        make_processor(settings, properties, sender, first).run()
        make_processor(settings, properties, sender, second).run()

        ids = stored_ids(properties)
        assert len(ids) == 50
        assert ids == [f"id-{i}" for i in range(10, 60)]

    def test_summary_repaired_against_each_entry_link(self, settings, properties, sender, entry_factory):
        entries = [
            entry_factory("1", link="https://status.example/incident/1", summary_html='<a href="?hl=en">x</a>'),
            entry_factory("2", link="https://status.example/incident/2", summary_html='<a href="?hl=en">x</a>'),
        ]
        make_processor(settings, properties, sender, entries).run()

        assert 'href="https://status.example/incident/1?hl=en"' in sender.sent[0].html_body
        assert 'href="https://status.example/incident/2?hl=en"' in sender.sent[1].html_body

    def test_summary_is_localized(self, settings, properties, sender, entry_factory):
        make_processor(settings, properties, sender, [entry_factory("1")]).run()

        body = sender.sent[0].html_body
        assert "<strong>14 déc., 10:30</strong>" in body
        assert "(UTC timezone)" not in body

    @pytest.mark.parametrize("error", [FeedFetchError("down"), FeedParseError("bad entry")])
    def test_feed_failure_persists_nothing(self, settings, properties, sender, error):
        def explode(_settings):
            raise error

        processor = FeedProcessor(
            settings, SeenSetStore(properties), sender, "ops@example.com", load_entries=explode
        )
        with pytest.raises(type(error)):
            processor.run()

        assert properties.writes == []
        assert sender.sent == []

    def test_delivery_failure_keeps_prior_progress(self, settings, properties, entry_factory):
        sender = FailingSender(fail_on="Incident B")
        entries = [entry_factory("A"), entry_factory("B"), entry_factory("C")]

        with pytest.raises(NotificationError):
            make_processor(settings, properties, sender, entries).run()

        assert [p.subject for p in sender.sent] == ["[Incident] Incident A"]
        assert stored_ids(properties) == ["A"]

    def test_failed_entry_retried_next_pass(self, settings, properties, entry_factory):
        entries = [entry_factory("A"), entry_factory("B")]
        with pytest.raises(NotificationError):
            make_processor(settings, properties, FailingSender(fail_on="Incident A"), entries).run()
        assert properties.writes == []

        retry_sender = FailingSender(fail_on="nothing")
        result = make_processor(settings, properties, retry_sender, entries).run()
        assert result.notified == ["A", "B"]

    def test_delivery_failure_is_logged(self, settings, properties, entry_factory, caplog):
        sender = FailingSender(fail_on="Incident A")
        with caplog.at_level("ERROR"):
            with pytest.raises(NotificationError):
                make_processor(settings, properties, sender, [entry_factory("A")]).run()

        assert "Failed to notify incident A" in caplog.text
