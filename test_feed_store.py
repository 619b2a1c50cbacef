import json

import pytest

from feed_store import FeedStore, feed_id


def test_feed_id_is_deterministic_and_short():
    a = feed_id("https://example.com/a.ics", "Jobb")
    assert a == feed_id("https://example.com/a.ics", "Jobb")
    assert len(a) == 16
    assert a != feed_id("https://example.com/a.ics", "Work")


def test_save_get_delete(tmp_path):
    store = FeedStore(tmp_path / "feeds.json")
    assert store.all() == []
    assert store.get("missing") is None

    saved = store.save({"uniqueId": "abc", "url": "https://x", "summary": "Jobb", "icalContent": ""})
    assert saved["lastUpdated"]
    assert store.get("abc")["url"] == "https://x"

    store.save({"uniqueId": "abc", "url": "https://y", "summary": "Jobb", "icalContent": "BEGIN"})
    assert [e["url"] for e in store.all()] == ["https://y"]

    assert store.delete("abc") is True
    assert store.delete("abc") is False
    assert store.all() == []


def test_file_is_a_readable_json_list(tmp_path):
    path = tmp_path / "nested" / "feeds.json"
    FeedStore(path).save({"uniqueId": "abc", "url": "https://x", "summary": "Jobb"})
    data = json.loads(path.read_text(encoding="utf-8"))
    assert isinstance(data, list)
    assert data[0]["uniqueId"] == "abc"


def test_entry_without_id_rejected(tmp_path):
    store = FeedStore(tmp_path / "feeds.json")
    with pytest.raises(ValueError):
        store.save({"url": "https://x"})
