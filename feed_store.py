"""
feed_store.py
Saved feed configurations and their last rendered calendar, kept in a JSON file.

Each entry has:
    uniqueId    : str   sha256(url + summary), first 16 hex chars
    url         : str
    summary     : str
    icalContent : str   last rendered calendar ("" until the first refresh)
    lastUpdated : str   ISO timestamp (UTC)
"""

from __future__ import annotations

import datetime as _dt
import hashlib
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional

ID_LENGTH = 16


def feed_id(url: str, summary: str) -> str:
    """Deterministic lookup key for a (url, summary) pair."""
    return hashlib.sha256((url + summary).encode("utf-8")).hexdigest()[:ID_LENGTH]


def utc_now_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat(timespec="seconds")


class FeedStore:
    """Key-value store of feed entries, keyed by uniqueId."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        with self.path.open(encoding="utf-8") as fh:
            data = json.load(fh)
        if isinstance(data, list):
            return {entry["uniqueId"]: entry for entry in data}
        return data

    def _dump(self, data: Dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".feeds-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(list(data.values()), fh, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

    def all(self) -> List[dict]:
        with self._lock:
            return list(self._load().values())

    def get(self, unique_id: str) -> Optional[dict]:
        if not unique_id:
            return None
        with self._lock:
            return self._load().get(unique_id)

    def save(self, entry: dict) -> dict:
        """Insert or replace ``entry`` (must carry a uniqueId)."""
        if not entry.get("uniqueId"):
            raise ValueError("Feed entry needs a uniqueId")
        entry = dict(entry)
        entry.setdefault("lastUpdated", utc_now_iso())
        with self._lock:
            data = self._load()
            data[entry["uniqueId"]] = entry
            self._dump(data)
        return entry

    def delete(self, unique_id: str) -> bool:
        with self._lock:
            data = self._load()
            if unique_id not in data:
                return False
            del data[unique_id]
            self._dump(data)
        return True
