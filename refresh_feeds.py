#!/usr/bin/env python3
"""
refresh_feeds.py

Cron-safe refresh of every saved feed:
  1) Load saved feeds from FEEDS_FILE
  2) Download each source calendar
  3) Rebuild the workday calendar and store it
  4) Optionally publish it to GitHub (when GITHUB_TOKEN / GITHUB_REPOSITORY are set)

One failing feed is logged and skipped; the rest still refresh.

Usage:
    python3 refresh_feeds.py            # one pass
    python3 refresh_feeds.py --loop     # repeat every UPDATE_INTERVAL seconds

Requires:
  pip install requests icalendar python-dotenv
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import dataclass
from typing import Callable, Optional

from feed_store import FeedStore, feed_id, utc_now_iso
from ical_feed import fetch_ical
from publish_github import publish
from settings import Settings, load_settings
from simplify_calendar import SimplifyOptions, simplify

log = logging.getLogger(__name__)

PAUSE_BETWEEN_FEEDS = 0.5


@dataclass
class RefreshStatus:
    """Progress of a refresh run; owned by whoever starts the run."""
    is_updating: bool = False
    last_update_started: Optional[str] = None
    last_update_completed: Optional[str] = None
    error: Optional[str] = None
    updated: int = 0
    failed: int = 0

    def begin(self) -> None:
        self.is_updating = True
        self.last_update_started = utc_now_iso()
        self.error = None
        self.updated = 0
        self.failed = 0

    def finish(self, error: Optional[str] = None) -> None:
        self.is_updating = False
        self.last_update_completed = utc_now_iso()
        self.error = error

    def as_dict(self) -> dict:
        return {
            "isUpdating": self.is_updating,
            "lastUpdateStarted": self.last_update_started,
            "lastUpdateCompleted": self.last_update_completed,
            "error": self.error,
            "updated": self.updated,
            "failed": self.failed,
        }


def options_for(cfg: Settings, summary: Optional[str] = None) -> SimplifyOptions:
    return SimplifyOptions(
        timezone=cfg.timezone,
        summary=summary or cfg.summary,
        exclude_keywords=cfg.exclude_keywords,
        day_start_hour=cfg.day_start_hour,
    )


def generate_feed(url: str, summary: Optional[str], cfg: Settings, store: FeedStore,
                  fetch: Callable[[str], str] = fetch_ical,
                  unique_id: Optional[str] = None) -> dict:
    """Fetch ``url``, rebuild its workday calendar and save it. Returns the entry."""
    summary = summary or cfg.summary
    unique_id = unique_id or feed_id(url, summary)

    raw = fetch(url)
    result = simplify(raw, options_for(cfg, summary))
    log.info("Feed %s: %d events read, %d excluded, %d skipped, %d workdays",
             unique_id, result.events_read, result.excluded, len(result.skipped),
             len(result.records))

    entry = {
        "uniqueId": unique_id,
        "url": url,
        "summary": summary,
        "icalContent": result.ical,
        "lastUpdated": utc_now_iso(),
    }
    if cfg.publish_to_github:
        entry["publishedUrl"] = publish(cfg, f"{unique_id}.ics", result.ical,
                                        message=f"Update workday calendar {unique_id}")
    return store.save(entry)


def refresh_all(cfg: Settings, store: FeedStore, status: Optional[RefreshStatus] = None,
                fetch: Callable[[str], str] = fetch_ical,
                pause: float = PAUSE_BETWEEN_FEEDS) -> RefreshStatus:
    """Refresh every saved feed, one at a time."""
    status = status or RefreshStatus()
    status.begin()
    try:
        feeds = store.all()
    except Exception as e:
        log.error("Could not load saved feeds: %s", e)
        status.finish(error=str(e))
        raise

    log.info("Refreshing %d calendars…", len(feeds))
    for i, entry in enumerate(feeds):
        unique_id = entry.get("uniqueId", "?")
        url = entry.get("url")
        if not url:
            log.error("No URL for calendar %s; skipping", unique_id)
            status.failed += 1
            continue
        try:
            generate_feed(url, entry.get("summary"), cfg, store, fetch=fetch,
                          unique_id=entry.get("uniqueId"))
        except Exception as e:
            log.error("Failed to refresh %s (%s): %s", unique_id, url, e)
            status.failed += 1
        else:
            status.updated += 1
        if pause and i < len(feeds) - 1:
            time.sleep(pause)

    status.finish()
    log.info("Refresh done: %d updated, %d failed", status.updated, status.failed)
    return status


def main():
    cfg = load_settings()
    ap = argparse.ArgumentParser(description="Refresh every saved workday calendar")
    ap.add_argument("--loop", action="store_true",
                    help="Keep running, refreshing every --interval seconds")
    ap.add_argument("--interval", type=int, default=cfg.update_interval,
                    help=f"Seconds between refreshes with --loop (default: {cfg.update_interval})")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    store = FeedStore(cfg.feeds_file)

    while True:
        status = refresh_all(cfg, store)
        print(f"✅ Refreshed {status.updated} calendars ({status.failed} failed)")
        if not args.loop:
            break
        time.sleep(max(args.interval, 1))

    if status.failed:
        sys.exit(1)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nInterrupted.")
