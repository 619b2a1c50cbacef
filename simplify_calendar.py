#!/usr/bin/env python3
"""
simplify_calendar.py
Collapse a shift-style .ics feed into one event per workday.

Every workday (06:00 → 06:00 local time by default) becomes a single event
running from the earliest start to the latest end of all source events that
touch it.  Events whose summary or description mention an excluded keyword
("holiday", "sick", …) are dropped first; events crossing 06:00 are split so
each part counts towards its own workday.

Usage:
    python3 simplify_calendar.py --url https://example.com/schedule.ics [--output workdays.ics]
    python3 simplify_calendar.py --input schedule.ics --summary "Jobb" --timezone Europe/Stockholm

Dependencies:
    pip install requests icalendar python-dotenv
"""

from __future__ import annotations

import argparse
import datetime as _dt
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ical_feed import FeedFetchError, fetch_ical, read_calendar, render_calendar
from settings import load_settings
from workday_engine import (
    DEFAULT_EXCLUDE_KEYWORDS,
    DEFAULT_SUMMARY,
    DEFAULT_TIMEZONE,
    CalendarSimplifierError,
    SkippedEventWarning,
    WorkdayRecord,
    aggregate,
    resolve_timezone,
    segment_all,
    should_exclude,
)

log = logging.getLogger(__name__)

OUTPUT_DEFAULT = "workdays.ics"


@dataclass(frozen=True)
class SimplifyOptions:
    timezone: str = DEFAULT_TIMEZONE
    summary: str = DEFAULT_SUMMARY
    exclude_keywords: Sequence[str] = DEFAULT_EXCLUDE_KEYWORDS
    day_start_hour: int = 6


@dataclass
class SimplifyResult:
    ical: str
    records: Dict[_dt.date, WorkdayRecord]
    events_read: int = 0
    excluded: int = 0
    skipped: List[SkippedEventWarning] = field(default_factory=list)


def simplify(raw_text, options: Optional[SimplifyOptions] = None,
             now: Optional[_dt.datetime] = None) -> SimplifyResult:
    """Parse → filter → split → aggregate → render.

    Raises InvalidTimezoneError before looking at the payload, then
    MalformedInputError if the payload is not a calendar.  Nothing is
    returned unless the whole document rendered.
    """
    options = options or SimplifyOptions()
    tz = resolve_timezone(options.timezone)
    if not 0 <= options.day_start_hour <= 23:
        raise ValueError(f"day_start_hour must be 0-23, got {options.day_start_hour}")
    day_start = _dt.time(options.day_start_hour, 0)

    parsed = read_calendar(raw_text, tz)
    kept = [ev for ev in parsed.events if not should_exclude(ev, options.exclude_keywords)]
    excluded = len(parsed.events) - len(kept)
    if excluded:
        log.info("Excluded %d of %d events by keyword", excluded, len(parsed.events))

    records = aggregate(segment_all(kept, tz, day_start))
    ical = render_calendar(records, options.summary, tz, day_start, now=now)
    return SimplifyResult(
        ical=ical,
        records=records,
        events_read=len(parsed.events),
        excluded=excluded,
        skipped=parsed.skipped,
    )

###############################################################################
# CLI entry-point
###############################################################################

def main(argv: Optional[Sequence[str]] = None) -> None:
    cfg = load_settings()
    parser = argparse.ArgumentParser(
        description="Collapse an .ics feed into one event per 06:00-06:00 workday."
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--url", help="Remote feed (http(s)://, webcal:// or webcals://)")
    source.add_argument("--input", type=Path, help="Local .ics file")
    parser.add_argument("--output", default=OUTPUT_DEFAULT, type=Path,
                        help=f"Output .ics file path (default: {OUTPUT_DEFAULT})")
    parser.add_argument("--summary", default=cfg.summary,
                        help=f"Title for every workday event (default: {cfg.summary})")
    parser.add_argument("--timezone", default=cfg.timezone,
                        help=f"IANA timezone of the workday boundary (default: {cfg.timezone})")
    parser.add_argument("--day-start", type=int, default=cfg.day_start_hour,
                        help=f"Local hour the workday starts (default: {cfg.day_start_hour})")
    parser.add_argument("--exclude", action="append", default=None, metavar="KEYWORD",
                        help="Exclusion keyword; repeat to give several (replaces the defaults)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    options = SimplifyOptions(
        timezone=args.timezone,
        summary=args.summary,
        exclude_keywords=tuple(args.exclude) if args.exclude else cfg.exclude_keywords,
        day_start_hour=args.day_start,
    )

    try:
        if args.url:
            print(f"→ Downloading {args.url} …")
            raw = fetch_ical(args.url)
        else:
            raw = args.input.read_text(encoding="utf-8")
        result = simplify(raw, options)
    except (FeedFetchError, CalendarSimplifierError, OSError, ValueError) as e:
        sys.exit(f"❌ {e}")

    args.output.parent.mkdir(parents=True, exist_ok=True)
    with args.output.open("w", encoding="utf-8", newline="") as fh:
        fh.write(result.ical)

    print(f"   Read {result.events_read} events, excluded {result.excluded}, "
          f"skipped {len(result.skipped)}")
    print(f"✅ {len(result.records)} workdays written to: {args.output}")


if __name__ == "__main__":
    main()
