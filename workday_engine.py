"""
workday_engine.py
Split calendar events at workday boundaries and fold the pieces into one
earliest-start / latest-end record per workday.

A workday is the 24-hour window that opens at ``day_start`` local time (06:00
by default) and closes at the same wall-clock time the next day.  Anything
before 06:00 belongs to the previous calendar date.

Everything in here is pure: no I/O, no module-level mutable state.
"""

from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass
from typing import Dict, Iterable, List, NamedTuple, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "Europe/Stockholm"
DEFAULT_SUMMARY = "Jobb"
DEFAULT_DAY_START = _dt.time(6, 0)
DEFAULT_EXCLUDE_KEYWORDS = (
    "work reduction",
    "holiday",
    "loa",
    "care of child",
    "sick",
)

###############################################################################
# Errors
###############################################################################

class CalendarSimplifierError(Exception):
    """Base class for everything the simplifier raises."""


class MalformedInputError(CalendarSimplifierError):
    """The payload is not a parseable calendar."""


class InvalidTimezoneError(CalendarSimplifierError):
    """The configured timezone identifier is unknown."""


class InvariantViolationError(CalendarSimplifierError):
    """Internal state that should be unreachable."""


class RenderInconsistencyError(InvariantViolationError):
    """A workday record cannot be written as a consistent event."""


class SegmentationError(InvariantViolationError):
    """Splitting an event at workday boundaries failed to make progress."""


class SkippedEventWarning(UserWarning):
    """Collected (never raised) for a source event that was dropped."""

    def __init__(self, uid: str, reason: str):
        super().__init__(f"Skipped event {uid or '<no uid>'}: {reason}")
        self.uid = uid
        self.reason = reason

###############################################################################
# Data model
###############################################################################

class SourceEvent(NamedTuple):
    start: _dt.datetime
    end: _dt.datetime
    summary: str = ""
    description: str = ""
    uid: str = ""


class Segment(NamedTuple):
    workday: _dt.date
    start: _dt.datetime
    end: _dt.datetime


@dataclass
class WorkdayRecord:
    workday: _dt.date
    earliest_start: _dt.datetime
    latest_end: _dt.datetime

###############################################################################
# Timezone / boundary helpers
###############################################################################

def resolve_timezone(name: str) -> ZoneInfo:
    """Return the ZoneInfo for ``name`` or raise InvalidTimezoneError."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidTimezoneError(f"Invalid timezone identifier: {name!r}")
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise InvalidTimezoneError(f"Invalid timezone identifier: {name!r}") from e


def workday_anchor_of(instant: _dt.datetime, tz: ZoneInfo,
                      day_start: _dt.time = DEFAULT_DAY_START) -> _dt.date:
    """Return the workday (calendar date) that ``instant`` belongs to."""
    if instant.tzinfo is None:
        raise ValueError("workday_anchor_of() needs a timezone-aware datetime")
    local = instant.astimezone(tz)
    if local.time() < day_start:
        return local.date() - _dt.timedelta(days=1)
    return local.date()


def workday_bounds(workday: _dt.date, tz: ZoneInfo,
                   day_start: _dt.time = DEFAULT_DAY_START):
    """Return the (inclusive start, exclusive end) instants of ``workday``.

    Both ends are built from local wall-clock time, so a window that spans a
    DST change is 23 or 25 hours long.
    """
    start = _dt.datetime.combine(workday, day_start, tzinfo=tz)
    end = _dt.datetime.combine(workday + _dt.timedelta(days=1), day_start, tzinfo=tz)
    return start, end

###############################################################################
# Keyword filter
###############################################################################

def should_exclude(event: SourceEvent,
                   keywords: Iterable[str] = DEFAULT_EXCLUDE_KEYWORDS) -> bool:
    """True if any keyword is a case-insensitive substring of summary or description."""
    haystacks = ((event.summary or "").casefold(), (event.description or "").casefold())
    for keyword in keywords:
        needle = (keyword or "").strip().casefold()
        if not needle:
            continue
        if any(needle in text for text in haystacks):
            return True
    return False

###############################################################################
# Segmentation
###############################################################################

def split_by_workday(event: SourceEvent, tz: ZoneInfo,
                     day_start: _dt.time = DEFAULT_DAY_START) -> List[Segment]:
    """Cut ``event`` at every workday boundary it crosses.

    The returned segments are chronological and contiguous, and together they
    cover exactly [event.start, event.end).  A zero-length event yields one
    zero-width segment.  Segment instants are in UTC.
    """
    # Same-tzinfo datetimes compare and subtract by wall clock; UTC keeps
    # the DST fall-back hour unambiguous.
    start = event.start.astimezone(_dt.timezone.utc)
    end = event.end.astimezone(_dt.timezone.utc)
    if start > end:
        raise ValueError(f"Event ends before it starts: {event.start} > {event.end}")

    if start == end:
        return [Segment(workday_anchor_of(start, tz, day_start), start, end)]

    max_steps = (end - start).days + 3
    segments: List[Segment] = []
    current = start
    while current < end:
        if len(segments) >= max_steps:
            raise SegmentationError(
                f"Gave up splitting {event.uid or event.start.isoformat()} "
                f"after {max_steps} segments"
            )
        workday = workday_anchor_of(current, tz, day_start)
        _, window_end = workday_bounds(workday, tz, day_start)
        seg_end = min(end, window_end.astimezone(_dt.timezone.utc))
        if seg_end <= current:
            raise SegmentationError(f"Segmentation stalled at {current.isoformat()}")
        segments.append(Segment(workday, current, seg_end))
        current = seg_end
    return segments

###############################################################################
# Aggregation
###############################################################################

def aggregate(segments: Iterable[Segment]) -> Dict[_dt.date, WorkdayRecord]:
    """Fold segments into one min-start / max-end record per workday."""
    records: Dict[_dt.date, WorkdayRecord] = {}
    for seg in segments:
        record = records.get(seg.workday)
        if record is None:
            records[seg.workday] = WorkdayRecord(seg.workday, seg.start, seg.end)
            continue
        if seg.start < record.earliest_start:
            record.earliest_start = seg.start
        if seg.end > record.latest_end:
            record.latest_end = seg.end
    return records


def segment_all(events: Sequence[SourceEvent], tz: ZoneInfo,
                day_start: _dt.time = DEFAULT_DAY_START) -> List[Segment]:
    """Segments of every event, in event order."""
    out: List[Segment] = []
    for event in events:
        out.extend(split_by_workday(event, tz, day_start))
    return out
