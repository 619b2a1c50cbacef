"""
ical_feed.py
Read source iCalendar feeds into SourceEvent tuples and write the per-workday
records back out as a calendar that Google / Apple / Outlook will subscribe to.

Dependencies:
    pip install requests icalendar
"""

from __future__ import annotations

import datetime as _dt
import logging
import secrets
from typing import List, Mapping, NamedTuple, Optional

import requests
from icalendar import Calendar, Event, Timezone

from workday_engine import (
    DEFAULT_DAY_START,
    MalformedInputError,
    RenderInconsistencyError,
    SkippedEventWarning,
    SourceEvent,
    WorkdayRecord,
    workday_bounds,
)

log = logging.getLogger(__name__)

PRODID = "-//Workday Calendar//Simplifier//SV"
HEADERS = {"User-Agent": "Calendar-Converter/2.0 (+workday-calendar)"}
FETCH_TIMEOUT = 10
UTC_KEYS = {"UTC", "Etc/UTC", "Etc/UCT", "Etc/Zulu", "Zulu", "UCT"}

###############################################################################
# Fetching
###############################################################################

class FeedFetchError(Exception):
    """The source feed could not be downloaded."""


def normalise_url(raw_url: str) -> str:
    """Strip leading junk and turn webcal(s):// into https://."""
    raw_url = (raw_url or "").strip()
    lowered = raw_url.lower()
    positions = [p for p in (lowered.find("http"), lowered.find("webcal")) if p != -1]
    if not positions:
        raise ValueError(f"Invalid URL string: {raw_url!r}")
    url = raw_url[min(positions):]
    for scheme in ("webcals://", "webcal://"):
        if url.lower().startswith(scheme):
            return "https://" + url[len(scheme):]
    return url


def fetch_ical(url: str, timeout: float = FETCH_TIMEOUT) -> str:
    """Download a feed and return it as text."""
    url = normalise_url(url)
    try:
        resp = requests.get(url, headers=HEADERS, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise FeedFetchError(f"Could not fetch iCal data from {url}: {e}") from e
    return resp.content.decode("utf-8", errors="replace")

###############################################################################
# Reading
###############################################################################

class ParsedFeed(NamedTuple):
    events: List[SourceEvent]
    skipped: List[SkippedEventWarning]


class _SkipEvent(Exception):
    pass


def _as_aware(value, tz) -> _dt.datetime:
    """DTSTART/DTEND value -> aware datetime in ``tz``.

    Floating times are taken to be local to ``tz``; all-day dates start at
    local midnight.
    """
    if isinstance(value, _dt.datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=tz)
        return value.astimezone(tz)
    if isinstance(value, _dt.date):
        return _dt.datetime.combine(value, _dt.time.min, tzinfo=tz)
    raise _SkipEvent(f"unsupported date value {value!r}")


def _decode(component, name: str):
    try:
        return component.decoded(name)
    except (ValueError, TypeError, KeyError) as e:
        raise _SkipEvent(f"unreadable {name}: {e}") from e


def _source_event(component, tz) -> SourceEvent:
    if "DTSTART" not in component:
        raise _SkipEvent("missing DTSTART")
    start = _as_aware(_decode(component, "DTSTART"), tz)

    if "DTEND" in component:
        end = _as_aware(_decode(component, "DTEND"), tz)
    elif "DURATION" in component:
        duration = _decode(component, "DURATION")
        if not isinstance(duration, _dt.timedelta):
            raise _SkipEvent(f"unsupported DURATION {duration!r}")
        end = start + duration
    else:
        raise _SkipEvent("missing DTEND")

    if end.astimezone(_dt.timezone.utc) < start.astimezone(_dt.timezone.utc):
        raise _SkipEvent("ends before it starts")

    return SourceEvent(
        start=start,
        end=end,
        summary=str(component.get("SUMMARY", "") or ""),
        description=str(component.get("DESCRIPTION", "") or ""),
        uid=str(component.get("UID", "") or "").strip(),
    )


def read_calendar(raw_text, tz) -> ParsedFeed:
    """Parse a calendar payload.

    Raises MalformedInputError when the payload as a whole is not a calendar.
    Single events without a usable start or end are skipped and reported in
    ``ParsedFeed.skipped``.
    """
    if isinstance(raw_text, bytes):
        try:
            raw_text = raw_text.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedInputError(f"iCal data is not valid UTF-8: {e}") from e
    if not isinstance(raw_text, str):
        raise MalformedInputError(f"iCal data must be a string, got {type(raw_text).__name__}")
    raw_text = raw_text.lstrip("\ufeff")
    if not raw_text.strip():
        raise MalformedInputError("iCal data is empty")

    try:
        cal = Calendar.from_ical(raw_text)
    except (ValueError, IndexError, KeyError, TypeError) as e:
        raise MalformedInputError(f"Could not parse iCal data: {e}") from e
    if getattr(cal, "name", None) != "VCALENDAR":
        raise MalformedInputError(
            f"Expected a VCALENDAR at top level, found {getattr(cal, 'name', None)!r}"
        )

    events: List[SourceEvent] = []
    skipped: List[SkippedEventWarning] = []
    for component in cal.walk("VEVENT"):
        try:
            events.append(_source_event(component, tz))
        except _SkipEvent as e:
            warning = SkippedEventWarning(str(component.get("UID", "") or ""), str(e))
            log.warning(str(warning))
            skipped.append(warning)
    return ParsedFeed(events, skipped)


def parse_events(raw_text, tz) -> List[SourceEvent]:
    return read_calendar(raw_text, tz).events

###############################################################################
# VTIMEZONE definitions
###############################################################################

# EU rules: DST from the last Sunday of March to the last Sunday of October,
# switching at 01:00 UTC.  (standard offset hours, standard name, daylight name)
_EU_ZONES = {
    "Europe/London": (0, "GMT", "BST"),
    "Europe/Dublin": (0, "GMT", "IST"),
    "Europe/Lisbon": (0, "WET", "WEST"),
    "Atlantic/Canary": (0, "WET", "WEST"),
    "Europe/Stockholm": (1, "CET", "CEST"),
    "Europe/Oslo": (1, "CET", "CEST"),
    "Europe/Copenhagen": (1, "CET", "CEST"),
    "Europe/Berlin": (1, "CET", "CEST"),
    "Europe/Amsterdam": (1, "CET", "CEST"),
    "Europe/Brussels": (1, "CET", "CEST"),
    "Europe/Paris": (1, "CET", "CEST"),
    "Europe/Madrid": (1, "CET", "CEST"),
    "Europe/Rome": (1, "CET", "CEST"),
    "Europe/Vienna": (1, "CET", "CEST"),
    "Europe/Zurich": (1, "CET", "CEST"),
    "Europe/Prague": (1, "CET", "CEST"),
    "Europe/Warsaw": (1, "CET", "CEST"),
    "Europe/Budapest": (1, "CET", "CEST"),
    "Europe/Luxembourg": (1, "CET", "CEST"),
    "Europe/Helsinki": (2, "EET", "EEST"),
    "Europe/Tallinn": (2, "EET", "EEST"),
    "Europe/Riga": (2, "EET", "EEST"),
    "Europe/Vilnius": (2, "EET", "EEST"),
    "Europe/Athens": (2, "EET", "EEST"),
    "Europe/Bucharest": (2, "EET", "EEST"),
    "Europe/Sofia": (2, "EET", "EEST"),
}

_VTIMEZONE_TEMPLATE = "\r\n".join([
    "BEGIN:VTIMEZONE",
    "TZID:{tzid}",
    "BEGIN:STANDARD",
    "DTSTART:19701025T{std_switch:02d}0000",
    "RRULE:FREQ=YEARLY;BYMONTH=10;BYDAY=-1SU",
    "TZOFFSETFROM:{dst_offset}",
    "TZOFFSETTO:{std_offset}",
    "TZNAME:{std_name}",
    "END:STANDARD",
    "BEGIN:DAYLIGHT",
    "DTSTART:19700329T{dst_switch:02d}0000",
    "RRULE:FREQ=YEARLY;BYMONTH=3;BYDAY=-1SU",
    "TZOFFSETFROM:{std_offset}",
    "TZOFFSETTO:{dst_offset}",
    "TZNAME:{dst_name}",
    "END:DAYLIGHT",
    "END:VTIMEZONE",
    "",
])


def _offset(hours: int) -> str:
    return f"{'+' if hours >= 0 else '-'}{abs(hours):02d}00"


def vtimezone_for(tzid: str) -> Optional[Timezone]:
    """Return a VTIMEZONE for zones with fixed yearly rules, else None."""
    if tzid not in _EU_ZONES:
        return None
    std_hours, std_name, dst_name = _EU_ZONES[tzid]
    block = _VTIMEZONE_TEMPLATE.format(
        tzid=tzid,
        std_switch=2 + std_hours,   # 01:00 UTC in daylight time
        dst_switch=1 + std_hours,   # 01:00 UTC in standard time
        std_offset=_offset(std_hours),
        dst_offset=_offset(std_hours + 1),
        std_name=std_name,
        dst_name=dst_name,
    )
    return Timezone.from_ical(block)

###############################################################################
# Writing
###############################################################################

def new_uid(workday: _dt.date) -> str:
    return f"{workday.isoformat()}-{secrets.token_hex(8)}"


def _check_record(record: WorkdayRecord, tz, day_start: _dt.time) -> None:
    if record.earliest_start > record.latest_end:
        raise RenderInconsistencyError(
            f"Workday {record.workday}: start {record.earliest_start.isoformat()} "
            f"is after end {record.latest_end.isoformat()}"
        )
    window_start, window_end = workday_bounds(record.workday, tz, day_start)
    if record.earliest_start < window_start or record.latest_end > window_end:
        raise RenderInconsistencyError(
            f"Workday {record.workday}: {record.earliest_start.isoformat()} - "
            f"{record.latest_end.isoformat()} falls outside "
            f"{window_start.isoformat()} - {window_end.isoformat()}"
        )


def _add_local_time(event: Event, name: str, value: _dt.datetime, tz) -> None:
    """Write ``value`` as local wall-clock time tagged with the zone id.

    Times in the repeated fall-back hour are written in UTC, since a bare
    local time there always reads back as its first occurrence.
    """
    local = value.astimezone(tz)
    ambiguous = local.replace(fold=1 - local.fold).utcoffset() != local.utcoffset()
    if tz.key in UTC_KEYS or ambiguous:
        event.add(name, value.astimezone(_dt.timezone.utc))
        return
    event.add(name, local.replace(tzinfo=None), parameters={"TZID": tz.key})


def render_calendar(records: Mapping[_dt.date, WorkdayRecord], summary: str, tz,
                    day_start: _dt.time = DEFAULT_DAY_START,
                    now: Optional[_dt.datetime] = None) -> str:
    """Render one VEVENT per workday record, oldest workday first."""
    for workday in records:
        _check_record(records[workday], tz, day_start)

    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("x-wr-timezone", tz.key)

    vtimezone = vtimezone_for(tz.key)
    if vtimezone is not None:
        cal.add_component(vtimezone)

    stamp = (now or _dt.datetime.now(_dt.timezone.utc)).astimezone(_dt.timezone.utc)
    for workday in sorted(records):
        record = records[workday]
        event = Event()
        event.add("uid", new_uid(workday))
        event.add("summary", summary)
        _add_local_time(event, "dtstart", record.earliest_start, tz)
        _add_local_time(event, "dtend", record.latest_end, tz)
        event.add("dtstamp", stamp)
        cal.add_component(event)

    return cal.to_ical().decode("utf-8")
