import datetime as dt
from zoneinfo import ZoneInfo

import pytest

import simplify_calendar
from ical_feed import parse_events
from simplify_calendar import SimplifyOptions, simplify
from workday_engine import InvalidTimezoneError, MalformedInputError

TZ = ZoneInfo("Europe/Stockholm")

STOCKHOLM_VTIMEZONE = """BEGIN:VTIMEZONE
TZID:Europe/Stockholm
BEGIN:STANDARD
DTSTART:19701025T030000
RRULE:FREQ=YEARLY;BYMONTH=10;BYDAY=-1SU
TZOFFSETFROM:+0200
TZOFFSETTO:+0100
TZNAME:CET
END:STANDARD
BEGIN:DAYLIGHT
DTSTART:19700329T020000
RRULE:FREQ=YEARLY;BYMONTH=3;BYDAY=-1SU
TZOFFSETFROM:+0100
TZOFFSETTO:+0200
TZNAME:CEST
END:DAYLIGHT
END:VTIMEZONE"""

SCHEDULE = "\r\n".join([
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "PRODID:-//Roster//Export//SV",
    *STOCKHOLM_VTIMEZONE.splitlines(),
    "BEGIN:VEVENT",
    "UID:night",
    "DTSTART;TZID=Europe/Stockholm:20240310T230000",
    "DTEND;TZID=Europe/Stockholm:20240311T020000",
    "SUMMARY:Night cover",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:day",
    "DTSTART;TZID=Europe/Stockholm:20240311T070000",
    "DTEND;TZID=Europe/Stockholm:20240311T150000",
    "SUMMARY:Day shift",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:leave",
    "DTSTART;TZID=Europe/Stockholm:20240312T070000",
    "DTEND;TZID=Europe/Stockholm:20240312T150000",
    "SUMMARY:Work Reduction (approved)",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:broken",
    "DTSTART;TZID=Europe/Stockholm:20240313T070000",
    "SUMMARY:No end",
    "END:VEVENT",
    "END:VCALENDAR",
    "",
])


def local(*args):
    return dt.datetime(*args, tzinfo=TZ)


def test_end_to_end_example():
    result = simplify(SCHEDULE, SimplifyOptions(timezone="Europe/Stockholm", summary="Jobb"))

    assert sorted(result.records) == [dt.date(2024, 3, 10), dt.date(2024, 3, 11)]
    night = result.records[dt.date(2024, 3, 10)]
    day = result.records[dt.date(2024, 3, 11)]
    assert night.earliest_start == local(2024, 3, 10, 23)
    assert night.latest_end == local(2024, 3, 11, 2)
    assert day.earliest_start == local(2024, 3, 11, 7)
    assert day.latest_end == local(2024, 3, 11, 15)

    assert result.events_read == 3
    assert result.excluded == 1
    assert [w.uid for w in result.skipped] == ["broken"]


def test_output_is_a_parseable_calendar():
    result = simplify(SCHEDULE)
    events = parse_events(result.ical, TZ)
    assert sorted((ev.start, ev.end) for ev in events) == [
        (local(2024, 3, 10, 23), local(2024, 3, 11, 2)),
        (local(2024, 3, 11, 7), local(2024, 3, 11, 15)),
    ]
    assert {ev.summary for ev in events} == {"Jobb"}


def test_custom_keywords_replace_defaults():
    result = simplify(SCHEDULE, SimplifyOptions(exclude_keywords=("night",)))
    assert sorted(result.records) == [dt.date(2024, 3, 11), dt.date(2024, 3, 12)]
    assert result.excluded == 1


def test_events_on_same_workday_are_merged():
    text = "\r\n".join([
        "BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//t//t//EN",
        "BEGIN:VEVENT", "DTSTART:20240311T120000Z", "DTEND:20240311T140000Z", "END:VEVENT",
        "BEGIN:VEVENT", "DTSTART:20240311T060000Z", "DTEND:20240311T080000Z", "END:VEVENT",
        # 04:30 local next morning still belongs to the 11th
        "BEGIN:VEVENT", "DTSTART:20240312T020000Z", "DTEND:20240312T033000Z", "END:VEVENT",
        "END:VCALENDAR", "",
    ])
    result = simplify(text)
    assert list(result.records) == [dt.date(2024, 3, 11)]
    record = result.records[dt.date(2024, 3, 11)]
    assert record.earliest_start == local(2024, 3, 11, 7)
    assert record.latest_end == local(2024, 3, 12, 4, 30)


def test_zero_length_event_yields_a_record():
    text = "\r\n".join([
        "BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//t//t//EN",
        "BEGIN:VEVENT", "DTSTART:20240311T090000Z", "DTEND:20240311T090000Z", "END:VEVENT",
        "END:VCALENDAR", "",
    ])
    result = simplify(text)
    record = result.records[dt.date(2024, 3, 11)]
    assert record.earliest_start == record.latest_end == local(2024, 3, 11, 10)
    assert "DTSTART;TZID=Europe/Stockholm:20240311T100000" in result.ical


def test_custom_day_start_hour():
    result = simplify(SCHEDULE, SimplifyOptions(day_start_hour=0))
    # midnight boundaries split the night shift in two
    assert sorted(result.records) == [dt.date(2024, 3, 10), dt.date(2024, 3, 11)]
    assert result.records[dt.date(2024, 3, 11)].earliest_start == local(2024, 3, 11, 0)


def test_invalid_timezone_is_reported_before_parsing():
    with pytest.raises(InvalidTimezoneError):
        simplify("not even a calendar", SimplifyOptions(timezone="Nowhere/Special"))


def test_malformed_input_propagates():
    with pytest.raises(MalformedInputError):
        simplify("not even a calendar")


def test_cli_writes_output_file(tmp_path, capsys):
    source = tmp_path / "roster.ics"
    source.write_text(SCHEDULE, encoding="utf-8")
    out = tmp_path / "out" / "workdays.ics"

    simplify_calendar.main(["--input", str(source), "--output", str(out), "--summary", "Pass"])

    text = out.read_text(encoding="utf-8")
    assert "SUMMARY:Pass" in text
    assert text.count("BEGIN:VEVENT") == 2
    assert "2 workdays written" in capsys.readouterr().out


def test_cli_exits_on_bad_input(tmp_path):
    source = tmp_path / "junk.ics"
    source.write_text("nope", encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        simplify_calendar.main(["--input", str(source), "--output", str(tmp_path / "x.ics")])
    assert "❌" in str(exc.value.code)
