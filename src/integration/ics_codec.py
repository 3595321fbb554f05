"""
iCalendar (.ics) codec for calendar events.

Only SUMMARY, DESCRIPTION, UID, DTSTART, DTEND and DTSTAMP are produced.
Decoding is best-effort: a malformed VEVENT is dropped on its own and the rest
of the file still imports.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError

from planbook.models import Event, new_id, utc_now

logger = logging.getLogger(__name__)

CRLF = "\r\n"
MAX_LINE_OCTETS = 75
PRODID_TEMPLATE = "-//Planbook//{name}//EN"

_UNESCAPE_RE = re.compile(r"\\([\\;,nN])")


def escape_text(text: Optional[str]) -> str:
    """Escape a TEXT value (backslash, semicolon, comma, newline)."""
    if text is None:
        return ""
    text = text.replace("\\", "\\\\")
    text = text.replace(";", "\\;")
    text = text.replace(",", "\\,")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text.replace("\n", "\\n")


def unescape_text(text: str) -> str:
    def _sub(m: re.Match) -> str:
        ch = m.group(1)
        return "\n" if ch in "nN" else ch

    return _UNESCAPE_RE.sub(_sub, text)


def fold_line(line: str) -> List[str]:
    """Split a content line into physical lines of at most 75 octets.

    Continuation lines start with a single space. Multi-byte characters are
    never split.
    """
    if len(line.encode("utf-8")) <= MAX_LINE_OCTETS:
        return [line]
    out: List[str] = []
    current = ""
    for ch in line:
        if len((current + ch).encode("utf-8")) > MAX_LINE_OCTETS:
            out.append(current)
            current = " "
        current += ch
    out.append(current)
    return out


def unfold_lines(text: str) -> List[str]:
    """Join folded continuation lines back into logical content lines."""
    lines: List[str] = []
    for raw in re.split(r"\r\n|\n|\r", text):
        if raw[:1] in (" ", "\t") and lines:
            lines[-1] += raw[1:]
        else:
            lines.append(raw)
    return lines


def format_utc(instant: datetime) -> str:
    """Basic UTC form: YYYYMMDDTHHMMSSZ."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _resolve_tzid(tzid: Optional[str]):
    if not tzid:
        return timezone.utc
    try:
        return ZoneInfo(tzid.strip('"'))
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug("Unknown TZID %r, reading as UTC", tzid)
        return timezone.utc


def parse_ics_datetime(token: str, tzid: Optional[str] = None) -> Optional[Tuple[datetime, bool]]:
    """Decode a DATE or DATE-TIME token into (UTC instant, all_day).

    An 8-character token is a whole day starting at midnight UTC. A token
    with 'T' is YYYYMMDDTHHMMSS with optional Z; floating times are read in
    TZID when it is a known zone, else as UTC. Returns None when unreadable.
    """
    token = token.strip()
    try:
        if len(token) == 8 and token.isdigit():
            day = datetime.strptime(token, "%Y%m%d")
            return day.replace(tzinfo=timezone.utc), True
        if "T" in token:
            is_utc = token.upper().endswith("Z")
            body = token[:-1] if is_utc else token
            fmt = "%Y%m%dT%H%M%S" if len(body) == 15 else "%Y%m%dT%H%M"
            parsed = datetime.strptime(body, fmt)
            zone = timezone.utc if is_utc else _resolve_tzid(tzid)
            return parsed.replace(tzinfo=zone).astimezone(timezone.utc), False
    except (ValueError, OverflowError):
        pass
    logger.debug("Unreadable ICS date token %r", token)
    return None


def to_ics(events: Iterable[Event], calendar_name: str = "Planbook", now: Optional[datetime] = None) -> str:
    """Serialize events into a VCALENDAR document with CRLF line endings."""
    stamp = format_utc(now or utc_now())
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID_TEMPLATE.format(name=escape_text(calendar_name))}",
    ]
    count = 0
    for event in events:
        lines.append("BEGIN:VEVENT")
        lines.append(f"UID:{event.id}")
        lines.append(f"SUMMARY:{escape_text(event.title)}")
        if event.description:
            lines.append(f"DESCRIPTION:{escape_text(event.description)}")
        lines.append(f"DTSTART:{format_utc(event.start)}")
        lines.append(f"DTEND:{format_utc(event.end)}")
        lines.append(f"DTSTAMP:{stamp}")
        lines.append("END:VEVENT")
        count += 1
    lines.append("END:VCALENDAR")

    logger.debug("Encoded %d event(s) into calendar %r", count, calendar_name)
    physical: List[str] = []
    for line in lines:
        physical.extend(fold_line(line))
    return CRLF.join(physical) + CRLF


def _split_property(line: str) -> Optional[Tuple[str, Dict[str, str], str]]:
    head, sep, value = line.partition(":")
    if not sep:
        return None
    name, *raw_params = head.split(";")
    params: Dict[str, str] = {}
    for p in raw_params:
        key, _, val = p.partition("=")
        params[key.strip().upper()] = val.strip()
    return name.strip().upper(), params, value


def _materialize(acc: Dict[str, object], now: datetime) -> Optional[Event]:
    if not (acc.get("title") and acc.get("start") and acc.get("end")):
        return None
    try:
        return Event(
            id=acc.get("id") or new_id(),
            title=acc["title"],
            description=acc.get("description") or "",
            start=acc["start"],
            end=acc["end"],
            all_day=bool(acc.get("all_day")),
            source="imported_ics",
            created_at=now,
            updated_at=now,
        )
    except ValidationError as e:
        logger.debug("Dropping VEVENT that failed validation: %s", e)
        return None


def from_ics(text, now: Optional[datetime] = None) -> List[Event]:
    """Decode VEVENT blocks into Event records (source 'imported_ics').

    Blocks missing a summary, start or end are dropped silently. Nested
    components (VALARM) and properties outside VEVENT are ignored.
    """
    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("utf-8", errors="replace")
    if not isinstance(text, str):
        raise TypeError(f"ICS input must be text, got {type(text).__name__}")

    now = now or utc_now()
    events: List[Event] = []
    acc: Optional[Dict[str, object]] = None
    depth = 0
    dropped = 0

    for line in unfold_lines(text):
        line = line.strip()
        if not line:
            continue
        prop = _split_property(line)
        if prop is None:
            continue
        name, params, value = prop

        if name == "BEGIN":
            if value.strip().upper() == "VEVENT":
                acc, depth = {}, 0
            elif acc is not None:
                depth += 1
            continue
        if name == "END":
            if value.strip().upper() == "VEVENT" and acc is not None:
                event = _materialize(acc, now)
                if event is None:
                    dropped += 1
                else:
                    events.append(event)
                acc = None
            elif acc is not None and depth > 0:
                depth -= 1
            continue
        if acc is None or depth > 0:
            continue

        if name == "SUMMARY":
            acc["title"] = unescape_text(value).strip()
        elif name == "DESCRIPTION":
            acc["description"] = unescape_text(value)
        elif name == "UID":
            acc["id"] = value.strip()
        elif name in ("DTSTART", "DTEND"):
            decoded = parse_ics_datetime(value, params.get("TZID"))
            if decoded is None:
                continue
            instant, all_day = decoded
            if name == "DTSTART":
                acc["start"] = instant
                acc["all_day"] = all_day
            else:
                acc["end"] = instant

    if dropped:
        logger.warning("Dropped %d malformed VEVENT block(s) during import", dropped)
    logger.info("Decoded %d event(s) from ICS text", len(events))
    return events
