"""Slot rules shared by the availability and booking tools.

Pure functions over Venue values and an injected "now", so they are testable
without a database or a clock.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta

from .domain_type import VenueStatus
from .entities import Availability, Venue

# Parties this size or larger go to a human concierge.
LARGE_GROUP_SIZE = 10
URGENT_WINDOW = timedelta(hours=48)

_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
_TIME_PATTERN = re.compile(r"^\s*(\d{1,2})(?::(\d{2}))?(?::\d{2})?\s*([ap]\.?m\.?)?\s*$", re.IGNORECASE)
_RANGE_PATTERN = re.compile(r"^\s*(\d{1,2}:\d{2})\s*-\s*(\d{1,2}:\d{2})\s*$")


def parse_slot_time(value: str | time) -> time:
    """Parse "20:00", "8pm", "8:30 PM" or a bare "8" into a time.

    A bare hour from 1 to 11 with no minutes and no suffix means the evening,
    matching how members answer "what time?".
    """
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)

    match = _TIME_PATTERN.match(str(value))
    if match is None:
        raise ValueError(f"unrecognised time {value!r}, use HH:MM or 8pm")
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    suffix = (match.group(3) or "").replace(".", "").lower()

    if suffix:
        if not 1 <= hour <= 12:
            raise ValueError(f"hour {hour} is not valid with {suffix.upper()}")
        hour = hour % 12 + (12 if suffix == "pm" else 0)
    elif match.group(2) is None and 1 <= hour <= 11:
        hour += 12

    if hour > 23 or minute > 59:
        raise ValueError(f"unrecognised time {value!r}")
    return time(hour, minute)


def _hours_for(venue: Venue, day: date) -> tuple[time, time] | None | str:
    """Opening window for a weekday, None when closed, "unknown" when not published."""
    if not venue.operating_hours:
        return "unknown"
    name = _WEEKDAYS[day.weekday()]
    raw = venue.operating_hours.get(name) or venue.operating_hours.get(name[:3])
    if raw is None:
        return "unknown"
    if raw.strip().lower() == "closed":
        return None
    match = _RANGE_PATTERN.match(raw)
    if match is None:
        return "unknown"
    try:
        return time.fromisoformat(match.group(1).zfill(5)), time.fromisoformat(match.group(2).zfill(5))
    except ValueError:
        return "unknown"


def is_open(venue: Venue, booking_date: date, booking_time: time) -> bool:
    """Whether the slot falls in the venue's published hours.

    Ranges that close after midnight (18:00-02:00) cover the early hours of the
    following day. Venues without published hours are treated as open.
    """
    today = _hours_for(venue, booking_date)
    if today == "unknown":
        return True
    if isinstance(today, tuple):
        opens, closes = today
        if closes > opens:
            if opens <= booking_time < closes:
                return True
        elif booking_time >= opens:
            return True

    yesterday = _hours_for(venue, booking_date - timedelta(days=1))
    if isinstance(yesterday, tuple):
        opens, closes = yesterday
        if closes <= opens and booking_time < closes:
            return True
    return False


def describe_hours(venue: Venue, booking_date: date) -> str | None:
    hours = _hours_for(venue, booking_date)
    if hours == "unknown":
        return None
    if hours is None:
        return "closed"
    opens, closes = hours
    return f"{opens:%H:%M}-{closes:%H:%M}"


def is_urgent(booking_date: date, booking_time: time, now: datetime) -> bool:
    """Bookings within the next 48 hours are flagged for the venue team."""
    when = datetime.combine(booking_date, booking_time, tzinfo=now.tzinfo)
    return timedelta(0) < when - now <= URGENT_WINDOW


def check_slot(
    venue: Venue,
    booking_date: date,
    booking_time: time,
    party_size: int,
    now: datetime,
) -> Availability:
    """Decide whether a booking request can go straight to the venue."""
    reason: str | None = None
    requires_concierge = False

    when = datetime.combine(booking_date, booking_time, tzinfo=now.tzinfo)
    if venue.status is not VenueStatus.ACTIVE:
        reason = "venue is not taking bookings right now"
    elif when <= now:
        reason = "that time has already passed"
    elif party_size >= LARGE_GROUP_SIZE:
        reason = f"groups of {LARGE_GROUP_SIZE}+ are arranged by the concierge team"
        requires_concierge = True
    elif not is_open(venue, booking_date, booking_time):
        hours = describe_hours(venue, booking_date)
        reason = "venue is closed that day" if hours == "closed" else f"outside opening hours ({hours})"

    return Availability(
        venue_id=venue.id,
        venue_name=venue.name,
        booking_date=booking_date,
        booking_time=booking_time,
        party_size=party_size,
        available=reason is None,
        reason=reason,
        requires_concierge=requires_concierge,
        opening_hours=describe_hours(venue, booking_date),
    )


__all__ = [
    "LARGE_GROUP_SIZE",
    "check_slot",
    "describe_hours",
    "is_open",
    "is_urgent",
    "parse_slot_time",
]
