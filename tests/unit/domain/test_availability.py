"""Unit tests for slot rules.

Pure functions over Venue values and an injected "now" - no clock, no database.
"""

from datetime import date, datetime, time, timedelta

import pytest

from concierge.domain.availability import check_slot, is_open, is_urgent, parse_slot_time
from concierge.domain.domain_type import VenueStatus
from tests.fakes import NOBU, WHITE_BEACH

FRIDAY = date(2025, 3, 14)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("20:00", time(20, 0)),
        ("8pm", time(20, 0)),
        ("8:30 PM", time(20, 30)),
        ("8", time(20, 0)),
        ("12", time(12, 0)),
        ("11am", time(11, 0)),
        ("12am", time(0, 0)),
        ("20:00:00", time(20, 0)),
    ],
)
def test_parse_slot_time(raw: str, expected: time):
    assert parse_slot_time(raw) == expected


@pytest.mark.parametrize("raw", ["tonight", "25:00", "13pm", ""])
def test_parse_slot_time_rejects_garbage(raw: str):
    with pytest.raises(ValueError):
        parse_slot_time(raw)


def test_open_slot_is_available(now: datetime):
    availability = check_slot(NOBU, FRIDAY, time(20, 0), 4, now)

    assert availability.available
    assert availability.reason is None
    assert availability.opening_hours == "12:00-23:30"


def test_large_group_requires_concierge(now: datetime):
    """Demonstrates: groups of 10+ are never booked directly."""
    availability = check_slot(NOBU, FRIDAY, time(20, 0), 10, now)

    assert not availability.available
    assert availability.requires_concierge


def test_past_slot_is_unavailable(now: datetime):
    availability = check_slot(NOBU, now.date(), time(13, 0), 2, now)

    assert not availability.available
    assert "passed" in availability.reason


def test_outside_hours_and_closed_days(now: datetime):
    late = check_slot(NOBU, FRIDAY, time(23, 45), 2, now)
    assert not late.available
    assert "12:00-23:30" in late.reason

    closed_fridays = NOBU.model_copy(update={"operating_hours": {**NOBU.operating_hours, "friday": "closed"}})
    closed = check_slot(closed_fridays, FRIDAY, time(20, 0), 2, now)
    assert not closed.available
    assert closed.reason == "venue is closed that day"


def test_paused_venue_takes_no_bookings(now: datetime):
    paused = NOBU.model_copy(update={"status": VenueStatus.PAUSED})

    assert not check_slot(paused, FRIDAY, time(20, 0), 2, now).available


def test_hours_past_midnight_cover_the_next_morning():
    """Demonstrates: 22:00-03:00 on Friday means Saturday 01:00 is open."""
    club = WHITE_BEACH.model_copy(update={"operating_hours": {"friday": "22:00-03:00", "saturday": "closed"}})

    assert is_open(club, FRIDAY, time(23, 0))
    assert is_open(club, FRIDAY + timedelta(days=1), time(1, 0))
    assert not is_open(club, FRIDAY, time(20, 0))


def test_unpublished_hours_count_as_open():
    assert is_open(WHITE_BEACH, FRIDAY, time(4, 0))


def test_is_urgent_within_48_hours(now: datetime):
    assert is_urgent(FRIDAY, time(20, 0), now)
    assert not is_urgent(FRIDAY + timedelta(days=3), time(20, 0), now)
