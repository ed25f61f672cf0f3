# backend/tests/services/test_availability_query_service.py
"""
Tests for the public availability query.

Run with: pytest backend/tests/services/test_availability_query_service.py -v
"""

from datetime import timedelta

import pytest

from nakksha.core.exceptions import NotFoundException
from nakksha.schemas.weekly_pattern import WeeklyPatternCreate
from nakksha.services.availability_query_service import AvailabilityQueryService
from nakksha.services.booking_gate import BookingGate
from nakksha.services.pattern_service import PatternService
from nakksha.services.slot_generator import SlotGenerator


@pytest.fixture
def query(db, cache):
    return AvailabilityQueryService(db, cache)


def test_hides_booked_and_blocked(query, consultant, today, add_slot):
    d1 = today + timedelta(days=1)
    open_slot = add_slot(consultant, d1, "09:00", "10:00")
    add_slot(consultant, d1, "10:00", "11:00", is_booked=True)
    add_slot(consultant, d1, "11:00", "12:00", is_blocked=True)

    result = query.get_available_slots("priya-sharma")

    assert [s["id"] for s in result["slots"]] == [open_slot.id]
    assert result["total_available"] == 1
    assert set(result["slots"][0]) == {"id", "session_type", "date", "start_time", "end_time"}
    assert result["consultant"] == {
        "id": consultant.id,
        "slug": "priya-sharma",
        "name": "Priya Sharma",
    }


def test_past_dates_are_never_returned(query, consultant, today, add_slot):
    add_slot(consultant, today - timedelta(days=2))
    future = add_slot(consultant, today + timedelta(days=2))

    result = query.get_available_slots(
        "priya-sharma", start_date=today - timedelta(days=5), end_date=today + timedelta(days=5)
    )

    assert [s["id"] for s in result["slots"]] == [future.id]


def test_default_window(query, consultant, today, add_slot):
    add_slot(consultant, today + timedelta(days=14))
    add_slot(consultant, today + timedelta(days=15))

    assert query.get_available_slots("priya-sharma")["total_available"] == 1


def test_range_entirely_in_past_is_empty(query, consultant, today, add_slot):
    add_slot(consultant, today - timedelta(days=3))

    result = query.get_available_slots(
        "priya-sharma", start_date=today - timedelta(days=5), end_date=today - timedelta(days=1)
    )

    assert result["slots"] == []
    assert result["total_available"] == 0


def test_pagination_and_grouping(query, consultant, today, add_slot):
    start = today + timedelta(days=1)
    for day in range(3):
        for slot_start, slot_end in (("09:00", "10:00"), ("10:00", "11:00")):
            add_slot(consultant, start + timedelta(days=day), slot_start, slot_end)

    page = query.get_available_slots("priya-sharma", limit=4, offset=0)
    assert page["total_slots"] == 4
    assert page["total_available"] == 6
    assert page["pagination"] == {"limit": 4, "offset": 0, "has_more": True}
    assert [len(v) for v in page["slots_by_date"].values()] == [2, 2]

    last = query.get_available_slots("priya-sharma", limit=4, offset=4)
    assert last["total_slots"] == 2
    assert last["pagination"]["has_more"] is False


def test_limit_is_clamped():
    assert AvailabilityQueryService.clamp_limit(None) == 100
    assert AvailabilityQueryService.clamp_limit(5000) == 200
    assert AvailabilityQueryService.clamp_limit(0) == 1


def test_session_type_filter(query, consultant, today, add_slot):
    add_slot(consultant, today + timedelta(days=1))
    webinar = add_slot(consultant, today + timedelta(days=1), session_type="WEBINAR")

    result = query.get_available_slots("priya-sharma", session_type="WEBINAR")
    assert [s["id"] for s in result["slots"]] == [webinar.id]


def test_lookup_by_id_and_unknown(query, consultant):
    assert query.get_available_slots(consultant.id)["consultant"]["slug"] == "priya-sharma"
    with pytest.raises(NotFoundException, match="Consultant not found"):
        query.get_available_slots("nobody")


def test_results_are_cached_until_invalidated(db, query, cache, consultant, today, add_slot):
    add_slot(consultant, today + timedelta(days=1), "09:00", "10:00")
    first = query.get_available_slots("priya-sharma")

    # A write that bypasses the services is not visible until the cache expires.
    add_slot(consultant, today + timedelta(days=1), "10:00", "11:00")
    assert query.get_available_slots("priya-sharma") == first

    cache.invalidate_consultant_availability(consultant.id, consultant.slug)
    assert query.get_available_slots("priya-sharma")["total_available"] == 2


def test_wednesday_scenario_end_to_end(db, cache, consultant, today):
    """Pattern, generate, list, book, list again."""
    PatternService(db, cache).create_pattern(
        consultant.id,
        WeeklyPatternCreate(
            session_type="PERSONAL", day_of_week=3, start_time="14:00", end_time="15:00", timezone="UTC"
        ),
    )
    start = today + timedelta(days=1)
    end = start + timedelta(days=13)
    SlotGenerator(db, cache).generate_slots(consultant.id, start, end)
    query = AvailabilityQueryService(db, cache)

    listing = query.get_available_slots("priya-sharma", start_date=start, end_date=end)
    assert listing["total_available"] == 2

    BookingGate(db, cache).set_booked_status([listing["slots"][0]["id"]], consultant.id, True)

    listing = query.get_available_slots("priya-sharma", start_date=start, end_date=end)
    assert listing["total_available"] == 1
